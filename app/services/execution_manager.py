"""Execution Manager - tenant-scoped queries, cancel and retry of executions"""

from typing import List, Optional

from app.core.exceptions import InvalidStateError, NotFoundError
from app.core.logging_config import get_logger
from app.models.execution_log import ExecutionStatus
from app.schemas.execution import (
    ActionExecutionResult,
    ExecutionLog,
    ExecutionLogDetail,
    TenantContext,
)
from app.services.action_executor import ActionExecutionService
from app.services.execution_log_store import ExecutionLogStore


logger = get_logger(__name__)


RETRYABLE_STATUSES = frozenset({ExecutionStatus.FAILED, ExecutionStatus.CANCELLED})


class ExecutionManager:
    """
    Manages existing executions for a tenant.

    Responsibilities:
    - List and inspect executions (other orgs' rows are invisible)
    - Cancel pending or running executions (state only)
    - Retry failed or cancelled executions as new, linked attempts
    """

    def __init__(
        self,
        log_store: ExecutionLogStore,
        action_service: ActionExecutionService,
        default_limit: int = 100,
        max_limit: int = 1000
    ):
        self.log_store = log_store
        self.action_service = action_service
        self.default_limit = default_limit
        self.max_limit = max_limit

    async def list_executions(
        self,
        tenant: TenantContext,
        action_key: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
        limit: Optional[int] = None
    ) -> List[ExecutionLog]:
        """List executions of the tenant's org, newest first"""
        limit = self.default_limit if limit is None else limit
        limit = max(1, min(limit, self.max_limit))
        return await self.log_store.list(
            tenant.org_id,
            action_key=action_key,
            status=status,
            limit=limit
        )

    async def get_execution_status(self, execution_id: str, tenant: TenantContext) -> ExecutionLogDetail:
        """
        Get one execution with the ids of its retries.

        Raises:
            NotFoundError: If missing or owned by another org
        """
        execution = await self._get_or_raise(execution_id, tenant)
        children = await self.log_store.children(execution_id, tenant.org_id)
        return ExecutionLogDetail(
            **execution.model_dump(),
            retries=[child.execution_id for child in children]
        )

    async def cancel_execution(self, execution_id: str, tenant: TenantContext) -> ExecutionLog:
        """
        Cancel a pending or running execution.

        Cancellation only changes the recorded state; an in-flight call is not
        interrupted and its result is discarded.

        Raises:
            NotFoundError: If missing or owned by another org
            InvalidStateError: If the execution is already terminal
        """
        execution = await self._get_or_raise(execution_id, tenant)
        if execution.status.is_terminal:
            raise InvalidStateError(
                f"Cannot cancel execution with status '{execution.status.value}'",
                current_status=execution.status.value,
                requested=ExecutionStatus.CANCELLED.value,
                execution_id=execution_id
            )

        cancelled = await self.log_store.mark_cancelled(execution_id, tenant.org_id)
        logger.info(
            "execution_cancelled",
            execution_id=execution_id,
            org_id=tenant.org_id,
            user_id=tenant.user_id,
            previous_status=execution.status.value
        )
        return cancelled

    async def retry_execution(self, execution_id: str, tenant: TenantContext) -> ActionExecutionResult:
        """
        Re-run a failed or cancelled execution with its original inputs.

        The new attempt is a new row with ``parent_id`` set to the original
        and ``retry_count`` one higher. Errors of the new attempt propagate
        exactly as from ``execute_action``.

        Raises:
            NotFoundError: If missing or owned by another org
            InvalidStateError: If the execution is not failed or cancelled
        """
        original = await self._get_or_raise(execution_id, tenant)
        if original.status not in RETRYABLE_STATUSES:
            raise InvalidStateError(
                f"Cannot retry execution with status '{original.status.value}'",
                current_status=original.status.value,
                requested="retry",
                execution_id=execution_id
            )

        logger.info(
            "execution_retry_requested",
            execution_id=execution_id,
            org_id=tenant.org_id,
            retry_count=original.retry_count + 1
        )
        return await self.action_service.execute_action(
            original.org_id,
            original.user_id,
            original.action_key,
            original.inputs,
            parent=original
        )

    async def _get_or_raise(self, execution_id: str, tenant: TenantContext) -> ExecutionLog:
        execution = await self.log_store.get(execution_id, tenant.org_id)
        if execution is None:
            raise NotFoundError(
                f"Execution {execution_id} not found",
                resource="execution",
                resource_id=execution_id
            )
        return execution
