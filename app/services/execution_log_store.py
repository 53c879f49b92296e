"""Execution Log Store - persistent state machine of execution attempts

Allowed transitions:

    pending -> running          action and tool loaded
    pending -> failed           lookup failed
    running -> completed|failed
    pending|running -> cancelled

Every transition is a compare-and-set update on the current status, so a
row that already reached a terminal status is never rewritten.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.exceptions import InvalidStateError, NotFoundError
from app.core.logging_config import get_logger
from app.models.base import utcnow
from app.models.execution_log import ExecutionLogModel, ExecutionStatus
from app.schemas.execution import ExecutionLog


logger = get_logger(__name__)


TRANSITIONS: Dict[ExecutionStatus, frozenset] = {
    ExecutionStatus.RUNNING: frozenset({ExecutionStatus.PENDING}),
    ExecutionStatus.COMPLETED: frozenset({ExecutionStatus.RUNNING}),
    ExecutionStatus.FAILED: frozenset({ExecutionStatus.PENDING, ExecutionStatus.RUNNING}),
    ExecutionStatus.CANCELLED: frozenset({ExecutionStatus.PENDING, ExecutionStatus.RUNNING}),
}


class ExecutionLogStore(ABC):
    """Storage of execution attempts, scoped by organization"""

    @abstractmethod
    async def create_pending(
        self,
        org_id: str,
        user_id: Optional[str],
        action_key: str,
        inputs: Dict[str, Any],
        parent_id: Optional[str] = None,
        retry_count: int = 0
    ) -> ExecutionLog:
        ...

    @abstractmethod
    async def mark_running(self, execution_id: str, action_id: str, action_key: str) -> ExecutionLog:
        ...

    @abstractmethod
    async def mark_completed(
        self,
        execution_id: str,
        outputs: Dict[str, Any],
        duration: int
    ) -> ExecutionLog:
        ...

    @abstractmethod
    async def mark_failed(
        self,
        execution_id: str,
        error: Dict[str, Any],
        duration: int
    ) -> ExecutionLog:
        ...

    @abstractmethod
    async def mark_cancelled(self, execution_id: str, org_id: str) -> ExecutionLog:
        ...

    @abstractmethod
    async def get(self, execution_id: str, org_id: str) -> Optional[ExecutionLog]:
        ...

    @abstractmethod
    async def list(
        self,
        org_id: str,
        action_key: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
        limit: int = 100
    ) -> List[ExecutionLog]:
        ...

    @abstractmethod
    async def children(self, execution_id: str, org_id: str) -> List[ExecutionLog]:
        ...


class SqlExecutionLogStore(ExecutionLogStore):
    """
    SQLAlchemy implementation.

    Opens a short-lived session per operation so concurrent executions never
    share one.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def create_pending(
        self,
        org_id: str,
        user_id: Optional[str],
        action_key: str,
        inputs: Dict[str, Any],
        parent_id: Optional[str] = None,
        retry_count: int = 0
    ) -> ExecutionLog:
        """
        Create the pending row of a new execution attempt.

        Returns:
            The stored log with a freshly generated ``execution_id``
        """
        row = ExecutionLogModel(
            execution_id=str(uuid4()),
            org_id=org_id,
            user_id=user_id,
            action_key=action_key,
            status=ExecutionStatus.PENDING,
            inputs=inputs or {},
            retry_count=retry_count,
            parent_id=parent_id
        )

        async with self.session_factory() as session:
            session.add(row)
            await session.commit()
            await session.refresh(row)

        logger.debug(
            "execution_log_created",
            execution_id=row.execution_id,
            org_id=org_id,
            action_key=action_key,
            parent_id=parent_id
        )
        return ExecutionLog.model_validate(row)

    async def mark_running(self, execution_id: str, action_id: str, action_key: str) -> ExecutionLog:
        return await self._transition(
            execution_id,
            ExecutionStatus.RUNNING,
            action_id=action_id,
            action_key=action_key
        )

    async def mark_completed(
        self,
        execution_id: str,
        outputs: Dict[str, Any],
        duration: int
    ) -> ExecutionLog:
        return await self._transition(
            execution_id,
            ExecutionStatus.COMPLETED,
            outputs=outputs,
            duration=duration
        )

    async def mark_failed(
        self,
        execution_id: str,
        error: Dict[str, Any],
        duration: int
    ) -> ExecutionLog:
        return await self._transition(
            execution_id,
            ExecutionStatus.FAILED,
            error=error,
            duration=duration
        )

    async def mark_cancelled(self, execution_id: str, org_id: str) -> ExecutionLog:
        """
        Cancel a pending or running execution.

        ``duration`` is set to the time elapsed since the row was created.

        Raises:
            NotFoundError: If the execution does not exist for the org
            InvalidStateError: If the execution is already terminal
        """
        current = await self.get(execution_id, org_id)
        if current is None:
            raise NotFoundError(
                f"Execution {execution_id} not found",
                resource="execution",
                resource_id=execution_id
            )

        duration = int((utcnow() - current.created_at).total_seconds() * 1000)
        return await self._transition(
            execution_id,
            ExecutionStatus.CANCELLED,
            org_id=org_id,
            duration=max(duration, 0)
        )

    async def get(self, execution_id: str, org_id: str) -> Optional[ExecutionLog]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ExecutionLogModel).where(
                    ExecutionLogModel.execution_id == execution_id,
                    ExecutionLogModel.org_id == org_id
                )
            )
            row = result.scalar_one_or_none()
            return ExecutionLog.model_validate(row) if row is not None else None

    async def list(
        self,
        org_id: str,
        action_key: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
        limit: int = 100
    ) -> List[ExecutionLog]:
        """List an org's executions, most recent first"""
        stmt = select(ExecutionLogModel).where(ExecutionLogModel.org_id == org_id)
        if action_key is not None:
            stmt = stmt.where(ExecutionLogModel.action_key == action_key)
        if status is not None:
            stmt = stmt.where(ExecutionLogModel.status == ExecutionStatus(status))
        stmt = stmt.order_by(ExecutionLogModel.created_at.desc(), ExecutionLogModel.id.desc()).limit(limit)

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [ExecutionLog.model_validate(row) for row in result.scalars().all()]

    async def children(self, execution_id: str, org_id: str) -> List[ExecutionLog]:
        """Executions that retried the given one, oldest first"""
        async with self.session_factory() as session:
            result = await session.execute(
                select(ExecutionLogModel)
                .where(
                    ExecutionLogModel.parent_id == execution_id,
                    ExecutionLogModel.org_id == org_id
                )
                .order_by(ExecutionLogModel.created_at.asc())
            )
            return [ExecutionLog.model_validate(row) for row in result.scalars().all()]

    async def _transition(
        self,
        execution_id: str,
        target: ExecutionStatus,
        org_id: Optional[str] = None,
        **values: Any
    ) -> ExecutionLog:
        allowed: Iterable[ExecutionStatus] = TRANSITIONS[target]

        async with self.session_factory() as session:
            stmt = (
                update(ExecutionLogModel)
                .where(
                    ExecutionLogModel.execution_id == execution_id,
                    ExecutionLogModel.status.in_(list(allowed))
                )
                .values(status=target, updated_at=utcnow(), **values)
                .execution_options(synchronize_session=False)
            )
            if org_id is not None:
                stmt = stmt.where(ExecutionLogModel.org_id == org_id)

            result = await session.execute(stmt)
            await session.commit()

            row = (await session.execute(
                select(ExecutionLogModel).where(ExecutionLogModel.execution_id == execution_id)
            )).scalar_one_or_none()

        if row is None or (org_id is not None and row.org_id != org_id):
            raise NotFoundError(
                f"Execution {execution_id} not found",
                resource="execution",
                resource_id=execution_id
            )

        if result.rowcount == 0:
            raise InvalidStateError(
                f"Cannot move execution from '{row.status.value}' to '{target.value}'",
                current_status=row.status.value,
                requested=target.value,
                execution_id=execution_id
            )

        logger.debug(
            "execution_status_changed",
            execution_id=execution_id,
            status=target.value
        )
        return ExecutionLog.model_validate(row)
