"""
Execution API Endpoints

Query, cancel and retry execution attempts of the calling organization.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query

from app.api.dependencies import get_execution_manager, get_tenant
from app.models.execution_log import ExecutionStatus
from app.schemas.execution import (
    ActionExecutionResult,
    ExecutionListResponse,
    ExecutionLog,
    ExecutionLogDetail,
    TenantContext,
)
from app.services import ExecutionManager


router = APIRouter(prefix="/actions/executions", tags=["Executions"])


@router.get(
    "",
    response_model=ExecutionListResponse,
    summary="List executions"
)
async def list_executions(
    action_key: Optional[str] = Query(None, description="Filter by action key"),
    status: Optional[ExecutionStatus] = Query(None, description="Filter by status"),
    limit: Optional[int] = Query(None, description="Maximum number of results, clamped to 1..1000"),
    tenant: TenantContext = Depends(get_tenant),
    manager: ExecutionManager = Depends(get_execution_manager)
) -> ExecutionListResponse:
    """List the organization's executions, most recent first"""
    executions = await manager.list_executions(
        tenant,
        action_key=action_key,
        status=status,
        limit=limit
    )
    return ExecutionListResponse(executions=executions, count=len(executions))


@router.get(
    "/{execution_id}",
    response_model=ExecutionLogDetail,
    summary="Get execution status"
)
async def get_execution(
    execution_id: str,
    tenant: TenantContext = Depends(get_tenant),
    manager: ExecutionManager = Depends(get_execution_manager)
) -> ExecutionLogDetail:
    return await manager.get_execution_status(execution_id, tenant)


@router.post(
    "/{execution_id}/cancel",
    response_model=ExecutionLog,
    summary="Cancel a pending or running execution"
)
async def cancel_execution(
    execution_id: str,
    tenant: TenantContext = Depends(get_tenant),
    manager: ExecutionManager = Depends(get_execution_manager)
) -> ExecutionLog:
    """
    Mark an execution cancelled.

    An upstream call already in flight is not interrupted; its outcome is
    discarded.
    """
    return await manager.cancel_execution(execution_id, tenant)


@router.post(
    "/{execution_id}/retry",
    response_model=ActionExecutionResult,
    summary="Retry a failed or cancelled execution"
)
async def retry_execution(
    execution_id: str,
    tenant: TenantContext = Depends(get_tenant),
    manager: ExecutionManager = Depends(get_execution_manager)
) -> ActionExecutionResult:
    return await manager.retry_execution(execution_id, tenant)
