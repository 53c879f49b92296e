"""
Action API Endpoints

Execute actions by key or id and list the executions of one action.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query

from app.api.dependencies import get_action_service, get_execution_manager, get_tenant
from app.models.execution_log import ExecutionStatus
from app.schemas.execution import (
    ActionExecutionResult,
    ExecuteActionRequest,
    ExecutionListResponse,
    TenantContext,
)
from app.services import ActionExecutionService, ExecutionManager


router = APIRouter(prefix="/actions", tags=["Actions"])


@router.post(
    "/by-id/{action_id}/execute",
    response_model=ActionExecutionResult,
    summary="Execute an action by id"
)
async def execute_action_by_id(
    action_id: str,
    request: ExecuteActionRequest,
    tenant: TenantContext = Depends(get_tenant),
    service: ActionExecutionService = Depends(get_action_service)
) -> ActionExecutionResult:
    """Execute the action with the given id using the supplied inputs"""
    return await service.execute_action_by_id(
        tenant.org_id,
        tenant.user_id,
        action_id,
        request.inputs
    )


@router.post(
    "/{action_key}/execute",
    response_model=ActionExecutionResult,
    summary="Execute an action by key"
)
async def execute_action(
    action_key: str,
    request: ExecuteActionRequest,
    tenant: TenantContext = Depends(get_tenant),
    service: ActionExecutionService = Depends(get_action_service)
) -> ActionExecutionResult:
    """
    Execute an action on behalf of the calling user.

    Errors map to HTTP statuses: 404 unknown action, 403 cross-org tool,
    400 invalid inputs, 502 failed upstream call, 504 upstream timeout.
    """
    return await service.execute_action(
        tenant.org_id,
        tenant.user_id,
        action_key,
        request.inputs
    )


@router.get(
    "/{action_key}/executions",
    response_model=ExecutionListResponse,
    summary="List executions of one action"
)
async def list_action_executions(
    action_key: str,
    status: Optional[ExecutionStatus] = Query(None, description="Filter by status"),
    limit: Optional[int] = Query(None, description="Maximum number of results"),
    tenant: TenantContext = Depends(get_tenant),
    manager: ExecutionManager = Depends(get_execution_manager)
) -> ExecutionListResponse:
    executions = await manager.list_executions(
        tenant,
        action_key=action_key,
        status=status,
        limit=limit
    )
    return ExecutionListResponse(executions=executions, count=len(executions))
