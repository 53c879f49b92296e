"""Common API dependencies for tenant context and engine services"""

from typing import Optional
from fastapi import Header, HTTPException, Request, status

from app.schemas.execution import TenantContext
from app.services import ActionExecutionService, ExecutionManager, ExecutionServices


async def get_tenant(
    x_org_id: Optional[str] = Header(None, alias="X-Org-ID"),
    x_user_id: Optional[str] = Header(None, alias="X-User-ID")
) -> TenantContext:
    """
    Build the tenant context from request headers.

    Raises:
        HTTPException 400: If the organization header is missing
    """
    if not x_org_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Org-ID header is required"
        )
    return TenantContext(org_id=x_org_id, user_id=x_user_id or None)


def get_execution_services(request: Request) -> ExecutionServices:
    services = getattr(request.app.state, "execution_services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Execution engine is not initialized"
        )
    return services


def get_action_service(request: Request) -> ActionExecutionService:
    return get_execution_services(request).action_service


def get_execution_manager(request: Request) -> ExecutionManager:
    return get_execution_services(request).execution_manager
