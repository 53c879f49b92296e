"""Pydantic schemas for API request/response validation"""

from app.schemas.action import (
    ActionDefinition,
    ToolDefinition,
    ParameterDescriptor,
    ValidationRules,
    parse_input_schema,
)
from app.schemas.auth import (
    AuthInjection,
    AuthResolution,
    NoAuth,
    ApiKeyAuth,
    BearerAuth,
    OrgAuthConfig,
    UserCredential,
)
from app.schemas.execution import (
    TenantContext,
    ExecutionLog,
    ExecutionLogDetail,
    ExecutionListResponse,
    ExecuteActionRequest,
    ActionExecutionResult,
    ActionExecutionOutputs,
)
from app.schemas.sandbox import (
    SandboxRequest,
    SandboxExecutionResult,
    SandboxError,
)

__all__ = [
    "ActionDefinition",
    "ToolDefinition",
    "ParameterDescriptor",
    "ValidationRules",
    "parse_input_schema",
    "AuthInjection",
    "AuthResolution",
    "NoAuth",
    "ApiKeyAuth",
    "BearerAuth",
    "OrgAuthConfig",
    "UserCredential",
    "TenantContext",
    "ExecutionLog",
    "ExecutionLogDetail",
    "ExecutionListResponse",
    "ExecuteActionRequest",
    "ActionExecutionResult",
    "ActionExecutionOutputs",
    "SandboxRequest",
    "SandboxExecutionResult",
    "SandboxError",
]
