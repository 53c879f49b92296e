"""Pydantic schemas for action execution and execution logs"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

from app.models.execution_log import ExecutionStatus


class TenantContext(BaseModel):
    """Organization and user on whose behalf an operation runs"""
    org_id: str = Field(..., min_length=1)
    user_id: Optional[str] = None


class ExecutionErrorInfo(BaseModel):
    """Error recorded on a failed execution"""
    message: str
    status_code: Optional[int] = None
    details: Optional[Dict[str, Any]] = None


class ExecutionLog(BaseModel):
    """One execution attempt as stored in the execution log"""
    model_config = ConfigDict(from_attributes=True)

    execution_id: str
    org_id: str
    user_id: Optional[str] = None
    action_id: Optional[str] = None
    action_key: str
    status: ExecutionStatus
    inputs: Dict[str, Any] = Field(default_factory=dict)
    outputs: Optional[Dict[str, Any]] = None
    error: Optional[ExecutionErrorInfo] = None
    duration: Optional[int] = Field(None, description="Duration in milliseconds")
    retry_count: int = 0
    parent_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ExecutionLogDetail(ExecutionLog):
    """Execution log with the ids of attempts that retried it"""
    retries: List[str] = Field(default_factory=list)


class ExecutionListResponse(BaseModel):
    executions: List[ExecutionLog]
    count: int


class ExecuteActionRequest(BaseModel):
    """Body of an execute request"""
    inputs: Dict[str, Any] = Field(
        default_factory=dict,
        description="Inputs matching the action's input schema"
    )


class ActionExecutionOutputs(BaseModel):
    """Metadata describing a successful execution"""
    org_id: str
    action_key: str
    tool_key: str
    timestamp: str
    status_code: Optional[int] = None
    url: str
    executed_in_sandbox: bool = True
    sandbox_id: Optional[str] = None
    sandbox_duration: Optional[int] = None


class ActionExecutionResult(BaseModel):
    """Result returned to the caller of a successful execution"""
    success: bool = True
    execution_id: str
    duration: int = Field(..., description="Duration in milliseconds")
    data: Any = None
    outputs: ActionExecutionOutputs
