"""Pydantic schemas for sandboxed HTTP execution"""

from typing import Any, Dict, Literal, Optional
from pydantic import BaseModel, Field, field_validator


HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]
SandboxErrorType = Literal["http", "network", "timeout", "sandbox", "execution"]


class SandboxRequest(BaseModel):
    """One outbound HTTP call to run inside a sandbox"""
    url: str = Field(..., min_length=1)
    method: HttpMethod = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = None
    timeout_ms: int = Field(default=30000, ge=1)

    @field_validator("method", mode="before")
    @classmethod
    def upper_method(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class SandboxError(BaseModel):
    message: str
    type: SandboxErrorType
    code: Optional[str] = None


class SandboxExecutionResult(BaseModel):
    """Outcome of a sandboxed call; failures are values, not exceptions"""
    success: bool
    status_code: Optional[int] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    data: Any = None
    error: Optional[SandboxError] = None
    duration_ms: int = 0
    sandbox_id: Optional[str] = None
    executed_in_sandbox: bool = True

    @property
    def timed_out(self) -> bool:
        return self.error is not None and self.error.type == "timeout"
