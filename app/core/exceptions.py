"""Custom exceptions for the Action Execution Engine"""

from typing import List, Optional, Dict, Any
from datetime import datetime, timezone


class ActionEngineError(Exception):
    """
    Base class for all typed engine errors.

    Every engine error carries a machine-readable ``error_type``, the HTTP
    status it maps to at the API surface, and optional debugging details.
    """

    error_type = "action_engine_error"
    http_status = 500

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        execution_id: Optional[str] = None,
    ):
        self.message = message
        self.details = details or {}
        self.execution_id = execution_id
        self.timestamp = datetime.now(timezone.utc)

        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for logging.

        Returns:
            Dictionary representation of the error
        """
        return {
            "error_type": self.error_type,
            "message": self.message,
            "execution_id": self.execution_id,
            "details": self.details,
            "timestamp": self.timestamp.isoformat()
        }

    def get_api_response(self) -> Dict[str, Any]:
        """
        Get API-friendly error response.

        Returns:
            Dictionary suitable for HTTP error responses
        """
        response = {
            "detail": self.message,
            "type": self.error_type,
        }
        if self.execution_id:
            response["execution_id"] = self.execution_id
        return response


class NotFoundError(ActionEngineError):
    """
    Raised when an action or execution does not exist for the tenant.

    Cross-org lookups of executions also surface as NotFoundError so that
    the existence of another tenant's rows is never revealed.
    """

    error_type = "not_found"
    http_status = 404

    def __init__(
        self,
        message: str,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        execution_id: Optional[str] = None,
    ):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(
            message,
            details={"resource": resource, "resource_id": resource_id},
            execution_id=execution_id,
        )


class ForbiddenError(ActionEngineError):
    """Raised when an action's tool belongs to a different organization."""

    error_type = "forbidden"
    http_status = 403


class ValidationError(ActionEngineError):
    """
    Raised when action inputs fail validation.

    Carries the full list of field-level errors, never just the first one.
    """

    error_type = "validation_error"
    http_status = 400

    def __init__(
        self,
        message: str,
        field_errors: Optional[List[Dict[str, Any]]] = None,
        execution_id: Optional[str] = None,
    ):
        self.field_errors = field_errors or []
        super().__init__(
            message,
            details={"errors": self.field_errors},
            execution_id=execution_id,
        )

    @property
    def fields(self) -> List[str]:
        return [error.get("field") for error in self.field_errors]

    def get_api_response(self) -> Dict[str, Any]:
        response = super().get_api_response()
        response["errors"] = self.field_errors
        return response


class AuthResolutionError(ActionEngineError):
    """
    Raised inside credential resolution when auth material cannot be produced.

    This error never reaches callers of the engine: the credential resolver
    downgrades it to "no auth" and the execution proceeds.
    """

    error_type = "auth_resolution_error"

    def __init__(
        self,
        message: str,
        reason: str = "unknown",
        org_id: Optional[str] = None,
        tool_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ):
        self.reason = reason
        self.org_id = org_id
        self.tool_id = tool_id
        self.user_id = user_id
        super().__init__(
            message,
            details={
                "reason": reason,
                "org_id": org_id,
                "tool_id": tool_id,
                "user_id": user_id,
            },
        )


class ExecutionError(ActionEngineError):
    """
    Raised when the outbound call of an action fails.

    This exception is raised when:
    - The remote endpoint answers with a non-2xx status
    - The request fails at the transport level
    - The sandbox could not run the request
    """

    error_type = "execution_error"
    http_status = 502

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        execution_id: Optional[str] = None,
    ):
        self.status_code = status_code
        super().__init__(message, details=details, execution_id=execution_id)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["status_code"] = self.status_code
        return result

    def get_api_response(self) -> Dict[str, Any]:
        response = super().get_api_response()
        response["status_code"] = self.status_code
        response["details"] = self.details
        return response


class ExecutionTimeoutError(ExecutionError):
    """Raised when the outbound call exceeded its hard timeout."""

    error_type = "execution_timeout"
    http_status = 504


class InvalidStateError(ActionEngineError):
    """
    Raised when an execution cannot move to the requested state.

    Examples: cancelling a completed execution, retrying a running one.
    """

    error_type = "invalid_state"
    http_status = 409

    def __init__(
        self,
        message: str,
        current_status: Optional[str] = None,
        requested: Optional[str] = None,
        execution_id: Optional[str] = None,
    ):
        self.current_status = current_status
        self.requested = requested
        super().__init__(
            message,
            details={"current_status": current_status, "requested": requested},
            execution_id=execution_id,
        )
