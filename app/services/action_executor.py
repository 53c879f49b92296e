"""Action Execution Service - orchestrates one action execution end to end

Flow of a single execution:
1. Create a pending log row
2. Load the action and its tool (row -> failed on NotFound / Forbidden)
3. Row -> running, validate inputs (row -> failed on ValidationError)
4. Resolve credentials, build URL, headers and body
5. Run the call in a fresh sandbox with a hard timeout
6. Row -> completed or failed, metrics, return or raise
"""

import asyncio
import json
import re
import time
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from app.core.exceptions import (
    ActionEngineError,
    ExecutionError,
    ExecutionTimeoutError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.core.logging_config import get_logger
from app.core.monitoring import record_action_execution, record_validation_errors
from app.models.base import utcnow
from app.schemas.action import ActionDefinition, ToolDefinition
from app.schemas.auth import ApiKeyAuth, BearerAuth, NoAuth
from app.schemas.execution import (
    ActionExecutionOutputs,
    ActionExecutionResult,
    ExecutionLog,
)
from app.schemas.sandbox import SandboxExecutionResult, SandboxRequest
from app.services.catalog import ActionCatalog
from app.services.credential_resolver import CredentialResolver
from app.services.execution_log_store import ExecutionLogStore
from app.services.input_validator import InputValidator
from app.services.sandbox_executor import SandboxedExecutor


logger = get_logger(__name__)


TEMPLATE_PATTERN = re.compile(r"\{\{([^}]+)\}\}")
UNKNOWN_TOOL = "unknown"


def _template_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def render_template(template: str, values: Mapping[str, Any]) -> str:
    """
    Substitute ``{{name}}`` placeholders with the string form of input values.

    Placeholders without a matching value are left verbatim.
    """
    def replace(match: re.Match) -> str:
        key = match.group(1).strip()
        value = values.get(key)
        if value is None:
            return match.group(0)
        return _template_value(value)

    return TEMPLATE_PATTERN.sub(replace, template)


def build_url(base_url: str, endpoint: str, values: Mapping[str, Any]) -> str:
    """Join a relative endpoint to the tool's base URL and render placeholders"""
    if endpoint.startswith("http"):
        url = endpoint
    elif not base_url:
        url = endpoint
    else:
        url = f"{base_url.rstrip('/')}/{endpoint.lstrip('/')}"
    return render_template(url, values)


def _set_header(headers: Dict[str, str], name: str, value: Any) -> None:
    for existing in [key for key in headers if key.lower() == name.lower()]:
        del headers[existing]
    headers[name] = str(value)


def build_headers(
    static_headers: Mapping[str, Any],
    auth: Union[NoAuth, ApiKeyAuth, BearerAuth]
) -> Dict[str, str]:
    """
    Default content type, then the action's static headers, then auth.

    Header names compare case-insensitively; a later source replaces an
    earlier one whatever the casing.
    """
    headers = {"Content-Type": "application/json"}
    for name, value in (static_headers or {}).items():
        _set_header(headers, name, value)
    for name, value in auth.headers().items():
        _set_header(headers, name, value)
    return headers


class ActionExecutionService:
    """
    Executes org-scoped actions on behalf of a user.

    Every execution owns exactly one log row, which always ends terminal
    unless the process dies mid-flight.
    """

    def __init__(
        self,
        catalog: ActionCatalog,
        log_store: ExecutionLogStore,
        credential_resolver: CredentialResolver,
        sandbox_executor: SandboxedExecutor,
        validator: Optional[InputValidator] = None,
        timeout_ms: int = 30000
    ):
        self.catalog = catalog
        self.log_store = log_store
        self.credential_resolver = credential_resolver
        self.sandbox_executor = sandbox_executor
        self.validator = validator or InputValidator()
        self.timeout_ms = timeout_ms

    async def execute_action(
        self,
        org_id: str,
        user_id: Optional[str],
        action_key: str,
        inputs: Optional[Dict[str, Any]],
        *,
        parent: Optional[ExecutionLog] = None
    ) -> ActionExecutionResult:
        """
        Execute an action identified by its key.

        Args:
            org_id: Organization the action belongs to
            user_id: User on whose behalf the call is made
            action_key: Action key, unique within the org
            inputs: Raw inputs
            parent: Execution being retried, if any

        Returns:
            ActionExecutionResult of the successful call

        Raises:
            NotFoundError: Action or tool does not exist
            ForbiddenError: Tool belongs to another organization
            ValidationError: Inputs do not match the action's schema
            ExecutionTimeoutError: Call exceeded the timeout
            ExecutionError: Call failed or returned a non-2xx status
        """
        return await self._execute(org_id, user_id, action_key, inputs, by_id=False, parent=parent)

    async def execute_action_by_id(
        self,
        org_id: str,
        user_id: Optional[str],
        action_id: str,
        inputs: Optional[Dict[str, Any]]
    ) -> ActionExecutionResult:
        """Execute an action identified by its id; same contract as ``execute_action``"""
        return await self._execute(org_id, user_id, action_id, inputs, by_id=True)

    async def _execute(
        self,
        org_id: str,
        user_id: Optional[str],
        reference: str,
        inputs: Optional[Dict[str, Any]],
        by_id: bool,
        parent: Optional[ExecutionLog] = None
    ) -> ActionExecutionResult:
        started = time.monotonic()
        inputs = inputs if inputs is not None else {}

        log = await self.log_store.create_pending(
            org_id=org_id,
            user_id=user_id,
            action_key=reference,
            inputs=inputs,
            parent_id=parent.execution_id if parent else None,
            retry_count=parent.retry_count + 1 if parent else 0
        )
        execution_id = log.execution_id
        action_key = reference
        tool_key = UNKNOWN_TOOL

        logger.info(
            "action_execution_started",
            execution_id=execution_id,
            org_id=org_id,
            action=reference,
            by_id=by_id,
            parent_id=log.parent_id
        )

        try:
            action, tool = await self._load_action(org_id, reference, by_id, execution_id, started)
            action_key = action.key
            tool_key = tool.name

            record_action_execution(org_id, tool_key, action_key, "started")
            await self.log_store.mark_running(execution_id, action.id, action.key)

            validation = self.validator.validate(action.input_schema, inputs)
            if not validation.valid:
                field_errors = [error.model_dump() for error in validation.errors]
                record_validation_errors(org_id, action_key, validation.error_types)
                record_action_execution(org_id, tool_key, action_key, "error")
                await self._finish_failed(execution_id, started, {
                    "message": "Input validation failed",
                    "status_code": None,
                    "details": {"type": "validation", "errors": field_errors}
                })
                raise ValidationError(
                    f"Input validation failed for action '{action_key}'",
                    field_errors=field_errors,
                    execution_id=execution_id
                )
            if validation.dropped_fields:
                logger.debug(
                    "unknown_inputs_dropped",
                    execution_id=execution_id,
                    fields=validation.dropped_fields
                )

            request = await self._build_request(org_id, user_id, action, tool, validation.validated)
            sandbox_result = await self.sandbox_executor.execute(request)
            duration = _elapsed_ms(started)

            if not sandbox_result.success:
                error = self._execution_error(sandbox_result, execution_id)
                record_action_execution(org_id, tool_key, action_key, "error")
                await self._finish_failed(execution_id, started, {
                    "message": error.message,
                    "status_code": error.status_code,
                    "details": error.details
                })
                logger.warning(
                    "action_execution_failed",
                    execution_id=execution_id,
                    action_key=action_key,
                    status_code=error.status_code,
                    error_type=error.error_type,
                    duration_ms=duration
                )
                raise error

            outputs = ActionExecutionOutputs(
                org_id=org_id,
                action_key=action_key,
                tool_key=tool_key,
                timestamp=utcnow().isoformat() + "Z",
                status_code=sandbox_result.status_code,
                url=request.url,
                executed_in_sandbox=sandbox_result.executed_in_sandbox,
                sandbox_id=sandbox_result.sandbox_id,
                sandbox_duration=sandbox_result.duration_ms
            )
            await self._finish_completed(execution_id, outputs, duration)
            record_action_execution(org_id, tool_key, action_key, "success", duration / 1000)

            logger.info(
                "action_execution_completed",
                execution_id=execution_id,
                action_key=action_key,
                status_code=sandbox_result.status_code,
                duration_ms=duration
            )
            return ActionExecutionResult(
                execution_id=execution_id,
                duration=duration,
                data=sandbox_result.data,
                outputs=outputs
            )

        except ActionEngineError:
            raise
        except asyncio.CancelledError:
            logger.warning(
                "action_execution_cancelled_by_caller",
                execution_id=execution_id,
                action_key=action_key
            )
            record_action_execution(org_id, tool_key, action_key, "error")
            await asyncio.shield(self._record_failure(execution_id, started, {
                "message": "Execution was cancelled by the caller",
                "status_code": None,
                "details": {"type": "cancelled"}
            }))
            raise
        except Exception as e:
            logger.error(
                "action_execution_internal_error",
                execution_id=execution_id,
                action_key=action_key,
                error=str(e),
                exc_info=True
            )
            record_action_execution(org_id, tool_key, action_key, "error")
            await self._record_failure(execution_id, started, {
                "message": str(e) or type(e).__name__,
                "status_code": None,
                "details": {"type": "internal", "exception": type(e).__name__}
            })
            raise

    async def _load_action(
        self,
        org_id: str,
        reference: str,
        by_id: bool,
        execution_id: str,
        started: float
    ) -> Tuple[ActionDefinition, ToolDefinition]:
        if by_id:
            action = await self.catalog.get_action_by_id(org_id, reference)
        else:
            action = await self.catalog.get_action_by_key(org_id, reference)

        if action is None:
            message = f"Action '{reference}' not found"
            record_action_execution(org_id, UNKNOWN_TOOL, reference, "error")
            await self._finish_failed(execution_id, started, {
                "message": message,
                "status_code": None,
                "details": {"type": "not_found", "resource": "action"}
            })
            raise NotFoundError(message, resource="action", resource_id=reference, execution_id=execution_id)

        tool = await self.catalog.get_tool(action.tool_id)
        if tool is None:
            message = f"Tool for action '{action.key}' not found"
            record_action_execution(org_id, UNKNOWN_TOOL, action.key, "error")
            await self._finish_failed(execution_id, started, {
                "message": message,
                "status_code": None,
                "details": {"type": "not_found", "resource": "tool"}
            })
            raise NotFoundError(message, resource="tool", resource_id=action.tool_id, execution_id=execution_id)

        if tool.org_id != org_id:
            message = f"Action '{action.key}' is not available to this organization"
            record_action_execution(org_id, UNKNOWN_TOOL, action.key, "error")
            await self._finish_failed(execution_id, started, {
                "message": message,
                "status_code": None,
                "details": {"type": "forbidden"}
            })
            raise ForbiddenError(message, execution_id=execution_id)

        return action, tool

    async def _build_request(
        self,
        org_id: str,
        user_id: Optional[str],
        action: ActionDefinition,
        tool: ToolDefinition,
        validated: Dict[str, Any]
    ) -> SandboxRequest:
        auth = await self.credential_resolver.resolve(org_id, tool.id, user_id)

        method = action.method
        body = None if method == "GET" else json.dumps(validated, default=str)

        return SandboxRequest(
            url=build_url(tool.base_url, action.endpoint, validated),
            method=method,
            headers=build_headers(action.headers, auth),
            body=body,
            timeout_ms=self.timeout_ms
        )

    def _execution_error(self, result: SandboxExecutionResult, execution_id: str) -> ExecutionError:
        error = result.error
        details: Dict[str, Any] = {
            "type": error.type if error else "execution",
            "sandbox_id": result.sandbox_id,
        }
        if result.data is not None:
            details["response"] = result.data

        if result.timed_out:
            return ExecutionTimeoutError(
                error.message,
                status_code=None,
                details=details,
                execution_id=execution_id
            )

        if error is not None and error.type == "http":
            message = f"Action request failed with status {result.status_code}"
        else:
            message = error.message if error else "Action request failed"

        return ExecutionError(
            message,
            status_code=result.status_code,
            details=details,
            execution_id=execution_id
        )

    async def _finish_completed(
        self,
        execution_id: str,
        outputs: ActionExecutionOutputs,
        duration: int
    ) -> None:
        try:
            await self.log_store.mark_completed(execution_id, outputs.model_dump(), duration)
        except InvalidStateError as e:
            logger.warning(
                "execution_terminal_write_skipped",
                execution_id=execution_id,
                current_status=e.current_status,
                requested="completed"
            )

    async def _finish_failed(self, execution_id: str, started: float, error: Dict[str, Any]) -> None:
        try:
            await self.log_store.mark_failed(execution_id, error, _elapsed_ms(started))
        except InvalidStateError as e:
            logger.warning(
                "execution_terminal_write_skipped",
                execution_id=execution_id,
                current_status=e.current_status,
                requested="failed"
            )

    async def _record_failure(self, execution_id: str, started: float, error: Dict[str, Any]) -> None:
        """Best-effort terminal write while another exception is propagating"""
        try:
            await self._finish_failed(execution_id, started, error)
        except Exception as store_error:
            logger.error(
                "execution_log_update_failed",
                execution_id=execution_id,
                error=str(store_error)
            )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
