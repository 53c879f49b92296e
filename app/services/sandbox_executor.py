"""Sandboxed Executor - runs one outbound HTTP call per fresh sandbox

Guarantees that every sandbox it creates is destroyed and untracked before
``execute`` returns, whatever the outcome.
"""

import asyncio
import time
from typing import Dict, Optional

import httpx

from app.core.logging_config import get_logger
from app.core.monitoring import record_sandbox_execution, set_active_sandboxes
from app.schemas.sandbox import SandboxError, SandboxExecutionResult, SandboxRequest
from app.services.sandbox_runtime import HttpSandboxRuntime, Sandbox, SandboxRuntime


logger = get_logger(__name__)


class SandboxedExecutor:
    """
    Executes HTTP requests in isolated, single-use sandboxes.

    Responsibilities:
    - Acquire a fresh sandbox per call and track it while it lives
    - Enforce a hard timeout on the call
    - Convert transport failures, timeouts and non-2xx answers into results
    - Destroy the sandbox on every path
    """

    def __init__(
        self,
        runtime: Optional[SandboxRuntime] = None,
        max_timeout_ms: int = 300000
    ):
        self.runtime = runtime or HttpSandboxRuntime()
        self.max_timeout_ms = max_timeout_ms
        self._active_sandboxes: Dict[str, Sandbox] = {}

    @property
    def active_count(self) -> int:
        return len(self._active_sandboxes)

    async def execute(self, request: SandboxRequest) -> SandboxExecutionResult:
        """
        Execute a request in a new sandbox.

        Args:
            request: The HTTP call to perform

        Returns:
            SandboxExecutionResult; failures are reported in ``error``
        """
        started = time.monotonic()
        timeout_ms = min(request.timeout_ms, self.max_timeout_ms)

        try:
            sandbox = await self.runtime.create()
        except Exception as e:
            logger.error("sandbox_create_failed", url=request.url, error=str(e), exc_info=True)
            record_sandbox_execution("sandbox")
            return SandboxExecutionResult(
                success=False,
                status_code=0,
                error=SandboxError(message=f"Failed to create sandbox: {e}", type="sandbox"),
                duration_ms=_elapsed_ms(started)
            )

        sandbox_id = sandbox.sandbox_id
        self._active_sandboxes[sandbox_id] = sandbox
        set_active_sandboxes(self.active_count)
        logger.debug("sandbox_created", sandbox_id=sandbox_id, method=request.method, url=request.url)

        try:
            response = await asyncio.wait_for(sandbox.run(request), timeout=timeout_ms / 1000)

            outcome = "success" if response.ok else "http_error"
            record_sandbox_execution(outcome)
            result = SandboxExecutionResult(
                success=response.ok,
                status_code=response.status_code,
                headers=response.headers,
                data=response.data,
                error=None if response.ok else SandboxError(
                    message=f"HTTP {response.status_code}",
                    type="http",
                    code=str(response.status_code)
                ),
                duration_ms=_elapsed_ms(started),
                sandbox_id=sandbox_id
            )

        except asyncio.TimeoutError:
            logger.warning("sandbox_execution_timeout", sandbox_id=sandbox_id, timeout_ms=timeout_ms)
            record_sandbox_execution("timeout")
            result = SandboxExecutionResult(
                success=False,
                error=SandboxError(
                    message=f"Request timed out after {timeout_ms}ms",
                    type="timeout",
                    code="ETIMEDOUT"
                ),
                duration_ms=_elapsed_ms(started),
                sandbox_id=sandbox_id
            )

        except httpx.TransportError as e:
            logger.warning("sandbox_network_error", sandbox_id=sandbox_id, url=request.url, error=str(e))
            record_sandbox_execution("network")
            result = SandboxExecutionResult(
                success=False,
                status_code=0,
                error=SandboxError(
                    message=str(e) or type(e).__name__,
                    type="network",
                    code=type(e).__name__
                ),
                duration_ms=_elapsed_ms(started),
                sandbox_id=sandbox_id
            )

        except Exception as e:
            logger.error("sandbox_execution_failed", sandbox_id=sandbox_id, error=str(e), exc_info=True)
            record_sandbox_execution("execution")
            result = SandboxExecutionResult(
                success=False,
                error=SandboxError(message=str(e), type="execution"),
                duration_ms=_elapsed_ms(started),
                sandbox_id=sandbox_id
            )

        finally:
            await self._release(sandbox_id)

        return result

    async def shutdown(self) -> None:
        """Destroy every sandbox still tracked (application shutdown)"""
        for sandbox_id in list(self._active_sandboxes):
            await self._release(sandbox_id)

    async def _release(self, sandbox_id: str) -> None:
        sandbox = self._active_sandboxes.pop(sandbox_id, None)
        set_active_sandboxes(self.active_count)
        if sandbox is None:
            return
        try:
            await sandbox.destroy()
            logger.debug("sandbox_destroyed", sandbox_id=sandbox_id)
        except Exception as e:
            logger.error("sandbox_destroy_failed", sandbox_id=sandbox_id, error=str(e))


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
