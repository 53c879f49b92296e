"""Services package"""

from dataclasses import dataclass
from typing import Optional

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.config import Settings, settings as default_settings
from app.services.action_executor import ActionExecutionService
from app.services.catalog import ActionCatalog, SqlActionCatalog
from app.services.credential_resolver import CredentialResolver
from app.services.credential_store import CredentialStore, SqlCredentialStore
from app.services.execution_log_store import ExecutionLogStore, SqlExecutionLogStore
from app.services.execution_manager import ExecutionManager
from app.services.input_validator import InputValidator, ValidationResult, FieldError
from app.services.oauth_refresher import OAuthRefresher
from app.services.sandbox_executor import SandboxedExecutor
from app.services.sandbox_runtime import HttpSandboxRuntime, SandboxRuntime


@dataclass
class ExecutionServices:
    """Long-lived engine services shared by all requests"""
    action_service: ActionExecutionService
    execution_manager: ExecutionManager
    sandbox_executor: SandboxedExecutor

    async def shutdown(self) -> None:
        await self.sandbox_executor.shutdown()


def create_execution_services(
    session_factory: async_sessionmaker,
    redis: Optional[Redis] = None,
    runtime: Optional[SandboxRuntime] = None,
    refresher: Optional[OAuthRefresher] = None,
    config: Optional[Settings] = None
) -> ExecutionServices:
    """
    Wire the execution engine from its collaborators.

    Args:
        session_factory: Async session factory of the engine database
        redis: Optional Redis client for the auth config cache
        runtime: Sandbox runtime (defaults to ``HttpSandboxRuntime``)
        refresher: OAuth refresher (defaults to one built from settings)
        config: Settings to read limits and timeouts from

    Returns:
        ExecutionServices ready for use
    """
    config = config or default_settings

    log_store = SqlExecutionLogStore(session_factory)
    credential_resolver = CredentialResolver(
        SqlCredentialStore(
            session_factory,
            cache=redis,
            cache_ttl=config.AUTH_CONFIG_CACHE_TTL_SECONDS
        ),
        refresher=refresher or OAuthRefresher(timeout_seconds=config.OAUTH_REFRESH_TIMEOUT_SECONDS),
        refresh_buffer_seconds=config.OAUTH_REFRESH_BUFFER_SECONDS
    )
    sandbox_executor = SandboxedExecutor(
        runtime=runtime or HttpSandboxRuntime(),
        max_timeout_ms=config.SANDBOX_MAX_TIMEOUT_MS
    )
    action_service = ActionExecutionService(
        catalog=SqlActionCatalog(session_factory),
        log_store=log_store,
        credential_resolver=credential_resolver,
        sandbox_executor=sandbox_executor,
        validator=InputValidator(),
        timeout_ms=config.EXECUTION_TIMEOUT_MS
    )
    execution_manager = ExecutionManager(
        log_store=log_store,
        action_service=action_service,
        default_limit=config.EXECUTION_LIST_DEFAULT_LIMIT,
        max_limit=config.EXECUTION_LIST_MAX_LIMIT
    )

    return ExecutionServices(
        action_service=action_service,
        execution_manager=execution_manager,
        sandbox_executor=sandbox_executor
    )


__all__ = [
    "ActionExecutionService",
    "ActionCatalog",
    "SqlActionCatalog",
    "CredentialResolver",
    "CredentialStore",
    "SqlCredentialStore",
    "ExecutionLogStore",
    "SqlExecutionLogStore",
    "ExecutionManager",
    "ExecutionServices",
    "InputValidator",
    "ValidationResult",
    "FieldError",
    "OAuthRefresher",
    "SandboxedExecutor",
    "SandboxRuntime",
    "HttpSandboxRuntime",
    "create_execution_services",
]
