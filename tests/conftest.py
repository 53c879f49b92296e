"""Shared test fixtures for all tests"""

import json
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio

from app.core.config import Settings
from app.core.database import build_engine, build_session_factory
from app.core.monitoring import registry
from app.models.base import Base
from app.models.catalog import ActionModel, AuthType, ToolModel
from app.models.credential import ToolAuthConfigModel, UserCredentialModel
from app.services import create_execution_services
from app.services.oauth_refresher import OAuthRefresher
from app.services.sandbox_runtime import HttpSandboxRuntime


BASE_URL = "https://api.example.test"
USER_ID = "user-1"


def metric_value(name: str, **labels: str) -> float:
    """Current value of a sample in the app registry (0 when never emitted)"""
    return registry.get_sample_value(name, labels) or 0.0


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Create test database engine (file-backed SQLite, one per test)"""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Create test database session"""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ============================================================================
# Remote API Fixtures
# ============================================================================

Handler = Union[httpx.Response, Callable[[httpx.Request], Any]]


class RemoteApi:
    """
    Fake remote service behind ``httpx.MockTransport``.

    Routes are keyed by (method, path). Handlers are responses or callables
    (sync or async) receiving the request. Every request is recorded.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Handler] = {}
        self.requests: List[httpx.Request] = []
        self.transport = httpx.MockTransport(self._handle)

    def add(self, method: str, path: str, handler: Handler) -> None:
        self.routes[(method.upper(), path)] = handler

    def json(self, method: str, path: str, payload: Any, status_code: int = 200) -> None:
        self.add(method, path, lambda request: httpx.Response(status_code, json=payload))

    @property
    def last_request(self) -> Optional[httpx.Request]:
        return self.requests[-1] if self.requests else None

    def last_json(self) -> Any:
        return json.loads(self.last_request.content)

    def _handle(self, request: httpx.Request):
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"error": "no route"})
        if isinstance(handler, httpx.Response):
            return handler
        return handler(request)


@pytest.fixture
def remote_api():
    return RemoteApi()


@pytest.fixture
def sandbox_runtime(remote_api):
    return HttpSandboxRuntime(transport=remote_api.transport)


@pytest.fixture
def test_settings():
    return Settings(EXECUTION_TIMEOUT_MS=1000, LOG_FORMAT="text")


@pytest_asyncio.fixture
async def execution_services(session_factory, sandbox_runtime, remote_api, test_settings):
    services = create_execution_services(
        session_factory,
        runtime=sandbox_runtime,
        refresher=OAuthRefresher(transport=remote_api.transport),
        config=test_settings
    )
    yield services
    await services.shutdown()


@pytest.fixture
def action_service(execution_services):
    return execution_services.action_service


@pytest.fixture
def execution_manager(execution_services):
    return execution_services.execution_manager


# ============================================================================
# Catalog Fixtures
# ============================================================================

@pytest.fixture
def org_id():
    """Fresh org per test so metric samples never collide across tests"""
    return f"org-{uuid4().hex[:8]}"


@pytest.fixture
def seed_tool(session_factory):
    async def _seed_tool(
        org_id: str,
        name: str = "example-api",
        base_url: str = BASE_URL,
        auth_type: AuthType = AuthType.NONE
    ) -> ToolModel:
        async with session_factory() as session:
            tool = ToolModel(org_id=org_id, name=name, base_url=base_url, auth_type=auth_type)
            session.add(tool)
            await session.commit()
            return tool

    return _seed_tool


@pytest.fixture
def seed_action(session_factory):
    async def _seed_action(
        org_id: str,
        tool: ToolModel,
        key: str,
        method: str = "GET",
        endpoint: str = "/json",
        input_schema: Optional[List[Dict[str, Any]]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> ActionModel:
        async with session_factory() as session:
            action = ActionModel(
                org_id=org_id,
                key=key,
                name=key.replace("-", " ").title(),
                tool_id=tool.id,
                method=method,
                endpoint=endpoint,
                headers=headers or {},
                input_schema=input_schema or []
            )
            session.add(action)
            await session.commit()
            return action

    return _seed_action


@pytest.fixture
def seed_auth_config(session_factory):
    async def _seed_auth_config(org_id: str, tool: ToolModel, type: str, config: Dict[str, Any]):
        async with session_factory() as session:
            session.add(ToolAuthConfigModel(org_id=org_id, tool_id=tool.id, type=type, config=config))
            await session.commit()

    return _seed_auth_config


@pytest.fixture
def seed_user_credential(session_factory):
    async def _seed_user_credential(org_id: str, user_id: str, tool: ToolModel, **values: Any):
        async with session_factory() as session:
            session.add(UserCredentialModel(org_id=org_id, user_id=user_id, tool_id=tool.id, **values))
            await session.commit()

    return _seed_user_credential


@pytest.fixture
def base_url():
    return BASE_URL


@pytest.fixture
def metrics():
    """Reader for samples of the app metrics registry"""
    return metric_value


# ============================================================================
# API Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def client(execution_services):
    """HTTP client bound to the app with the test engine services installed"""
    from app.main import app

    app.state.execution_services = execution_services
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    del app.state.execution_services
