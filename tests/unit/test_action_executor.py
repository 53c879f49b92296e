"""Unit tests for the Action Execution Service"""

import asyncio
import json
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio

from app.core.exceptions import (
    ExecutionError,
    ExecutionTimeoutError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from app.models.execution_log import ExecutionStatus
from app.schemas.auth import ApiKeyAuth, BearerAuth, NoAuth
from app.schemas.execution import TenantContext
from app.services.action_executor import build_headers, build_url, render_template


@pytest_asyncio.fixture
async def tool(seed_tool, org_id):
    return await seed_tool(org_id, name="example-api")


class TestRequestBuilding:
    """Test URL, template and header construction"""

    def test_relative_endpoint_joined_with_one_slash(self):
        assert build_url("https://x.test/", "/json", {}) == "https://x.test/json"
        assert build_url("https://x.test", "json", {}) == "https://x.test/json"

    def test_absolute_endpoint_kept(self):
        assert build_url("https://x.test", "https://other.test/a", {}) == "https://other.test/a"

    def test_placeholders_substituted(self):
        url = build_url("https://x.test", "/users/{{ user }}/items/{{id}}", {"user": "ana", "id": 7})

        assert url == "https://x.test/users/ana/items/7"

    def test_placeholder_value_kept_verbatim(self):
        url = build_url("https://api.test", "/repos/{{repo}}/issues", {"repo": "octo/hello"})

        assert url == "https://api.test/repos/octo/hello/issues"

    def test_unresolved_placeholder_left_verbatim(self):
        assert render_template("/q/{{missing}}", {}) == "/q/{{missing}}"

    def test_boolean_placeholder(self):
        assert render_template("/flag/{{f}}", {"f": True}) == "/flag/true"

    def test_auth_header_wins(self):
        headers = build_headers(
            {"Authorization": "static", "X-Static": "1"},
            BearerAuth(token="t")
        )

        assert headers == {
            "Content-Type": "application/json",
            "Authorization": "Bearer t",
            "X-Static": "1",
        }

    def test_auth_header_wins_regardless_of_case(self):
        headers = build_headers(
            {"authorization": "static-token", "content-type": "text/plain"},
            ApiKeyAuth(header_name="Authorization", header_value="Bearer injected")
        )

        assert headers == {
            "content-type": "text/plain",
            "Authorization": "Bearer injected",
        }

    def test_no_auth_keeps_static_headers(self):
        headers = build_headers({"Content-Type": "text/plain"}, NoAuth())

        assert headers == {"Content-Type": "text/plain"}

    def test_api_key_header(self):
        headers = build_headers({}, ApiKeyAuth(header_name="X-Key", header_value="k"))

        assert headers["X-Key"] == "k"


class TestExecuteAction:
    """Test end-to-end execution against a fake remote API"""

    @pytest.mark.asyncio
    async def test_successful_get(self, action_service, tool, seed_action, remote_api, org_id, metrics):
        await seed_action(org_id, tool, "get-json", method="GET", endpoint="/json")
        remote_api.json("GET", "/json", {"slideshow": {"title": "Sample"}})

        result = await action_service.execute_action(org_id, "user-1", "get-json", {})

        assert result.success
        assert result.data == {"slideshow": {"title": "Sample"}}
        assert result.outputs.status_code == 200
        assert result.outputs.url == "https://api.example.test/json"
        assert result.outputs.tool_key == "example-api"
        assert result.outputs.executed_in_sandbox
        assert remote_api.last_request.content == b""

        log = await action_service.log_store.get(result.execution_id, org_id)
        assert log.status == ExecutionStatus.COMPLETED
        assert log.outputs["status_code"] == 200
        assert log.duration == result.duration
        assert metrics(
            "action_executions_total",
            org_id=org_id, tool_key="example-api", action_key="get-json", status="success"
        ) == 1
        assert metrics(
            "action_executions_total",
            org_id=org_id, tool_key="example-api", action_key="get-json", status="started"
        ) == 1

    @pytest.mark.asyncio
    async def test_post_sends_validated_inputs(self, action_service, tool, seed_action, remote_api, org_id):
        await seed_action(
            org_id, tool, "create-ticket",
            method="POST",
            endpoint="/tickets",
            input_schema=[
                {"name": "title", "type": "string", "required": True},
                {"name": "count", "type": "number"},
            ],
            headers={"X-Source": "engine"}
        )
        remote_api.json("POST", "/tickets", {"id": "t-1"}, status_code=201)

        result = await action_service.execute_action(
            org_id, "user-1", "create-ticket", {"title": "Broken", "count": "2", "junk": True}
        )

        assert result.outputs.status_code == 201
        request = remote_api.last_request
        assert json.loads(request.content) == {"title": "Broken", "count": 2}
        assert request.headers["Content-Type"] == "application/json"
        assert request.headers["X-Source"] == "engine"

        log = await action_service.log_store.get(result.execution_id, org_id)
        assert log.inputs == {"title": "Broken", "count": "2", "junk": True}

    @pytest.mark.asyncio
    async def test_api_key_injected(self, action_service, tool, seed_action, seed_auth_config, remote_api, org_id):
        await seed_action(org_id, tool, "get-json")
        await seed_auth_config(org_id, tool, "apiKey", {"headerName": "X-API-Key", "apiKey": "k-1"})
        remote_api.json("GET", "/json", {})

        await action_service.execute_action(org_id, "user-1", "get-json", {})

        assert remote_api.last_request.headers["X-API-Key"] == "k-1"

    @pytest.mark.asyncio
    async def test_static_credential_not_sent_alongside_injected(
        self, action_service, tool, seed_action, seed_auth_config, remote_api, org_id
    ):
        await seed_action(org_id, tool, "get-json", headers={"authorization": "static-token"})
        await seed_auth_config(org_id, tool, "apiKey", {"apiKey": "Bearer injected"})
        remote_api.json("GET", "/json", {})

        await action_service.execute_action(org_id, "user-1", "get-json", {})

        assert remote_api.last_request.headers.get_list("authorization") == ["Bearer injected"]

    @pytest.mark.asyncio
    async def test_path_placeholder_sent_unencoded(self, action_service, tool, seed_action, remote_api, org_id):
        await seed_action(
            org_id, tool, "list-issues",
            endpoint="/repos/{{repo}}/issues",
            input_schema=[{"name": "repo", "type": "string", "required": True}]
        )
        remote_api.json("GET", "/repos/octo/hello/issues", [])

        result = await action_service.execute_action(org_id, "user-1", "list-issues", {"repo": "octo/hello"})

        assert result.outputs.url == "https://api.example.test/repos/octo/hello/issues"
        assert result.data == []

    @pytest.mark.asyncio
    async def test_validation_failure(self, action_service, tool, seed_action, remote_api, org_id, metrics):
        await seed_action(
            org_id, tool, "create-ticket",
            method="POST",
            endpoint="/tickets",
            input_schema=[{"name": "title", "type": "string", "required": True, "validation": {"min": 3}}]
        )

        with pytest.raises(ValidationError) as exc_info:
            await action_service.execute_action(org_id, "user-1", "create-ticket", {})

        error = exc_info.value
        assert error.fields == ["title"]
        assert remote_api.requests == []

        log = await action_service.log_store.get(error.execution_id, org_id)
        assert log.status == ExecutionStatus.FAILED
        assert log.error.details["type"] == "validation"
        assert log.error.details["errors"][0]["field"] == "title"
        assert metrics(
            "input_validation_errors_total",
            org_id=org_id, action_key="create-ticket", error_type="required"
        ) == 1

    @pytest.mark.asyncio
    async def test_remote_500(self, action_service, tool, seed_action, remote_api, org_id, metrics):
        await seed_action(org_id, tool, "flaky", endpoint="/status/500")
        remote_api.json("GET", "/status/500", {"error": "boom"}, status_code=500)

        with pytest.raises(ExecutionError) as exc_info:
            await action_service.execute_action(org_id, "user-1", "flaky", {})

        error = exc_info.value
        assert not isinstance(error, ExecutionTimeoutError)
        assert error.status_code == 500
        assert error.details["response"] == {"error": "boom"}

        log = await action_service.log_store.get(error.execution_id, org_id)
        assert log.status == ExecutionStatus.FAILED
        assert log.error.status_code == 500
        assert metrics(
            "action_executions_total",
            org_id=org_id, tool_key="example-api", action_key="flaky", status="error"
        ) == 1

    @pytest.mark.asyncio
    async def test_timeout(self, action_service, tool, seed_action, remote_api, org_id):
        await seed_action(org_id, tool, "slow", endpoint="/slow")

        async def slow(request):
            await asyncio.sleep(5)

        remote_api.add("GET", "/slow", slow)
        action_service.timeout_ms = 50

        with pytest.raises(ExecutionTimeoutError) as exc_info:
            await action_service.execute_action(org_id, "user-1", "slow", {})

        log = await action_service.log_store.get(exc_info.value.execution_id, org_id)
        assert log.status == ExecutionStatus.FAILED
        assert log.error.details["type"] == "timeout"

    @pytest.mark.asyncio
    async def test_network_error(self, action_service, tool, seed_action, remote_api, org_id):
        await seed_action(org_id, tool, "down", endpoint="/down")

        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        remote_api.add("GET", "/down", refuse)

        with pytest.raises(ExecutionError) as exc_info:
            await action_service.execute_action(org_id, "user-1", "down", {})

        assert exc_info.value.status_code == 0
        assert exc_info.value.details["type"] == "network"

    @pytest.mark.asyncio
    async def test_unknown_action(self, action_service, org_id):
        with pytest.raises(NotFoundError) as exc_info:
            await action_service.execute_action(org_id, "user-1", "nope", {})

        log = await action_service.log_store.get(exc_info.value.execution_id, org_id)
        assert log.status == ExecutionStatus.FAILED
        assert log.action_key == "nope"

    @pytest.mark.asyncio
    async def test_action_of_other_org_not_found(self, action_service, tool, seed_action, org_id):
        await seed_action(org_id, tool, "get-json")

        with pytest.raises(NotFoundError):
            await action_service.execute_action("org-other", "user-1", "get-json", {})

    @pytest.mark.asyncio
    async def test_cross_org_tool_forbidden(self, action_service, seed_tool, seed_action, remote_api, org_id):
        foreign_tool = await seed_tool("org-other", name="foreign")
        await seed_action(org_id, foreign_tool, "sneaky")

        with pytest.raises(ForbiddenError) as exc_info:
            await action_service.execute_action(org_id, "user-1", "sneaky", {})

        assert "foreign" not in exc_info.value.message
        assert remote_api.requests == []
        log = await action_service.log_store.get(exc_info.value.execution_id, org_id)
        assert log.status == ExecutionStatus.FAILED

    @pytest.mark.asyncio
    async def test_execute_by_id(self, action_service, tool, seed_action, remote_api, org_id):
        action = await seed_action(org_id, tool, "get-json")
        remote_api.json("GET", "/json", {"ok": True})

        result = await action_service.execute_action_by_id(org_id, "user-1", action.id, {})

        log = await action_service.log_store.get(result.execution_id, org_id)
        assert log.action_key == "get-json"
        assert log.action_id == action.id

    @pytest.mark.asyncio
    async def test_internal_error_marks_row_failed(self, action_service, tool, seed_action, org_id):
        await seed_action(org_id, tool, "get-json")
        action_service.credential_resolver = AsyncMock()
        action_service.credential_resolver.resolve.side_effect = RuntimeError("unexpected")

        with pytest.raises(RuntimeError):
            await action_service.execute_action(org_id, "user-1", "get-json", {})

        rows = await action_service.log_store.list(org_id)
        assert rows[0].status == ExecutionStatus.FAILED
        assert rows[0].error.details["type"] == "internal"


class TestConcurrency:
    """Test concurrent executions"""

    @pytest.mark.asyncio
    async def test_concurrent_executions_isolated(self, execution_services, tool, seed_action, remote_api, org_id):
        await seed_action(org_id, tool, "get-json")

        async def handler(request):
            await asyncio.sleep(0.05)
            return httpx.Response(200, json={"ok": True})

        remote_api.add("GET", "/json", handler)
        service = execution_services.action_service

        results = await asyncio.gather(*[
            service.execute_action(org_id, "user-1", "get-json", {}) for _ in range(3)
        ])

        ids = {result.execution_id for result in results}
        assert len(ids) == 3
        rows = await service.log_store.list(org_id)
        assert {row.execution_id for row in rows} == ids
        assert all(row.status == ExecutionStatus.COMPLETED for row in rows)
        assert execution_services.sandbox_executor.active_count == 0

    @pytest.mark.asyncio
    async def test_cancel_during_flight_keeps_cancelled(
        self, action_service, execution_manager, tool, seed_action, remote_api, org_id
    ):
        await seed_action(org_id, tool, "get-json")
        in_flight = asyncio.Event()
        release = asyncio.Event()

        async def handler(request):
            in_flight.set()
            await release.wait()
            return httpx.Response(200, json={"ok": True})

        remote_api.add("GET", "/json", handler)

        task = asyncio.create_task(action_service.execute_action(org_id, "user-1", "get-json", {}))
        await in_flight.wait()

        rows = await action_service.log_store.list(org_id)
        await execution_manager.cancel_execution(rows[0].execution_id, TenantContext(org_id=org_id))
        release.set()
        result = await task

        assert result.success
        log = await action_service.log_store.get(result.execution_id, org_id)
        assert log.status == ExecutionStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_caller_cancellation_marks_row_failed(
        self, execution_services, tool, seed_action, remote_api, org_id
    ):
        await seed_action(org_id, tool, "slow", endpoint="/slow")

        async def slow(request):
            await asyncio.sleep(0.5)
            return httpx.Response(200, json={"ok": True})

        remote_api.add("GET", "/slow", slow)
        service = execution_services.action_service

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(service.execute_action(org_id, "user-1", "slow", {}), 0.1)

        rows = await service.log_store.list(org_id)
        assert rows[0].status == ExecutionStatus.FAILED
        assert rows[0].error.details["type"] == "cancelled"
        assert execution_services.sandbox_executor.active_count == 0
