"""Integration tests for action and execution endpoints"""

import pytest
import pytest_asyncio
from httpx import AsyncClient
from unittest.mock import AsyncMock, patch


@pytest_asyncio.fixture
async def tool(seed_tool, org_id):
    return await seed_tool(org_id)


@pytest.fixture
def headers(org_id):
    return {"X-Org-ID": org_id, "X-User-ID": "user-1"}


@pytest.mark.asyncio
async def test_execute_action_success(client: AsyncClient, tool, seed_action, remote_api, org_id, headers):
    """Test executing an action returns the remote body"""
    await seed_action(org_id, tool, "get-json")
    remote_api.json("GET", "/json", {"slideshow": {"title": "Sample"}})

    response = await client.post("/api/v1/actions/get-json/execute", json={"inputs": {}}, headers=headers)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["data"] == {"slideshow": {"title": "Sample"}}
    assert data["outputs"]["status_code"] == 200
    assert data["outputs"]["executed_in_sandbox"] is True
    assert "execution_id" in data
    assert "X-Request-ID" in response.headers


@pytest.mark.asyncio
async def test_execute_action_by_id(client: AsyncClient, tool, seed_action, remote_api, org_id, headers):
    action = await seed_action(org_id, tool, "get-json")
    remote_api.json("GET", "/json", {"ok": True})

    response = await client.post(f"/api/v1/actions/by-id/{action.id}/execute", json={}, headers=headers)

    assert response.status_code == 200
    assert response.json()["outputs"]["action_key"] == "get-json"


@pytest.mark.asyncio
async def test_execute_action_validation_error(client: AsyncClient, tool, seed_action, remote_api, org_id, headers):
    """Test invalid inputs return every field error"""
    await seed_action(
        org_id, tool, "create-ticket",
        method="POST",
        endpoint="/tickets",
        input_schema=[
            {"name": "title", "type": "string", "required": True},
            {"name": "email", "type": "string", "validation": {"format": "email"}},
        ]
    )

    response = await client.post(
        "/api/v1/actions/create-ticket/execute",
        json={"inputs": {"email": "not-an-email"}},
        headers=headers
    )

    assert response.status_code == 400
    data = response.json()
    assert data["type"] == "validation_error"
    assert {error["field"] for error in data["errors"]} == {"title", "email"}
    assert remote_api.requests == []


@pytest.mark.asyncio
async def test_execute_unknown_action(client: AsyncClient, headers):
    response = await client.post("/api/v1/actions/nope/execute", json={"inputs": {}}, headers=headers)

    assert response.status_code == 404
    assert response.json()["type"] == "not_found"
    assert "execution_id" in response.json()


@pytest.mark.asyncio
async def test_execute_remote_failure(client: AsyncClient, tool, seed_action, remote_api, org_id, headers):
    """Test a non-2xx upstream answer maps to 502"""
    await seed_action(org_id, tool, "flaky", endpoint="/status/500")
    remote_api.json("GET", "/status/500", {"error": "boom"}, status_code=500)

    response = await client.post("/api/v1/actions/flaky/execute", json={"inputs": {}}, headers=headers)

    assert response.status_code == 502
    data = response.json()
    assert data["status_code"] == 500
    assert data["details"]["response"] == {"error": "boom"}


@pytest.mark.asyncio
async def test_missing_org_header(client: AsyncClient):
    response = await client.post("/api/v1/actions/get-json/execute", json={"inputs": {}})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_execution_lifecycle(client: AsyncClient, tool, seed_action, remote_api, org_id, headers):
    """Test list, get, cancel and retry over HTTP"""
    await seed_action(org_id, tool, "flaky", endpoint="/flaky")
    remote_api.json("GET", "/flaky", {"error": "boom"}, status_code=500)

    failed = await client.post("/api/v1/actions/flaky/execute", json={"inputs": {}}, headers=headers)
    execution_id = failed.json()["execution_id"]

    listed = await client.get("/api/v1/actions/executions", params={"status": "failed"}, headers=headers)
    assert listed.status_code == 200
    assert [row["execution_id"] for row in listed.json()["executions"]] == [execution_id]

    per_action = await client.get("/api/v1/actions/flaky/executions", headers=headers)
    assert per_action.json()["count"] == 1

    cancel = await client.post(f"/api/v1/actions/executions/{execution_id}/cancel", headers=headers)
    assert cancel.status_code == 409
    assert cancel.json()["type"] == "invalid_state"

    remote_api.json("GET", "/flaky", {"ok": True})
    retry = await client.post(f"/api/v1/actions/executions/{execution_id}/retry", headers=headers)
    assert retry.status_code == 200
    retry_id = retry.json()["execution_id"]

    detail = await client.get(f"/api/v1/actions/executions/{execution_id}", headers=headers)
    assert detail.status_code == 200
    assert detail.json()["status"] == "failed"
    assert detail.json()["retries"] == [retry_id]

    child = await client.get(f"/api/v1/actions/executions/{retry_id}", headers=headers)
    assert child.json()["parent_id"] == execution_id
    assert child.json()["retry_count"] == 1


@pytest.mark.asyncio
async def test_execution_of_other_org_hidden(client: AsyncClient, tool, seed_action, remote_api, org_id, headers):
    await seed_action(org_id, tool, "get-json")
    remote_api.json("GET", "/json", {})
    result = await client.post("/api/v1/actions/get-json/execute", json={"inputs": {}}, headers=headers)
    execution_id = result.json()["execution_id"]

    response = await client.get(
        f"/api/v1/actions/executions/{execution_id}",
        headers={"X-Org-ID": "org-other"}
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_cancel_pending_execution(client: AsyncClient, action_service, org_id, headers):
    pending = await action_service.log_store.create_pending(org_id, "user-1", "get-json", {})

    response = await client.post(f"/api/v1/actions/executions/{pending.execution_id}/cancel", headers=headers)

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"


@pytest.mark.asyncio
async def test_invalid_status_filter(client: AsyncClient, headers):
    response = await client.get("/api/v1/actions/executions", params={"status": "exploded"}, headers=headers)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_metrics_endpoint(client: AsyncClient):
    response = await client.get("/metrics")

    assert response.status_code == 200
    assert "action_executions_total" in response.text


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    with patch("app.api.v1.health.check_database", new_callable=AsyncMock, return_value=True), \
         patch("app.api.v1.health.check_redis", new_callable=AsyncMock, return_value=None):
        response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["services"]["redis"] == "not_configured"
    assert data["active_sandboxes"] == 0


@pytest.mark.asyncio
async def test_health_check_database_down(client: AsyncClient):
    with patch("app.api.v1.health.check_database", new_callable=AsyncMock, return_value=False), \
         patch("app.api.v1.health.check_redis", new_callable=AsyncMock, return_value=True):
        response = await client.get("/health")

    assert response.status_code == 503
    assert response.json()["status"] == "unhealthy"
