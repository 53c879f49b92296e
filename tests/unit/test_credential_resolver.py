"""Unit tests for the Credential Resolver"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio

from app.models.base import utcnow
from app.schemas.auth import ApiKeyAuth, BearerAuth, NoAuth
from app.services.credential_resolver import CredentialResolver
from app.services.credential_store import SqlCredentialStore
from app.services.oauth_refresher import OAuthRefresher


TOKEN_URL = "https://auth.example.test/oauth/token"

OAUTH_CONFIG = {
    "clientId": "client-1",
    "clientSecret": "secret-1",
    "tokenUrl": TOKEN_URL,
    "scope": "read",
}


@pytest.fixture
def store(session_factory):
    return SqlCredentialStore(session_factory)


@pytest.fixture
def resolver(store, remote_api):
    return CredentialResolver(store, refresher=OAuthRefresher(transport=remote_api.transport))


@pytest_asyncio.fixture
async def tool(seed_tool, org_id):
    return await seed_tool(org_id)


class TestApiKey:
    """Test API key resolution"""

    @pytest.mark.asyncio
    async def test_no_config_means_no_auth(self, resolver, tool, org_id):
        assert await resolver.resolve(org_id, tool.id) == NoAuth()

    @pytest.mark.asyncio
    async def test_default_header(self, resolver, tool, org_id, seed_auth_config):
        await seed_auth_config(org_id, tool, "apiKey", {"apiKey": "k-123"})

        auth = await resolver.resolve(org_id, tool.id)

        assert auth == ApiKeyAuth(header_name="Authorization", header_value="k-123")
        assert auth.headers() == {"Authorization": "k-123"}

    @pytest.mark.asyncio
    async def test_custom_header(self, resolver, tool, org_id, seed_auth_config):
        await seed_auth_config(org_id, tool, "apiKey", {"headerName": "X-API-Key", "headerValue": "v-1"})

        auth = await resolver.resolve(org_id, tool.id)

        assert auth.headers() == {"X-API-Key": "v-1"}

    @pytest.mark.asyncio
    async def test_config_of_other_org_ignored(self, resolver, tool, org_id, seed_auth_config):
        await seed_auth_config("org-other", tool, "apiKey", {"apiKey": "k-123"})

        assert await resolver.resolve(org_id, tool.id) == NoAuth()


class TestOAuth:
    """Test OAuth2 resolution and refresh"""

    @pytest.mark.asyncio
    async def test_valid_token_used(self, resolver, tool, org_id, seed_auth_config, seed_user_credential, remote_api):
        await seed_auth_config(org_id, tool, "oauth2", OAUTH_CONFIG)
        await seed_user_credential(
            org_id, "user-1", tool,
            access_token="at-1",
            refresh_token="rt-1",
            expires_at=utcnow() + timedelta(hours=1)
        )

        auth = await resolver.resolve(org_id, tool.id, "user-1")

        assert auth == BearerAuth(token="at-1")
        assert auth.headers() == {"Authorization": "Bearer at-1"}
        assert remote_api.requests == []

    @pytest.mark.asyncio
    async def test_token_within_buffer_refreshed(
        self, resolver, store, tool, org_id, seed_auth_config, seed_user_credential, remote_api
    ):
        await seed_auth_config(org_id, tool, "oauth2", OAUTH_CONFIG)
        await seed_user_credential(
            org_id, "user-1", tool,
            access_token="at-old",
            refresh_token="rt-1",
            expires_at=utcnow() + timedelta(seconds=60)
        )
        remote_api.json("POST", "/oauth/token", {"access_token": "at-new", "expires_in": 3600})

        auth = await resolver.resolve(org_id, tool.id, "user-1")

        assert auth == BearerAuth(token="at-new")
        form = dict(httpx.QueryParams(remote_api.last_request.content.decode()))
        assert form == {
            "grant_type": "refresh_token",
            "refresh_token": "rt-1",
            "client_id": "client-1",
            "client_secret": "secret-1",
            "scope": "read",
        }

        stored = await store.get_user_credential(org_id, "user-1", tool.id)
        assert stored.access_token == "at-new"
        assert stored.refresh_token == "rt-1"
        assert stored.expires_at > utcnow() + timedelta(minutes=50)

    @pytest.mark.asyncio
    async def test_concurrent_refreshes_coalesce(
        self, resolver, tool, org_id, seed_auth_config, seed_user_credential, remote_api
    ):
        await seed_auth_config(org_id, tool, "oauth2", OAUTH_CONFIG)
        await seed_user_credential(
            org_id, "user-1", tool,
            access_token="at-old",
            refresh_token="rt-1",
            expires_at=utcnow() - timedelta(seconds=1)
        )

        async def token(request):
            await asyncio.sleep(0.05)
            return httpx.Response(200, json={"access_token": "at-new", "expires_in": 3600})

        remote_api.add("POST", "/oauth/token", token)

        results = await asyncio.gather(*[
            resolver.resolve(org_id, tool.id, "user-1") for _ in range(3)
        ])

        assert all(auth == BearerAuth(token="at-new") for auth in results)
        assert len(remote_api.requests) == 1
        assert len(resolver._refresh_locks) == 0

    @pytest.mark.asyncio
    async def test_refresh_rejected_degrades_to_no_auth(
        self, resolver, tool, org_id, seed_auth_config, seed_user_credential, remote_api, metrics
    ):
        await seed_auth_config(org_id, tool, "oauth2", OAUTH_CONFIG)
        await seed_user_credential(
            org_id, "user-1", tool,
            access_token="at-old",
            refresh_token="rt-1",
            expires_at=utcnow() - timedelta(minutes=1)
        )
        remote_api.json("POST", "/oauth/token", {"error": "invalid_grant"}, status_code=400)
        before = metrics("auth_resolution_failures_total", reason="refresh_failed")

        resolution = await resolver.resolve_result(org_id, tool.id, "user-1")
        assert not resolution.ok
        assert resolution.error.reason == "refresh_failed"

        assert await resolver.resolve(org_id, tool.id, "user-1") == NoAuth()
        assert metrics("auth_resolution_failures_total", reason="refresh_failed") == before + 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("user_id,reason", [(None, "missing_user"), ("user-2", "missing_credential")])
    async def test_missing_user_material(self, resolver, tool, org_id, seed_auth_config, user_id, reason):
        await seed_auth_config(org_id, tool, "oauth2", OAUTH_CONFIG)

        resolution = await resolver.resolve_result(org_id, tool.id, user_id)

        assert resolution.error.reason == reason
        assert resolution.unwrap_or_none() == NoAuth()

    @pytest.mark.asyncio
    async def test_store_failure_never_raises(self, org_id):
        store = AsyncMock()
        store.get_org_auth_config.side_effect = RuntimeError("db down")
        resolver = CredentialResolver(store)

        assert await resolver.resolve(org_id, "tool-1", "user-1") == NoAuth()
