"""Credential Resolver - turns stored credentials into request headers

Resolution never fails an execution: any problem is logged, counted and
downgraded to "no auth".
"""

import asyncio
import weakref
from typing import Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from app.core.exceptions import AuthResolutionError
from app.core.logging_config import get_logger
from app.core.monitoring import record_auth_resolution_failure, record_token_refresh
from app.schemas.auth import (
    DEFAULT_AUTH_HEADER,
    ApiKeyAuth,
    AuthResolution,
    BearerAuth,
    NoAuth,
    OAuthClientConfig,
    OrgAuthConfig,
    UserCredential,
)
from app.services.credential_store import CredentialStore
from app.services.oauth_refresher import OAuthRefresher


logger = get_logger(__name__)


class CredentialResolver:
    """
    Resolves the auth injection for one (org, tool, user).

    Responsibilities:
    - API key configs become a static header
    - OAuth2 configs use the user's token, refreshed when close to expiry
    - Concurrent refreshes of the same credential are serialized in-process
    """

    def __init__(
        self,
        store: CredentialStore,
        refresher: Optional[OAuthRefresher] = None,
        refresh_buffer_seconds: int = 300
    ):
        self.store = store
        self.refresher = refresher or OAuthRefresher()
        self.refresh_buffer_seconds = refresh_buffer_seconds
        # Entries vanish once no caller holds or waits on the lock
        self._refresh_locks: "weakref.WeakValueDictionary[Tuple[str, str, str], asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    async def resolve(
        self,
        org_id: str,
        tool_id: str,
        user_id: Optional[str] = None
    ) -> Union[NoAuth, ApiKeyAuth, BearerAuth]:
        """
        Resolve credentials, collapsing any failure to ``NoAuth``.

        Never raises.
        """
        resolution = await self.resolve_result(org_id, tool_id, user_id)
        if not resolution.ok:
            error = resolution.error
            record_auth_resolution_failure(error.reason)
            logger.warning(
                "auth_resolution_failed",
                org_id=org_id,
                tool_id=tool_id,
                user_id=user_id,
                reason=error.reason,
                error=error.message
            )
        return resolution.unwrap_or_none()

    async def resolve_result(
        self,
        org_id: str,
        tool_id: str,
        user_id: Optional[str] = None
    ) -> AuthResolution:
        """Resolve credentials into an injection or the error that prevented one"""
        try:
            config = await self.store.get_org_auth_config(org_id, tool_id)
            if config is None:
                return AuthResolution.success(NoAuth())

            if config.type == "apiKey":
                return AuthResolution.success(self._api_key_injection(config))

            if config.type == "oauth2":
                return AuthResolution.success(
                    await self._oauth_injection(config, org_id, tool_id, user_id)
                )

            raise AuthResolutionError(
                f"Unsupported auth type '{config.type}'",
                reason="unsupported_type",
                org_id=org_id,
                tool_id=tool_id,
                user_id=user_id
            )
        except AuthResolutionError as e:
            e.org_id, e.tool_id, e.user_id = org_id, tool_id, user_id
            return AuthResolution.failure(e)
        except Exception as e:
            logger.error(
                "auth_resolution_error",
                org_id=org_id,
                tool_id=tool_id,
                error=str(e),
                exc_info=True
            )
            return AuthResolution.failure(AuthResolutionError(
                f"Credential lookup failed: {e}",
                reason="store_error",
                org_id=org_id,
                tool_id=tool_id,
                user_id=user_id
            ))

    def _api_key_injection(self, config: OrgAuthConfig) -> ApiKeyAuth:
        values = config.config
        header_value = values.get("headerValue") or values.get("apiKey")
        if not header_value:
            raise AuthResolutionError(
                "API key auth config has no key",
                reason="invalid_config"
            )
        return ApiKeyAuth(
            header_name=values.get("headerName") or DEFAULT_AUTH_HEADER,
            header_value=str(header_value)
        )

    async def _oauth_injection(
        self,
        config: OrgAuthConfig,
        org_id: str,
        tool_id: str,
        user_id: Optional[str]
    ) -> BearerAuth:
        if not user_id:
            raise AuthResolutionError(
                "OAuth2 auth requires a user",
                reason="missing_user"
            )

        credential = await self.store.get_user_credential(org_id, user_id, tool_id)
        if credential is None:
            raise AuthResolutionError(
                "No OAuth2 credential stored for user",
                reason="missing_credential"
            )

        if credential.expires_within(self.refresh_buffer_seconds):
            credential = await self._refresh(config, credential)

        return BearerAuth(token=credential.access_token)

    async def _refresh(self, config: OrgAuthConfig, credential: UserCredential) -> UserCredential:
        key = (credential.org_id, credential.user_id, credential.tool_id)
        lock = self._refresh_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._refresh_locks[key] = lock

        async with lock:
            # A concurrent caller may have refreshed while we waited
            current = await self.store.get_user_credential(*key)
            if current is not None and not current.expires_within(self.refresh_buffer_seconds):
                return current
            current = current or credential

            if not current.refresh_token:
                raise AuthResolutionError(
                    "OAuth2 token expired and no refresh token is stored",
                    reason="missing_refresh_token"
                )

            try:
                client = OAuthClientConfig.model_validate(config.config)
            except PydanticValidationError as e:
                raise AuthResolutionError(
                    f"OAuth2 client config is incomplete: {e.error_count()} error(s)",
                    reason="invalid_config"
                ) from e

            try:
                tokens = await self.refresher.refresh(client, current.refresh_token)
            except AuthResolutionError:
                record_token_refresh("error")
                raise

            record_token_refresh("success")
            logger.info(
                "oauth_token_refreshed",
                org_id=current.org_id,
                tool_id=current.tool_id,
                user_id=current.user_id
            )
            return await self.store.save_user_tokens(
                current.org_id,
                current.user_id,
                current.tool_id,
                tokens
            )

