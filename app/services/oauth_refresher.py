"""OAuth2 token refresh against a provider's token endpoint"""

from datetime import timedelta
from typing import Optional

import httpx

from app.core.exceptions import AuthResolutionError
from app.core.logging_config import get_logger
from app.models.base import utcnow
from app.schemas.auth import OAuthClientConfig, RefreshedTokens


logger = get_logger(__name__)


class OAuthRefresher:
    """
    Exchanges a refresh token for a new access token.

    Uses the standard ``refresh_token`` grant with form-encoded client
    credentials. Any failure is raised as ``AuthResolutionError``.
    """

    def __init__(
        self,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    async def refresh(
        self,
        client: OAuthClientConfig,
        refresh_token: str
    ) -> RefreshedTokens:
        """
        Refresh an access token.

        Args:
            client: OAuth client configuration of the tool
            refresh_token: The user's current refresh token

        Returns:
            New tokens; ``refresh_token`` is None when the provider did not rotate it

        Raises:
            AuthResolutionError: If the provider rejects or cannot be reached
        """
        form = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": client.client_id,
            "client_secret": client.client_secret,
        }
        if client.scope:
            form["scope"] = client.scope

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self.transport
            ) as http:
                response = await http.post(
                    client.token_url,
                    data=form,
                    headers={"Accept": "application/json"}
                )
        except httpx.HTTPError as e:
            raise AuthResolutionError(
                f"Token refresh request failed: {e}",
                reason="refresh_failed"
            ) from e

        if response.status_code < 200 or response.status_code >= 300:
            logger.warning(
                "oauth_refresh_rejected",
                token_url=client.token_url,
                status_code=response.status_code
            )
            raise AuthResolutionError(
                f"Token refresh failed with status {response.status_code}",
                reason="refresh_failed"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise AuthResolutionError(
                "Token endpoint returned a non-JSON response",
                reason="refresh_failed"
            ) from e

        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not access_token:
            raise AuthResolutionError(
                "Token endpoint response has no access_token",
                reason="refresh_failed"
            )

        expires_at = None
        expires_in = payload.get("expires_in")
        if expires_in is not None:
            try:
                expires_at = utcnow() + timedelta(seconds=float(expires_in))
            except (TypeError, ValueError):
                logger.warning("oauth_refresh_bad_expires_in", expires_in=expires_in)

        return RefreshedTokens(
            access_token=access_token,
            refresh_token=payload.get("refresh_token"),
            expires_at=expires_at
        )
