"""Credential Store - org auth configs and per-user OAuth2 tokens"""

import json
from abc import ABC, abstractmethod
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.logging_config import get_logger
from app.models.credential import ToolAuthConfigModel, UserCredentialModel
from app.schemas.auth import OrgAuthConfig, RefreshedTokens, UserCredential


logger = get_logger(__name__)


class CredentialStore(ABC):
    """Keyed access to tool credentials, passed explicitly into the resolver"""

    @abstractmethod
    async def get_org_auth_config(self, org_id: str, tool_id: str) -> Optional[OrgAuthConfig]:
        ...

    @abstractmethod
    async def get_user_credential(
        self,
        org_id: str,
        user_id: str,
        tool_id: str
    ) -> Optional[UserCredential]:
        ...

    @abstractmethod
    async def save_user_tokens(
        self,
        org_id: str,
        user_id: str,
        tool_id: str,
        tokens: RefreshedTokens
    ) -> UserCredential:
        ...


class SqlCredentialStore(CredentialStore):
    """
    SQL-backed credential store with an optional Redis read-through cache
    for org auth configs.

    User tokens are never cached; they change on every refresh.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        cache: Optional[Redis] = None,
        cache_ttl: int = 600
    ):
        self.session_factory = session_factory
        self.cache = cache
        self.cache_ttl = cache_ttl

    @staticmethod
    def generate_auth_config_key(org_id: str, tool_id: str) -> str:
        """Generate cache key for an org auth config"""
        return f"auth:org:{org_id}:tool:{tool_id}"

    async def get_org_auth_config(self, org_id: str, tool_id: str) -> Optional[OrgAuthConfig]:
        key = self.generate_auth_config_key(org_id, tool_id)

        if self.cache is not None:
            try:
                cached = await self.cache.get(key)
                if cached:
                    return OrgAuthConfig.model_validate(json.loads(cached))
            except RedisError as e:
                logger.warning("auth_config_cache_read_failed", cache_key=key, error=str(e))

        async with self.session_factory() as session:
            result = await session.execute(
                select(ToolAuthConfigModel).where(
                    ToolAuthConfigModel.org_id == org_id,
                    ToolAuthConfigModel.tool_id == tool_id
                )
            )
            row = result.scalar_one_or_none()

        if row is None:
            return None

        config = OrgAuthConfig.model_validate(row)

        if self.cache is not None:
            try:
                await self.cache.setex(key, self.cache_ttl, config.model_dump_json())
            except RedisError as e:
                logger.warning("auth_config_cache_write_failed", cache_key=key, error=str(e))

        return config

    async def invalidate_org_auth_config(self, org_id: str, tool_id: str) -> None:
        """Drop a cached org auth config after it changed"""
        if self.cache is not None:
            await self.cache.delete(self.generate_auth_config_key(org_id, tool_id))

    async def get_user_credential(
        self,
        org_id: str,
        user_id: str,
        tool_id: str
    ) -> Optional[UserCredential]:
        async with self.session_factory() as session:
            row = await self._load_credential(session, org_id, user_id, tool_id)
            return UserCredential.model_validate(row) if row is not None else None

    async def save_user_tokens(
        self,
        org_id: str,
        user_id: str,
        tool_id: str,
        tokens: RefreshedTokens
    ) -> UserCredential:
        """
        Upsert the user's tokens for a tool.

        A refresh response without a refresh token keeps the stored one.
        """
        async with self.session_factory() as session:
            row = await self._load_credential(session, org_id, user_id, tool_id)
            if row is None:
                row = UserCredentialModel(
                    org_id=org_id,
                    user_id=user_id,
                    tool_id=tool_id,
                    access_token=tokens.access_token,
                    refresh_token=tokens.refresh_token,
                    expires_at=tokens.expires_at
                )
                session.add(row)
            else:
                row.access_token = tokens.access_token
                if tokens.refresh_token:
                    row.refresh_token = tokens.refresh_token
                row.expires_at = tokens.expires_at

            await session.commit()
            await session.refresh(row)

            logger.info(
                "user_tokens_saved",
                org_id=org_id,
                user_id=user_id,
                tool_id=tool_id,
                expires_at=row.expires_at.isoformat() if row.expires_at else None
            )
            return UserCredential.model_validate(row)

    async def _load_credential(self, session, org_id: str, user_id: str, tool_id: str):
        result = await session.execute(
            select(UserCredentialModel).where(
                UserCredentialModel.org_id == org_id,
                UserCredentialModel.user_id == user_id,
                UserCredentialModel.tool_id == tool_id
            )
        )
        return result.scalar_one_or_none()
