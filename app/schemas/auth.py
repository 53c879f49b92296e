"""Pydantic schemas for tool credentials and auth injection"""

from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Any, Dict, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

from app.core.exceptions import AuthResolutionError
from app.models.base import utcnow


DEFAULT_AUTH_HEADER = "Authorization"


class NoAuth(BaseModel):
    """No credentials are injected"""
    kind: Literal["none"] = "none"

    def headers(self) -> Dict[str, str]:
        return {}


class ApiKeyAuth(BaseModel):
    """Static API key sent in a header"""
    kind: Literal["apiKey"] = "apiKey"
    header_name: str = DEFAULT_AUTH_HEADER
    header_value: str

    def headers(self) -> Dict[str, str]:
        return {self.header_name: self.header_value}


class BearerAuth(BaseModel):
    """OAuth2 access token sent as a bearer token"""
    kind: Literal["bearer"] = "bearer"
    token: str

    def headers(self) -> Dict[str, str]:
        return {DEFAULT_AUTH_HEADER: f"Bearer {self.token}"}


AuthInjection = Annotated[Union[NoAuth, ApiKeyAuth, BearerAuth], Field(discriminator="kind")]


class OrgAuthConfig(BaseModel):
    """Org-level auth configuration for one tool"""
    model_config = ConfigDict(from_attributes=True)

    org_id: str
    tool_id: str
    type: str  # "apiKey" | "oauth2"
    config: Dict[str, Any] = Field(default_factory=dict)


class OAuthClientConfig(BaseModel):
    """Client settings needed to refresh an OAuth2 token"""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    client_id: str = Field(..., alias="clientId")
    client_secret: str = Field(..., alias="clientSecret")
    token_url: str = Field(..., alias="tokenUrl")
    scope: Optional[str] = None


class UserCredential(BaseModel):
    """Stored OAuth2 tokens of one user for one tool"""
    model_config = ConfigDict(from_attributes=True)

    org_id: str
    user_id: str
    tool_id: str
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None

    def expires_within(self, seconds: float, now: Optional[datetime] = None) -> bool:
        """True when the token is expired or expires within ``seconds``"""
        if self.expires_at is None:
            return False
        now = now or utcnow()
        return (self.expires_at - now).total_seconds() <= seconds


class RefreshedTokens(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None


@dataclass(frozen=True)
class AuthResolution:
    """
    Outcome of credential resolution.

    Holds either an injection or the error that prevented one; callers
    collapse an error to ``NoAuth``.
    """
    injection: Optional[Union[NoAuth, ApiKeyAuth, BearerAuth]] = None
    error: Optional[AuthResolutionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, injection: Union[NoAuth, ApiKeyAuth, BearerAuth]) -> "AuthResolution":
        return cls(injection=injection)

    @classmethod
    def failure(cls, error: AuthResolutionError) -> "AuthResolution":
        return cls(error=error)

    def unwrap_or_none(self) -> Union[NoAuth, ApiKeyAuth, BearerAuth]:
        return self.injection if self.ok and self.injection is not None else NoAuth()
