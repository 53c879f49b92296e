"""Credential models: org-level tool auth config and user OAuth2 tokens"""

from sqlalchemy import Column, String, Text, JSON, TIMESTAMP, ForeignKey, UniqueConstraint
from app.models.base import BaseModel


class ToolAuthConfigModel(BaseModel):
    """
    Org-level default authentication for a tool.

    ``type`` is ``apiKey`` or ``oauth2``. For ``apiKey`` the config holds
    ``headerName`` and ``headerValue``/``apiKey``; for ``oauth2`` it holds the
    client configuration used to refresh user tokens.
    """
    __tablename__ = "tool_auth_configs"

    org_id = Column(String(36), nullable=False, index=True)
    tool_id = Column(String(36), ForeignKey("tools.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(20), nullable=False)
    config = Column(JSON, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint('org_id', 'tool_id', name='uq_tool_auth_org_tool'),
    )


class UserCredentialModel(BaseModel):
    """Per-user OAuth2 token record for a tool"""
    __tablename__ = "user_credentials"

    org_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    tool_id = Column(String(36), ForeignKey("tools.id", ondelete="CASCADE"), nullable=False)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=True)
    expires_at = Column(TIMESTAMP, nullable=True)

    __table_args__ = (
        UniqueConstraint('org_id', 'user_id', 'tool_id', name='uq_user_credentials_org_user_tool'),
    )
