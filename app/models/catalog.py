"""Tool and Action catalog models"""

import enum
from sqlalchemy import Column, String, JSON, Enum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from app.models.base import BaseModel


class AuthType(str, enum.Enum):
    """Authentication mode of a tool"""
    NONE = "none"
    API_KEY = "apiKey"
    OAUTH2 = "oauth2"


class ToolModel(BaseModel):
    """
    External service an action targets.

    Read-only to the execution engine; definitions are managed elsewhere.
    """
    __tablename__ = "tools"

    org_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    base_url = Column(String(2048), nullable=False)
    auth_type = Column(
        Enum(AuthType, values_callable=lambda e: [m.value for m in e], name="tool_auth_type"),
        default=AuthType.NONE,
        nullable=False
    )

    actions = relationship(
        "ActionModel",
        back_populates="tool",
        cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint('org_id', 'name', name='uq_tools_org_name'),
    )

    def __repr__(self) -> str:
        return f"<ToolModel(id={self.id}, name={self.name}, org_id={self.org_id})>"


class ActionModel(BaseModel):
    """
    Reusable, org-scoped template describing one HTTP call.

    ``input_schema`` holds the ordered list of parameter descriptors and
    ``headers`` the static header template.
    """
    __tablename__ = "actions"

    org_id = Column(String(36), nullable=False, index=True)
    key = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    tool_id = Column(String(36), ForeignKey("tools.id", ondelete="CASCADE"), nullable=False)
    method = Column(String(10), nullable=False, default="GET")
    endpoint = Column(String(2048), nullable=False)
    headers = Column(JSON, nullable=False, default=dict)
    input_schema = Column(JSON, nullable=False, default=list)

    tool = relationship("ToolModel", back_populates="actions")

    __table_args__ = (
        UniqueConstraint('org_id', 'key', name='uq_actions_org_key'),
        Index('idx_actions_tool', 'tool_id'),
    )

    def __repr__(self) -> str:
        return f"<ActionModel(id={self.id}, key={self.key}, org_id={self.org_id})>"
