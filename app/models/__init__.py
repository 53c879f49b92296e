"""SQLAlchemy models for the Action Execution Engine"""

from app.models.base import Base
from app.models.catalog import ToolModel, ActionModel, AuthType
from app.models.credential import ToolAuthConfigModel, UserCredentialModel
from app.models.execution_log import ExecutionLogModel, ExecutionStatus, TERMINAL_STATUSES

__all__ = [
    "Base",
    "ToolModel",
    "ActionModel",
    "AuthType",
    "ToolAuthConfigModel",
    "UserCredentialModel",
    "ExecutionLogModel",
    "ExecutionStatus",
    "TERMINAL_STATUSES",
]
