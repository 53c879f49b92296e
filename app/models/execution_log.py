"""Action execution log model"""

import enum
from sqlalchemy import Column, String, Integer, JSON, Enum, Index
from app.models.base import BaseModel


class ExecutionStatus(str, enum.Enum):
    """Lifecycle status of one execution attempt"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    ExecutionStatus.COMPLETED,
    ExecutionStatus.FAILED,
    ExecutionStatus.CANCELLED,
})


class ExecutionLogModel(BaseModel):
    """
    One row per execution attempt.

    Rows are created ``pending`` and move to exactly one terminal status.
    Retries never reopen a row; they add a new row whose ``parent_id`` points
    at the attempt being retried.
    """
    __tablename__ = "action_execution_logs"

    execution_id = Column(String(36), unique=True, nullable=False, index=True)
    org_id = Column(String(36), nullable=False)
    user_id = Column(String(36), nullable=True)
    action_id = Column(String(36), nullable=True)
    action_key = Column(String(255), nullable=False)
    status = Column(
        Enum(ExecutionStatus, values_callable=lambda e: [m.value for m in e], name="execution_status"),
        default=ExecutionStatus.PENDING,
        nullable=False
    )
    inputs = Column(JSON, nullable=False, default=dict)
    outputs = Column(JSON, nullable=True)
    error = Column(JSON, nullable=True)
    duration = Column(Integer, nullable=True)  # milliseconds
    retry_count = Column(Integer, nullable=False, default=0)
    parent_id = Column(String(36), nullable=True, index=True)

    __table_args__ = (
        Index('idx_execution_logs_org_created', 'org_id', 'created_at'),
        Index('idx_execution_logs_org_action', 'org_id', 'action_key'),
        Index('idx_execution_logs_org_status', 'org_id', 'status'),
    )

    def __repr__(self) -> str:
        return (
            f"<ExecutionLogModel(execution_id={self.execution_id}, "
            f"action_key={self.action_key}, status={self.status})>"
        )
