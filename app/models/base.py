"""Base model with common fields"""

from datetime import datetime, timezone
from sqlalchemy import Column, String, TIMESTAMP
from sqlalchemy.orm import declarative_base
import uuid

Base = declarative_base()


def generate_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching the TIMESTAMP columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class BaseModel(Base):
    """
    Abstract base model with common fields for all tables.

    Provides:
    - id: UUID primary key
    - created_at: Timestamp of creation
    - updated_at: Timestamp of last update
    """
    __abstract__ = True

    id = Column(String(36), primary_key=True, default=generate_id)
    created_at = Column(TIMESTAMP, default=utcnow, nullable=False)
    updated_at = Column(
        TIMESTAMP,
        default=utcnow,
        onupdate=utcnow,
        nullable=False
    )
