"""Mutation queue model: one row per pending local change."""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Current time as naive UTC, the form every queue timestamp is stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class SyncStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncOperation(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class SyncQueueItem(SQLModel, table=True):
    """
    A change recorded locally and awaiting propagation to the remote system.

    Status moves pending → in-progress → completed | failed. Failed rows go
    back to pending only through a bulk reset or a scheduled backoff retry.
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    table_name: str = Field(index=True)  # logical entity, opaque to the engine
    record_id: str
    operation: str  # SyncOperation value
    payload: str  # JSON snapshot of the record at mutation time
    # Naive UTC columns; aware values are converted by the store before writing
    created_at: datetime = Field(
        default_factory=utcnow, index=True, sa_type=DateTime(timezone=False)
    )
    attempts: int = 0
    last_attempt_at: Optional[datetime] = Field(
        default=None, sa_type=DateTime(timezone=False)
    )
    error: Optional[str] = None
    status: str = Field(default=SyncStatus.PENDING.value, index=True)
