from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import DateTime
from sqlmodel import Column, Field, SQLModel


# Largest value a 64-bit signed integer column can hold
MAX_INT64 = 2**63 - 1


def get_utc_now():
    """Helper function to get current UTC time with timezone"""
    return datetime.now(timezone.utc)


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @classmethod
    def values(cls) -> set[str]:
        return {member.value for member in cls}


class TaskBase(SQLModel):
    """Base model with shared fields"""

    title: str
    description: str | None = Field(default=None)


class Task(TaskBase, table=True):
    """Database model"""

    __tablename__ = "tasks"
    # ids are never reused, on SQLite too
    __table_args__ = {"sqlite_autoincrement": True}

    id: int | None = Field(default=None, primary_key=True)
    status: str = Field(default=TaskStatus.PENDING.value, max_length=20)
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
    updated_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class TaskCreate(SQLModel):
    """Schema for creating a task.

    An empty or missing title passes the schema and is rejected by the
    service, so that the check runs before any store access.
    """

    title: str = ""
    description: str | None = None


class TaskUpdate(SQLModel):
    """Schema for updating a task - all fields optional.

    Empty strings are treated the same as omitted fields.
    """

    title: str | None = None
    description: str | None = None
    status: str | None = None


class TaskResponse(TaskBase):
    """Schema for task responses"""

    id: int
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TaskCreated(SQLModel):
    id: int
