"""Base models for SQLModel tables.

Log and outbox tables use UUID primary keys; content records keep the
auto-assigned integer id external consumers already index on.
"""

from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class UUIDModel(SQLModel):
    """Base model with UUID primary key."""

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        index=True,
        nullable=False,
    )


class TimestampMixin(SQLModel):
    """Mixin for created_at and updated_at timestamps.

    updated_at is also advanced explicitly by the projector so every
    projected transition moves it, even when the status value repeats.
    """

    created_at: datetime = Field(
        default_factory=utc_now,
        nullable=False,
        index=True,
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        nullable=False,
        sa_column_kwargs={"onupdate": utc_now},
    )
