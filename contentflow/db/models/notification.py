"""Notification outbox model.

Rows are written in the same transaction as the transition log entry that
caused them, then delivered by the NotificationDispatcher.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Column, Text, UniqueConstraint
from sqlmodel import Field

from contentflow.db.models.base import UUIDModel, utc_now


class NotificationType(str, Enum):
    """Types of notifications emitted by approval transitions."""

    APPROVAL_REQUESTED = "approval_requested"
    APPROVAL_APPROVED = "approval_approved"
    APPROVAL_REJECTED = "approval_rejected"
    APPROVAL_CHANGES_REQUESTED = "approval_changes_requested"
    REVIEW_TIMED_OUT = "review_timed_out"
    VALIDATION_FAILED = "validation_failed"
    CONTENT_WITHDRAWN = "content_withdrawn"


class ContentNotification(UUIDModel, table=True):
    """A single notification owed to a recipient for one transition."""

    __tablename__ = "content_notifications"
    __table_args__ = (
        UniqueConstraint(
            "content_id", "transition_seq", "recipient",
            name="uq_content_notifications_recipient",
        ),
    )

    content_id: int = Field(foreign_key="content.id", index=True)
    transition_seq: int = Field(nullable=False)
    recipient: str = Field(max_length=100)
    notification_type: str = Field(max_length=50)
    subject: str = Field(max_length=255)
    message: str = Field(sa_column=Column("message", Text, nullable=False))

    created_at: datetime = Field(default_factory=utc_now, nullable=False)
    delivered_at: Optional[datetime] = Field(default=None, index=True)
    channel: Optional[str] = Field(default=None, max_length=50)
