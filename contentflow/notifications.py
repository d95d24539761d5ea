"""Notification outbox: composition and delivery.

Outbox rows are composed by the projector inside the same transaction as
the transition log entry that caused them, so a re-run projection never
produces a second copy. Delivery happens later, from the worker:

    dispatcher = NotificationDispatcher()
    delivered = dispatcher.dispatch_pending()
"""

from datetime import datetime
from typing import Callable, Optional, Protocol

from contentflow.content.repository import NotificationRepository
from contentflow.db import SessionFactory, get_session
from contentflow.db.models import (
    ContentItem,
    ContentNotification,
    NotificationType,
    utc_now,
)
from contentflow.logging import get_logger
from contentflow.models import ApprovalState, PendingProjection

logger = get_logger(__name__)

REVIEWER_GROUP = "content-reviewers"


# =============================================================================
# Composition
# =============================================================================

def _classify(pending: PendingProjection) -> Optional[NotificationType]:
    transition = pending.transition
    if transition.to_state == ApprovalState.UNDER_REVIEW:
        return NotificationType.APPROVAL_REQUESTED
    if transition.to_state == ApprovalState.PUBLISHED:
        return NotificationType.APPROVAL_APPROVED
    if transition.trigger == "cancel":
        return NotificationType.CONTENT_WITHDRAWN
    if transition.to_state == ApprovalState.REJECTED:
        return NotificationType.APPROVAL_REJECTED
    if transition.trigger == "validation_failed":
        return NotificationType.VALIDATION_FAILED
    if transition.trigger == "review_timeout":
        return NotificationType.REVIEW_TIMED_OUT
    if transition.trigger == "request_changes":
        return NotificationType.APPROVAL_CHANGES_REQUESTED
    return None


_SUBJECTS = {
    NotificationType.APPROVAL_REQUESTED: "New Content Ready for Review",
    NotificationType.APPROVAL_APPROVED: "Content Approved",
    NotificationType.APPROVAL_REJECTED: "Content Rejected",
    NotificationType.APPROVAL_CHANGES_REQUESTED: "Changes Requested",
    NotificationType.REVIEW_TIMED_OUT: "Review Timed Out",
    NotificationType.VALIDATION_FAILED: "Content Validation Failed",
    NotificationType.CONTENT_WITHDRAWN: "Content Withdrawn",
}


def compose_notifications(
    item: ContentItem,
    pending: PendingProjection,
    now: datetime,
) -> list[ContentNotification]:
    """Build the outbox rows owed for one projected transition."""
    notification_type = _classify(pending)
    if notification_type is None:
        return []

    subject = _SUBJECTS[notification_type]
    comment = pending.transition.comment

    if notification_type == NotificationType.APPROVAL_REQUESTED:
        recipient = REVIEWER_GROUP
        message = (
            f"Content ID: {item.id} submitted by {item.author_id} requires review.\n\n"
            f"{item.title}"
        )
    else:
        recipient = pending.author_id
        message = f'"{item.title}" is now {pending.transition.to_state.value}.'
        if pending.transition.actor_id:
            message += f"\nBy: {pending.transition.actor_id}"
        if comment:
            message += f"\n\n{comment}"

    return [
        ContentNotification(
            content_id=item.id,
            transition_seq=pending.transition_seq,
            recipient=recipient,
            notification_type=notification_type.value,
            subject=f"{subject}: {item.title}"[:255],
            message=message,
            created_at=now,
        )
    ]


# =============================================================================
# Delivery
# =============================================================================

class NotificationChannel(Protocol):
    """Delivery channel for outbox rows."""

    name: str

    def send(self, notification: ContentNotification) -> None:
        ...


class LogNotificationChannel:
    """Default channel: emits each notification as a structured log event."""

    name = "log"

    def send(self, notification: ContentNotification) -> None:
        logger.info(
            "notification_sent",
            recipient=notification.recipient,
            notification_type=notification.notification_type,
            subject=notification.subject,
            content_id=notification.content_id,
        )


class NotificationDispatcher:
    """Delivers pending outbox rows and marks them delivered.

    A row whose delivery fails stays pending and is retried on the next
    dispatch.
    """

    def __init__(
        self,
        session_factory: SessionFactory = get_session,
        channel: Optional[NotificationChannel] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session_factory = session_factory
        self.channel = channel or LogNotificationChannel()
        self.clock = clock

    def dispatch_pending(self, limit: int = 100) -> int:
        delivered = 0
        with self.session_factory() as session:
            repo = NotificationRepository(session)
            for notification in repo.list_pending(limit=limit):
                try:
                    self.channel.send(notification)
                except Exception as e:
                    logger.warning(
                        "notification_delivery_failed",
                        notification_id=str(notification.id),
                        channel=self.channel.name,
                        error=str(e),
                    )
                    continue
                notification.delivered_at = self.clock()
                notification.channel = self.channel.name
                session.add(notification)
                session.commit()
                delivered += 1

        if delivered:
            logger.info("notifications_dispatched", count=delivered)
        return delivered
