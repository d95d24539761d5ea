"""Status projector: writes committed transitions into the content store.

Each projection is keyed by (content_id, transition_seq) in the
status_projections log. The log row, the status write and any outbox
notifications commit together, so running the same projection again
(after a crash between commit and acknowledgement, or a retried
activity) finds the log row and does nothing.
"""

from datetime import datetime
from typing import Callable

from sqlalchemy.exc import IntegrityError

from contentflow.content.repository import StatusProjectionRepository
from contentflow.db import SessionFactory, get_session
from contentflow.db.models import ContentItem, StatusProjection, utc_now
from contentflow.exceptions import ContentNotFoundError
from contentflow.logging import get_logger
from contentflow.models import PendingProjection
from contentflow.notifications import compose_notifications

logger = get_logger(__name__)


class StatusProjector:
    """Idempotent writer of ContentItem.status."""

    def __init__(
        self,
        session_factory: SessionFactory = get_session,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session_factory = session_factory
        self.clock = clock

    def project(self, pending: PendingProjection) -> bool:
        """Apply one transition. Returns False if it was already applied."""
        target = pending.transition.target_status
        if target is None:
            return False

        with self.session_factory() as session:
            log = StatusProjectionRepository(session)
            if log.get_by_transition(pending.content_id, pending.transition_seq):
                logger.debug(
                    "projection_already_applied",
                    content_id=pending.content_id,
                    transition_seq=pending.transition_seq,
                )
                return False

            item = session.get(ContentItem, pending.content_id)
            if item is None:
                raise ContentNotFoundError(pending.content_id)

            now = self.clock()
            from_status = item.status
            item.status = target
            item.updated_at = now
            session.add(item)

            session.add(
                StatusProjection(
                    content_id=pending.content_id,
                    workflow_id=pending.workflow_id,
                    transition_seq=pending.transition_seq,
                    from_status=from_status.value,
                    target_status=target.value,
                    actor_id=pending.transition.actor_id,
                    comment=pending.transition.comment,
                    applied_at=now,
                )
            )

            if pending.notify:
                for notification in compose_notifications(item, pending, now):
                    session.add(notification)

            try:
                session.commit()
            except IntegrityError:
                # Another writer recorded the same transition first
                session.rollback()
                return False

        logger.info(
            "projection_applied",
            content_id=pending.content_id,
            transition_seq=pending.transition_seq,
            from_status=from_status.value,
            to_status=target.value,
        )
        return True
