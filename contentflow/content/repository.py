"""SQLModel-based repository layer for the content record store.

Each repository wraps a session and encapsulates the queries for one
table. Repositories never write ContentItem.status: that column belongs
to the owning approval instance and is written by the projector.

Usage:
    from contentflow.db import get_session
    from contentflow.content.repository import ContentRepository

    with get_session() as session:
        repo = ContentRepository(session)
        item = repo.get(content_id)
"""

from typing import Generic, Optional, TypeVar

from sqlmodel import Session, col, select

from contentflow.db.models import (
    ContentItem,
    ContentNotification,
    ContentStatus,
    StatusProjection,
    WorkflowEventRecord,
    WorkflowInstance,
)

T = TypeVar("T")


# =============================================================================
# Base Repository
# =============================================================================

class BaseRepository(Generic[T]):
    """Base repository with common lookups."""

    model: type[T]

    def __init__(self, session: Session):
        self.session = session

    def get(self, id) -> Optional[T]:
        """Get a record by primary key."""
        return self.session.get(self.model, id)


# =============================================================================
# Content Repository
# =============================================================================

class ContentRepository(BaseRepository[ContentItem]):
    """Repository for content records and the content <-> workflow correlation."""

    model = ContentItem

    def add(self, item: ContentItem) -> ContentItem:
        """Insert a record and flush so the integer id is assigned."""
        self.session.add(item)
        self.session.flush()
        return item

    def get_by_workflow_id(self, workflow_id: str) -> Optional[ContentItem]:
        statement = select(ContentItem).where(ContentItem.workflow_id == workflow_id)
        return self.session.exec(statement).first()

    def get_workflow_id(self, content_id: int) -> Optional[str]:
        """Correlation lookup: which instance owns this content item."""
        item = self.get(content_id)
        return item.workflow_id if item else None

    def list_by_status(self, status: ContentStatus, limit: int = 100) -> list[ContentItem]:
        """Queue view, oldest first."""
        statement = (
            select(ContentItem)
            .where(ContentItem.status == status)
            .order_by(col(ContentItem.created_at))
            .limit(limit)
        )
        return list(self.session.exec(statement).all())

    def list_by_author(self, author_id: str, limit: int = 100) -> list[ContentItem]:
        statement = (
            select(ContentItem)
            .where(ContentItem.author_id == author_id)
            .order_by(col(ContentItem.created_at).desc())
            .limit(limit)
        )
        return list(self.session.exec(statement).all())


# =============================================================================
# Workflow Repositories
# =============================================================================

class WorkflowInstanceRepository(BaseRepository[WorkflowInstance]):
    """Repository for durable instance rows."""

    model = WorkflowInstance

    def get_by_workflow_id(
        self, workflow_id: str, for_update: bool = False
    ) -> Optional[WorkflowInstance]:
        """Load an instance, optionally locking the row (PostgreSQL)."""
        statement = select(WorkflowInstance).where(
            WorkflowInstance.workflow_id == workflow_id
        )
        if for_update:
            statement = statement.with_for_update()
        return self.session.exec(statement).first()

    def get_by_content_id(self, content_id: int) -> Optional[WorkflowInstance]:
        statement = select(WorkflowInstance).where(
            WorkflowInstance.content_id == content_id
        )
        return self.session.exec(statement).first()

    def list_live_ids(self) -> list[str]:
        """Workflow ids of instances that have not completed, or still owe a projection."""
        statement = select(WorkflowInstance.workflow_id).where(
            (col(WorkflowInstance.completed_at).is_(None))
            | (col(WorkflowInstance.pending_projection).is_not(None))
        )
        return list(self.session.exec(statement).all())

    def list_due_timers(self, now, limit: int = 100) -> list[WorkflowInstance]:
        """Armed timers past their deadline. Parked instances are left to list_parked_ids."""
        statement = (
            select(WorkflowInstance)
            .where(
                col(WorkflowInstance.completed_at).is_(None),
                col(WorkflowInstance.pending_projection).is_(None),
                col(WorkflowInstance.timer_fires_at).is_not(None),
                col(WorkflowInstance.timer_fires_at) <= now,
            )
            .order_by(col(WorkflowInstance.timer_fires_at))
            .limit(limit)
        )
        return list(self.session.exec(statement).all())

    def list_parked_ids(self, limit: int = 100) -> list[str]:
        """Workflow ids of instances still owing a projection, least recently touched first."""
        statement = (
            select(WorkflowInstance.workflow_id)
            .where(col(WorkflowInstance.pending_projection).is_not(None))
            .order_by(col(WorkflowInstance.updated_at))
            .limit(limit)
        )
        return list(self.session.exec(statement).all())


class WorkflowEventRepository(BaseRepository[WorkflowEventRecord]):
    """Repository for the append-only event log."""

    model = WorkflowEventRecord

    def get_by_signal_id(
        self, workflow_id: str, signal_id: str
    ) -> Optional[WorkflowEventRecord]:
        statement = select(WorkflowEventRecord).where(
            WorkflowEventRecord.workflow_id == workflow_id,
            WorkflowEventRecord.signal_id == signal_id,
        )
        return self.session.exec(statement).first()

    def get_by_seq(self, workflow_id: str, seq: int) -> Optional[WorkflowEventRecord]:
        statement = select(WorkflowEventRecord).where(
            WorkflowEventRecord.workflow_id == workflow_id,
            WorkflowEventRecord.seq == seq,
        )
        return self.session.exec(statement).first()

    def next_unprocessed(self, workflow_id: str) -> Optional[WorkflowEventRecord]:
        statement = (
            select(WorkflowEventRecord)
            .where(
                WorkflowEventRecord.workflow_id == workflow_id,
                WorkflowEventRecord.processed == False,  # noqa: E712
            )
            .order_by(col(WorkflowEventRecord.seq))
        )
        return self.session.exec(statement).first()

    def list_by_workflow(self, workflow_id: str) -> list[WorkflowEventRecord]:
        statement = (
            select(WorkflowEventRecord)
            .where(WorkflowEventRecord.workflow_id == workflow_id)
            .order_by(col(WorkflowEventRecord.seq))
        )
        return list(self.session.exec(statement).all())


class StatusProjectionRepository(BaseRepository[StatusProjection]):
    """Repository for the projector's transition log."""

    model = StatusProjection

    def get_by_transition(
        self, content_id: int, transition_seq: int
    ) -> Optional[StatusProjection]:
        statement = select(StatusProjection).where(
            StatusProjection.content_id == content_id,
            StatusProjection.transition_seq == transition_seq,
        )
        return self.session.exec(statement).first()

    def list_by_content(self, content_id: int) -> list[StatusProjection]:
        statement = (
            select(StatusProjection)
            .where(StatusProjection.content_id == content_id)
            .order_by(col(StatusProjection.transition_seq))
        )
        return list(self.session.exec(statement).all())


class NotificationRepository(BaseRepository[ContentNotification]):
    """Repository for the notification outbox."""

    model = ContentNotification

    def list_pending(self, limit: int = 100) -> list[ContentNotification]:
        statement = (
            select(ContentNotification)
            .where(col(ContentNotification.delivered_at).is_(None))
            .order_by(col(ContentNotification.created_at))
            .limit(limit)
        )
        return list(self.session.exec(statement).all())

    def list_by_content(self, content_id: int) -> list[ContentNotification]:
        statement = (
            select(ContentNotification)
            .where(ContentNotification.content_id == content_id)
            .order_by(col(ContentNotification.transition_seq))
        )
        return list(self.session.exec(statement).all())
