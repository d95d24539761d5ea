"""Durable workflow models: instance snapshot, event log, transition log."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Column, Text, UniqueConstraint
from sqlmodel import Field

from contentflow.db.models.base import TimestampMixin, UUIDModel, utc_now


# =============================================================================
# WorkflowInstance
# =============================================================================

class WorkflowInstance(UUIDModel, TimestampMixin, table=True):
    """One approval state-machine instance per content item.

    The unique constraints on workflow_id and content_id are what make a
    second start fail instead of creating a second instance.
    """

    __tablename__ = "workflow_instances"

    workflow_id: str = Field(max_length=255, unique=True, index=True)
    content_id: int = Field(foreign_key="content.id", unique=True, index=True)

    # Denormalized from snapshot for queues and dashboards
    state: str = Field(default="DRAFT", index=True)

    config: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column("config", JSON, nullable=False)
    )
    snapshot: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column("snapshot", JSON, nullable=False)
    )

    # Armed review timer (copied from snapshot so the poller can index it)
    timer_fires_at: Optional[datetime] = Field(default=None, index=True)

    last_event_seq: int = Field(default=0)
    transition_seq: int = Field(default=0)

    # Transition recorded but not yet written to the content store
    pending_projection: Optional[dict[str, Any]] = Field(
        default=None,
        sa_column=Column("pending_projection", JSON(none_as_null=True), nullable=True),
    )

    completed_at: Optional[datetime] = Field(default=None, index=True)

    @property
    def is_complete(self) -> bool:
        return self.completed_at is not None


# =============================================================================
# WorkflowEventRecord
# =============================================================================

class WorkflowEventRecord(UUIDModel, table=True):
    """Append-only event log and durable inbox for one instance.

    Unprocessed rows are signals or timer firings that were accepted by
    the runtime but not yet applied; they are re-delivered on recovery.
    """

    __tablename__ = "workflow_events"
    __table_args__ = (
        UniqueConstraint("workflow_id", "seq", name="uq_workflow_events_seq"),
        UniqueConstraint("workflow_id", "signal_id", name="uq_workflow_events_signal"),
    )

    workflow_id: str = Field(
        foreign_key="workflow_instances.workflow_id", max_length=255, index=True
    )
    seq: int = Field(nullable=False)
    event_type: str = Field(max_length=50, index=True)
    payload: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column("payload", JSON, nullable=False)
    )

    # Sender-supplied key for deduplicating at-least-once deliveries
    signal_id: Optional[str] = Field(default=None, max_length=255)

    processed: bool = Field(default=False, index=True)
    outcome: Optional[str] = Field(default=None, max_length=20)
    transition_seq: Optional[int] = None
    recorded_at: datetime = Field(default_factory=utc_now, nullable=False)


# =============================================================================
# StatusProjection
# =============================================================================

class StatusProjection(UUIDModel, table=True):
    """Transition log consulted by the projector before writing.

    One row per projected transition; the unique key makes re-running a
    projection after a crash a no-op.
    """

    __tablename__ = "status_projections"
    __table_args__ = (
        UniqueConstraint("content_id", "transition_seq", name="uq_status_projections_seq"),
    )

    content_id: int = Field(foreign_key="content.id", index=True)
    workflow_id: str = Field(max_length=255, index=True)
    transition_seq: int = Field(nullable=False)
    from_status: str = Field(max_length=20)
    target_status: str = Field(max_length=20)
    actor_id: Optional[str] = Field(default=None, max_length=100)
    comment: Optional[str] = Field(default=None, sa_column=Column("comment", Text))
    applied_at: datetime = Field(default_factory=utc_now, nullable=False)
