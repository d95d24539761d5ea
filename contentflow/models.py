"""Pydantic models for approval signals, machine state and query views."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from contentflow.db.models.content import ContentStatus


class ApprovalState(str, Enum):
    """Internal states of the approval state machine.

    SUBMITTED_FOR_REVIEW is internal: it is never projected and only
    exists while the validation activity runs.
    """

    DRAFT = "DRAFT"
    SUBMITTED_FOR_REVIEW = "SUBMITTED_FOR_REVIEW"
    UNDER_REVIEW = "UNDER_REVIEW"
    PUBLISHED = "PUBLISHED"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self in (ApprovalState.PUBLISHED, ApprovalState.REJECTED)


class Decision(str, Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    REQUEST_CHANGES = "REQUEST_CHANGES"


class ApprovalDecision(BaseModel):
    """Reviewer decision payload carried by a RecordDecision signal."""

    decision: Decision
    reviewer_id: str = Field(min_length=1)
    comment: Optional[str] = None


class SignalOutcome(str, Enum):
    """How an instance (or the gateway) resolved a delivered signal."""

    ACCEPTED = "accepted"
    IGNORED = "ignored"
    NOT_FOUND = "not_found"


# =============================================================================
# Events (tagged variants stored in the event log)
# =============================================================================

class WorkflowStarted(BaseModel):
    type: Literal["workflow_started"] = "workflow_started"
    content_id: int
    author_id: str


class SubmitForReview(BaseModel):
    type: Literal["submit_for_review"] = "submit_for_review"
    submitted_by: Optional[str] = None


class ValidationCompleted(BaseModel):
    """Recorded result of the validation activity."""

    type: Literal["validation_completed"] = "validation_completed"
    passed: bool
    errors: list[str] = Field(default_factory=list)
    quality_score: int = Field(default=0, ge=0, le=100)


class RecordDecision(BaseModel):
    type: Literal["record_decision"] = "record_decision"
    decision: ApprovalDecision


class ReviewTimeout(BaseModel):
    type: Literal["review_timeout"] = "review_timeout"
    timer_id: int


class CancelWorkflow(BaseModel):
    type: Literal["cancel"] = "cancel"
    reason: Optional[str] = None
    requested_by: Optional[str] = None


WorkflowEvent = Annotated[
    Union[
        WorkflowStarted,
        SubmitForReview,
        ValidationCompleted,
        RecordDecision,
        ReviewTimeout,
        CancelWorkflow,
    ],
    Field(discriminator="type"),
]

workflow_event_adapter: TypeAdapter = TypeAdapter(WorkflowEvent)


def parse_event(payload: dict) -> BaseModel:
    """Rebuild a typed event from its stored JSON payload."""
    return workflow_event_adapter.validate_python(payload)


# =============================================================================
# Machine state
# =============================================================================

class MachineSnapshot(BaseModel):
    """Everything needed to resume an instance without in-memory continuity."""

    state: ApprovalState = ApprovalState.DRAFT
    revision_count: int = 0

    # Armed review timer; timer_seq only ever grows so stale ids never match
    timer_seq: int = 0
    timer_id: Optional[int] = None
    timer_fires_at: Optional[datetime] = None

    reviewer_id: Optional[str] = None
    last_comment: Optional[str] = None
    quality_score: Optional[int] = None

    submitted_at: Optional[datetime] = None
    review_started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class Transition(BaseModel):
    """A state change produced by applying one event."""

    from_state: ApprovalState
    to_state: ApprovalState
    trigger: str
    actor_id: Optional[str] = None
    comment: Optional[str] = None
    needs_validation: bool = False
    completes: bool = False

    @property
    def target_status(self) -> Optional[ContentStatus]:
        """Status to project, or None for internal-only states."""
        if self.to_state == ApprovalState.SUBMITTED_FOR_REVIEW:
            return None
        return ContentStatus(self.to_state.value)


class PendingProjection(BaseModel):
    """A recorded transition awaiting its write to the content store."""

    transition_seq: int
    content_id: int
    workflow_id: str
    author_id: str
    transition: Transition
    notify: bool = True


# =============================================================================
# Query views
# =============================================================================

class WorkflowStateView(BaseModel):
    """Read-only view of a running or completed instance."""

    workflow_id: str
    content_id: int
    state: ApprovalState
    revision_count: int
    reviewer_id: Optional[str] = None
    last_comment: Optional[str] = None
    quality_score: Optional[int] = None
    submitted_at: Optional[datetime] = None
    review_started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    review_deadline: Optional[datetime] = None
    projection_pending: bool = False
    is_complete: bool = False


class ContentStatusView(BaseModel):
    """Status of a content record combined with its workflow view."""

    content_id: int
    status: ContentStatus
    workflow_id: Optional[str] = None
    workflow: Optional[WorkflowStateView] = None

    @property
    def is_complete(self) -> bool:
        return self.status.is_terminal


class SignalResult(BaseModel):
    """What the gateway reports back to the external actor."""

    outcome: SignalOutcome
    content_id: Optional[int] = None
    workflow_id: Optional[str] = None
    status: Optional[ContentStatus] = None
    message: Optional[str] = None
