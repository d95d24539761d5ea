"""Approval state machine for a single content item.

The machine is a pure transition function over a MachineSnapshot: it
never touches storage, clocks or timers directly. The runtime feeds it
events from the durable log (with the time each event was recorded) and
persists the resulting snapshot, which is what makes replay after a
crash produce the same states again.

    DRAFT --submit--> [SUBMITTED_FOR_REVIEW --validation-->] UNDER_REVIEW
    UNDER_REVIEW --approve--> PUBLISHED
    UNDER_REVIEW --reject--> REJECTED
    UNDER_REVIEW --request changes / timeout--> DRAFT (or REJECTED past max revisions)
    any live state --cancel--> REJECTED
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from contentflow.config import WorkflowConfig
from contentflow.exceptions import InvalidTransitionError
from contentflow.models import (
    ApprovalState,
    CancelWorkflow,
    Decision,
    MachineSnapshot,
    RecordDecision,
    ReviewTimeout,
    SubmitForReview,
    Transition,
    ValidationCompleted,
    WorkflowStarted,
)

SYSTEM_ACTOR = "system"
REVIEW_TIMEOUT_COMMENT = "Review timed out without a decision; returned for revision"
MAX_REVISIONS_COMMENT = "Maximum revision count exceeded"

ALLOWED_EDGES: frozenset[tuple[ApprovalState, ApprovalState]] = frozenset({
    (ApprovalState.DRAFT, ApprovalState.SUBMITTED_FOR_REVIEW),
    (ApprovalState.DRAFT, ApprovalState.UNDER_REVIEW),
    (ApprovalState.DRAFT, ApprovalState.REJECTED),
    (ApprovalState.SUBMITTED_FOR_REVIEW, ApprovalState.UNDER_REVIEW),
    (ApprovalState.SUBMITTED_FOR_REVIEW, ApprovalState.DRAFT),
    (ApprovalState.SUBMITTED_FOR_REVIEW, ApprovalState.REJECTED),
    (ApprovalState.UNDER_REVIEW, ApprovalState.PUBLISHED),
    (ApprovalState.UNDER_REVIEW, ApprovalState.REJECTED),
    (ApprovalState.UNDER_REVIEW, ApprovalState.DRAFT),
})


class ApprovalStateMachine:
    """Applies approval events to a snapshot.

    apply() returns the Transition taken, or None when the event is stale
    for the current state; ignored_reason then says why.
    """

    def __init__(
        self,
        config: WorkflowConfig,
        snapshot: Optional[MachineSnapshot] = None,
    ):
        self.config = config
        self.snapshot = snapshot.model_copy(deep=True) if snapshot else MachineSnapshot()
        self.ignored_reason: Optional[str] = None

    @property
    def state(self) -> ApprovalState:
        return self.snapshot.state

    @property
    def is_complete(self) -> bool:
        return self.snapshot.state.is_terminal

    def apply(self, event: BaseModel, now: datetime) -> Optional[Transition]:
        """Apply one event recorded at ``now``."""
        self.ignored_reason = None

        if isinstance(event, WorkflowStarted):
            return self._ignore("start is recorded, not applied")
        if self.is_complete:
            return self._ignore(f"instance already {self.state.value}")

        if isinstance(event, SubmitForReview):
            return self._on_submit(event, now)
        if isinstance(event, ValidationCompleted):
            return self._on_validation(event, now)
        if isinstance(event, RecordDecision):
            return self._on_decision(event, now)
        if isinstance(event, ReviewTimeout):
            return self._on_timeout(event, now)
        if isinstance(event, CancelWorkflow):
            return self._on_cancel(event, now)
        return self._ignore(f"unsupported event {type(event).__name__}")

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _on_submit(self, event: SubmitForReview, now: datetime) -> Optional[Transition]:
        if self.state != ApprovalState.DRAFT:
            return self._ignore(f"submit while {self.state.value}")

        self.snapshot.submitted_at = now
        if self.config.validation_enabled:
            return self._move(
                ApprovalState.SUBMITTED_FOR_REVIEW,
                now,
                trigger="submit_for_review",
                actor_id=event.submitted_by,
                needs_validation=True,
            )
        return self._enter_review(now, trigger="submit_for_review", actor_id=event.submitted_by)

    def _on_validation(self, event: ValidationCompleted, now: datetime) -> Optional[Transition]:
        if self.state != ApprovalState.SUBMITTED_FOR_REVIEW:
            return self._ignore(f"validation result while {self.state.value}")

        self.snapshot.quality_score = event.quality_score
        if event.passed:
            return self._enter_review(now, trigger="validation_passed", actor_id=SYSTEM_ACTOR)

        comment = "Validation failed: " + "; ".join(event.errors)
        self.snapshot.last_comment = comment
        return self._move(
            ApprovalState.DRAFT,
            now,
            trigger="validation_failed",
            actor_id=SYSTEM_ACTOR,
            comment=comment,
        )

    def _on_decision(self, event: RecordDecision, now: datetime) -> Optional[Transition]:
        if self.state != ApprovalState.UNDER_REVIEW:
            return self._ignore(f"decision while {self.state.value}")

        decision = event.decision
        self.snapshot.reviewer_id = decision.reviewer_id
        self.snapshot.last_comment = decision.comment

        if decision.decision == Decision.APPROVE:
            return self._move(
                ApprovalState.PUBLISHED,
                now,
                trigger="approve",
                actor_id=decision.reviewer_id,
                comment=decision.comment,
            )
        if decision.decision == Decision.REJECT:
            return self._move(
                ApprovalState.REJECTED,
                now,
                trigger="reject",
                actor_id=decision.reviewer_id,
                comment=decision.comment,
            )
        return self._send_back(
            now,
            trigger="request_changes",
            actor_id=decision.reviewer_id,
            comment=decision.comment,
        )

    def _on_timeout(self, event: ReviewTimeout, now: datetime) -> Optional[Transition]:
        if self.state != ApprovalState.UNDER_REVIEW:
            return self._ignore(f"timer {event.timer_id} fired while {self.state.value}")
        if event.timer_id != self.snapshot.timer_id:
            return self._ignore(
                f"timer {event.timer_id} is stale (armed: {self.snapshot.timer_id})"
            )

        self.snapshot.last_comment = REVIEW_TIMEOUT_COMMENT
        return self._send_back(
            now,
            trigger="review_timeout",
            actor_id=SYSTEM_ACTOR,
            comment=REVIEW_TIMEOUT_COMMENT,
        )

    def _on_cancel(self, event: CancelWorkflow, now: datetime) -> Optional[Transition]:
        comment = f"withdrawn: {event.reason}" if event.reason else "withdrawn"
        self.snapshot.last_comment = comment
        return self._move(
            ApprovalState.REJECTED,
            now,
            trigger="cancel",
            actor_id=event.requested_by,
            comment=comment,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _send_back(
        self,
        now: datetime,
        trigger: str,
        actor_id: Optional[str],
        comment: Optional[str],
    ) -> Transition:
        """Return to DRAFT, or escalate to REJECTED past the revision limit."""
        self.snapshot.revision_count += 1
        limit = self.config.max_revision_count
        if limit is not None and self.snapshot.revision_count > limit:
            escalated = f"{comment}; {MAX_REVISIONS_COMMENT}" if comment else MAX_REVISIONS_COMMENT
            self.snapshot.last_comment = escalated
            return self._move(
                ApprovalState.REJECTED,
                now,
                trigger=trigger,
                actor_id=actor_id,
                comment=escalated,
            )
        return self._move(
            ApprovalState.DRAFT, now, trigger=trigger, actor_id=actor_id, comment=comment
        )

    def _enter_review(
        self, now: datetime, trigger: str, actor_id: Optional[str]
    ) -> Transition:
        transition = self._move(
            ApprovalState.UNDER_REVIEW, now, trigger=trigger, actor_id=actor_id
        )
        self.snapshot.timer_seq += 1
        self.snapshot.timer_id = self.snapshot.timer_seq
        self.snapshot.timer_fires_at = now + self.config.review_timeout
        self.snapshot.review_started_at = now
        return transition

    def _move(
        self,
        to_state: ApprovalState,
        now: datetime,
        trigger: str,
        actor_id: Optional[str] = None,
        comment: Optional[str] = None,
        needs_validation: bool = False,
    ) -> Transition:
        from_state = self.snapshot.state
        if (from_state, to_state) not in ALLOWED_EDGES:
            raise InvalidTransitionError(
                f"{from_state.value} -> {to_state.value} is not an approval edge",
                details={"trigger": trigger},
            )

        # Leaving review disarms the timer; a late firing then fails the id check
        if from_state == ApprovalState.UNDER_REVIEW:
            self.snapshot.timer_id = None
            self.snapshot.timer_fires_at = None

        self.snapshot.state = to_state
        if to_state.is_terminal:
            self.snapshot.completed_at = now

        return Transition(
            from_state=from_state,
            to_state=to_state,
            trigger=trigger,
            actor_id=actor_id,
            comment=comment,
            needs_validation=needs_validation,
            completes=to_state.is_terminal,
        )

    def _ignore(self, reason: str) -> None:
        self.ignored_reason = reason
        return None
