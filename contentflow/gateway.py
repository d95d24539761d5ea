"""Approval signal gateway.

Entry point for external actors (API handlers, UIs, CLIs living outside
this package). Each call resolves the content id to its owning workflow
instance, forwards the action as a signal and reports one of
accepted / ignored / not_found. Delivery is at-least-once: senders that
retry should pass the same signal_id so repeats are deduplicated.
"""

from typing import Optional

from pydantic import BaseModel

from contentflow.content.repository import ContentRepository
from contentflow.db import SessionFactory
from contentflow.db.models import ContentStatus
from contentflow.engine import WorkflowRuntime
from contentflow.exceptions import ProjectionWriteError, UnknownInstanceError
from contentflow.logging import get_logger
from contentflow.models import (
    ApprovalDecision,
    CancelWorkflow,
    Decision,
    RecordDecision,
    SignalOutcome,
    SignalResult,
    SubmitForReview,
)

logger = get_logger(__name__)


class ApprovalSignalGateway:
    """Forwards approval actions to workflow instances."""

    def __init__(
        self,
        runtime: WorkflowRuntime,
        session_factory: Optional[SessionFactory] = None,
    ):
        self.runtime = runtime
        self.session_factory = session_factory or runtime.session_factory

    # =========================================================================
    # Actions by content id
    # =========================================================================

    def submit_for_review(
        self,
        content_id: int,
        submitted_by: Optional[str] = None,
        signal_id: Optional[str] = None,
    ) -> SignalResult:
        return self._send(content_id, SubmitForReview(submitted_by=submitted_by), signal_id)

    def approve(
        self,
        content_id: int,
        reviewer_id: str,
        comment: Optional[str] = None,
        signal_id: Optional[str] = None,
    ) -> SignalResult:
        return self.record_decision(
            content_id,
            ApprovalDecision(decision=Decision.APPROVE, reviewer_id=reviewer_id, comment=comment),
            signal_id=signal_id,
        )

    def reject(
        self,
        content_id: int,
        reviewer_id: str,
        comment: Optional[str] = None,
        signal_id: Optional[str] = None,
    ) -> SignalResult:
        return self.record_decision(
            content_id,
            ApprovalDecision(decision=Decision.REJECT, reviewer_id=reviewer_id, comment=comment),
            signal_id=signal_id,
        )

    def request_changes(
        self,
        content_id: int,
        reviewer_id: str,
        comment: Optional[str] = None,
        signal_id: Optional[str] = None,
    ) -> SignalResult:
        return self.record_decision(
            content_id,
            ApprovalDecision(
                decision=Decision.REQUEST_CHANGES, reviewer_id=reviewer_id, comment=comment
            ),
            signal_id=signal_id,
        )

    def record_decision(
        self,
        content_id: int,
        decision: ApprovalDecision,
        signal_id: Optional[str] = None,
    ) -> SignalResult:
        return self._send(content_id, RecordDecision(decision=decision), signal_id)

    def withdraw(
        self,
        content_id: int,
        reason: Optional[str] = None,
        requested_by: Optional[str] = None,
        signal_id: Optional[str] = None,
    ) -> SignalResult:
        return self._send(
            content_id,
            CancelWorkflow(reason=reason, requested_by=requested_by),
            signal_id,
        )

    # =========================================================================
    # Delivery
    # =========================================================================

    def signal(
        self,
        workflow_id: str,
        event: BaseModel,
        signal_id: Optional[str] = None,
    ) -> SignalResult:
        """Deliver an event addressed by workflow id instead of content id."""
        with self.session_factory() as session:
            item = ContentRepository(session).get_by_workflow_id(workflow_id)
            content_id = item.id if item else None
        return self._deliver(content_id, workflow_id, event, signal_id)

    def _send(
        self,
        content_id: int,
        event: BaseModel,
        signal_id: Optional[str],
    ) -> SignalResult:
        with self.session_factory() as session:
            workflow_id = ContentRepository(session).get_workflow_id(content_id)
        if workflow_id is None:
            logger.info("signal_unroutable", content_id=content_id, event_type=event.type)
            return SignalResult(
                outcome=SignalOutcome.NOT_FOUND,
                content_id=content_id,
                message=f"No workflow for content {content_id}",
            )
        return self._deliver(content_id, workflow_id, event, signal_id)

    def _deliver(
        self,
        content_id: Optional[int],
        workflow_id: str,
        event: BaseModel,
        signal_id: Optional[str],
    ) -> SignalResult:
        message = None
        try:
            outcome = self.runtime.signal(workflow_id, event, signal_id=signal_id)
        except UnknownInstanceError as e:
            logger.info(
                "signal_not_found",
                workflow_id=workflow_id,
                event_type=event.type,
                reason=e.details.get("reason"),
            )
            return SignalResult(
                outcome=SignalOutcome.NOT_FOUND,
                content_id=content_id,
                workflow_id=workflow_id,
                status=self._status_of(content_id),
                message=e.message,
            )
        except ProjectionWriteError as e:
            # Recorded durably; the status write resumes on the next drive or recovery
            logger.warning(
                "signal_projection_pending",
                workflow_id=workflow_id,
                transition_seq=e.transition_seq,
            )
            outcome = SignalOutcome.ACCEPTED
            message = "Accepted; status update pending"

        return SignalResult(
            outcome=outcome,
            content_id=content_id,
            workflow_id=workflow_id,
            status=self._status_of(content_id),
            message=message,
        )

    def _status_of(self, content_id: Optional[int]) -> Optional[ContentStatus]:
        if content_id is None:
            return None
        with self.session_factory() as session:
            item = ContentRepository(session).get(content_id)
            return item.status if item else None
