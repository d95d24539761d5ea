"""Workflow engine runtime: durable hosting for approval state machines.

Every instance is persisted as a snapshot row plus an append-only event
log that doubles as its inbox. Signals and timer firings are appended
first and applied second, one at a time and in sequence order, so a
process restart at any point loses nothing: recover() settles the last
unprojected transition and applies whatever is still in the inbox.

    runtime = WorkflowRuntime()
    runtime.start_instance("content-approval-1", content_id=1, author_id="alice")
    runtime.signal("content-approval-1", SubmitForReview(submitted_by="alice"))
    runtime.fire_due_timers()

Transitions for one instance are serialized by an in-process lock and by
SELECT ... FOR UPDATE on the instance row (PostgreSQL). Distinct instances
share nothing and can be driven concurrently.
"""

import threading
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Iterator, Optional, Union

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError

from contentflow.config import WorkflowConfig, build_workflow_config
from contentflow.content.repository import (
    WorkflowEventRepository,
    WorkflowInstanceRepository,
)
from contentflow.db import SessionFactory, get_session
from contentflow.db.models import (
    ContentItem,
    WorkflowEventRecord,
    WorkflowInstance,
    utc_now,
)
from contentflow.exceptions import (
    ProjectionWriteError,
    UnknownInstanceError,
    WorkflowAlreadyRunningError,
)
from contentflow.logging import bind_context, clear_context, get_logger
from contentflow.models import (
    CancelWorkflow,
    MachineSnapshot,
    PendingProjection,
    ReviewTimeout,
    SignalOutcome,
    ValidationCompleted,
    WorkflowStarted,
    WorkflowStateView,
    parse_event,
)
from contentflow.projector import StatusProjector
from contentflow.resilience import RetryPolicy
from contentflow.state_machine import ApprovalStateMachine
from contentflow.validation import ContentValidator

logger = get_logger(__name__)


def timer_signal_id(timer_id: int) -> str:
    """Dedupe key for a timer firing; a timer fires at most once."""
    return f"timer-{timer_id}"


class WorkflowRuntime:
    """Starts, drives, recovers and replays approval instances."""

    def __init__(
        self,
        session_factory: SessionFactory = get_session,
        projector: Optional[StatusProjector] = None,
        validator: Optional[ContentValidator] = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.projector = projector or StatusProjector(session_factory, clock=clock)
        self.validator = validator or ContentValidator()
        self._sleep = sleep
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start_instance(
        self,
        workflow_id: str,
        content_id: int,
        author_id: str,
        config: Union[WorkflowConfig, dict[str, Any], None] = None,
    ) -> WorkflowStateView:
        """Create an instance in DRAFT.

        Raises:
            ConfigurationError: Before anything is written, if config is invalid.
            WorkflowAlreadyRunningError: If the workflow id or content id
                already has an instance.
        """
        workflow_config = build_workflow_config(config)
        now = self.clock()
        started = WorkflowStarted(content_id=content_id, author_id=author_id)

        with self.instance_lock(workflow_id), self.session_factory() as session:
            instances = WorkflowInstanceRepository(session)
            if instances.get_by_workflow_id(workflow_id) or instances.get_by_content_id(
                content_id
            ):
                raise WorkflowAlreadyRunningError(workflow_id, content_id)

            instance = WorkflowInstance(
                workflow_id=workflow_id,
                content_id=content_id,
                state=MachineSnapshot().state.value,
                config=workflow_config.model_dump(mode="json"),
                snapshot=MachineSnapshot().model_dump(mode="json"),
                last_event_seq=1,
            )
            record = WorkflowEventRecord(
                workflow_id=workflow_id,
                seq=1,
                event_type=started.type,
                payload=started.model_dump(mode="json"),
                processed=True,
                outcome=SignalOutcome.ACCEPTED.value,
                recorded_at=now,
            )
            session.add(instance)
            session.add(record)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise WorkflowAlreadyRunningError(workflow_id, content_id) from e

        logger.info(
            "workflow_started",
            workflow_id=workflow_id,
            content_id=content_id,
            review_timeout_s=workflow_config.review_timeout.total_seconds(),
            max_revision_count=workflow_config.max_revision_count,
        )
        return self.describe(workflow_id)

    def signal(
        self,
        workflow_id: str,
        event: BaseModel,
        signal_id: Optional[str] = None,
    ) -> SignalOutcome:
        """Deliver an event to an instance and drive it.

        Delivery is at-least-once safe: a repeated signal_id returns the
        outcome of the first delivery without recording anything.

        Raises:
            UnknownInstanceError: No instance, or the instance has completed.
            ProjectionWriteError: A transition was recorded but could not be
                projected; the instance is parked until the next drive.
        """
        with self.instance_lock(workflow_id):
            bind_context(workflow_id=workflow_id)
            try:
                seq = self._record(workflow_id, event, signal_id)
                self._drive(workflow_id)
                return self._outcome_of(workflow_id, seq)
            finally:
                clear_context()

    def cancel(
        self,
        workflow_id: str,
        reason: Optional[str] = None,
        requested_by: Optional[str] = None,
        signal_id: Optional[str] = None,
    ) -> SignalOutcome:
        """Withdraw the item: disarm any timer and move to REJECTED."""
        return self.signal(
            workflow_id,
            CancelWorkflow(reason=reason, requested_by=requested_by),
            signal_id=signal_id,
        )

    # =========================================================================
    # Timers and recovery
    # =========================================================================

    def fire_due_timers(self, now: Optional[datetime] = None) -> int:
        """Deliver review_timeout events for every armed timer past its deadline.

        A failure delivering one timer is logged and does not stop the rest;
        the timer stays armed and is retried on the next poll.
        """
        now = now or self.clock()
        with self.session_factory() as session:
            due = [
                (instance.workflow_id, instance.snapshot.get("timer_id"))
                for instance in WorkflowInstanceRepository(session).list_due_timers(now)
            ]

        fired = 0
        for workflow_id, timer_id in due:
            if timer_id is None:
                continue
            logger.info("timer_fired", workflow_id=workflow_id, timer_id=timer_id)
            try:
                self.signal(
                    workflow_id,
                    ReviewTimeout(timer_id=timer_id),
                    signal_id=timer_signal_id(timer_id),
                )
            except UnknownInstanceError:
                # Completed between the query and the delivery
                continue
            except ProjectionWriteError as e:
                logger.warning(
                    "timer_projection_parked",
                    workflow_id=workflow_id,
                    transition_seq=e.transition_seq,
                )
            except Exception:
                logger.exception(
                    "timer_delivery_failed", workflow_id=workflow_id, timer_id=timer_id
                )
                continue
            fired += 1
        return fired

    def settle_parked(self, limit: int = 100) -> int:
        """Retry instances parked behind a failed projection. Returns how many resumed."""
        with self.session_factory() as session:
            parked = WorkflowInstanceRepository(session).list_parked_ids(limit=limit)

        return sum(1 for workflow_id in parked if self._resume(workflow_id))

    def recover(self) -> int:
        """Resume every live instance after a restart.

        Settles unprojected transitions, applies undelivered inbox events,
        then fires overdue timers. Returns the number of instances driven.
        """
        with self.session_factory() as session:
            live = WorkflowInstanceRepository(session).list_live_ids()

        recovered = sum(1 for workflow_id in live if self._resume(workflow_id))
        fired = self.fire_due_timers()
        logger.info("recovery_complete", instances=recovered, timers_fired=fired)
        return recovered

    # =========================================================================
    # Queries
    # =========================================================================

    def describe(self, workflow_id: str) -> WorkflowStateView:
        """Current view of an instance, running or completed."""
        with self.session_factory() as session:
            instance = WorkflowInstanceRepository(session).get_by_workflow_id(workflow_id)
            if instance is None:
                raise UnknownInstanceError(workflow_id)
            snapshot = MachineSnapshot.model_validate(instance.snapshot)
            return WorkflowStateView(
                workflow_id=instance.workflow_id,
                content_id=instance.content_id,
                state=snapshot.state,
                revision_count=snapshot.revision_count,
                reviewer_id=snapshot.reviewer_id,
                last_comment=snapshot.last_comment,
                quality_score=snapshot.quality_score,
                submitted_at=snapshot.submitted_at,
                review_started_at=snapshot.review_started_at,
                completed_at=snapshot.completed_at,
                review_deadline=snapshot.timer_fires_at,
                projection_pending=instance.pending_projection is not None,
                is_complete=instance.is_complete,
            )

    def rebuild(self, workflow_id: str) -> MachineSnapshot:
        """Replay the accepted events of an instance through a fresh machine."""
        with self.session_factory() as session:
            instance = WorkflowInstanceRepository(session).get_by_workflow_id(workflow_id)
            if instance is None:
                raise UnknownInstanceError(workflow_id)
            config = WorkflowConfig.model_validate(instance.config)
            records = WorkflowEventRepository(session).list_by_workflow(workflow_id)

        machine = ApprovalStateMachine(config)
        for record in records:
            if record.outcome != SignalOutcome.ACCEPTED.value:
                continue
            machine.apply(parse_event(record.payload), record.recorded_at)
        return machine.snapshot

    @contextmanager
    def instance_lock(self, workflow_id: str) -> Iterator[None]:
        """Hold the in-process lock that serializes transitions of one instance."""
        with self._locks_guard:
            lock = self._locks.setdefault(workflow_id, threading.Lock())
        with lock:
            yield

    # =========================================================================
    # Internals
    # =========================================================================

    def _resume(self, workflow_id: str) -> bool:
        """Drive one instance outside a signal. False if it is still parked."""
        with self.instance_lock(workflow_id):
            bind_context(workflow_id=workflow_id)
            try:
                self._drive(workflow_id)
                return True
            except ProjectionWriteError as e:
                logger.warning("instance_parked", transition_seq=e.transition_seq)
                return False
            finally:
                clear_context()

    def _record(
        self,
        workflow_id: str,
        event: BaseModel,
        signal_id: Optional[str],
    ) -> int:
        """Append an event to the inbox. Returns its sequence number."""
        with self.session_factory() as session:
            instances = WorkflowInstanceRepository(session)
            events = WorkflowEventRepository(session)

            instance = instances.get_by_workflow_id(workflow_id, for_update=True)
            if instance is None:
                raise UnknownInstanceError(workflow_id)

            if signal_id is not None:
                existing = events.get_by_signal_id(workflow_id, signal_id)
                if existing is not None:
                    logger.info(
                        "signal_duplicate",
                        signal_id=signal_id,
                        seq=existing.seq,
                        outcome=existing.outcome,
                    )
                    return existing.seq

            if instance.is_complete:
                raise UnknownInstanceError(workflow_id, reason=f"already {instance.state}")

            seq = self._append(session, instance, event, signal_id)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                existing = (
                    events.get_by_signal_id(workflow_id, signal_id) if signal_id else None
                )
                if existing is None:
                    raise
                return existing.seq

        logger.debug("signal_recorded", event_type=getattr(event, "type", None), seq=seq)
        return seq

    def _append(
        self,
        session,
        instance: WorkflowInstance,
        event: BaseModel,
        signal_id: Optional[str] = None,
    ) -> int:
        seq = instance.last_event_seq + 1
        instance.last_event_seq = seq
        session.add(instance)
        session.add(
            WorkflowEventRecord(
                workflow_id=instance.workflow_id,
                seq=seq,
                event_type=event.type,
                payload=event.model_dump(mode="json"),
                signal_id=signal_id,
                recorded_at=self.clock(),
            )
        )
        return seq

    def _outcome_of(self, workflow_id: str, seq: int) -> SignalOutcome:
        with self.session_factory() as session:
            record = WorkflowEventRepository(session).get_by_seq(workflow_id, seq)
        if record is not None and record.outcome:
            return SignalOutcome(record.outcome)
        # Recorded but not yet applied (instance parked behind a projection)
        return SignalOutcome.ACCEPTED

    def _drive(self, workflow_id: str) -> None:
        """Apply inbox events until empty, projecting each transition before the next."""
        self._settle(workflow_id)
        while True:
            progressed, pending = self._step(workflow_id)
            if not progressed:
                return
            if pending is not None:
                self._settle(workflow_id)

    def _step(self, workflow_id: str) -> tuple[bool, Optional[PendingProjection]]:
        """Apply the next unprocessed event in one transaction."""
        with self.session_factory() as session:
            instance = WorkflowInstanceRepository(session).get_by_workflow_id(
                workflow_id, for_update=True
            )
            if instance is None:
                raise UnknownInstanceError(workflow_id)
            record = WorkflowEventRepository(session).next_unprocessed(workflow_id)
            if record is None:
                return False, None

            config = WorkflowConfig.model_validate(instance.config)
            machine = ApprovalStateMachine(
                config, MachineSnapshot.model_validate(instance.snapshot)
            )
            event = parse_event(record.payload)
            transition = machine.apply(event, record.recorded_at)

            pending = None
            record.processed = True
            if transition is None:
                record.outcome = SignalOutcome.IGNORED.value
                logger.info(
                    "signal_ignored",
                    event_type=record.event_type,
                    seq=record.seq,
                    state=machine.state.value,
                    reason=machine.ignored_reason,
                )
            else:
                record.outcome = SignalOutcome.ACCEPTED.value
                instance.transition_seq += 1
                record.transition_seq = instance.transition_seq
                logger.info(
                    "transition_applied",
                    event_type=record.event_type,
                    seq=record.seq,
                    transition_seq=instance.transition_seq,
                    from_state=transition.from_state.value,
                    to_state=transition.to_state.value,
                    trigger=transition.trigger,
                )
                if transition.target_status is not None:
                    pending = PendingProjection(
                        transition_seq=instance.transition_seq,
                        content_id=instance.content_id,
                        workflow_id=workflow_id,
                        author_id=self._author_of(session, instance),
                        transition=transition,
                        notify=config.notifications_enabled,
                    )
                    instance.pending_projection = pending.model_dump(mode="json")
                if transition.needs_validation:
                    result = self._validate(session, instance.content_id)
                    self._append(session, instance, result)

            instance.snapshot = machine.snapshot.model_dump(mode="json")
            instance.state = machine.state.value
            instance.timer_fires_at = machine.snapshot.timer_fires_at
            instance.completed_at = machine.snapshot.completed_at
            session.add(instance)
            session.add(record)
            session.commit()

        if instance.completed_at is not None:
            logger.info("workflow_completed", state=instance.state)
        return True, pending

    def _settle(self, workflow_id: str) -> None:
        """Project the recorded-but-unprojected transition, if any."""
        with self.session_factory() as session:
            instance = WorkflowInstanceRepository(session).get_by_workflow_id(workflow_id)
            if instance is None or instance.pending_projection is None:
                return
            pending = PendingProjection.model_validate(instance.pending_projection)
            settings = WorkflowConfig.model_validate(instance.config).projection_retry

        policy = RetryPolicy(
            max_retries=settings.max_retries,
            backoff_base=settings.backoff_base,
            backoff_factor=settings.backoff_factor,
            backoff_max=settings.backoff_max,
            sleep=self._sleep,
        )
        try:
            policy.call(self.projector.project, pending)
        except Exception as e:
            logger.error(
                "projection_retries_exhausted",
                transition_seq=pending.transition_seq,
                content_id=pending.content_id,
                target_status=pending.transition.to_state.value,
                error=str(e),
            )
            raise ProjectionWriteError(workflow_id, pending.transition_seq, e) from e

        with self.session_factory() as session:
            instance = WorkflowInstanceRepository(session).get_by_workflow_id(
                workflow_id, for_update=True
            )
            current = instance.pending_projection if instance else None
            if current and current.get("transition_seq") == pending.transition_seq:
                instance.pending_projection = None
                session.add(instance)
                session.commit()

    def _author_of(self, session, instance: WorkflowInstance) -> str:
        item = session.get(ContentItem, instance.content_id)
        if item is not None:
            return item.author_id
        started = parse_event(
            WorkflowEventRepository(session).list_by_workflow(instance.workflow_id)[0].payload
        )
        return started.author_id

    def _validate(self, session, content_id: int) -> ValidationCompleted:
        item = session.get(ContentItem, content_id)
        if item is None:
            return ValidationCompleted(passed=False, errors=["content record not found"])
        return self.validator.validate(item.title, item.content)
