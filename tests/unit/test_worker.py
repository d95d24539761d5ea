"""Tests for the background worker loop."""

import threading

from sqlalchemy.exc import OperationalError

from contentflow.db.models import ContentStatus
from contentflow.notifications import NotificationDispatcher
from contentflow.worker import Worker


def test_run_once_fires_timers_and_dispatches(runtime, sessions, service, gateway, clock, draft_data):
    item = service.create_content(draft_data())
    gateway.submit_for_review(item.id)
    clock.advance(hours=73)
    worker = Worker(runtime, NotificationDispatcher(sessions, clock=clock), poll_interval=0)

    result = worker.run_once()

    assert result == {
        "projections_settled": 0,
        "timers_fired": 1,
        "notifications_delivered": 2,
    }
    assert service.get_content(item.id).status == ContentStatus.DRAFT


def test_run_once_settles_parked_projection(runtime, projector, sessions, service, gateway, clock, draft_data):
    item = service.create_content(draft_data())
    projector.failures = 10
    gateway.submit_for_review(item.id)
    projector.failures = 0
    worker = Worker(runtime, NotificationDispatcher(sessions, clock=clock), poll_interval=0)

    result = worker.run_once()

    assert result["projections_settled"] == 1
    assert service.get_content(item.id).status == ContentStatus.UNDER_REVIEW


def test_run_recovers_then_stops(runtime, sessions, clock):
    worker = Worker(runtime, NotificationDispatcher(sessions, clock=clock), poll_interval=0.01)

    thread = threading.Thread(target=worker.run)
    thread.start()
    worker.stop()
    thread.join(timeout=5)

    assert not thread.is_alive()


def test_failed_poll_does_not_stop_loop(runtime, sessions, clock, monkeypatch):
    calls = []
    polled_again = threading.Event()

    def fire_due_timers(now=None):
        calls.append(now)
        # First call comes from recover(), second is the first poll
        if len(calls) == 2:
            raise OperationalError("SELECT workflow_instances", {}, Exception("connection reset"))
        if len(calls) >= 3:
            polled_again.set()
        return 0

    monkeypatch.setattr(runtime, "fire_due_timers", fire_due_timers)
    worker = Worker(runtime, NotificationDispatcher(sessions, clock=clock), poll_interval=0.01)

    thread = threading.Thread(target=worker.run)
    thread.start()
    assert polled_again.wait(timeout=5)
    worker.stop()
    thread.join(timeout=5)

    assert not thread.is_alive()
