"""Shared fixtures: in-memory database, controllable clock, wired services."""

import os

# Set test environment variables before contentflow.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("CONTENTFLOW_LOG_LEVEL", "DEBUG")

from datetime import datetime, timedelta, timezone  # noqa: E402
from typing import Optional  # noqa: E402

import pytest  # noqa: E402

from contentflow.content.service import ContentService  # noqa: E402
from contentflow.db import (  # noqa: E402
    create_db_engine,
    drop_all_tables,
    init_db,
    session_factory,
)
from contentflow.db.models import ContentCreate  # noqa: E402
from contentflow.engine import WorkflowRuntime  # noqa: E402
from contentflow.gateway import ApprovalSignalGateway  # noqa: E402
from contentflow.models import PendingProjection  # noqa: E402
from contentflow.projector import StatusProjector  # noqa: E402


VALID_TITLE = "Durable approval workflows"
VALID_BODY = (
    "This article explains how durable workflows keep approval state across "
    "restarts. It covers timers, signals and status projections. Each section "
    "ends with a worked example taken from a real editorial team."
)


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 5, 9, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FlakyProjector(StatusProjector):
    """Projector whose first `failures` calls raise ConnectionError."""

    def __init__(self, *args, failures: int = 0, **kwargs):
        super().__init__(*args, **kwargs)
        self.failures = failures
        self.calls = 0

    def project(self, pending: PendingProjection) -> bool:
        self.calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("content store unreachable")
        return super().project(pending)


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite:///:memory:")
    init_db(engine)
    yield engine
    drop_all_tables(engine)
    engine.dispose()


@pytest.fixture
def sessions(engine):
    return session_factory(engine)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeps():
    """Delays requested by retry policies (nothing actually sleeps)."""
    return []


@pytest.fixture
def projector(sessions, clock):
    return FlakyProjector(sessions, clock=clock)


@pytest.fixture
def runtime(sessions, projector, clock, sleeps):
    return WorkflowRuntime(
        session_factory=sessions,
        projector=projector,
        clock=clock,
        sleep=sleeps.append,
    )


@pytest.fixture
def workflow_config():
    return {
        "review_timeout_hours": 72,
        "max_revision_count": None,
        "projection_retry": {"max_retries": 3, "backoff_base": 0.1},
    }


@pytest.fixture
def service(runtime, sessions, workflow_config):
    return ContentService(runtime, session_factory=sessions, config=workflow_config)


@pytest.fixture
def gateway(runtime, sessions):
    return ApprovalSignalGateway(runtime, session_factory=sessions)


@pytest.fixture
def draft_data():
    def _make(author_id: str = "alice", title: str = VALID_TITLE, body: str = VALID_BODY):
        return ContentCreate(title=title, author_id=author_id, content=body, tags=["docs"])

    return _make
