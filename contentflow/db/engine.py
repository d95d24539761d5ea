"""SQLModel engine and session management.

This module provides:
- Database engine creation with connection pooling
- Session factory used by the store, runtime and projector
- Database initialization utilities

PostgreSQL is the primary database. SQLite is accepted for tests and
local experiments (no row locking, JSON instead of ARRAY).
"""

from contextlib import contextmanager
from typing import Callable, ContextManager, Generator, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from contentflow.config import DATABASE_URL

SessionFactory = Callable[[], ContextManager[Session]]

_engine: Optional[Engine] = None


def create_db_engine(database_url: str = DATABASE_URL) -> Engine:
    """Create an engine for the given URL.

    In-memory SQLite shares a single connection so every session sees the
    same database.
    """
    if database_url.startswith("sqlite"):
        if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
            return create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(database_url, connect_args={"check_same_thread": False})

    # pool_pre_ping ensures connections are valid before use
    return create_engine(
        database_url,
        echo=False,  # Set to True for SQL debugging
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )


def get_engine() -> Engine:
    """Return the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = create_db_engine(DATABASE_URL)
    return _engine


def session_factory(engine: Engine) -> SessionFactory:
    """Build a session context manager bound to a specific engine.

    Usage:
        sessions = session_factory(engine)
        with sessions() as session:
            item = session.get(ContentItem, content_id)
    """

    @contextmanager
    def _session() -> Generator[Session, None, None]:
        with Session(engine, expire_on_commit=False) as session:
            try:
                yield session
            except Exception:
                session.rollback()
                raise

    return _session


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Get a database session bound to the process-wide engine.

    Usage:
        with get_session() as session:
            item = session.get(ContentItem, content_id)
            session.add(item)
            session.commit()
    """
    with session_factory(get_engine())() as session:
        yield session


def init_db(engine: Optional[Engine] = None) -> None:
    """Create all tables defined in SQLModel models.

    Intended for development, tests and first worker start. Schema
    migrations for production are managed outside this package.
    """
    # Import all models to ensure they're registered with SQLModel
    from contentflow.db.models import (  # noqa: F401
        ContentItem,
        ContentNotification,
        StatusProjection,
        WorkflowEventRecord,
        WorkflowInstance,
    )

    SQLModel.metadata.create_all(engine or get_engine())


def drop_all_tables(engine: Optional[Engine] = None) -> None:
    """Drop all tables. USE WITH CAUTION - data loss will occur."""
    SQLModel.metadata.drop_all(engine or get_engine())
