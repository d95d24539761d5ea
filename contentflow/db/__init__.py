"""Database infrastructure for SQLModel + PostgreSQL.

Usage:
    from contentflow.db import get_session

    with get_session() as session:
        item = session.get(ContentItem, content_id)
"""

from contentflow.db.engine import (
    SessionFactory,
    create_db_engine,
    drop_all_tables,
    get_engine,
    get_session,
    init_db,
    session_factory,
)

__all__ = [
    "SessionFactory",
    "create_db_engine",
    "drop_all_tables",
    "get_engine",
    "get_session",
    "init_db",
    "session_factory",
]
