"""Custom SQLAlchemy types with SQLite-friendly fallbacks."""

from __future__ import annotations

from typing import Any, Iterable, Optional

from sqlalchemy import JSON
from sqlalchemy.dialects import postgresql
from sqlalchemy.types import TypeDecorator


class JsonOrArray(TypeDecorator):
    """Use Postgres ARRAY when available, JSON elsewhere.

    Used for content tags: an ordered list of labels without duplicates.
    """

    cache_ok = True
    impl = JSON

    def __init__(self, item_type: Any):
        super().__init__()
        self.item_type = item_type

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(postgresql.ARRAY(self.item_type))
        return dialect.type_descriptor(JSON())

    def process_bind_param(self, value: Optional[Iterable[Any]], dialect):
        if value is None:
            return []
        return list(dict.fromkeys(value))

    def process_result_value(self, value: Optional[Iterable[Any]], dialect):
        if value is None:
            return []
        return list(value)
