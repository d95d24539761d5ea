"""Structured logging for the approval engine."""

from contentflow.logging.structured import (
    configure_structlog,
    get_logger,
    bind_context,
    clear_context,
)

__all__ = [
    "configure_structlog",
    "get_logger",
    "bind_context",
    "clear_context",
]
