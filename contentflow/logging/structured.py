"""Structured logging with structlog.

Provides:
- JSON-formatted log output for production
- Context binding for workflow_id / content_id via contextvars
- Factory function for creating loggers
"""

import logging
import sys
from typing import Optional

import structlog
from structlog.types import EventDict, WrappedLogger


def add_service_info(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add service information to log entries."""
    event_dict["service"] = "content-approval"
    return event_dict


def configure_structlog(
    json_format: bool = True,
    log_level: str = "INFO",
) -> None:
    """Configure structlog for the application.

    Args:
        json_format: If True, output JSON logs (for production).
                     If False, output human-readable logs (for development).
        log_level: The minimum log level to output (DEBUG, INFO, WARNING, ERROR).
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        add_service_info,
    ]

    if json_format:
        renderer: list = [
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderer = [
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=shared_processors + renderer,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger with the given name.

    Example:
        logger = get_logger(__name__)
        logger.info("transition_applied", workflow_id=wid, to_state="UNDER_REVIEW")
    """
    return structlog.get_logger(name)


def bind_context(
    workflow_id: Optional[str] = None,
    content_id: Optional[int] = None,
    **extra,
) -> None:
    """Bind context variables for the current execution context.

    Values are included in every log entry emitted from the same thread
    (or task) until clear_context() is called.
    """
    values = {"workflow_id": workflow_id, "content_id": content_id, **extra}
    structlog.contextvars.bind_contextvars(
        **{k: v for k, v in values.items() if v is not None}
    )


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


# Can be reconfigured by calling configure_structlog() in the worker
configure_structlog(json_format=False, log_level="INFO")
