"""Standard exception classes for the approval engine.

All custom exceptions inherit from ContentFlowError and include:
- message: Human-readable error message
- error_code: Machine-readable error code (e.g., "NOT_FOUND")
- details: Optional dictionary with additional context

Stale signals are not exceptions: they resolve to an IGNORED outcome.
"""

from typing import Any, Optional


class ContentFlowError(Exception):
    """Base exception for all approval engine errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code for client handling
        details: Optional dictionary with additional error context
    """

    default_error_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a serializable dictionary."""
        result = {
            "code": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class ConfigurationError(ContentFlowError):
    """Workflow configuration is invalid.

    Raised before an instance is persisted, so nothing is partially applied.
    """

    default_error_code = "INVALID_CONFIGURATION"


class ContentNotFoundError(ContentFlowError):
    """No content record exists for the given id."""

    default_error_code = "CONTENT_NOT_FOUND"

    def __init__(self, content_id: int, message: Optional[str] = None):
        super().__init__(
            message or f"Content {content_id} not found",
            details={"content_id": content_id},
        )
        self.content_id = content_id


class ContentLockedError(ContentFlowError):
    """Content fields can only be edited while the item is a draft."""

    default_error_code = "CONTENT_LOCKED"


class WorkflowAlreadyRunningError(ContentFlowError):
    """An instance already exists for this workflow id or content id.

    Callers starting an instance treat this as success: the correlation
    they need is already in place.
    """

    default_error_code = "ALREADY_RUNNING"

    def __init__(self, workflow_id: str, content_id: Optional[int] = None):
        super().__init__(
            f"Workflow {workflow_id} is already running",
            details={"workflow_id": workflow_id, "content_id": content_id},
        )
        self.workflow_id = workflow_id


class UnknownInstanceError(ContentFlowError):
    """No live instance for the workflow id (never existed or already terminal)."""

    default_error_code = "NOT_FOUND"

    def __init__(self, workflow_id: Optional[str], reason: str = "not found"):
        super().__init__(
            f"Workflow instance {workflow_id} {reason}",
            details={"workflow_id": workflow_id, "reason": reason},
        )
        self.workflow_id = workflow_id


class ProjectionWriteError(ContentFlowError):
    """The content store rejected a status projection after all retries.

    The instance stays parked at the unprojected transition until the
    projection is settled by a later drive or by worker recovery.
    """

    default_error_code = "PROJECTION_FAILED"

    def __init__(self, workflow_id: str, transition_seq: int, cause: Exception):
        super().__init__(
            f"Projection of transition {transition_seq} for {workflow_id} failed: {cause}",
            details={"workflow_id": workflow_id, "transition_seq": transition_seq},
        )
        self.workflow_id = workflow_id
        self.transition_seq = transition_seq
        self.__cause__ = cause


class InvalidTransitionError(ContentFlowError):
    """A transition outside the approval edge set was attempted.

    Signals never raise this (stale ones are ignored); it guards the state
    machine's own bookkeeping.
    """

    default_error_code = "INVALID_TRANSITION"
