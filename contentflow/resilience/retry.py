"""Retry policies with exponential backoff.

Activities (status projection, notification delivery) run on worker
threads, so the policy drives synchronous calls.

Usage:
    policy = RetryPolicy(max_retries=3, backoff_base=1.0)

    @with_retry(policy)
    def write_status():
        ...

    # Or without the decorator
    result = policy.call(write_status)
"""

import random
import time
from dataclasses import dataclass, field
from functools import wraps
from typing import Callable, Optional, Type, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

from contentflow.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RetryableError(Exception):
    """Base class for errors that should trigger a retry."""

    def __init__(
        self, message: str, retriable: bool = True, retry_after: Optional[float] = None
    ):
        super().__init__(message)
        self.retriable = retriable
        self.retry_after = retry_after


# Store unreachable or connection dropped mid-transaction
RETRYABLE_EXCEPTIONS: tuple[Type[Exception], ...] = (
    ConnectionError,
    TimeoutError,
    OperationalError,
    RetryableError,
)


@dataclass
class RetryPolicy:
    """Configuration for retry behavior.

    Attributes:
        max_retries: Maximum number of retry attempts (default 3)
        backoff_base: Base delay in seconds (default 1.0)
        backoff_factor: Multiplier for exponential backoff (default 2.0)
        backoff_max: Maximum delay in seconds (default 60.0)
        jitter: Add random jitter to delays (default True)
        retryable_exceptions: Exception types to retry on
        sleep: Sleep function, replaceable in tests
    """

    max_retries: int = 3
    backoff_base: float = 1.0
    backoff_factor: float = 2.0
    backoff_max: float = 60.0
    jitter: bool = True
    retryable_exceptions: tuple[Type[Exception], ...] = RETRYABLE_EXCEPTIONS
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for a given attempt number (0-indexed)."""
        delay = self.backoff_base * (self.backoff_factor**attempt)
        delay = min(delay, self.backoff_max)

        if self.jitter:
            # Add up to 25% jitter
            delay = delay * (0.75 + random.random() * 0.5)

        return delay

    def should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if we should retry for this exception."""
        if attempt >= self.max_retries:
            return False

        if isinstance(exception, RetryableError):
            return exception.retriable

        if isinstance(exception, DBAPIError) and exception.connection_invalidated:
            return True

        return isinstance(exception, self.retryable_exceptions)

    def call(
        self,
        func: Callable[..., T],
        *args,
        on_retry: Optional[Callable[[Exception, int], None]] = None,
        **kwargs,
    ) -> T:
        """Invoke func, retrying retryable failures with backoff."""
        attempt = 0
        while True:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if not self.should_retry(e, attempt):
                    raise

                if on_retry:
                    on_retry(e, attempt)

                if isinstance(e, RetryableError) and e.retry_after:
                    delay = e.retry_after
                else:
                    delay = self.get_delay(attempt)

                logger.warning(
                    "retrying",
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                    delay_s=round(delay, 2),
                    error=str(e),
                )
                self.sleep(delay)
                attempt += 1


def with_retry(
    policy: Optional[RetryPolicy] = None,
    on_retry: Optional[Callable[[Exception, int], None]] = None,
):
    """Decorator to add retry behavior to a function.

    Usage:
        @with_retry(RetryPolicy(max_retries=3))
        def write_status():
            ...
    """
    policy = policy or RetryPolicy()

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            return policy.call(func, *args, on_retry=on_retry, **kwargs)

        return wrapper

    return decorator

