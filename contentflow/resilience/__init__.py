"""Resilience helpers for activity retries.

Usage:
    from contentflow.resilience import RetryPolicy, with_retry

    policy = RetryPolicy(max_retries=3, backoff_base=1.0)

    @with_retry(policy)
    def write_status():
        ...
"""

from contentflow.resilience.retry import (
    RetryPolicy,
    RetryableError,
    with_retry,
)

__all__ = [
    "RetryPolicy",
    "RetryableError",
    "with_retry",
]
