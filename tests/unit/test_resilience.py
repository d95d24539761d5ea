"""Tests for retry utilities."""

import pytest
from sqlalchemy.exc import OperationalError

from contentflow.resilience import RetryableError, RetryPolicy, with_retry


class Flaky:
    def __init__(self, failures: int, exc: Exception):
        self.failures = failures
        self.exc = exc
        self.calls = 0

    def __call__(self, value):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return f"ok:{value}"


@pytest.fixture
def sleeps():
    return []


def make_policy(sleeps, **kwargs):
    kwargs.setdefault("jitter", False)
    return RetryPolicy(sleep=sleeps.append, **kwargs)


class TestRetryPolicy:
    def test_exponential_delays(self, sleeps):
        policy = make_policy(sleeps, max_retries=3, backoff_base=0.5, backoff_factor=2.0)

        assert [policy.get_delay(n) for n in range(4)] == [0.5, 1.0, 2.0, 4.0]

    def test_delay_capped(self, sleeps):
        policy = make_policy(sleeps, backoff_base=10, backoff_max=15)

        assert policy.get_delay(3) == 15

    def test_jitter_within_bounds(self, sleeps):
        policy = make_policy(sleeps, jitter=True, backoff_base=1.0)

        for _ in range(20):
            assert 0.75 <= policy.get_delay(0) <= 1.25

    def test_retries_then_succeeds(self, sleeps):
        func = Flaky(2, ConnectionError("down"))
        policy = make_policy(sleeps, max_retries=3, backoff_base=1.0)

        assert policy.call(func, "x") == "ok:x"
        assert func.calls == 3
        assert sleeps == [1.0, 2.0]

    def test_gives_up_after_max_retries(self, sleeps):
        func = Flaky(10, TimeoutError("slow"))
        policy = make_policy(sleeps, max_retries=2)

        with pytest.raises(TimeoutError):
            policy.call(func, "x")
        assert func.calls == 3

    def test_non_retryable_raises_immediately(self, sleeps):
        func = Flaky(1, ValueError("bad input"))

        with pytest.raises(ValueError):
            make_policy(sleeps).call(func, "x")
        assert func.calls == 1
        assert sleeps == []

    def test_database_operational_error_is_retried(self, sleeps):
        func = Flaky(1, OperationalError("SELECT 1", {}, Exception("connection reset")))

        assert make_policy(sleeps).call(func, "x") == "ok:x"

    def test_retry_after_overrides_backoff(self, sleeps):
        func = Flaky(1, RetryableError("busy", retry_after=7.0))

        make_policy(sleeps).call(func, "x")

        assert sleeps == [7.0]

    def test_non_retriable_retryable_error(self, sleeps):
        func = Flaky(1, RetryableError("gone", retriable=False))

        with pytest.raises(RetryableError):
            make_policy(sleeps).call(func, "x")

    def test_on_retry_callback(self, sleeps):
        seen = []
        func = Flaky(2, ConnectionError("down"))

        make_policy(sleeps).call(func, "x", on_retry=lambda e, attempt: seen.append(attempt))

        assert seen == [0, 1]


def test_with_retry_decorator(sleeps):
    func = Flaky(1, ConnectionError("down"))

    @with_retry(make_policy(sleeps, max_retries=1))
    def write_status(value):
        return func(value)

    assert write_status("published") == "ok:published"
    assert func.calls == 2
