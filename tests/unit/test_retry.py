"""Retry policy and bounded retry loop."""

import asyncio

import pytest

from inference import ConfigurationError, ProviderError, RateLimitError, RetryPolicy, run_with_retry
from inference.http_errors import parse_retry_after


def timeout_error(timeout_s):
    return ProviderError(f"timed out after {timeout_s}s", timeout=True)


class Flaky:
    """Operation that fails ``failures`` times before succeeding."""

    def __init__(self, failures, error_factory=lambda: ProviderError("flaky")):
        self.failures = failures
        self.error_factory = error_factory
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error_factory()
        return "done"


async def run(operation, policy, sleep, **hooks):
    return await run_with_retry(
        operation,
        policy,
        normalize=lambda e: e,
        is_retryable=lambda e: isinstance(e, ProviderError) and e.retryable,
        make_timeout_error=timeout_error,
        sleep=sleep,
        **hooks,
    )


class TestRetryPolicy:
    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_invocations == 4
        assert policy.timeout_s == 30.0
        assert policy.delay_for(1) == 1.0

    def test_fixed_delay_by_default(self):
        policy = RetryPolicy(retry_delay_ms=200)
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [0.2, 0.2, 0.2]

    def test_backoff_factor_grows_delay(self):
        policy = RetryPolicy(retry_delay_ms=100, backoff_factor=2.0)
        assert [policy.delay_for(n) for n in (1, 2, 3)] == pytest.approx([0.1, 0.2, 0.4])

    def test_retry_after_wins_only_when_larger(self):
        policy = RetryPolicy(retry_delay_ms=1000)
        assert policy.delay_for(1, RateLimitError("429", retry_after=5)) == 5.0
        assert policy.delay_for(1, RateLimitError("429", retry_after=0.5)) == 1.0
        assert policy.delay_for(1, RateLimitError("429")) == 1.0

    def test_retry_after_cap(self):
        policy = RetryPolicy(max_retry_after_ms=10000)
        assert policy.retry_after_exceeded(RateLimitError("429", retry_after=11)) is True
        assert policy.retry_after_exceeded(RateLimitError("429", retry_after=10)) is False
        assert policy.retry_after_exceeded(ProviderError("503")) is False
        assert RetryPolicy(max_retry_after_ms=None).retry_after_exceeded(RateLimitError("429", retry_after=1e6)) is False

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"retry_attempts": -1},
            {"retry_delay_ms": -5},
            {"timeout_ms": 0},
            {"backoff_factor": 0.5},
            {"max_retry_after_ms": -1},
        ],
    )
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ConfigurationError):
            RetryPolicy(**kwargs)


class TestRunWithRetry:
    @pytest.mark.asyncio
    async def test_succeeds_after_failures(self, recording_sleep):
        operation = Flaky(failures=2)

        result = await run(operation, RetryPolicy(retry_attempts=3, retry_delay_ms=50), recording_sleep)

        assert result == "done"
        assert operation.calls == 3
        assert recording_sleep.delays == [0.05, 0.05]

    @pytest.mark.asyncio
    async def test_final_error_raised_after_budget(self, recording_sleep):
        operation = Flaky(failures=10)

        with pytest.raises(ProviderError):
            await run(operation, RetryPolicy(retry_attempts=2, retry_delay_ms=0), recording_sleep)

        assert operation.calls == 3

    @pytest.mark.asyncio
    async def test_non_retryable_stops_immediately(self, recording_sleep):
        operation = Flaky(failures=10, error_factory=lambda: ProviderError("401", retryable=False))

        with pytest.raises(ProviderError):
            await run(operation, RetryPolicy(retry_attempts=5), recording_sleep)

        assert operation.calls == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_excessive_retry_after_stops_the_loop(self, recording_sleep):
        operation = Flaky(failures=10, error_factory=lambda: RateLimitError("429", retry_after=120))

        with pytest.raises(RateLimitError):
            await run(operation, RetryPolicy(retry_attempts=3, max_retry_after_ms=60000), recording_sleep)

        assert operation.calls == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_hooks_see_every_attempt(self, recording_sleep):
        operation = Flaky(failures=1)
        attempts, failures = [], []

        await run(
            operation,
            RetryPolicy(retry_attempts=1, retry_delay_ms=10),
            recording_sleep,
            on_attempt=attempts.append,
            on_failure=lambda attempt, error, delay: failures.append((attempt, delay)),
        )

        assert attempts == [1, 2]
        assert failures == [(1, 0.01)]

    @pytest.mark.asyncio
    async def test_last_failure_reports_no_delay(self, recording_sleep):
        failures = []

        with pytest.raises(ProviderError):
            await run(
                Flaky(failures=5),
                RetryPolicy(retry_attempts=1, retry_delay_ms=10),
                recording_sleep,
                on_failure=lambda attempt, error, delay: failures.append((attempt, delay)),
            )

        assert failures == [(1, 0.01), (2, None)]

    @pytest.mark.asyncio
    async def test_attempt_timeout_uses_factory(self, recording_sleep):
        async def slow():
            await asyncio.sleep(1.0)

        with pytest.raises(ProviderError) as excinfo:
            await run(slow, RetryPolicy(retry_attempts=0, timeout_ms=10), recording_sleep)

        assert excinfo.value.timeout is True
        assert isinstance(excinfo.value.__cause__, asyncio.TimeoutError)


class TestParseRetryAfter:
    def test_seconds(self):
        assert parse_retry_after("7") == 7.0

    def test_missing_or_garbage(self):
        assert parse_retry_after(None) is None
        assert parse_retry_after("") is None
        assert parse_retry_after("soon") is None

    def test_past_http_date_clamps_to_zero(self):
        assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") == 0.0
