"""
Bounded retry loop shared by the invocation orchestrator and the OCR pipeline.

One call to ``run_with_retry`` drives a single backend:
- the operation is invoked at most ``retry_attempts + 1`` times
- every invocation is bounded by ``timeout_ms`` (only that attempt is cancelled)
- no delay before the first attempt; ``delay_for`` between attempts
- a non-retryable failure ends the loop immediately
- a retry_after hint above ``max_retry_after_ms`` ends the loop too, so the
  caller can fail over instead of stalling
- asyncio.CancelledError is never intercepted
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from .errors import ConfigurationError

T = TypeVar("T")

AttemptHook = Callable[[int], None]
FailureHook = Callable[[int, Exception, Optional[float]], None]


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry settings for one backend.

    ``backoff_factor`` of 1.0 keeps the delay fixed; values above 1 grow it
    geometrically per retry.
    """

    retry_attempts: int = 3
    retry_delay_ms: int = 1000
    timeout_ms: Optional[int] = 30000
    backoff_factor: float = 1.0
    max_retry_after_ms: Optional[int] = 60000

    def __post_init__(self) -> None:
        if self.retry_attempts < 0:
            raise ConfigurationError("retry_attempts must be >= 0")
        if self.retry_delay_ms < 0:
            raise ConfigurationError("retry_delay_ms must be >= 0")
        if self.timeout_ms is not None and self.timeout_ms <= 0:
            raise ConfigurationError("timeout_ms must be > 0")
        if self.backoff_factor < 1.0:
            raise ConfigurationError("backoff_factor must be >= 1.0")
        if self.max_retry_after_ms is not None and self.max_retry_after_ms < 0:
            raise ConfigurationError("max_retry_after_ms must be >= 0")

    @property
    def max_invocations(self) -> int:
        return self.retry_attempts + 1

    @property
    def timeout_s(self) -> Optional[float]:
        return None if self.timeout_ms is None else self.timeout_ms / 1000.0

    def retry_after_exceeded(self, error: Optional[BaseException]) -> bool:
        """True when the error asks for a longer wait than this policy tolerates."""
        retry_after = getattr(error, "retry_after", None)
        if self.max_retry_after_ms is None or not isinstance(retry_after, (int, float)):
            return False
        return retry_after * 1000 > self.max_retry_after_ms

    def delay_for(self, retry_number: int, error: Optional[BaseException] = None) -> float:
        """
        Seconds to wait before retry number ``retry_number`` (1-based).

        A ``retry_after`` hint on the error wins when it is larger than the
        configured delay.
        """
        delay = (self.retry_delay_ms / 1000.0) * (self.backoff_factor ** (retry_number - 1))
        retry_after = getattr(error, "retry_after", None)
        if isinstance(retry_after, (int, float)) and retry_after > delay:
            return float(retry_after)
        return delay


async def call_with_timeout(
    operation: Callable[[], Awaitable[T]],
    timeout_s: Optional[float],
    make_timeout_error: Callable[[float], Exception],
) -> T:
    """Run one attempt; an expired attempt raises ``make_timeout_error(timeout_s)``."""
    if timeout_s is None:
        return await operation()
    try:
        return await asyncio.wait_for(operation(), timeout=timeout_s)
    except asyncio.TimeoutError as e:
        raise make_timeout_error(timeout_s) from e


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    normalize: Callable[[Exception], Exception],
    is_retryable: Callable[[Exception], bool],
    make_timeout_error: Callable[[float], Exception],
    on_attempt: Optional[AttemptHook] = None,
    on_failure: Optional[FailureHook] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Drive ``operation`` until it succeeds or the retry budget is spent.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt.
        policy: Attempt budget, per-attempt timeout and delay.
        normalize: Maps a raw exception to the error that is reported
                   (e.g. annotates it with the backend name).
        is_retryable: Decides whether another attempt on the same backend
                      is allowed for a normalized error.
        make_timeout_error: Builds the error raised when an attempt expires.
        on_attempt: Called with the 1-based attempt number before each call.
        on_failure: Called with (attempt, error, delay) after each failure;
                    delay is None when no further attempt will be made.
        sleep: Awaitable sleep, injectable for tests.

    Returns:
        The first successful result.

    Raises:
        The normalized error of the final attempt.
    """
    attempt = 0
    while True:
        attempt += 1
        if on_attempt is not None:
            on_attempt(attempt)
        try:
            return await call_with_timeout(operation, policy.timeout_s, make_timeout_error)
        except Exception as raw:
            error = normalize(raw)
            can_retry = (
                attempt < policy.max_invocations and is_retryable(error) and not policy.retry_after_exceeded(error)
            )
            delay = policy.delay_for(attempt, error) if can_retry else None
            if on_failure is not None:
                on_failure(attempt, error, delay)
            if not can_retry:
                if error is raw:
                    raise
                raise error from raw
        await sleep(delay)
