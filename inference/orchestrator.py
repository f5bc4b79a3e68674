"""
Invocation orchestrator: retry, failover, per-attempt timeout and health.

One logical call walks the fixed backend order ``[primary, fallback]``:

  SelectingBackend → Attempting → Succeeded
                          ↓
                 Retrying (same backend, fixed delay)
                          ↓ budget spent / non-retryable
                 FailingOver (next backend, counter reset)
                          ↓ no backend left
                 ExhaustedFailure (ProvidersExhaustedError)

Attempts are strictly sequential; backends are never raced.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from tracing import NoOpTracer, TraceMetadata, Tracer

from .base import ModelBackend, StreamingModelBackend
from .errors import (
    AIServiceError,
    ConfigurationError,
    ProviderError,
    ProvidersExhaustedError,
    ValidationError,
    attach_provider,
)
from .retry import RetryPolicy, run_with_retry
from .streaming import FragmentStream, error_fragment, fragment_from_result
from .types import AttemptLog, GenerationOptions, GenerationResult, HealthStatus, Message, StreamFragment

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ROLES = ("system", "user", "assistant")

# (first fragment or None for an empty stream, remaining iterator or None when
# the backend produced a single non-streamed result)
OpenedStream = Tuple[Optional[StreamFragment], Optional[AsyncIterator[StreamFragment]]]


@dataclass(frozen=True)
class InvocationConfig:
    """Backend order and resilience policy. Immutable once built."""

    primary: ModelBackend
    fallback: Optional[ModelBackend] = None
    retry_attempts: int = 3
    retry_delay_ms: int = 1000
    timeout_ms: int = 30000
    health_check_timeout_ms: int = 5000
    max_retry_after_ms: Optional[int] = 60000

    def __post_init__(self) -> None:
        if self.primary is None:
            raise ConfigurationError("A primary backend is required")
        if self.health_check_timeout_ms <= 0:
            raise ConfigurationError("health_check_timeout_ms must be > 0")
        # raises ConfigurationError for bad retry/timeout values
        RetryPolicy(
            self.retry_attempts, self.retry_delay_ms, self.timeout_ms, max_retry_after_ms=self.max_retry_after_ms
        )

    @property
    def backends(self) -> Tuple[ModelBackend, ...]:
        if self.fallback is None:
            return (self.primary,)
        return (self.primary, self.fallback)

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            retry_attempts=self.retry_attempts,
            retry_delay_ms=self.retry_delay_ms,
            timeout_ms=self.timeout_ms,
            max_retry_after_ms=self.max_retry_after_ms,
        )


def unique_backend_names(backends: Sequence[ModelBackend]) -> List[str]:
    """Backend names, with repeats suffixed ``#2``, ``#3``..."""
    seen: Dict[str, int] = {}
    names = []
    for backend in backends:
        count = seen.get(backend.name, 0) + 1
        seen[backend.name] = count
        names.append(backend.name if count == 1 else f"{backend.name}#{count}")
    return names


def validate_request(messages: Sequence[Message], options: Optional[GenerationOptions]) -> None:
    """Reject malformed input before any backend is touched."""
    if not messages:
        raise ValidationError("At least one message is required", constraint="messages")
    for message in messages:
        if message.role not in _ROLES:
            raise ValidationError(f"Unsupported message role: {message.role!r}", constraint="messages.role")
        if not isinstance(message.content, str):
            raise ValidationError("Message content must be a string", constraint="messages.content")
    if options is None:
        return
    if options.max_tokens is not None and options.max_tokens <= 0:
        raise ValidationError("max_tokens must be positive", constraint="max_tokens")
    if options.temperature is not None and not 0.0 <= options.temperature <= 2.0:
        raise ValidationError("temperature must be within [0, 2]", constraint="temperature")
    if options.top_p is not None and not 0.0 <= options.top_p <= 1.0:
        raise ValidationError("top_p must be within [0, 1]", constraint="top_p")
    for field_name in ("presence_penalty", "frequency_penalty"):
        value = getattr(options, field_name)
        if value is not None and not -2.0 <= value <= 2.0:
            raise ValidationError(f"{field_name} must be within [-2, 2]", constraint=field_name)


def is_retryable(error: Exception) -> bool:
    """Same-backend retry is allowed only for retryable provider failures."""
    return isinstance(error, ProviderError) and error.retryable


async def _close_quietly(iterator: Optional[AsyncIterator[Any]]) -> None:
    aclose = getattr(iterator, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as e:
        logger.debug(f"Error closing backend stream: {type(e).__name__}")


class InvocationOrchestrator:
    """
    Runs one logical AI call against an ordered list of backends.

    Usage:
        orchestrator = InvocationOrchestrator(InvocationConfig(primary, fallback))
        result = await orchestrator.generate_text([Message("user", "hi")])

        stream = orchestrator.generate_stream(messages)
        async for fragment in stream:
            ...
    """

    def __init__(
        self,
        config: InvocationConfig,
        tracer: Optional[Tracer] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.tracer = tracer or NoOpTracer()
        self._sleep = sleep
        self._policy = config.retry_policy
        self._names = unique_backend_names(config.backends)

    @property
    def backend_names(self) -> List[str]:
        return list(self._names)

    # ─── Tracing helpers ──────────────────────────────────────────────────

    def _event(self, name: str, trace: TraceMetadata, **metadata: Any) -> None:
        try:
            if self.tracer.is_enabled():
                self.tracer.record_event(name, metadata, trace)
        except Exception:
            # Tracing failure is non-fatal
            pass

    def _start_span(self, operation: str, trace: TraceMetadata) -> Optional[Any]:
        try:
            return self.tracer.start_span("ai_call", {"operation": operation, "providers": self._names}, trace)
        except Exception:
            return None

    def _end_span(self, span: Any, status: str, metadata: Dict[str, Any]) -> None:
        try:
            self.tracer.end_span(span, status, metadata)
        except Exception:
            # Tracing failure is non-fatal
            pass

    # ─── Per-backend retry loop ───────────────────────────────────────────

    async def _run_backend(
        self,
        name: str,
        operation: Callable[[], Awaitable[T]],
        attempts: AttemptLog,
        trace: TraceMetadata,
    ) -> T:
        def on_attempt(attempt: int) -> None:
            attempts.bump(name)
            self._event("ai_attempt_started", trace, provider=name, attempt=attempt)

        def on_failure(attempt: int, error: Exception, delay: Optional[float]) -> None:
            logger.warning(f"AI attempt {attempt} on {name} failed: {error}")
            self._event(
                "ai_attempt_failed",
                trace,
                provider=name,
                attempt=attempt,
                error_type=type(error).__name__,
                status_code=getattr(error, "status_code", None),
                timeout=getattr(error, "timeout", False),
            )
            if delay is not None:
                self._event("ai_retry_scheduled", trace, provider=name, attempt=attempt, delay_ms=int(delay * 1000))

        def make_timeout_error(timeout_s: float) -> Exception:
            return ProviderError(
                f"Attempt timed out after {int(timeout_s * 1000)} ms", provider=name, timeout=True
            )

        return await run_with_retry(
            operation,
            self._policy,
            normalize=lambda e: attach_provider(e, name),
            is_retryable=is_retryable,
            make_timeout_error=make_timeout_error,
            on_attempt=on_attempt,
            on_failure=on_failure,
            sleep=self._sleep,
        )

    def _exhausted(
        self, last_name: str, last_error: Exception, attempts: AttemptLog, trace: TraceMetadata
    ) -> ProvidersExhaustedError:
        logger.error(f"All AI providers failed; last provider {last_name}: {last_error}")
        self._event(
            "ai_call_exhausted",
            trace,
            provider=last_name,
            error_type=type(last_error).__name__,
            attempts=dict(attempts.counts),
        )
        return ProvidersExhaustedError(
            f"All AI providers failed: {last_error}",
            provider=last_name,
            cause=last_error,
            attempts=attempts.counts,
        )

    def _failover(self, index: int, name: str, error: Exception, trace: TraceMetadata) -> None:
        if index + 1 >= len(self._names):
            return
        target = self._names[index + 1]
        logger.warning(f"Failing over from {name} to {target}: {error}")
        self._event("ai_failover", trace, provider=name, to_provider=target, error_type=type(error).__name__)

    # ─── Text generation ──────────────────────────────────────────────────

    async def generate_text(
        self,
        messages: Sequence[Message],
        options: Optional[GenerationOptions] = None,
        trace_metadata: Optional[TraceMetadata] = None,
    ) -> GenerationResult:
        """
        Generate a completion, retrying and failing over per the config.

        Raises:
            ValidationError: malformed input (no backend was called)
            ProvidersExhaustedError: every backend failed; ``provider`` is the
                last backend tried and ``cause`` its final error
        """
        validate_request(messages, options)
        messages = list(messages)
        trace = trace_metadata or TraceMetadata(operation="generate_text")
        span = self._start_span("generate_text", trace)
        attempts = AttemptLog()
        last_error: Optional[Exception] = None
        last_name = self._names[0]

        for index, (name, backend) in enumerate(zip(self._names, self.config.backends)):
            try:
                result = await self._run_backend(
                    name, lambda b=backend: b.generate_text(messages, options), attempts, trace
                )
            except ValidationError:
                self._end_span(span, "failure", {"error_type": "ValidationError"})
                raise
            except AIServiceError as e:
                last_error, last_name = e, name
                self._failover(index, name, e, trace)
                continue

            if result.provider != name:
                result = replace(result, provider=name)
            self._event("ai_call_succeeded", trace, provider=name, attempts=dict(attempts.counts))
            self._end_span(span, "success", {"provider": name})
            return result

        error = self._exhausted(last_name, last_error, attempts, trace)
        self._end_span(span, "failure", {"error_type": type(error).__name__})
        raise error from last_error

    # ─── Streaming ────────────────────────────────────────────────────────

    def generate_stream(
        self,
        messages: Sequence[Message],
        options: Optional[GenerationOptions] = None,
        trace_metadata: Optional[TraceMetadata] = None,
    ) -> FragmentStream:
        """
        Stream a completion as a FragmentStream.

        Failover happens only before the first fragment is produced. After
        that, a backend failure ends the stream with a ``done=True``
        fragment whose ``error`` is set. Raises ValidationError eagerly.
        """
        validate_request(messages, options)
        trace = trace_metadata or TraceMetadata(operation="generate_stream")
        return FragmentStream(self._stream_fragments(list(messages), options, trace))

    async def _open_stream(
        self, name: str, backend: ModelBackend, messages: List[Message], options: Optional[GenerationOptions]
    ) -> OpenedStream:
        if not isinstance(backend, StreamingModelBackend):
            result = await backend.generate_text(messages, options)
            return replace(fragment_from_result(result), provider=name), None

        iterator = backend.generate_stream(messages, options).__aiter__()
        try:
            first = await iterator.__anext__()
        except StopAsyncIteration:
            return None, None
        except BaseException:
            await _close_quietly(iterator)
            raise
        return first, iterator

    async def _stream_fragments(
        self, messages: List[Message], options: Optional[GenerationOptions], trace: TraceMetadata
    ) -> AsyncIterator[StreamFragment]:
        span = self._start_span("generate_stream", trace)
        attempts = AttemptLog()
        last_error: Optional[Exception] = None
        last_name = self._names[0]

        for index, (name, backend) in enumerate(zip(self._names, self.config.backends)):
            try:
                first, iterator = await self._run_backend(
                    name,
                    lambda b=backend, n=name: self._open_stream(n, b, messages, options),
                    attempts,
                    trace,
                )
            except ValidationError as e:
                self._end_span(span, "failure", {"error_type": "ValidationError"})
                yield error_fragment("", e, name)
                return
            except AIServiceError as e:
                last_error, last_name = e, name
                self._failover(index, name, e, trace)
                continue

            self._event("ai_call_succeeded", trace, provider=name, attempts=dict(attempts.counts), stream=True)
            relay = self._relay(name, first, iterator, trace)
            status = "success"
            try:
                async for fragment in relay:
                    if fragment.error is not None:
                        status = "failure"
                    yield fragment
            finally:
                await relay.aclose()
            self._end_span(span, status, {"provider": name})
            return

        error = self._exhausted(last_name, last_error, attempts, trace)
        error.__cause__ = last_error
        self._end_span(span, "failure", {"error_type": type(error).__name__})
        yield error_fragment("", error, last_name)

    async def _relay(
        self,
        name: str,
        first: Optional[StreamFragment],
        iterator: Optional[AsyncIterator[StreamFragment]],
        trace: TraceMetadata,
    ) -> AsyncIterator[StreamFragment]:
        """Forward an opened stream; no failover from here on."""
        content = ""
        try:
            if first is None:
                yield StreamFragment(content="", delta="", done=True, provider=name)
                return
            yield first if first.provider == name else replace(first, provider=name)
            content = first.content
            if first.done or iterator is None:
                return
            async for fragment in iterator:
                content = fragment.content
                yield fragment if fragment.provider == name else replace(fragment, provider=name)
                if fragment.done:
                    return
            yield StreamFragment(content=content, delta="", done=True, provider=name)
        except Exception as e:
            error = attach_provider(e, name)
            logger.warning(f"Stream from {name} failed after output started: {error}")
            self._event("ai_stream_interrupted", trace, provider=name, error_type=type(error).__name__)
            yield error_fragment(content, error, name)
        finally:
            await _close_quietly(iterator)

    # ─── Health ───────────────────────────────────────────────────────────

    async def get_providers_health(self) -> Dict[str, HealthStatus]:
        """
        Probe every backend concurrently.

        Each probe is bounded by ``health_check_timeout_ms``; a probe that
        raises or times out marks only its own backend unavailable.
        """
        timeout_s = self.config.health_check_timeout_ms / 1000.0

        async def probe(backend: ModelBackend) -> HealthStatus:
            try:
                available = await asyncio.wait_for(backend.is_available(), timeout=timeout_s)
                return HealthStatus(available=bool(available))
            except asyncio.TimeoutError:
                return HealthStatus(
                    available=False,
                    error=f"Health check timed out after {self.config.health_check_timeout_ms} ms",
                )
            except Exception as e:
                return HealthStatus(available=False, error=f"{type(e).__name__}: {e}")

        statuses = await asyncio.gather(*(probe(b) for b in self.config.backends))
        return dict(zip(self._names, statuses))

    async def aclose(self) -> None:
        for backend in self.config.backends:
            await backend.aclose()
