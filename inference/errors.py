"""
Typed failures for the AI invocation layer.

Every error that crosses from a backend into the orchestrator carries the
name of the backend that produced it (``provider``), so callers can tell
"which backend failed" apart from "why it failed".

Retry policy is driven by type:
- ValidationError          never retried, surfaced immediately
- ProviderError            retried up to budget (unless retryable=False), then failover
- RateLimitError           retried, honoring retry_after when larger than the delay
- QuotaExceededError       never retried on the same backend, immediate failover
- ProvidersExhaustedError  every backend consumed; last backend + cause attached
"""

from typing import Dict, Optional


class AIServiceError(Exception):
    """Base class for all invocation-layer errors."""

    code: str = "AI_SERVICE_ERROR"

    def __init__(self, message: str, provider: Optional[str] = None):
        self.message = message
        self.provider = provider
        super().__init__(message)

    def __str__(self) -> str:
        if self.provider:
            return f"[{self.provider}] {self.message}"
        return self.message


class ConfigurationError(AIServiceError):
    """A backend or service could not be built from the given configuration."""

    code = "CONFIGURATION_ERROR"


class ValidationError(AIServiceError):
    """Caller input is malformed. Names the constraint that was violated."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, constraint: str = "input"):
        self.constraint = constraint
        super().__init__(message)


class ProviderError(AIServiceError):
    """Transport, HTTP or parse failure from one backend."""

    code = "PROVIDER_ERROR"

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        timeout: bool = False,
        retryable: bool = True,
    ):
        self.status_code = status_code
        self.timeout = timeout
        self.retryable = retryable
        super().__init__(message, provider)


class RateLimitError(ProviderError):
    """HTTP 429 or a soft quota signal. ``retry_after`` is in seconds."""

    code = "RATE_LIMIT"

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        retry_after: Optional[float] = None,
    ):
        self.retry_after = retry_after
        super().__init__(message, provider, status_code=429)


class QuotaExceededError(ProviderError):
    """Hard quota denial. The same backend is not tried again in this call."""

    code = "QUOTA_EXCEEDED"

    def __init__(self, message: str, provider: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, provider, status_code=status_code, retryable=False)


class ProvidersExhaustedError(AIServiceError):
    """All backends and their retries were consumed."""

    code = "ALL_PROVIDERS_FAILED"

    def __init__(
        self,
        message: str,
        provider: Optional[str],
        cause: Optional[BaseException] = None,
        attempts: Optional[Dict[str, int]] = None,
    ):
        self.cause = cause
        self.attempts = dict(attempts or {})
        super().__init__(message, provider)


def attach_provider(error: BaseException, provider: str) -> AIServiceError:
    """
    Return ``error`` as an AIServiceError annotated with ``provider``.

    Typed errors keep their class and get the provider filled in when the
    backend left it blank; anything else becomes a ProviderError chained to
    the original exception.
    """
    if isinstance(error, AIServiceError):
        if not error.provider:
            error.provider = provider
        return error
    wrapped = ProviderError(f"{type(error).__name__}: {error}", provider=provider)
    wrapped.__cause__ = error
    return wrapped
