"""
Model boundary layer for AI inference.

Callers depend on InvocationOrchestrator, which wraps one or two
ModelBackend instances with retry, failover and per-attempt timeouts.

Supported backends:
- OpenRouterBackend: remote OpenAI-compatible HTTP API
- WorkersAIBackend: platform-native binding or account REST endpoint
- StubModelBackend: deterministic fake model (CI/tests)

Example usage:
    from inference import InvocationConfig, InvocationOrchestrator, Message, StubModelBackend

    orchestrator = InvocationOrchestrator(InvocationConfig(primary=StubModelBackend()))
    result = await orchestrator.generate_text([Message("user", "Hello")])
"""

from .base import ModelBackend, StreamingModelBackend
from .errors import (
    AIServiceError,
    ConfigurationError,
    ProviderError,
    ProvidersExhaustedError,
    QuotaExceededError,
    RateLimitError,
    ValidationError,
)
from .factory import BackendSettings, create_backend
from .openrouter import OpenRouterBackend
from .orchestrator import InvocationConfig, InvocationOrchestrator
from .retry import RetryPolicy, run_with_retry
from .streaming import FragmentStream
from .stub import StreamingStubModelBackend, StubModelBackend
from .types import (
    GenerationOptions,
    GenerationResult,
    HealthStatus,
    Message,
    StreamFragment,
    TokenUsage,
)
from .workers_ai import WorkersAIBackend, WorkersAIClient

__all__ = [
    "ModelBackend",
    "StreamingModelBackend",
    "AIServiceError",
    "ConfigurationError",
    "ProviderError",
    "ProvidersExhaustedError",
    "QuotaExceededError",
    "RateLimitError",
    "ValidationError",
    "BackendSettings",
    "create_backend",
    "OpenRouterBackend",
    "WorkersAIBackend",
    "WorkersAIClient",
    "StubModelBackend",
    "StreamingStubModelBackend",
    "InvocationConfig",
    "InvocationOrchestrator",
    "RetryPolicy",
    "run_with_retry",
    "FragmentStream",
    "GenerationOptions",
    "GenerationResult",
    "HealthStatus",
    "Message",
    "StreamFragment",
    "TokenUsage",
]
