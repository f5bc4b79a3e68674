"""
Tracer factory.

TRACER_BACKEND:
- "noop" (default): no tracing
- "logging": spans and events written through the logging module
"""

import logging
import os
from typing import Optional

from .tracer import LoggingTracer, NoOpTracer, ObservabilitySink, Tracer

logger = logging.getLogger(__name__)

VALID_BACKENDS = {"noop", "logging"}


def get_tracer_backend() -> str:
    backend = os.getenv("TRACER_BACKEND", "noop").lower().strip()
    if backend not in VALID_BACKENDS:
        logger.warning(f"Unknown TRACER_BACKEND '{backend}', using noop")
        return "noop"
    return backend


def create_tracer(backend: Optional[str] = None, observability_sink: Optional[ObservabilitySink] = None) -> Tracer:
    """
    Create a tracer for ``backend`` (defaults to TRACER_BACKEND).

    Always returns a usable Tracer; unknown names fall back to NoOpTracer.
    """
    backend = (backend or get_tracer_backend()).lower().strip()
    if backend == "logging":
        return LoggingTracer(observability_sink=observability_sink)
    if backend != "noop":
        logger.warning(f"Unknown tracer backend '{backend}', using noop")
    return NoOpTracer(observability_sink=observability_sink)


def get_tracer_config() -> dict:
    """Tracer status for health/debug endpoints."""
    backend = get_tracer_backend()
    return {"tracer_backend": backend, "enabled": backend != "noop"}
