"""Tracing infrastructure for AI invocations."""

from tracing.tracer import (
    LoggingTracer,
    NoOpTracer,
    ObservabilitySink,
    TraceMetadata,
    Tracer,
    filter_safe_metadata,
    new_trace_id,
)
from tracing.tracer_factory import create_tracer, get_tracer_backend, get_tracer_config

__all__ = [
    "Tracer",
    "TraceMetadata",
    "NoOpTracer",
    "LoggingTracer",
    "ObservabilitySink",
    "filter_safe_metadata",
    "new_trace_id",
    "create_tracer",
    "get_tracer_backend",
    "get_tracer_config",
]
