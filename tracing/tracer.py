"""
Tool-agnostic tracing abstraction for AI calls.

Tracing is strictly passive:
- Never influences retry or failover decisions
- Never sees prompt or completion text
- Failures are silent and non-fatal
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

ObservabilitySink = Callable[[str, Dict[str, Any]], None]

# Keys that may carry user content and are never forwarded
_UNSAFE_KEYS = frozenset({"prompt", "messages", "content", "output", "response", "text", "image"})


def new_trace_id() -> str:
    return uuid.uuid4().hex


@dataclass
class TraceMetadata:
    """Identity of one logical call (all attempts across all backends)."""

    trace_id: str = field(default_factory=new_trace_id)
    operation: Optional[str] = None   # e.g. "generate_text", "ocr"
    request_id: Optional[str] = None  # caller-supplied correlation id


def filter_safe_metadata(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Drop keys that could carry user content."""
    return {k: v for k, v in metadata.items() if k not in _UNSAFE_KEYS}


class Tracer(ABC):
    """
    Abstract tracing interface.

    Implementations MUST NOT raise from any method.
    """

    def __init__(self, observability_sink: Optional[ObservabilitySink] = None):
        self.observability_sink = observability_sink

    def _emit(self, kind: str, payload: Dict[str, Any]) -> None:
        if self.observability_sink is None:
            return
        try:
            self.observability_sink(kind, payload)
        except Exception:
            logger.debug(f"Observability sink failed for {kind}")

    @abstractmethod
    def start_span(self, name: str, metadata: Dict[str, Any], trace_metadata: TraceMetadata) -> Optional[Any]:
        """
        Start a span (e.g. one logical AI call).

        Returns:
            Span handle for end_span, or None when tracing is disabled
        """

    @abstractmethod
    def end_span(self, span: Any, status: str, metadata: Dict[str, Any]) -> None:
        """End a span. ``status`` is "success" or "failure"."""

    @abstractmethod
    def record_event(self, name: str, metadata: Dict[str, Any], trace_metadata: TraceMetadata) -> None:
        """Record a point-in-time event (attempt started, retry scheduled, failover...)."""

    @abstractmethod
    def is_enabled(self) -> bool:
        """Used to skip building metadata when tracing is off."""


class NoOpTracer(Tracer):
    """Satisfies the Tracer interface but does nothing."""

    def start_span(self, name: str, metadata: Dict[str, Any], trace_metadata: TraceMetadata) -> Optional[Any]:
        return None

    def end_span(self, span: Any, status: str, metadata: Dict[str, Any]) -> None:
        pass

    def record_event(self, name: str, metadata: Dict[str, Any], trace_metadata: TraceMetadata) -> None:
        pass

    def is_enabled(self) -> bool:
        return False


class LoggingTracer(Tracer):
    """
    Tracer that writes spans and events to the ``ai.trace`` logger.

    Every record is also forwarded to ``observability_sink`` when one is
    given, which is how tests and local stores capture the event stream.
    """

    def __init__(
        self,
        observability_sink: Optional[ObservabilitySink] = None,
        level: int = logging.INFO,
    ):
        super().__init__(observability_sink)
        self.level = level
        self._log = logging.getLogger("ai.trace")

    def start_span(self, name: str, metadata: Dict[str, Any], trace_metadata: TraceMetadata) -> Optional[Any]:
        try:
            span = {
                "trace_id": trace_metadata.trace_id,
                "span_name": name,
                "operation": trace_metadata.operation,
                "start_time": datetime.now(),
                "input": filter_safe_metadata(metadata),
            }
            self._emit("span_start", {"trace_id": span["trace_id"], "span_name": name, **span["input"]})
            self._log.log(self.level, f"span_start {name} trace_id={trace_metadata.trace_id}")
            return span
        except Exception:
            return None

    def end_span(self, span: Any, status: str, metadata: Dict[str, Any]) -> None:
        if span is None:
            return
        try:
            elapsed_ms = (datetime.now() - span["start_time"]).total_seconds() * 1000
            safe = filter_safe_metadata(metadata)
            self._emit(
                "span_end",
                {
                    "trace_id": span["trace_id"],
                    "span_name": span["span_name"],
                    "status": status,
                    "duration_ms": elapsed_ms,
                    **safe,
                },
            )
            self._log.log(
                self.level,
                f"span_end {span['span_name']} trace_id={span['trace_id']} status={status} "
                f"duration_ms={elapsed_ms:.1f}",
            )
        except Exception:
            logger.debug("Failed to end span")

    def record_event(self, name: str, metadata: Dict[str, Any], trace_metadata: TraceMetadata) -> None:
        try:
            safe = filter_safe_metadata(metadata)
            self._emit(name, {"trace_id": trace_metadata.trace_id, **safe})
            details = " ".join(f"{k}={v}" for k, v in safe.items())
            self._log.log(self.level, f"{name} trace_id={trace_metadata.trace_id} {details}".rstrip())
        except Exception:
            logger.debug(f"Failed to record event {name}")

    def is_enabled(self) -> bool:
        return True
