"""
OCR metrics registry.

The only mutable state shared across concurrent OCR calls. All mutation
happens under one lock, so batch workers can record concurrently.
"""

import threading
from typing import Dict, Optional

from .types import OCRMetrics


class OCRMetricsRegistry:
    """
    Aggregate outcome counters for OCR calls.

    Exactly one ``record`` per logical call, never per retry.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._reset_unlocked()

    def _reset_unlocked(self) -> None:
        self._total = 0
        self._successful = 0
        self._failed = 0
        self._timed = 0
        self._average_ms = 0.0
        self._errors_by_type: Dict[str, int] = {}
        self._fallback_usage = 0

    def record(
        self,
        success: bool,
        duration_ms: Optional[float] = None,
        error_code: Optional[str] = None,
        fallback_used: bool = False,
    ) -> None:
        """
        Count one OCR call.

        ``fallback_used`` means the fallback model was invoked, whether or not
        it produced text; failed fallbacks are counted as well.
        """
        with self._lock:
            self._total += 1
            if success:
                self._successful += 1
            else:
                self._failed += 1

            if duration_ms is not None:
                # incremental mean over calls that carried a duration
                self._timed += 1
                self._average_ms += (duration_ms - self._average_ms) / self._timed

            if error_code:
                self._errors_by_type[error_code] = self._errors_by_type.get(error_code, 0) + 1
            if fallback_used:
                self._fallback_usage += 1

    def snapshot(self) -> OCRMetrics:
        """Independent copy; mutating it never touches the registry."""
        with self._lock:
            return OCRMetrics(
                total_attempts=self._total,
                successful_attempts=self._successful,
                failed_attempts=self._failed,
                average_processing_time_ms=self._average_ms,
                errors_by_type=dict(self._errors_by_type),
                fallback_usage_count=self._fallback_usage,
            )

    def reset(self) -> None:
        with self._lock:
            self._reset_unlocked()
