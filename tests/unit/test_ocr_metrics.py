"""OCR metrics registry."""

import threading

import pytest

from services.ocr import OCRMetricsRegistry


class TestOCRMetricsRegistry:
    def test_starts_empty(self):
        metrics = OCRMetricsRegistry().snapshot()
        assert metrics.total_attempts == 0
        assert metrics.average_processing_time_ms == 0.0
        assert metrics.errors_by_type == {}

    def test_counts_add_up(self):
        registry = OCRMetricsRegistry()
        registry.record(True, 10)
        registry.record(False, 20, "OCR_FILE_TOO_LARGE")
        registry.record(False, 30, "OCR_FILE_TOO_LARGE")
        registry.record(True, 40, fallback_used=True)

        metrics = registry.snapshot()
        assert metrics.total_attempts == 4
        assert metrics.successful_attempts == 2
        assert metrics.failed_attempts == 2
        assert metrics.total_attempts == metrics.successful_attempts + metrics.failed_attempts
        assert metrics.errors_by_type == {"OCR_FILE_TOO_LARGE": 2}
        assert metrics.fallback_usage_count == 1

    def test_average_equals_arithmetic_mean(self):
        durations = [10.0, 20.5, 33.0, 7.25, 120.0]
        registry = OCRMetricsRegistry()
        for duration in durations:
            registry.record(True, duration)

        assert registry.snapshot().average_processing_time_ms == pytest.approx(sum(durations) / len(durations))

    def test_calls_without_duration_do_not_skew_average(self):
        registry = OCRMetricsRegistry()
        registry.record(True, 100.0)
        registry.record(False, None, "OCR_STORAGE_ERROR")

        metrics = registry.snapshot()
        assert metrics.total_attempts == 2
        assert metrics.average_processing_time_ms == pytest.approx(100.0)

    def test_snapshot_is_independent(self):
        registry = OCRMetricsRegistry()
        registry.record(False, 5, "OCR_UNKNOWN_ERROR")

        snapshot = registry.snapshot()
        snapshot.errors_by_type["OCR_UNKNOWN_ERROR"] = 99
        snapshot.total_attempts = 42

        fresh = registry.snapshot()
        assert fresh.errors_by_type == {"OCR_UNKNOWN_ERROR": 1}
        assert fresh.total_attempts == 1

    def test_reset_clears_everything(self):
        registry = OCRMetricsRegistry()
        registry.record(True, 12, fallback_used=True)
        registry.record(False, 3, "OCR_NETWORK_ERROR")

        registry.reset()

        metrics = registry.snapshot()
        assert metrics.model_dump() == {
            "total_attempts": 0,
            "successful_attempts": 0,
            "failed_attempts": 0,
            "average_processing_time_ms": 0.0,
            "errors_by_type": {},
            "fallback_usage_count": 0,
        }

    def test_concurrent_recording(self):
        registry = OCRMetricsRegistry()

        def worker(success):
            for _ in range(250):
                registry.record(success, 2.0, None if success else "OCR_NETWORK_ERROR")

        threads = [threading.Thread(target=worker, args=(i % 2 == 0,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        metrics = registry.snapshot()
        assert metrics.total_attempts == 2000
        assert metrics.successful_attempts == 1000
        assert metrics.failed_attempts == 1000
        assert metrics.errors_by_type == {"OCR_NETWORK_ERROR": 1000}
        assert metrics.average_processing_time_ms == pytest.approx(2.0)


class TestFallbackUsage:
    def test_counts_every_fallback_invocation(self):
        """A fallback that also failed still counts as fallback usage."""
        registry = OCRMetricsRegistry()
        registry.record(True, 10, fallback_used=True)
        registry.record(False, 20, "OCR_AI_SERVICE_ERROR", fallback_used=True)
        registry.record(False, 30, "OCR_AI_SERVICE_ERROR")

        metrics = registry.snapshot()
        assert metrics.fallback_usage_count == 2
        assert metrics.failed_attempts == 2
