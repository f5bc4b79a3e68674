"""
OCR pipeline: validate → extract (retry, then fallback model) → clean → record.

Every logical call returns an OCRResult and records metrics exactly once,
whatever happened inside. Only caller cancellation escapes.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

from inference.errors import ConfigurationError, ProviderError, ValidationError
from inference.retry import RetryPolicy, run_with_retry
from tracing import NoOpTracer, TraceMetadata, Tracer

from .base import OCRBackend
from .errors import EmptyExtractionError, StorageError, classify_ocr_error
from .metrics import OCRMetricsRegistry
from .types import BatchFile, BatchItemResult, OCRExtraction, OCRProcessingOptions, OCRResult, OCRTask
from .validation import validate_ocr_requirements

logger = logging.getLogger(__name__)

DEFAULT_BATCH_CONCURRENCY = 4
OCR_BACKOFF_FACTOR = 2.0
TRUNCATION_MARKER = "... [truncated]"


@dataclass(frozen=True)
class StoredFile:
    data: bytes
    mime_type: Optional[str] = None
    file_name: Optional[str] = None


class FileStore(Protocol):
    """Object storage collaborator. Returns None when the file does not exist."""

    async def fetch(self, file_id: str) -> Optional[StoredFile]:
        ...


def clean_text(text: str, max_length: int) -> str:
    """Collapse runs of whitespace, keep single line breaks, then cap the length."""
    lines = (" ".join(line.split()) for line in text.splitlines())
    cleaned = "\n".join(line for line in lines if line)
    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length] + TRUNCATION_MARKER
    return cleaned


def clamp_confidence(value: Optional[float]) -> float:
    if value is None:
        return 0.0
    return max(0.0, min(1.0, float(value)))


def retry_policy_for(options: OCRProcessingOptions) -> RetryPolicy:
    try:
        return RetryPolicy(
            retry_attempts=options.retry_attempts,
            retry_delay_ms=options.retry_delay_ms,
            timeout_ms=options.timeout_ms,
            backoff_factor=OCR_BACKOFF_FACTOR,
        )
    except ConfigurationError as e:
        raise ValidationError(e.message, constraint="options") from e


class OCRPipeline:
    """
    Text extraction with retries, a distinct fallback model and metrics.

    The metrics registry is injected; the pipeline never reaches for a
    process-wide instance on its own.
    """

    def __init__(
        self,
        primary: OCRBackend,
        fallback: Optional[OCRBackend] = None,
        metrics: Optional[OCRMetricsRegistry] = None,
        tracer: Optional[Tracer] = None,
        batch_concurrency: int = DEFAULT_BATCH_CONCURRENCY,
        sleep=asyncio.sleep,
    ):
        if batch_concurrency < 1:
            raise ConfigurationError("batch_concurrency must be >= 1")
        self.primary = primary
        self.fallback = fallback
        self.metrics = metrics or OCRMetricsRegistry()
        self.tracer = tracer or NoOpTracer()
        self.batch_concurrency = batch_concurrency
        self._sleep = sleep

    # ─── Tracing helpers ──────────────────────────────────────────────────

    def _start_span(self, file_id: str, mime_type: str, trace: TraceMetadata) -> Optional[Any]:
        try:
            return self.tracer.start_span("ocr", {"file_id": file_id, "mime_type": mime_type}, trace)
        except Exception:
            return None

    def _end_span(self, span: Any, status: str, metadata: Dict[str, Any]) -> None:
        try:
            self.tracer.end_span(span, status, metadata)
        except Exception:
            # Tracing failure is non-fatal
            pass

    def _event(self, name: str, trace: TraceMetadata, **metadata: Any) -> None:
        try:
            if self.tracer.is_enabled():
                self.tracer.record_event(name, metadata, trace)
        except Exception:
            pass

    # ─── Single file ──────────────────────────────────────────────────────

    async def _run(self, backend: OCRBackend, task: OCRTask, options: OCRProcessingOptions) -> OCRExtraction:
        async def attempt() -> OCRExtraction:
            extraction = await backend.extract(task, options)
            if not extraction.text or not extraction.text.strip():
                raise EmptyExtractionError(backend.name)
            return extraction

        def on_failure(attempt_number: int, error: Exception, delay: Optional[float]) -> None:
            code = classify_ocr_error(error).code.value
            logger.warning(f"OCR attempt {attempt_number} on {backend.name} failed for {task.file_id}: {code}")
            if delay is not None:
                logger.info(f"Retrying OCR for {task.file_id} in {int(delay * 1000)}ms")

        return await run_with_retry(
            attempt,
            retry_policy_for(options),
            normalize=lambda e: e,
            is_retryable=lambda e: classify_ocr_error(e).retryable,
            make_timeout_error=lambda timeout_s: ProviderError(
                f"OCR processing timed out after {int(timeout_s * 1000)} ms",
                provider=backend.name,
                timeout=True,
            ),
            on_failure=on_failure,
            sleep=self._sleep,
        )

    def _can_fall_back(self, error: Exception, options: OCRProcessingOptions) -> bool:
        return options.enable_fallback and self.fallback is not None and not isinstance(error, ValidationError)

    async def process_ocr(
        self,
        file_bytes: bytes,
        mime_type: str,
        options: Optional[OCRProcessingOptions] = None,
        file_id: Optional[str] = None,
        file_name: Optional[str] = None,
        trace_metadata: Optional[TraceMetadata] = None,
    ) -> OCRResult:
        """
        Extract text from one document.

        Returns:
            OCRResult; failures carry ``error_code`` and never raise
        """
        options = options or OCRProcessingOptions()
        file_id = file_id or "unknown"
        trace = trace_metadata or TraceMetadata(operation="ocr")
        span = self._start_span(file_id, mime_type, trace)
        started = time.perf_counter()
        fallback_used = False

        try:
            if options.max_text_length <= 0:
                raise ValidationError("max_text_length must be positive", constraint="max_text_length")
            task = OCRTask(
                file_id=file_id,
                mime_type=mime_type,
                size_bytes=len(file_bytes),
                file_bytes=bytes(file_bytes),
                file_name=file_name,
            )
            validate_ocr_requirements(mime_type, task.size_bytes, file_name)
            logger.info(f"OCR processing started for {file_id} ({mime_type}, {task.size_bytes} bytes)")

            try:
                extraction = await self._run(self.primary, task, options)
            except Exception as primary_error:
                if not self._can_fall_back(primary_error, options):
                    raise
                logger.warning(
                    f"Primary OCR failed for {file_id} "
                    f"({classify_ocr_error(primary_error).code.value}); trying {self.fallback.name}"
                )
                self._event("ocr_fallback", trace, file_id=file_id, provider=self.fallback.name)
                fallback_used = True
                extraction = await self._run(self.fallback, task, options)
        except Exception as e:
            result = self._failure(e, started, options, fallback_used, file_id)
            self._end_span(span, "failure", {"error_code": result.error_code})
            return result

        elapsed_ms = (time.perf_counter() - started) * 1000
        text = clean_text(extraction.text, options.max_text_length)
        result = OCRResult(
            success=True,
            text=text,
            confidence=clamp_confidence(extraction.confidence) if options.include_confidence else None,
            processing_time_ms=elapsed_ms,
            fallback_used=fallback_used,
        )
        self.metrics.record(True, elapsed_ms, fallback_used=fallback_used)
        logger.info(f"OCR succeeded for {file_id}: {len(text)} chars in {elapsed_ms:.0f}ms")
        self._end_span(span, "success", {"fallback_used": fallback_used})
        return result

    def _failure(
        self,
        error: Exception,
        started: float,
        options: OCRProcessingOptions,
        fallback_used: bool,
        file_id: str,
    ) -> OCRResult:
        elapsed_ms = (time.perf_counter() - started) * 1000
        classification = classify_ocr_error(error)
        code = classification.code.value
        retryable = classification.retryable and options.retry_attempts > 0
        logger.error(f"OCR failed for {file_id}: {code}: {error}")
        self.metrics.record(False, elapsed_ms, code, fallback_used=fallback_used)
        return OCRResult(
            success=False,
            error=classification.message,
            error_code=code,
            processing_time_ms=elapsed_ms,
            retryable=True if retryable else None,
            max_retries=options.retry_attempts if retryable else None,
            fallback_used=fallback_used,
        )

    # ─── Stored files ─────────────────────────────────────────────────────

    async def process_stored_file(
        self,
        store: FileStore,
        file_id: str,
        options: Optional[OCRProcessingOptions] = None,
    ) -> OCRResult:
        """Fetch ``file_id`` from object storage and run OCR on it."""
        options = options or OCRProcessingOptions()
        started = time.perf_counter()
        try:
            stored = await store.fetch(file_id)
            if stored is None:
                raise StorageError(f"File not found: {file_id}")
        except StorageError as e:
            return self._failure(e, started, options, False, file_id)
        except Exception as e:
            error = StorageError(f"Failed to retrieve file {file_id}: {e}")
            error.__cause__ = e
            return self._failure(error, started, options, False, file_id)

        return await self.process_ocr(
            stored.data,
            stored.mime_type or "application/octet-stream",
            options,
            file_id=file_id,
            file_name=stored.file_name,
        )

    # ─── Batch ────────────────────────────────────────────────────────────

    async def batch_process_ocr(
        self,
        files: Sequence[BatchFile],
        options: Optional[OCRProcessingOptions] = None,
        concurrency: Optional[int] = None,
    ) -> List[BatchItemResult]:
        """
        Process many files with at most ``concurrency`` in flight.

        One BatchItemResult per input, in input order; each carries its
        file_id. A failing file never affects the others.
        """
        limit = concurrency if concurrency is not None else self.batch_concurrency
        if limit < 1:
            raise ValidationError("concurrency must be >= 1", constraint="concurrency")
        if not files:
            return []

        logger.info(f"Starting batch OCR for {len(files)} files (concurrency {limit})")
        semaphore = asyncio.Semaphore(limit)

        async def worker(item: BatchFile) -> BatchItemResult:
            async with semaphore:
                result = await self.process_ocr(
                    item.file_bytes, item.mime_type, options, file_id=item.file_id, file_name=item.file_name
                )
            return BatchItemResult(file_id=item.file_id, result=result)

        results = list(await asyncio.gather(*(worker(f) for f in files)))

        success_count = sum(1 for r in results if r.result.success)
        failure_count = len(results) - success_count
        logger.info(
            f"Batch OCR complete: {success_count} succeeded, {failure_count} failed "
            f"({round(success_count / len(results) * 100)}% success rate)"
        )
        return results
