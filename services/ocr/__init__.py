"""
OCR service exports.

Clean interface for callers to import OCR components.
"""

from .base import OCRBackend
from .errors import (
    EmptyExtractionError,
    ErrorClassification,
    FileValidationError,
    OCRErrorCode,
    StorageError,
    classify_ocr_error,
)
from .metrics import OCRMetricsRegistry
from .pipeline import DEFAULT_BATCH_CONCURRENCY, FileStore, OCRPipeline, StoredFile
from .stub import StubOCRBackend
from .types import (
    BatchFile,
    BatchItemResult,
    OCRExtraction,
    OCRMetrics,
    OCRProcessingOptions,
    OCRResult,
    OCRTask,
)
from .validation import (
    OCR_FILE_SIZE_LIMITS,
    OCR_SUPPORTED_MIME_TYPES,
    is_ocr_supported,
    validate_ocr_requirements,
)
from .workers_ai import DEFAULT_OCR_FALLBACK_MODEL, DEFAULT_OCR_MODEL, WorkersAIOCRBackend

__all__ = [
    "OCRBackend",
    "EmptyExtractionError",
    "ErrorClassification",
    "FileValidationError",
    "OCRErrorCode",
    "StorageError",
    "classify_ocr_error",
    "OCRMetricsRegistry",
    "DEFAULT_BATCH_CONCURRENCY",
    "FileStore",
    "OCRPipeline",
    "StoredFile",
    "StubOCRBackend",
    "BatchFile",
    "BatchItemResult",
    "OCRExtraction",
    "OCRMetrics",
    "OCRProcessingOptions",
    "OCRResult",
    "OCRTask",
    "OCR_FILE_SIZE_LIMITS",
    "OCR_SUPPORTED_MIME_TYPES",
    "is_ocr_supported",
    "validate_ocr_requirements",
    "DEFAULT_OCR_FALLBACK_MODEL",
    "DEFAULT_OCR_MODEL",
    "WorkersAIOCRBackend",
]
