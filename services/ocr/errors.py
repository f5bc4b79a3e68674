"""
OCR error taxonomy.

Every OCR failure maps onto one closed OCRErrorCode; the classification
also decides whether another attempt may help (``retryable``).
"""

import asyncio
from dataclasses import dataclass
from enum import Enum

import httpx

from inference.errors import ProviderError, QuotaExceededError, ValidationError


class OCRErrorCode(str, Enum):
    VALIDATION_FAILED = "OCR_VALIDATION_FAILED"
    FILE_TOO_LARGE = "OCR_FILE_TOO_LARGE"
    UNSUPPORTED_FORMAT = "OCR_UNSUPPORTED_FORMAT"
    PROCESSING_TIMEOUT = "OCR_PROCESSING_TIMEOUT"
    AI_SERVICE_ERROR = "OCR_AI_SERVICE_ERROR"
    NETWORK_ERROR = "OCR_NETWORK_ERROR"
    STORAGE_ERROR = "OCR_STORAGE_ERROR"
    UNKNOWN_ERROR = "OCR_UNKNOWN_ERROR"


class FileValidationError(ValidationError):
    """A file failed a pre-flight check; ``error_code`` names which one."""

    def __init__(self, message: str, error_code: OCRErrorCode, constraint: str):
        self.error_code = error_code
        super().__init__(message, constraint=constraint)


class EmptyExtractionError(ProviderError):
    """The model answered but no text could be extracted."""

    def __init__(self, provider: str):
        super().__init__(
            "No text could be extracted from the document. The image may be too blurry, "
            "contain no text, or be in an unsupported format.",
            provider=provider,
            retryable=False,
        )


class StorageError(Exception):
    """The object store could not produce the requested file."""


@dataclass(frozen=True)
class ErrorClassification:
    code: OCRErrorCode
    message: str
    retryable: bool


def classify_ocr_error(error: BaseException) -> ErrorClassification:
    """Map an exception onto the OCR error taxonomy by type."""
    if isinstance(error, FileValidationError):
        return ErrorClassification(error.error_code, error.message, False)
    if isinstance(error, ValidationError):
        return ErrorClassification(OCRErrorCode.VALIDATION_FAILED, error.message, False)
    if isinstance(error, StorageError):
        return ErrorClassification(OCRErrorCode.STORAGE_ERROR, f"Storage error during OCR processing: {error}", True)
    if isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException)) or (
        isinstance(error, ProviderError) and error.timeout
    ):
        return ErrorClassification(OCRErrorCode.PROCESSING_TIMEOUT, "OCR processing timed out", True)
    if isinstance(error, EmptyExtractionError):
        return ErrorClassification(OCRErrorCode.AI_SERVICE_ERROR, error.message, False)
    if isinstance(error, QuotaExceededError):
        return ErrorClassification(OCRErrorCode.AI_SERVICE_ERROR, f"AI service quota exceeded: {error.message}", False)
    if isinstance(error, ProviderError):
        cause = error.__cause__
        if isinstance(cause, (httpx.TransportError, ConnectionError)):
            return ErrorClassification(OCRErrorCode.NETWORK_ERROR, "Network error during OCR processing", True)
        return ErrorClassification(
            OCRErrorCode.AI_SERVICE_ERROR, "AI service error during OCR processing", error.retryable
        )
    if isinstance(error, (httpx.TransportError, ConnectionError)):
        return ErrorClassification(OCRErrorCode.NETWORK_ERROR, "Network error during OCR processing", True)
    return ErrorClassification(OCRErrorCode.UNKNOWN_ERROR, str(error) or type(error).__name__, True)
