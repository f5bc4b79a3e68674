"""
Pre-flight checks for OCR input. Never touches the network.
"""

import logging
from typing import Dict, Optional

from .errors import FileValidationError, OCRErrorCode

logger = logging.getLogger(__name__)

_MB = 1024 * 1024

OCR_SUPPORTED_MIME_TYPES = (
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
    "application/pdf",
)

# Upper bounds for any backend. The Workers AI REST path inlines the bytes as
# a JSON int array and applies its own lower cap (MAX_REST_DOCUMENT_BYTES).
OCR_FILE_SIZE_LIMITS: Dict[str, int] = {
    "image/jpeg": 10 * _MB,
    "image/jpg": 10 * _MB,
    "image/png": 10 * _MB,
    "image/gif": 5 * _MB,
    "image/webp": 10 * _MB,
    "application/pdf": 25 * _MB,
}

OCR_MIN_FILE_SIZE = 100


def is_ocr_supported(mime_type: str) -> bool:
    return mime_type in OCR_SUPPORTED_MIME_TYPES


def validate_ocr_requirements(mime_type: str, size_bytes: int, file_name: Optional[str] = None) -> None:
    """
    Check format and size limits for one file.

    Raises:
        FileValidationError: with error_code UNSUPPORTED_FORMAT,
            FILE_TOO_LARGE or VALIDATION_FAILED (file too small)
    """
    label = file_name or "unknown"

    if not is_ocr_supported(mime_type):
        message = (
            f"Unsupported file type for OCR: {mime_type}. "
            f"Supported types: {', '.join(OCR_SUPPORTED_MIME_TYPES)}"
        )
        logger.info(f"OCR validation failed for {label}: unsupported type {mime_type}")
        raise FileValidationError(message, OCRErrorCode.UNSUPPORTED_FORMAT, constraint="mime_type")

    max_size = OCR_FILE_SIZE_LIMITS[mime_type]
    if size_bytes > max_size:
        message = (
            f"File size {size_bytes / _MB:.2f}MB exceeds maximum allowed size "
            f"{max_size / _MB:.2f}MB for {mime_type}"
        )
        logger.info(f"OCR validation failed for {label}: {size_bytes} bytes > {max_size}")
        raise FileValidationError(message, OCRErrorCode.FILE_TOO_LARGE, constraint="max_size")

    if size_bytes < OCR_MIN_FILE_SIZE:
        logger.info(f"OCR validation failed for {label}: {size_bytes} bytes is below minimum")
        raise FileValidationError(
            "File is too small to contain meaningful content",
            OCRErrorCode.VALIDATION_FAILED,
            constraint="min_size",
        )
