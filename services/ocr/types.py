"""
OCR request/response types.

OCRResult and OCRMetrics are pydantic models because they cross the HTTP
surface; the transient request types are plain dataclasses.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

DEFAULT_MAX_TEXT_LENGTH = 100000
DEFAULT_TIMEOUT_MS = 30000
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_MS = 1000


@dataclass(frozen=True)
class OCRTask:
    """One document handed to an OCR backend. Not persisted."""

    file_id: str
    mime_type: str
    size_bytes: int
    file_bytes: bytes
    file_name: Optional[str] = None


@dataclass(frozen=True)
class OCRProcessingOptions:
    max_text_length: int = DEFAULT_MAX_TEXT_LENGTH
    language: Optional[str] = None
    include_confidence: bool = False
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS
    enable_fallback: bool = True


@dataclass(frozen=True)
class OCRExtraction:
    """Raw output of one successful backend run, before post-processing."""

    text: str
    confidence: Optional[float] = None
    raw: Any = None


@dataclass(frozen=True)
class BatchFile:
    file_id: str
    file_bytes: bytes
    mime_type: str
    file_name: Optional[str] = None


class OCRResult(BaseModel):
    """Outcome of one logical OCR call. Failures are results, not exceptions."""

    success: bool
    text: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    error: Optional[str] = None
    error_code: Optional[str] = None
    processing_time_ms: Optional[float] = None
    retryable: Optional[bool] = None
    max_retries: Optional[int] = None
    fallback_used: bool = False


class BatchItemResult(BaseModel):
    file_id: str
    result: OCRResult


class OCRMetrics(BaseModel):
    """Snapshot of the metrics registry."""

    total_attempts: int = 0
    successful_attempts: int = 0
    failed_attempts: int = 0
    average_processing_time_ms: float = 0.0
    errors_by_type: Dict[str, int] = Field(default_factory=dict)
    fallback_usage_count: int = 0
