"""
OCR backend interface.

Role: document bytes → raw extracted text.

Rules:
- One model run per call; retries belong to the pipeline
- Failures raise typed errors from inference.errors
- No metrics, no post-processing
"""

from abc import ABC, abstractmethod

from .types import OCRExtraction, OCRProcessingOptions, OCRTask


class OCRBackend(ABC):
    """
    Abstract OCR boundary.
    The pipeline depends ONLY on this interface.
    """

    name: str = "ocr"

    @abstractmethod
    async def extract(self, task: OCRTask, options: OCRProcessingOptions) -> OCRExtraction:
        """
        Run text extraction once.

        Returns:
            OCRExtraction; ``text`` may be empty, the pipeline decides what
            an empty extraction means
        """
        raise NotImplementedError

    @abstractmethod
    async def is_available(self) -> bool:
        """Reachability probe. Must never raise."""
        raise NotImplementedError

    async def aclose(self) -> None:
        return None
