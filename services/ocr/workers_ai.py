"""
Workers AI vision backend for OCR.

The document is sent as a list of byte values under ``image`` together
with an extraction prompt; the text comes back under ``text``,
``response`` or ``description`` depending on the model.
"""

import logging
from typing import Any, Optional

import httpx

from inference.workers_ai import DEFAULT_BASE_URL, AIBinding, WorkersAIClient, extract_response_text

from .base import OCRBackend
from .errors import FileValidationError, OCRErrorCode
from .types import OCRExtraction, OCRProcessingOptions, OCRTask

logger = logging.getLogger(__name__)

DEFAULT_OCR_MODEL = "@cf/llava-hf/llava-1.5-7b-hf"
DEFAULT_OCR_FALLBACK_MODEL = "@cf/unum/uform-gen2-qwen-500m"

# REST bodies carry the document as a JSON array of ints (several bytes of JSON
# plus one Python int object per input byte), so they are capped below the
# per-type limits in validation.OCR_FILE_SIZE_LIMITS. Binding runs are not.
MAX_REST_DOCUMENT_BYTES = 10 * 1024 * 1024

OCR_PROMPT = (
    "Extract all text visible in this document exactly as written. "
    "Return only the extracted text without commentary."
)


def parse_confidence(data: Any) -> Optional[float]:
    """Read a confidence value from the response (or its ``result``), if any."""
    if not isinstance(data, dict):
        return None
    value = data.get("confidence")
    if value is None and isinstance(data.get("result"), dict):
        value = data["result"].get("confidence")
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class WorkersAIOCRBackend(OCRBackend):
    """Vision-model text extraction on Workers AI (binding or REST)."""

    def __init__(
        self,
        model: str = DEFAULT_OCR_MODEL,
        account_id: Optional[str] = None,
        api_token: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        binding: Optional[AIBinding] = None,
        name: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.model = model
        self.name = name or f"workers-ai-ocr:{model}"
        self.transport = WorkersAIClient(
            provider=self.name,
            account_id=account_id,
            api_token=api_token,
            base_url=base_url,
            binding=binding,
            client=client,
        )

    async def extract(self, task: OCRTask, options: OCRProcessingOptions) -> OCRExtraction:
        prompt = OCR_PROMPT
        if options.language:
            prompt = f"{prompt} The document language is {options.language}."
        if self.transport.binding is None and task.size_bytes > MAX_REST_DOCUMENT_BYTES:
            raise FileValidationError(
                f"Document of {task.size_bytes} bytes exceeds the {MAX_REST_DOCUMENT_BYTES} byte REST limit",
                OCRErrorCode.FILE_TOO_LARGE,
                constraint="size_bytes",
            )
        inputs = {"image": list(task.file_bytes), "prompt": prompt}

        logger.debug(f"Running {self.model} on {task.file_id} ({task.size_bytes} bytes)")
        data = await self.transport.run(self.model, inputs)
        return OCRExtraction(
            text=extract_response_text(data) or "",
            confidence=parse_confidence(data),
            raw=data,
        )

    async def is_available(self) -> bool:
        return await self.transport.probe()

    async def aclose(self) -> None:
        await self.transport.aclose()
