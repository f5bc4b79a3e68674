"""
AIService: the single capability object handed to the web layer.

Bundles the invocation orchestrator (text and streaming) with the OCR
pipeline and its metrics registry.
"""

import logging
from typing import Dict, List, Optional, Sequence

from inference import (
    FragmentStream,
    GenerationOptions,
    GenerationResult,
    HealthStatus,
    InvocationOrchestrator,
    Message,
)
from services.ocr import BatchFile, BatchItemResult, OCRMetrics, OCRPipeline, OCRProcessingOptions, OCRResult

logger = logging.getLogger(__name__)


class AIService:
    def __init__(self, orchestrator: InvocationOrchestrator, ocr: OCRPipeline):
        self.orchestrator = orchestrator
        self.ocr = ocr

    async def generate_text(
        self, messages: Sequence[Message], options: Optional[GenerationOptions] = None
    ) -> GenerationResult:
        return await self.orchestrator.generate_text(messages, options)

    def generate_stream(
        self, messages: Sequence[Message], options: Optional[GenerationOptions] = None
    ) -> FragmentStream:
        return self.orchestrator.generate_stream(messages, options)

    async def get_providers_health(self) -> Dict[str, HealthStatus]:
        return await self.orchestrator.get_providers_health()

    async def process_ocr(
        self,
        file_bytes: bytes,
        mime_type: str,
        options: Optional[OCRProcessingOptions] = None,
        file_id: Optional[str] = None,
        file_name: Optional[str] = None,
    ) -> OCRResult:
        return await self.ocr.process_ocr(file_bytes, mime_type, options, file_id=file_id, file_name=file_name)

    async def batch_process_ocr(
        self, files: Sequence[BatchFile], options: Optional[OCRProcessingOptions] = None
    ) -> List[BatchItemResult]:
        return await self.ocr.batch_process_ocr(files, options)

    def get_ocr_metrics(self) -> OCRMetrics:
        return self.ocr.metrics.snapshot()

    def reset_ocr_metrics(self) -> None:
        logger.info("Resetting OCR metrics")
        self.ocr.metrics.reset()

    async def aclose(self) -> None:
        await self.orchestrator.aclose()
        await self.ocr.primary.aclose()
        if self.ocr.fallback is not None:
            await self.ocr.fallback.aclose()
