"""
Stub OCR backend for testing and offline development.

Deterministic, fast, and never fails silently.
"""

import asyncio
from typing import List, Optional, Sequence, Union

from .base import OCRBackend
from .types import OCRExtraction, OCRProcessingOptions, OCRTask

StubItem = Union[str, OCRExtraction, Exception]


class StubOCRBackend(OCRBackend):
    """
    Deterministic fake OCR.

    Without a script, returns one line of text derived from the file size.
    With a script, each call consumes the next item (the last one repeats):
    strings and extractions are returned, exceptions are raised.
    """

    def __init__(
        self,
        name: str = "stub-ocr",
        script: Optional[Sequence[StubItem]] = None,
        available: bool = True,
        delay_s: float = 0.0,
    ):
        self.name = name
        self.script: List[StubItem] = list(script or [])
        self.available = available
        self.delay_s = delay_s
        self.calls = 0
        self.seen_file_ids: List[str] = []

    def _next_item(self, task: OCRTask) -> StubItem:
        if not self.script:
            return f"Document {task.file_id}: {task.size_bytes} bytes of {task.mime_type}"
        if len(self.script) > 1:
            return self.script.pop(0)
        return self.script[0]

    async def extract(self, task: OCRTask, options: OCRProcessingOptions) -> OCRExtraction:
        self.calls += 1
        self.seen_file_ids.append(task.file_id)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        item = self._next_item(task)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, OCRExtraction):
            return item
        return OCRExtraction(text=item, confidence=0.99)

    async def is_available(self) -> bool:
        return self.available
