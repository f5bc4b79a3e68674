"""
HTTP request/response schemas.
"""

import base64
import binascii
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from inference import GenerationOptions, GenerationResult, Message, StreamFragment
from services.ocr import BatchFile, OCRProcessingOptions


class MessageIn(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class GenerationOptionsIn(BaseModel):
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    presence_penalty: Optional[float] = None
    frequency_penalty: Optional[float] = None
    stop: Optional[List[str]] = None

    def to_options(self) -> GenerationOptions:
        return GenerationOptions(
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            top_p=self.top_p,
            presence_penalty=self.presence_penalty,
            frequency_penalty=self.frequency_penalty,
            stop_sequences=frozenset(self.stop) if self.stop else None,
        )


class GenerateRequest(BaseModel):
    messages: List[MessageIn] = Field(default_factory=list)
    options: Optional[GenerationOptionsIn] = None

    def to_messages(self) -> List[Message]:
        return [Message(m.role, m.content) for m in self.messages]

    def to_options(self) -> Optional[GenerationOptions]:
        return self.options.to_options() if self.options else None


class UsageOut(BaseModel):
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


class GenerateResponse(BaseModel):
    content: str
    usage: Optional[UsageOut] = None
    model_id: Optional[str] = None
    finish_reason: Optional[str] = None
    provider: Optional[str] = None

    @classmethod
    def from_result(cls, result: GenerationResult) -> "GenerateResponse":
        usage = None
        if result.usage is not None:
            usage = UsageOut(
                prompt_tokens=result.usage.prompt_tokens,
                completion_tokens=result.usage.completion_tokens,
                total_tokens=result.usage.total_tokens,
            )
        return cls(
            content=result.content,
            usage=usage,
            model_id=result.model_id,
            finish_reason=result.finish_reason,
            provider=result.provider,
        )


def fragment_payload(fragment: StreamFragment) -> Dict:
    """JSON body of one SSE event."""
    payload = {
        "content": fragment.content,
        "delta": fragment.delta,
        "done": fragment.done,
        "provider": fragment.provider,
    }
    if fragment.error is not None:
        payload["error"] = {
            "message": str(fragment.error),
            "code": getattr(fragment.error, "code", "AI_SERVICE_ERROR"),
            "provider": getattr(fragment.error, "provider", None),
        }
    return payload


class OCROptionsIn(BaseModel):
    max_text_length: int = 100000
    language: Optional[str] = None
    include_confidence: bool = False
    timeout_ms: int = 30000
    retry_attempts: int = 3
    retry_delay_ms: int = 1000
    enable_fallback: bool = True

    def to_options(self) -> OCRProcessingOptions:
        return OCRProcessingOptions(**self.model_dump())


class OCRFileIn(BaseModel):
    file_base64: str
    mime_type: str
    file_id: Optional[str] = None
    file_name: Optional[str] = None

    def decode(self) -> bytes:
        """Raises ValueError on malformed base64."""
        try:
            return base64.b64decode(self.file_base64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"file_base64 is not valid base64: {e}") from e


class OCRRequest(OCRFileIn):
    options: Optional[OCROptionsIn] = None


class OCRBatchRequest(BaseModel):
    files: List[OCRFileIn]
    options: Optional[OCROptionsIn] = None

    def to_batch(self) -> List[BatchFile]:
        return [
            BatchFile(
                file_id=f.file_id or f"file-{index + 1}",
                file_bytes=f.decode(),
                mime_type=f.mime_type,
                file_name=f.file_name,
            )
            for index, f in enumerate(self.files)
        ]


class CategorizeRequest(BaseModel):
    description: str
    amount: float
    merchant: Optional[str] = None
    existing_categories: Optional[List[str]] = None
