from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Literal, Optional

Role = Literal["system", "user", "assistant"]
FinishReason = Literal["stop", "length", "content_filter", "tool_calls"]

_FINISH_REASONS = ("stop", "length", "content_filter", "tool_calls")


@dataclass(frozen=True)
class Message:
    role: Role
    content: str


@dataclass(frozen=True)
class GenerationOptions:
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    presence_penalty: Optional[float] = None
    frequency_penalty: Optional[float] = None
    stop_sequences: Optional[FrozenSet[str]] = None
    stream: bool = False


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None

    @classmethod
    def from_payload(cls, payload: Optional[Dict[str, Any]]) -> Optional["TokenUsage"]:
        """Build from an OpenAI-style ``usage`` object (snake_case keys)."""
        if not isinstance(payload, dict):
            return None
        return cls(
            prompt_tokens=payload.get("prompt_tokens"),
            completion_tokens=payload.get("completion_tokens"),
            total_tokens=payload.get("total_tokens"),
        )


@dataclass(frozen=True)
class GenerationResult:
    content: str
    usage: Optional[TokenUsage] = None
    model_id: Optional[str] = None
    finish_reason: Optional[FinishReason] = None
    provider: Optional[str] = None   # name of the backend that produced it


@dataclass(frozen=True)
class StreamFragment:
    content: str                     # cumulative text so far
    delta: Optional[str] = None      # text added by this fragment
    done: bool = False
    usage: Optional[TokenUsage] = None
    error: Optional[Exception] = None  # set only on a terminal failure fragment
    provider: Optional[str] = None


@dataclass(frozen=True)
class HealthStatus:
    available: bool
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"available": self.available}
        if self.error is not None:
            data["error"] = self.error
        return data


def normalize_finish_reason(value: Any) -> Optional[FinishReason]:
    """Map a provider finish reason onto the closed set, or None."""
    if value in _FINISH_REASONS:
        return value
    return None


@dataclass
class AttemptLog:
    """Per-adapter attempt counts for one logical call."""

    counts: Dict[str, int] = field(default_factory=dict)

    def bump(self, provider: str) -> int:
        self.counts[provider] = self.counts.get(provider, 0) + 1
        return self.counts[provider]
