"""
Cloudflare Workers AI backend (platform-native binding).

Two transports behind one client:
- Binding mode: an object exposing ``async run(model, inputs)`` is injected
  (the platform's native AI binding, or an adapter around it). No network
  credentials are needed.
- REST mode: ``POST {base_url}/{account_id}/ai/run/{model}`` with a bearer
  API token.

WorkersAIClient is shared by the text backend below and by the OCR backend
in services.ocr.workers_ai.
"""

import codecs
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

import httpx

from .base import StreamingModelBackend
from .errors import ConfigurationError, ProviderError, QuotaExceededError, RateLimitError
from .http_errors import raise_for_status, transport_error
from .streaming import SSE_DONE, iter_sse_payloads
from .types import GenerationOptions, GenerationResult, Message, StreamFragment, TokenUsage

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.cloudflare.com/client/v4/accounts"
DEFAULT_MAX_TOKENS = 2048
DEFAULT_TEMPERATURE = 0.1


class AIBinding(Protocol):
    """Native AI binding. With ``inputs["stream"]`` set, returns an async iterable of SSE lines."""

    async def run(self, model: str, inputs: Dict[str, Any]) -> Any:
        ...


def format_prompt(messages: List[Message]) -> str:
    """Flatten a conversation into the single-prompt form Workers AI text models accept."""
    labels = {"system": "System", "user": "User", "assistant": "Assistant"}
    parts = [f"{labels[m.role]}: {m.content}" for m in messages]
    parts.append("Assistant:")
    return "\n\n".join(parts)


def extract_response_text(data: Any) -> Optional[str]:
    """Pull generated text out of the response shapes Workers AI models return."""
    if isinstance(data, str):
        return data
    if not isinstance(data, dict):
        return None
    for key in ("response", "text", "description"):
        value = data.get(key)
        if isinstance(value, str):
            return value
    result = data.get("result")
    if result is not None and result is not data:
        return extract_response_text(result)
    return None


async def _aiter_lines(chunks: Any) -> AsyncIterator[str]:
    """Re-split binding chunks into lines; events and characters may straddle chunks."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    async for chunk in chunks:
        buffer += decoder.decode(chunk) if isinstance(chunk, (bytes, bytearray)) else str(chunk)
        *lines, buffer = buffer.split("\n")
        for line in lines:
            yield line.rstrip("\r")
    buffer += decoder.decode(b"", final=True)
    if buffer:
        yield buffer.rstrip("\r")


class WorkersAIClient:
    """
    Transport for Workers AI model runs (binding or REST).

    Raises typed errors from inference.errors; never retries.
    """

    def __init__(
        self,
        provider: str,
        account_id: Optional[str] = None,
        api_token: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        binding: Optional[AIBinding] = None,
        timeout_s: float = 30.0,
        probe_timeout_s: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.provider = provider
        self.account_id = account_id
        self.api_token = api_token
        self.base_url = base_url.rstrip("/")
        self.binding = binding
        self.timeout_s = timeout_s
        self.probe_timeout_s = probe_timeout_s
        self._client = client
        self._owns_client = client is None

    @property
    def has_credentials(self) -> bool:
        return bool(self.account_id and self.api_token)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
        return self._client

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json", "Authorization": f"Bearer {self.api_token}"}

    def _require_credentials(self) -> None:
        if not self.has_credentials:
            raise ProviderError(
                "Account ID and API token are required for external requests",
                provider=self.provider,
                retryable=False,
            )

    def _binding_error(self, error: Exception) -> ProviderError:
        message = str(error)
        lowered = message.lower()
        if "allocation" in lowered or "quota" in lowered:
            wrapped: ProviderError = QuotaExceededError(message, provider=self.provider)
        elif "rate limit" in lowered or "too many requests" in lowered:
            wrapped = RateLimitError(message, provider=self.provider)
        else:
            wrapped = ProviderError(f"AI binding error: {message}", provider=self.provider)
        wrapped.__cause__ = error
        return wrapped

    async def run(self, model: str, inputs: Dict[str, Any]) -> Any:
        """Run ``model`` once and return the unwrapped ``result`` payload."""
        if self.binding is not None:
            try:
                return await self.binding.run(model, inputs)
            except Exception as e:
                raise self._binding_error(e) from e

        self._require_credentials()
        url = f"{self.base_url}/{self.account_id}/ai/run/{model}"
        try:
            response = await self._get_client().post(url, json=inputs, headers=self._headers())
        except httpx.HTTPError as e:
            raise transport_error(e, self.provider) from e

        await raise_for_status(response, self.provider, model)
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError("Malformed JSON in Workers AI response", provider=self.provider) from e

        if isinstance(data, dict) and data.get("success") is False:
            errors = data.get("errors") or []
            detail = "; ".join(str(err.get("message", err)) if isinstance(err, dict) else str(err) for err in errors)
            raise ProviderError(f"Workers AI request failed: {detail or 'unknown error'}", provider=self.provider)
        if isinstance(data, dict) and "result" in data:
            return data["result"]
        return data

    async def stream(self, model: str, inputs: Dict[str, Any]) -> AsyncIterator[Any]:
        """Yield decoded SSE events for a streamed run, then SSE_DONE."""
        inputs = {**inputs, "stream": True}
        if self.binding is not None:
            try:
                chunks = await self.binding.run(model, inputs)
                async for event in iter_sse_payloads(_aiter_lines(chunks)):
                    yield event
            except ProviderError:
                raise
            except Exception as e:
                raise self._binding_error(e) from e
            return

        self._require_credentials()
        url = f"{self.base_url}/{self.account_id}/ai/run/{model}"
        try:
            async with self._get_client().stream("POST", url, json=inputs, headers=self._headers()) as response:
                await raise_for_status(response, self.provider, model)
                async for event in iter_sse_payloads(response.aiter_lines()):
                    yield event
        except httpx.HTTPError as e:
            raise transport_error(e, self.provider) from e

    async def probe(self) -> bool:
        """True when the binding is present or the account API answers."""
        if self.binding is not None:
            return True
        if not self.has_credentials:
            return False
        try:
            response = await self._get_client().get(
                f"{self.base_url}/{self.account_id}/ai/models/search",
                headers={"Authorization": f"Bearer {self.api_token}"},
                timeout=self.probe_timeout_s,
            )
            return response.is_success
        except Exception as e:
            logger.debug(f"Availability probe failed for {self.provider}: {type(e).__name__}")
            return False

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


class WorkersAIBackend(StreamingModelBackend):
    """
    Text generation on Workers AI.

    Conversations are flattened into one prompt; streamed fragments carry the
    cumulative response in ``content``.
    """

    def __init__(
        self,
        model_id: str,
        account_id: Optional[str] = None,
        api_token: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        binding: Optional[AIBinding] = None,
        name: Optional[str] = None,
        timeout_s: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if binding is None and not (account_id and api_token):
            logger.warning(
                f"Workers AI backend for {model_id} has neither a binding nor account credentials"
            )
        self.model_id = model_id
        self.name = name or f"workers-ai:{model_id}"
        self.transport = WorkersAIClient(
            provider=self.name,
            account_id=account_id,
            api_token=api_token,
            base_url=base_url,
            binding=binding,
            timeout_s=timeout_s,
            client=client,
        )

    def _inputs(self, messages: List[Message], options: Optional[GenerationOptions]) -> Dict[str, Any]:
        if not messages:
            raise ConfigurationError("Workers AI requires at least one message", provider=self.name)
        options = options or GenerationOptions()
        return {
            "prompt": format_prompt(messages),
            "max_tokens": options.max_tokens if options.max_tokens is not None else DEFAULT_MAX_TOKENS,
            "temperature": options.temperature if options.temperature is not None else DEFAULT_TEMPERATURE,
            "stream": False,
        }

    async def generate_text(
        self, messages: List[Message], options: Optional[GenerationOptions] = None
    ) -> GenerationResult:
        result = await self.transport.run(self.model_id, self._inputs(messages, options))
        text = extract_response_text(result)
        if text is None:
            raise ProviderError("No response text in Workers AI result", provider=self.name)
        usage = TokenUsage.from_payload(result.get("usage")) if isinstance(result, dict) else None
        return GenerationResult(
            content=text,
            usage=usage,
            model_id=self.model_id,
            finish_reason="stop",
            provider=self.name,
        )

    async def generate_stream(
        self, messages: List[Message], options: Optional[GenerationOptions] = None
    ) -> AsyncIterator[StreamFragment]:
        content = ""
        usage: Optional[TokenUsage] = None
        async for event in self.transport.stream(self.model_id, self._inputs(messages, options)):
            if event is SSE_DONE:
                break
            if not isinstance(event, dict):
                continue
            usage = TokenUsage.from_payload(event.get("usage")) or usage
            delta = event.get("response") or event.get("text") or ""
            if not delta:
                continue
            content += delta
            yield StreamFragment(content=content, delta=delta, done=False, usage=usage, provider=self.name)

        yield StreamFragment(content=content, delta="", done=True, usage=usage, provider=self.name)

    async def is_available(self) -> bool:
        return await self.transport.probe()

    async def aclose(self) -> None:
        await self.transport.aclose()
