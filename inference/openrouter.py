"""
OpenRouter backend (remote HTTP API).

Speaks the OpenAI-compatible chat completions protocol exposed by
https://openrouter.ai/api/v1:

  POST {base_url}/chat/completions   generation (JSON, or SSE when stream=true)
  GET  {base_url}/models             availability probe

Error mapping lives in http_errors so every HTTP backend signals
rate-limit vs. hard-quota vs. generic failure the same way.
"""

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from .base import StreamingModelBackend
from .errors import ProviderError
from .http_errors import raise_for_status, transport_error
from .streaming import SSE_DONE, iter_sse_payloads
from .types import (
    GenerationOptions,
    GenerationResult,
    Message,
    StreamFragment,
    TokenUsage,
    normalize_finish_reason,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MAX_TOKENS = 2048
DEFAULT_TEMPERATURE = 0.1


def build_chat_payload(
    model_id: str,
    messages: List[Message],
    options: Optional[GenerationOptions],
    stream: bool,
) -> Dict[str, Any]:
    """OpenAI-style request body; unset sampling options are omitted."""
    options = options or GenerationOptions()
    payload: Dict[str, Any] = {
        "model": model_id,
        "messages": [{"role": m.role, "content": m.content} for m in messages],
        "max_tokens": options.max_tokens if options.max_tokens is not None else DEFAULT_MAX_TOKENS,
        "temperature": options.temperature if options.temperature is not None else DEFAULT_TEMPERATURE,
        "stream": stream,
    }
    if options.top_p is not None:
        payload["top_p"] = options.top_p
    if options.presence_penalty is not None:
        payload["presence_penalty"] = options.presence_penalty
    if options.frequency_penalty is not None:
        payload["frequency_penalty"] = options.frequency_penalty
    if options.stop_sequences:
        payload["stop"] = sorted(options.stop_sequences)
    return payload


class OpenRouterBackend(StreamingModelBackend):
    """
    OpenRouter chat completions backend.

    Holds one httpx.AsyncClient for its lifetime (created lazily unless
    injected). Exactly one HTTP call per invocation; retries belong to the
    orchestrator.
    """

    def __init__(
        self,
        api_key: str,
        model_id: str,
        base_url: str = DEFAULT_BASE_URL,
        name: Optional[str] = None,
        timeout_s: float = 30.0,
        probe_timeout_s: float = 5.0,
        app_url: str = "https://finance-manager.local",
        app_title: str = "Finance Manager",
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize OpenRouter backend.

        Args:
            api_key:         OpenRouter API key (never logged)
            model_id:        Model slug, e.g. "google/gemini-flash-1.5"
            base_url:        API root
            name:            Backend identity used in errors and health output
            timeout_s:       HTTP timeout for a single request
            probe_timeout_s: HTTP timeout for the availability probe
            client:          Optional pre-built client (tests inject MockTransport)
        """
        self.api_key = api_key
        self.model_id = model_id
        self.base_url = base_url.rstrip("/")
        self.name = name or f"openrouter:{model_id}"
        self.timeout_s = timeout_s
        self.probe_timeout_s = probe_timeout_s
        self.app_url = app_url
        self.app_title = app_title
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
        return self._client

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            "HTTP-Referer": self.app_url,
            "X-Title": self.app_title,
        }

    async def generate_text(
        self, messages: List[Message], options: Optional[GenerationOptions] = None
    ) -> GenerationResult:
        payload = build_chat_payload(self.model_id, messages, options, stream=False)
        try:
            response = await self._get_client().post(
                f"{self.base_url}/chat/completions", json=payload, headers=self._headers()
            )
        except httpx.HTTPError as e:
            raise transport_error(e, self.name) from e

        await raise_for_status(response, self.name, self.model_id)
        return self._parse_completion(response)

    def _parse_completion(self, response: httpx.Response) -> GenerationResult:
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError("Malformed JSON in completion response", provider=self.name) from e

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise ProviderError("No completion choices in response", provider=self.name)

        choice = choices[0] or {}
        message = choice.get("message") or {}
        return GenerationResult(
            content=message.get("content") or "",
            usage=TokenUsage.from_payload(data.get("usage")),
            model_id=data.get("model"),
            finish_reason=normalize_finish_reason(choice.get("finish_reason")),
            provider=self.name,
        )

    async def generate_stream(
        self, messages: List[Message], options: Optional[GenerationOptions] = None
    ) -> AsyncIterator[StreamFragment]:
        payload = build_chat_payload(self.model_id, messages, options, stream=True)
        content = ""
        usage: Optional[TokenUsage] = None
        try:
            async with self._get_client().stream(
                "POST", f"{self.base_url}/chat/completions", json=payload, headers=self._headers()
            ) as response:
                await raise_for_status(response, self.name, self.model_id)
                async for event in iter_sse_payloads(response.aiter_lines()):
                    if event is SSE_DONE:
                        break
                    if not isinstance(event, dict):
                        continue
                    usage = TokenUsage.from_payload(event.get("usage")) or usage
                    choices = event.get("choices") or [{}]
                    delta = ((choices[0] or {}).get("delta") or {}).get("content") or ""
                    if not delta:
                        continue
                    content += delta
                    yield StreamFragment(
                        content=content, delta=delta, done=False, usage=usage, provider=self.name
                    )
        except httpx.HTTPError as e:
            raise transport_error(e, self.name) from e

        yield StreamFragment(content=content, delta="", done=True, usage=usage, provider=self.name)

    async def is_available(self) -> bool:
        try:
            response = await self._get_client().get(
                f"{self.base_url}/models",
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.probe_timeout_s,
            )
            return response.is_success
        except Exception as e:
            logger.debug(f"Availability probe failed for {self.name}: {type(e).__name__}")
            return False

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
