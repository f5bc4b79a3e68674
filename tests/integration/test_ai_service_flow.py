"""
End-to-end flow through the real adapters.

OpenRouter is served by httpx.MockTransport and Workers AI by an in-process
binding double, so the whole stack runs without network access:
orchestrator → adapters → error mapping → failover → finance / OCR layers.
"""

import json

import httpx
import pytest

from finance import FinancialAIService
from inference import (
    InvocationConfig,
    InvocationOrchestrator,
    Message,
    OpenRouterBackend,
    ProvidersExhaustedError,
    QuotaExceededError,
    WorkersAIBackend,
)
from infra import AIConfig, create_ai_service
from services.ai_service import AIService
from services.ocr import DEFAULT_OCR_MODEL, OCRMetricsRegistry, OCRPipeline, WorkersAIOCRBackend

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 256
MESSAGES = [Message("user", "Categorize: team lunch")]


class RoutingBinding:
    """Workers AI binding double answering per model id."""

    def __init__(self, responses):
        self.responses = responses
        self.runs = []

    async def run(self, model, inputs):
        self.runs.append((model, inputs))
        response = self.responses[model]
        if isinstance(response, Exception):
            raise response
        return response


def openrouter(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OpenRouterBackend(api_key="sk-test", model_id="google/gemini-flash-1.5", client=client)


class TestFailoverAcrossProviders:
    @pytest.mark.asyncio
    async def test_openrouter_quota_fails_over_to_workers_ai(self, recording_sleep):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            return httpx.Response(402, text="Insufficient credits")

        binding = RoutingBinding({"@cf/google/gemma-2b-it": {"response": '{"category": "Meals"}'}})
        orchestrator = InvocationOrchestrator(
            InvocationConfig(
                primary=openrouter(handler),
                fallback=WorkersAIBackend("@cf/google/gemma-2b-it", binding=binding),
                retry_attempts=2,
                retry_delay_ms=10,
            ),
            sleep=recording_sleep,
        )

        result = await orchestrator.generate_text(MESSAGES)

        assert result.provider == "workers-ai:@cf/google/gemma-2b-it"
        assert json.loads(result.content) == {"category": "Meals"}
        # quota is never retried on the same backend
        assert len(calls) == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_rate_limited_primary_honors_retry_after(self, recording_sleep):
        responses = [
            httpx.Response(429, headers={"Retry-After": "3"}),
            httpx.Response(
                200, json={"model": "m", "choices": [{"message": {"content": "ok"}, "finish_reason": "stop"}]}
            ),
        ]
        orchestrator = InvocationOrchestrator(
            InvocationConfig(primary=openrouter(lambda request: responses.pop(0)), retry_delay_ms=100),
            sleep=recording_sleep,
        )

        result = await orchestrator.generate_text(MESSAGES)

        assert result.content == "ok"
        assert recording_sleep.delays == [3.0]

    @pytest.mark.asyncio
    async def test_both_providers_exhausted(self, recording_sleep):
        binding = RoutingBinding({"@cf/google/gemma-2b-it": RuntimeError("Capacity allocation exceeded")})
        orchestrator = InvocationOrchestrator(
            InvocationConfig(
                primary=openrouter(lambda request: httpx.Response(500, text="boom")),
                fallback=WorkersAIBackend("@cf/google/gemma-2b-it", binding=binding),
                retry_attempts=1,
                retry_delay_ms=10,
            ),
            sleep=recording_sleep,
        )

        with pytest.raises(ProvidersExhaustedError) as excinfo:
            await orchestrator.generate_text(MESSAGES)

        assert excinfo.value.provider == "workers-ai:@cf/google/gemma-2b-it"
        assert isinstance(excinfo.value.cause, QuotaExceededError)
        assert excinfo.value.attempts == {
            "openrouter:google/gemini-flash-1.5": 2,
            "workers-ai:@cf/google/gemma-2b-it": 1,
        }


class TestConfiguredService:
    @pytest.fixture
    def workers_ai_env(self, monkeypatch):
        for name in ("OPENROUTER_API_KEY", "AI_MODEL", "AI_FALLBACK_MODEL", "OCR_MODEL", "OCR_FALLBACK_MODEL"):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("AI_PROVIDER", "workers-ai")
        monkeypatch.setenv("AI_RETRY_DELAY_MS", "0")
        return monkeypatch

    @pytest.mark.asyncio
    async def test_text_ocr_and_finance_through_binding(self, workers_ai_env):
        binding = RoutingBinding(
            {
                "@cf/google/gemma-2b-it": {"response": '{"category": "Meals", "confidence": 0.9}'},
                DEFAULT_OCR_MODEL: {"description": "LUNCH CAFE\n  Total   24.00 "},
            }
        )
        service = create_ai_service(AIConfig.from_env(env_file=None), binding=binding)

        categorization = await FinancialAIService(service).categorize_expense("Team lunch", 24.0)
        ocr = await service.process_ocr(PNG, "image/png", file_id="receipt-1")
        health = await service.get_providers_health()

        assert categorization.category == "Meals"
        assert ocr.success is True
        assert ocr.text == "LUNCH CAFE\nTotal 24.00"
        ocr_inputs = [inputs for model, inputs in binding.runs if model == DEFAULT_OCR_MODEL][0]
        assert ocr_inputs["image"] == list(PNG)
        assert all(status.available for status in health.values())
        assert service.get_ocr_metrics().successful_attempts == 1

        await service.aclose()


class TestStubProvider:
    @pytest.mark.asyncio
    async def test_offline_service_needs_no_credentials(self, monkeypatch):
        for name in ("OPENROUTER_API_KEY", "CLOUDFLARE_ACCOUNT_ID", "CLOUDFLARE_API_TOKEN", "OCR_MODEL", "OCR_FALLBACK_MODEL"):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("AI_PROVIDER", "stub")
        monkeypatch.setenv("AI_RETRY_DELAY_MS", "0")

        service = create_ai_service(AIConfig.from_env(env_file=None))
        generated = await service.generate_text(MESSAGES)
        ocr = await service.process_ocr(PNG, "image/png", file_id="receipt-2")

        assert generated.content
        assert ocr.success is True
        assert ocr.fallback_used is False
        assert "receipt-2" in ocr.text
        assert service.ocr.fallback is None
        assert service.ocr.primary.name == f"stub:{DEFAULT_OCR_MODEL}"

        await service.aclose()


class TestOCRFallbackModel:
    @pytest.mark.asyncio
    async def test_primary_vision_model_quota_uses_fallback_model(self, recording_sleep):
        binding = RoutingBinding(
            {
                "@cf/primary-vision": RuntimeError("daily quota reached"),
                "@cf/fallback-vision": {"text": "INVOICE 7", "confidence": 0.8},
            }
        )
        pipeline = OCRPipeline(
            WorkersAIOCRBackend("@cf/primary-vision", binding=binding),
            WorkersAIOCRBackend("@cf/fallback-vision", binding=binding),
            metrics=OCRMetricsRegistry(),
            sleep=recording_sleep,
        )
        service = AIService(
            InvocationOrchestrator(InvocationConfig(primary=WorkersAIBackend("@cf/x", binding=binding))), pipeline
        )

        result = await service.process_ocr(PNG, "image/png")

        assert result.success is True
        assert result.text == "INVOICE 7"
        assert result.fallback_used is True
        assert [model for model, _ in binding.runs] == ["@cf/primary-vision", "@cf/fallback-vision"]
        assert service.get_ocr_metrics().fallback_usage_count == 1
