"""
HTTP surface tests.

The app is built around an AIService assembled from stub backends, so the
lifespan never bootstraps real providers.
"""

import base64
import json

import pytest
from fastapi.testclient import TestClient

from api import create_app
from inference import (
    InvocationConfig,
    InvocationOrchestrator,
    ProviderError,
    StreamingStubModelBackend,
    StubModelBackend,
)
from services.ai_service import AIService
from services.ocr import OCRMetricsRegistry, OCRPipeline, StubOCRBackend

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 512
PNG_B64 = base64.b64encode(PNG).decode()
USER_MESSAGE = {"messages": [{"role": "user", "content": "hi"}]}


def build_service(primary=None, fallback=None, ocr_primary=None):
    orchestrator = InvocationOrchestrator(
        InvocationConfig(
            primary=primary or StreamingStubModelBackend("primary", script=["hello from stub"]),
            fallback=fallback,
            retry_attempts=0,
            retry_delay_ms=0,
        )
    )
    ocr = OCRPipeline(ocr_primary or StubOCRBackend(), metrics=OCRMetricsRegistry())
    return AIService(orchestrator, ocr)


@pytest.fixture
def make_client():
    clients = []

    def factory(**kwargs):
        client = TestClient(create_app(build_service(**kwargs)))
        client.__enter__()
        clients.append(client)
        return client

    yield factory
    for client in clients:
        client.__exit__(None, None, None)


def sse_payloads(text):
    events = [line[len("data: "):] for line in text.splitlines() if line.startswith("data: ")]
    assert events[-1] == "[DONE]"
    return [json.loads(event) for event in events[:-1]]


class TestHealthEndpoints:
    def test_live(self, make_client):
        response = make_client().get("/health/live")
        assert response.status_code == 200
        assert response.json() == {"status": "alive"}

    def test_providers_healthy(self, make_client):
        client = make_client(fallback=StubModelBackend("fallback", probe_error=RuntimeError("dns failure")))

        response = client.get("/health/providers")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["providers"]["primary"] == {"available": True}
        assert body["providers"]["fallback"]["available"] is False
        assert "dns failure" in body["providers"]["fallback"]["error"]

    def test_providers_all_down(self, make_client):
        client = make_client(primary=StubModelBackend("primary", available=False))

        response = client.get("/health/providers")

        assert response.status_code == 503
        assert response.json()["status"] == "unavailable"


class TestGenerateEndpoint:
    def test_generate(self, make_client):
        response = make_client().post("/ai/generate", json=USER_MESSAGE)

        assert response.status_code == 200
        body = response.json()
        assert body["content"] == "hello from stub"
        assert body["provider"] == "primary"
        assert body["finish_reason"] == "stop"

    def test_empty_messages_is_422(self, make_client):
        response = make_client().post("/ai/generate", json={"messages": []})

        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["constraint"] == "messages"

    def test_out_of_range_option_is_422(self, make_client):
        payload = dict(USER_MESSAGE, options={"temperature": 5})
        response = make_client().post("/ai/generate", json=payload)

        assert response.status_code == 422
        assert response.json()["constraint"] == "temperature"

    def test_all_providers_failed_is_502(self, make_client):
        client = make_client(
            primary=StubModelBackend("primary", script=[ProviderError("down")]),
            fallback=StubModelBackend("fallback", script=[ProviderError("also down")]),
        )

        response = client.post("/ai/generate", json=USER_MESSAGE)

        assert response.status_code == 502
        body = response.json()
        assert body["code"] == "ALL_PROVIDERS_FAILED"
        assert body["provider"] == "fallback"
        assert body["attempts"] == {"primary": 1, "fallback": 1}


class TestStreamEndpoint:
    def test_stream_events(self, make_client):
        response = make_client().post("/ai/stream", json=USER_MESSAGE)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        payloads = sse_payloads(response.text)
        assert [p["content"] for p in payloads] == ["hello", "hello from", "hello from stub", "hello from stub"]
        assert payloads[-1]["done"] is True
        assert "error" not in payloads[-1]

    def test_mid_stream_failure_reported_in_final_event(self, make_client):
        client = make_client(primary=StreamingStubModelBackend("primary", script=["a b c"], fail_after=1))

        payloads = sse_payloads(client.post("/ai/stream", json=USER_MESSAGE).text)

        assert payloads[-1]["done"] is True
        assert payloads[-1]["content"] == "a"
        assert payloads[-1]["error"]["code"] == "PROVIDER_ERROR"
        assert payloads[-1]["error"]["provider"] == "primary"


class TestOCREndpoints:
    def test_single_file(self, make_client):
        client = make_client(ocr_primary=StubOCRBackend(script=["Total 12.00"]))

        response = client.post("/ocr", json={"file_base64": PNG_B64, "mime_type": "image/png", "file_id": "r-1"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["text"] == "Total 12.00"
        assert body["fallback_used"] is False

    def test_invalid_base64_is_422(self, make_client):
        response = make_client().post("/ocr", json={"file_base64": "not base64!", "mime_type": "image/png"})
        assert response.status_code == 422

    def test_unsupported_type_is_failed_result(self, make_client):
        response = make_client().post("/ocr", json={"file_base64": PNG_B64, "mime_type": "image/tiff"})

        assert response.status_code == 200
        assert response.json()["error_code"] == "OCR_UNSUPPORTED_FORMAT"

    def test_batch(self, make_client):
        files = [{"file_base64": PNG_B64, "mime_type": "image/png"}, {"file_base64": PNG_B64, "mime_type": "text/csv"}]

        response = make_client().post("/ocr/batch", json={"files": files})

        assert response.status_code == 200
        body = response.json()
        assert [item["file_id"] for item in body] == ["file-1", "file-2"]
        assert [item["result"]["success"] for item in body] == [True, False]

    def test_metrics_and_reset(self, make_client):
        client = make_client()
        client.post("/ocr", json={"file_base64": PNG_B64, "mime_type": "image/png"})

        metrics = client.get("/ocr/metrics").json()
        assert metrics["total_attempts"] == 1
        assert metrics["successful_attempts"] == 1

        assert client.post("/ocr/metrics/reset").json() == {"status": "reset"}
        assert client.get("/ocr/metrics").json()["total_attempts"] == 0


class TestFinanceEndpoints:
    def test_categorize(self, make_client):
        client = make_client(primary=StubModelBackend("primary", script=['{"category": "Travel", "confidence": 0.9}']))

        response = client.post("/finance/categorize", json={"description": "Train ticket", "amount": 54.2})

        assert response.status_code == 200
        assert response.json() == {"category": "Travel", "subcategory": None, "confidence": 0.9}

    def test_categorize_fallback_on_prose(self, make_client):
        client = make_client(primary=StubModelBackend("primary"))

        response = client.post("/finance/categorize", json={"description": "Train ticket", "amount": 54.2})

        assert response.json()["category"] == "General Expense"

    def test_analyze_transaction(self, make_client):
        client = make_client(primary=StubModelBackend("primary", script=['{"analysis": "Balanced", "confidence": 0.9}']))
        transaction = {
            "id": "tx-9",
            "amount": 10.0,
            "description": "Stamps",
            "date": "2024-01-02",
            "account_id": "6100",
        }

        response = client.post("/finance/analyze-transaction", json=transaction)

        assert response.status_code == 200
        assert response.json()["analysis"] == "Balanced"
