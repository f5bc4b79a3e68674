"""
HTTP surface for the AI service.

Serves:
- /health/live, /health/providers
- /ai/generate, /ai/stream (text/event-stream)
- /ocr, /ocr/batch, /ocr/metrics, /ocr/metrics/reset
- /finance/categorize, /finance/analyze-transaction

Typed errors map onto status codes: validation → 422, every backend
exhausted → 502.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse

from finance import ExpenseCategorization, FinancialAIService, FinancialAnalysis, Transaction
from inference import AIServiceError, ConfigurationError, ProvidersExhaustedError, ValidationError
from services.ai_service import AIService
from services.ocr import BatchItemResult, OCRMetrics, OCRResult

from .schemas import (
    CategorizeRequest,
    GenerateRequest,
    GenerateResponse,
    OCRBatchRequest,
    OCRRequest,
    fragment_payload,
)

logger = logging.getLogger(__name__)


def _service(request: Request) -> AIService:
    return request.app.state.ai_service


def _finance(request: Request) -> FinancialAIService:
    return request.app.state.finance


async def _sse(stream) -> AsyncIterator[str]:
    try:
        async for fragment in stream:
            yield f"data: {json.dumps(fragment_payload(fragment))}\n\n"
        yield "data: [DONE]\n\n"
    finally:
        await stream.aclose()


def create_app(ai_service: Optional[AIService] = None, finance: Optional[FinancialAIService] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        ai_service: Pre-built service (tests); when omitted the lifespan
                    bootstraps one from environment configuration.
        finance: Optional financial adapter; defaults to one over ai_service.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = False
        if getattr(app.state, "ai_service", None) is None:
            from infra import bootstrap_infrastructure

            app.state.ai_service = bootstrap_infrastructure().ai_service
            app.state.finance = FinancialAIService(app.state.ai_service)
            owned = True
        logger.info("AI service API starting up")
        yield
        logger.info("AI service API shutting down")
        if owned:
            await app.state.ai_service.aclose()

    app = FastAPI(
        title="Finance AI Core",
        description="Resilient AI invocation, OCR and financial analysis",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.ai_service = ai_service
    app.state.finance = finance or (FinancialAIService(ai_service) if ai_service is not None else None)

    # ─── Error mapping ────────────────────────────────────────────────────

    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError):
        return JSONResponse(
            status_code=422,
            content={"error": exc.message, "code": exc.code, "constraint": exc.constraint},
        )

    @app.exception_handler(ProvidersExhaustedError)
    async def exhausted_error(request: Request, exc: ProvidersExhaustedError):
        return JSONResponse(
            status_code=502,
            content={"error": str(exc), "code": exc.code, "provider": exc.provider, "attempts": exc.attempts},
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_error(request: Request, exc: ConfigurationError):
        logger.error(f"Configuration error: {exc}")
        return JSONResponse(status_code=500, content={"error": str(exc), "code": exc.code})

    @app.exception_handler(AIServiceError)
    async def ai_service_error(request: Request, exc: AIServiceError):
        return JSONResponse(status_code=502, content={"error": str(exc), "code": exc.code, "provider": exc.provider})

    # ─── Health ───────────────────────────────────────────────────────────

    @app.get("/health/live")
    async def health_live():
        """Liveness probe."""
        return {"status": "alive"}

    @app.get("/health/providers")
    async def health_providers(request: Request):
        """Per-backend availability; 503 when no backend is reachable."""
        statuses = await _service(request).get_providers_health()
        body = {"providers": {name: status.as_dict() for name, status in statuses.items()}}
        healthy = any(status.available for status in statuses.values())
        body["status"] = "healthy" if healthy else "unavailable"
        return JSONResponse(content=body, status_code=200 if healthy else 503)

    # ─── Generation ───────────────────────────────────────────────────────

    @app.post("/ai/generate", response_model=GenerateResponse)
    async def generate(body: GenerateRequest, request: Request):
        result = await _service(request).generate_text(body.to_messages(), body.to_options())
        return GenerateResponse.from_result(result)

    @app.post("/ai/stream")
    async def stream(body: GenerateRequest, request: Request):
        fragments = _service(request).generate_stream(body.to_messages(), body.to_options())
        return StreamingResponse(_sse(fragments), media_type="text/event-stream")

    # ─── OCR ──────────────────────────────────────────────────────────────

    @app.post("/ocr", response_model=OCRResult)
    async def ocr(body: OCRRequest, request: Request):
        try:
            data = body.decode()
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e
        options = body.options.to_options() if body.options else None
        return await _service(request).process_ocr(
            data, body.mime_type, options, file_id=body.file_id, file_name=body.file_name
        )

    @app.post("/ocr/batch", response_model=List[BatchItemResult])
    async def ocr_batch(body: OCRBatchRequest, request: Request):
        try:
            files = body.to_batch()
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e
        options = body.options.to_options() if body.options else None
        return await _service(request).batch_process_ocr(files, options)

    @app.get("/ocr/metrics", response_model=OCRMetrics)
    async def ocr_metrics(request: Request):
        return _service(request).get_ocr_metrics()

    @app.post("/ocr/metrics/reset")
    async def ocr_metrics_reset(request: Request):
        _service(request).reset_ocr_metrics()
        return {"status": "reset"}

    # ─── Finance ──────────────────────────────────────────────────────────

    @app.post("/finance/categorize", response_model=ExpenseCategorization)
    async def categorize(body: CategorizeRequest, request: Request):
        return await _finance(request).categorize_expense(
            body.description, body.amount, body.merchant, body.existing_categories
        )

    @app.post("/finance/analyze-transaction", response_model=FinancialAnalysis)
    async def analyze_transaction(body: Transaction, request: Request):
        return await _finance(request).analyze_transaction(body)

    return app
