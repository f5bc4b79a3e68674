"""
Infrastructure initialization and bootstrap.

Builds the AIService (orchestrator + OCR pipeline) from configuration and
owns the process-wide OCR metrics registry.
"""

import logging
from typing import Any, Optional, Tuple

from inference import (
    ConfigurationError,
    InvocationConfig,
    InvocationOrchestrator,
    ModelBackend,
    create_backend,
)
from services.ai_service import AIService
from services.ocr import OCRBackend, OCRMetricsRegistry, OCRPipeline, StubOCRBackend, WorkersAIOCRBackend
from tracing import Tracer, create_tracer

from .config import WORKERS_AI_CONFIG, AIConfig, get_config

logger = logging.getLogger(__name__)


class InfraBootstrap:
    """
    Bootstrap infrastructure based on configuration.

    Singleton pattern - single instance per process.
    """

    _instance: Optional["InfraBootstrap"] = None

    def __init__(self, config: Optional[AIConfig] = None, binding: Optional[Any] = None):
        self.config = config or get_config()
        self.metrics = OCRMetricsRegistry()
        self.tracer = create_tracer(self.config.tracer_backend)
        self.ai_service = create_ai_service(self.config, binding=binding, tracer=self.tracer, metrics=self.metrics)

    @classmethod
    def get_instance(cls, config: Optional[AIConfig] = None, binding: Optional[Any] = None) -> "InfraBootstrap":
        """
        Get singleton instance.

        Args:
            config: Optional custom configuration (only used first time)
            binding: Optional native AI binding (only used first time)
        """
        if cls._instance is None:
            cls._instance = cls(config, binding)
        return cls._instance

    @classmethod
    def reset(cls):
        """Reset singleton (for testing)."""
        cls._instance = None

    def __repr__(self) -> str:
        return (
            f"InfraBootstrap(provider={self.config.provider}, model={self.config.model}, "
            f"fallback={self.config.fallback_model or 'none'}, ocr={self.config.ocr_model})"
        )


def _primary_backend(config: AIConfig, binding: Optional[Any]) -> ModelBackend:
    if config.provider == "openrouter" and not config.openrouter_api_key:
        model = WORKERS_AI_CONFIG.primary.model
        logger.warning(f"OPENROUTER_API_KEY not set; using Workers AI model {model} as primary")
        return create_backend(config.backend_settings(model, "workers-ai"), binding=binding)
    return create_backend(config.backend_settings(config.model), binding=binding)


def _fallback_backend(config: AIConfig, binding: Optional[Any]) -> Optional[ModelBackend]:
    if not config.fallback_model:
        return None
    if config.provider == "openrouter" and not config.openrouter_api_key:
        # the OpenRouter fallback cannot be built without a key either
        return None
    try:
        return create_backend(config.backend_settings(config.fallback_model), binding=binding)
    except ConfigurationError as e:
        logger.warning(f"Fallback backend {config.fallback_model} not available: {e}")
        return None


def _ocr_backends(config: AIConfig, binding: Optional[Any]) -> Tuple[OCRBackend, Optional[OCRBackend]]:
    if config.provider == "stub":
        return StubOCRBackend(name=f"stub:{config.ocr_model}"), None

    ocr_kwargs = dict(
        account_id=config.cloudflare_account_id,
        api_token=config.cloudflare_api_token,
        base_url=config.cloudflare_base_url,
        binding=binding,
    )
    fallback = None
    if config.ocr_fallback_model and config.ocr_fallback_model != config.ocr_model:
        fallback = WorkersAIOCRBackend(model=config.ocr_fallback_model, **ocr_kwargs)
    return WorkersAIOCRBackend(model=config.ocr_model, **ocr_kwargs), fallback


def create_ai_service(
    config: Optional[AIConfig] = None,
    binding: Optional[Any] = None,
    tracer: Optional[Tracer] = None,
    metrics: Optional[OCRMetricsRegistry] = None,
) -> AIService:
    """
    Build the AIService described by ``config``.

    Without an OpenRouter key the primary switches to Workers AI and the
    OpenRouter fallback is dropped. With the stub provider OCR runs offline
    on StubOCRBackend and has no fallback.
    """
    config = config or get_config()
    tracer = tracer or create_tracer(config.tracer_backend)

    primary = _primary_backend(config, binding)
    fallback = _fallback_backend(config, binding)
    orchestrator = InvocationOrchestrator(
        InvocationConfig(
            primary=primary,
            fallback=fallback,
            retry_attempts=config.max_retries,
            retry_delay_ms=config.retry_delay_ms,
            timeout_ms=config.timeout_ms,
            health_check_timeout_ms=config.health_check_timeout_ms,
            max_retry_after_ms=config.max_retry_after_ms,
        ),
        tracer=tracer,
    )

    ocr_primary, ocr_fallback = _ocr_backends(config, binding)
    ocr = OCRPipeline(
        primary=ocr_primary,
        fallback=ocr_fallback,
        metrics=metrics or OCRMetricsRegistry(),
        tracer=tracer,
        batch_concurrency=config.ocr_batch_concurrency,
    )

    logger.info(
        f"AI service ready: primary={primary.name}, fallback={fallback.name if fallback else 'none'}, "
        f"ocr={config.ocr_model}"
    )
    return AIService(orchestrator, ocr)


def bootstrap_infrastructure(config: Optional[AIConfig] = None, binding: Optional[Any] = None) -> InfraBootstrap:
    """Bootstrap the process-wide infrastructure singleton."""
    return InfraBootstrap.get_instance(config, binding)
