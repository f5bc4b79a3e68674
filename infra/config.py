"""
Infrastructure configuration system.

Environment-based provider selection with documented defaults. Values are
read from the process environment after loading an optional ``.env`` file.
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv

from inference import BackendSettings, ConfigurationError
from inference.openrouter import DEFAULT_BASE_URL as OPENROUTER_BASE_URL
from inference.workers_ai import DEFAULT_BASE_URL as CLOUDFLARE_BASE_URL
from services.ocr import DEFAULT_BATCH_CONCURRENCY, DEFAULT_OCR_FALLBACK_MODEL, DEFAULT_OCR_MODEL

ProviderType = Literal["openrouter", "workers-ai", "stub"]

ENV_PATH = Path(__file__).resolve().parent.parent / ".env"


@dataclass(frozen=True)
class AIModelConfig:
    provider: ProviderType
    model: str
    max_tokens: int = 2048
    temperature: float = 0.1


@dataclass(frozen=True)
class AIProviderConfig:
    """Model profile for one deployment: primary, optional fallback and research models."""

    primary: AIModelConfig
    fallback: Optional[AIModelConfig] = None
    research: Optional[AIModelConfig] = None


DEFAULT_AI_CONFIG = AIProviderConfig(
    primary=AIModelConfig("openrouter", "google/gemini-flash-1.5", max_tokens=4096, temperature=0.1),
    fallback=AIModelConfig("openrouter", "openai/gpt-4o-mini", max_tokens=4096, temperature=0.1),
    research=AIModelConfig("openrouter", "anthropic/claude-3.5-haiku", max_tokens=4096, temperature=0.2),
)

WORKERS_AI_CONFIG = AIProviderConfig(
    primary=AIModelConfig("workers-ai", "@cf/google/gemma-2b-it", max_tokens=2048, temperature=0.1),
    fallback=AIModelConfig("workers-ai", "@cf/meta/llama-2-7b-chat-int8", max_tokens=2048, temperature=0.1),
)

PROFILES = {"openrouter": DEFAULT_AI_CONFIG, "workers-ai": WORKERS_AI_CONFIG}


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


@dataclass(frozen=True)
class AIConfig:
    """AI infrastructure configuration from environment."""

    # Provider / models
    provider: ProviderType
    model: str
    fallback_model: Optional[str]
    max_tokens: int
    temperature: float

    # Credentials and endpoints
    openrouter_api_key: Optional[str]
    openrouter_base_url: str
    cloudflare_account_id: Optional[str]
    cloudflare_api_token: Optional[str]
    cloudflare_base_url: str

    # Resilience
    max_retries: int = 3
    retry_delay_ms: int = 1000
    timeout_ms: int = 30000
    health_check_timeout_ms: int = 5000
    max_retry_after_ms: int = 60000

    # OCR
    ocr_model: str = DEFAULT_OCR_MODEL
    ocr_fallback_model: Optional[str] = DEFAULT_OCR_FALLBACK_MODEL
    ocr_batch_concurrency: int = DEFAULT_BATCH_CONCURRENCY

    # Ambient
    tracer_backend: str = "noop"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: Optional[Path] = ENV_PATH) -> "AIConfig":
        """
        Load configuration from environment variables.

        Unset model variables fall back to the profile of the selected
        provider (DEFAULT_AI_CONFIG for openrouter, WORKERS_AI_CONFIG for
        workers-ai). An empty AI_FALLBACK_MODEL / OCR_FALLBACK_MODEL
        disables that fallback.
        """
        if env_file is not None:
            load_dotenv(env_file, override=False)

        provider = os.getenv("AI_PROVIDER", "openrouter").strip().lower()
        if provider not in ("openrouter", "workers-ai", "stub"):
            raise ConfigurationError(f"Unsupported AI_PROVIDER: {provider}")
        profile = PROFILES.get(provider, DEFAULT_AI_CONFIG)

        fallback_model = os.getenv("AI_FALLBACK_MODEL")
        if fallback_model is None:
            fallback_model = profile.fallback.model if profile.fallback else None
        ocr_fallback = os.getenv("OCR_FALLBACK_MODEL", DEFAULT_OCR_FALLBACK_MODEL)

        return cls(
            provider=provider,  # type: ignore
            model=os.getenv("AI_MODEL") or profile.primary.model,
            fallback_model=fallback_model or None,
            max_tokens=_int_env("AI_MAX_TOKENS", profile.primary.max_tokens),
            temperature=_float_env("AI_TEMPERATURE", profile.primary.temperature),
            openrouter_api_key=os.getenv("OPENROUTER_API_KEY") or None,
            openrouter_base_url=os.getenv("OPENROUTER_BASE_URL", OPENROUTER_BASE_URL),
            cloudflare_account_id=os.getenv("CLOUDFLARE_ACCOUNT_ID") or None,
            cloudflare_api_token=os.getenv("CLOUDFLARE_API_TOKEN") or None,
            cloudflare_base_url=os.getenv("CLOUDFLARE_BASE_URL", CLOUDFLARE_BASE_URL),
            max_retries=_int_env("AI_MAX_RETRIES", 3),
            retry_delay_ms=_int_env("AI_RETRY_DELAY_MS", 1000),
            timeout_ms=_int_env("AI_TIMEOUT_MS", 30000),
            health_check_timeout_ms=_int_env("AI_HEALTH_CHECK_TIMEOUT_MS", 5000),
            max_retry_after_ms=_int_env("AI_MAX_RETRY_AFTER_MS", 60000),
            ocr_model=os.getenv("OCR_MODEL") or DEFAULT_OCR_MODEL,
            ocr_fallback_model=ocr_fallback or None,
            ocr_batch_concurrency=_int_env("OCR_BATCH_CONCURRENCY", DEFAULT_BATCH_CONCURRENCY),
            tracer_backend=os.getenv("TRACER_BACKEND", "noop").strip().lower(),
            log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
        )

    def backend_settings(self, model: str, provider: Optional[str] = None) -> BackendSettings:
        """BackendSettings for ``model`` on ``provider`` (defaults to the configured provider)."""
        provider = provider or self.provider
        if provider == "openrouter":
            return BackendSettings(
                provider=provider,
                model=model,
                api_key=self.openrouter_api_key,
                base_url=self.openrouter_base_url,
                timeout_ms=self.timeout_ms,
            )
        return BackendSettings(
            provider=provider,
            model=model,
            account_id=self.cloudflare_account_id,
            api_token=self.cloudflare_api_token,
            base_url=self.cloudflare_base_url,
            timeout_ms=self.timeout_ms,
        )


@lru_cache(maxsize=1)
def get_config() -> AIConfig:
    """Get global configuration (loaded once per process; ``get_config.cache_clear()`` in tests)."""
    return AIConfig.from_env()
