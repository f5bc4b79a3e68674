"""
Backend construction from configuration data.

The set of providers is closed; selection is a lookup on ``provider``,
not a class hierarchy walk.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from .base import ModelBackend
from .errors import ConfigurationError
from .openrouter import DEFAULT_BASE_URL as OPENROUTER_BASE_URL
from .openrouter import OpenRouterBackend
from .stub import StubModelBackend
from .workers_ai import DEFAULT_BASE_URL as WORKERS_AI_BASE_URL
from .workers_ai import WorkersAIBackend

logger = logging.getLogger(__name__)

PROVIDERS = ("openrouter", "workers-ai", "stub")


@dataclass(frozen=True)
class BackendSettings:
    """Everything needed to build one backend."""

    provider: str
    model: str
    api_key: Optional[str] = None        # OpenRouter
    account_id: Optional[str] = None     # Workers AI REST
    api_token: Optional[str] = None      # Workers AI REST
    base_url: Optional[str] = None
    timeout_ms: int = 30000
    name: Optional[str] = None


def create_backend(
    settings: BackendSettings,
    binding: Optional[Any] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> ModelBackend:
    """
    Build the backend described by ``settings``.

    Raises:
        ConfigurationError: unknown provider, or OpenRouter without an API key
    """
    timeout_s = settings.timeout_ms / 1000.0
    if settings.provider == "openrouter":
        if not settings.api_key:
            raise ConfigurationError("OpenRouter API key is required", provider="openrouter")
        return OpenRouterBackend(
            api_key=settings.api_key,
            model_id=settings.model,
            base_url=settings.base_url or OPENROUTER_BASE_URL,
            name=settings.name,
            timeout_s=timeout_s,
            client=client,
        )
    if settings.provider == "workers-ai":
        return WorkersAIBackend(
            model_id=settings.model,
            account_id=settings.account_id,
            api_token=settings.api_token,
            base_url=settings.base_url or WORKERS_AI_BASE_URL,
            binding=binding,
            name=settings.name,
            timeout_s=timeout_s,
            client=client,
        )
    if settings.provider == "stub":
        return StubModelBackend(name=settings.name or f"stub:{settings.model}")
    raise ConfigurationError(f"Unsupported AI provider: {settings.provider}")
