"""
Infrastructure module exports.

Configuration and bootstrap for the AI service.
"""

from .config import (
    DEFAULT_AI_CONFIG,
    WORKERS_AI_CONFIG,
    AIConfig,
    AIModelConfig,
    AIProviderConfig,
    ProviderType,
    get_config,
)
from .bootstrap import InfraBootstrap, bootstrap_infrastructure, create_ai_service

__all__ = [
    "DEFAULT_AI_CONFIG",
    "WORKERS_AI_CONFIG",
    "AIConfig",
    "AIModelConfig",
    "AIProviderConfig",
    "ProviderType",
    "get_config",
    "InfraBootstrap",
    "bootstrap_infrastructure",
    "create_ai_service",
]
