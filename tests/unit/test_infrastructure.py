"""
Configuration and bootstrap tests.

Environment is controlled with monkeypatch; no .env file is read.
"""

import pytest

from inference import (
    BackendSettings,
    ConfigurationError,
    OpenRouterBackend,
    StubModelBackend,
    WorkersAIBackend,
    create_backend,
)
from infra import AIConfig, InfraBootstrap, create_ai_service
from services.ocr import DEFAULT_OCR_FALLBACK_MODEL, DEFAULT_OCR_MODEL
from tracing import LoggingTracer, NoOpTracer

ENV_VARS = [
    "AI_PROVIDER",
    "AI_MODEL",
    "AI_FALLBACK_MODEL",
    "AI_MAX_TOKENS",
    "AI_TEMPERATURE",
    "OPENROUTER_API_KEY",
    "OPENROUTER_BASE_URL",
    "CLOUDFLARE_ACCOUNT_ID",
    "CLOUDFLARE_API_TOKEN",
    "CLOUDFLARE_BASE_URL",
    "AI_MAX_RETRIES",
    "AI_RETRY_DELAY_MS",
    "AI_TIMEOUT_MS",
    "AI_HEALTH_CHECK_TIMEOUT_MS",
    "AI_MAX_RETRY_AFTER_MS",
    "OCR_MODEL",
    "OCR_FALLBACK_MODEL",
    "OCR_BATCH_CONCURRENCY",
    "TRACER_BACKEND",
    "LOG_LEVEL",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture(autouse=True)
def reset_singleton():
    InfraBootstrap.reset()
    yield
    InfraBootstrap.reset()


class TestAIConfig:
    def test_defaults(self, clean_env):
        config = AIConfig.from_env(env_file=None)

        assert config.provider == "openrouter"
        assert config.model == "google/gemini-flash-1.5"
        assert config.fallback_model == "openai/gpt-4o-mini"
        assert config.max_retries == 3
        assert config.retry_delay_ms == 1000
        assert config.timeout_ms == 30000
        assert config.health_check_timeout_ms == 5000
        assert config.max_retry_after_ms == 60000
        assert config.ocr_model == DEFAULT_OCR_MODEL
        assert config.ocr_fallback_model == DEFAULT_OCR_FALLBACK_MODEL
        assert config.tracer_backend == "noop"

    def test_overrides(self, clean_env):
        clean_env.setenv("AI_PROVIDER", "workers-ai")
        clean_env.setenv("AI_MAX_RETRIES", "1")
        clean_env.setenv("AI_TIMEOUT_MS", "2500")
        clean_env.setenv("CLOUDFLARE_ACCOUNT_ID", "acct")
        clean_env.setenv("CLOUDFLARE_API_TOKEN", "token")

        config = AIConfig.from_env(env_file=None)

        assert config.provider == "workers-ai"
        assert config.model == "@cf/google/gemma-2b-it"
        assert config.fallback_model == "@cf/meta/llama-2-7b-chat-int8"
        assert config.max_retries == 1
        assert config.timeout_ms == 2500

    def test_empty_fallback_disables_it(self, clean_env):
        clean_env.setenv("AI_FALLBACK_MODEL", "")
        clean_env.setenv("OCR_FALLBACK_MODEL", "")

        config = AIConfig.from_env(env_file=None)

        assert config.fallback_model is None
        assert config.ocr_fallback_model is None

    def test_bad_integer_is_configuration_error(self, clean_env):
        clean_env.setenv("AI_MAX_RETRIES", "three")

        with pytest.raises(ConfigurationError):
            AIConfig.from_env(env_file=None)

    def test_unknown_provider_rejected(self, clean_env):
        clean_env.setenv("AI_PROVIDER", "mystery")

        with pytest.raises(ConfigurationError):
            AIConfig.from_env(env_file=None)

    def test_env_file_does_not_override_process_env(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("AI_MODEL=from-file\nAI_TIMEOUT_MS=1234\n")
        clean_env.setenv("AI_MODEL", "from-env")
        # register AI_TIMEOUT_MS with monkeypatch so the value loaded from the file is removed afterwards
        clean_env.setenv("AI_TIMEOUT_MS", "0")
        clean_env.delenv("AI_TIMEOUT_MS")

        config = AIConfig.from_env(env_file=env_file)

        assert config.model == "from-env"
        assert config.timeout_ms == 1234


class TestCreateBackend:
    def test_openrouter_requires_key(self):
        with pytest.raises(ConfigurationError):
            create_backend(BackendSettings(provider="openrouter", model="m"))

    def test_openrouter(self):
        backend = create_backend(BackendSettings(provider="openrouter", model="m", api_key="k", timeout_ms=1500))
        assert isinstance(backend, OpenRouterBackend)
        assert backend.name == "openrouter:m"
        assert backend.timeout_s == 1.5

    def test_workers_ai(self):
        backend = create_backend(BackendSettings(provider="workers-ai", model="@cf/x", account_id="a", api_token="t"))
        assert isinstance(backend, WorkersAIBackend)

    def test_stub(self):
        backend = create_backend(BackendSettings(provider="stub", model="demo"))
        assert isinstance(backend, StubModelBackend)
        assert backend.name == "stub:demo"

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError):
            create_backend(BackendSettings(provider="nope", model="m"))


class TestCreateAIService:
    def test_openrouter_with_key(self, clean_env):
        clean_env.setenv("OPENROUTER_API_KEY", "sk-test")
        service = create_ai_service(AIConfig.from_env(env_file=None))

        config = service.orchestrator.config
        assert isinstance(config.primary, OpenRouterBackend)
        assert isinstance(config.fallback, OpenRouterBackend)
        assert config.primary.model_id == "google/gemini-flash-1.5"
        assert config.fallback.model_id == "openai/gpt-4o-mini"
        assert config.retry_attempts == 3
        assert config.retry_policy.max_retry_after_ms == 60000

    def test_missing_key_switches_primary_to_workers_ai(self, clean_env):
        service = create_ai_service(AIConfig.from_env(env_file=None))

        config = service.orchestrator.config
        assert isinstance(config.primary, WorkersAIBackend)
        assert config.primary.model_id == "@cf/google/gemma-2b-it"
        assert config.fallback is None

    def test_stub_provider(self, clean_env):
        clean_env.setenv("AI_PROVIDER", "stub")
        clean_env.setenv("AI_MODEL", "demo")
        clean_env.setenv("AI_FALLBACK_MODEL", "backup")

        service = create_ai_service(AIConfig.from_env(env_file=None))

        assert service.orchestrator.backend_names == ["stub:demo", "stub:backup"]

    def test_ocr_pipeline_models(self, clean_env):
        service = create_ai_service(AIConfig.from_env(env_file=None))

        assert service.ocr.primary.model == DEFAULT_OCR_MODEL
        assert service.ocr.fallback.model == DEFAULT_OCR_FALLBACK_MODEL

    def test_identical_ocr_fallback_is_dropped(self, clean_env):
        clean_env.setenv("OCR_FALLBACK_MODEL", DEFAULT_OCR_MODEL)

        service = create_ai_service(AIConfig.from_env(env_file=None))

        assert service.ocr.fallback is None

    def test_tracer_selected_from_config(self, clean_env):
        clean_env.setenv("AI_PROVIDER", "stub")
        clean_env.setenv("TRACER_BACKEND", "logging")

        service = create_ai_service(AIConfig.from_env(env_file=None))

        assert isinstance(service.orchestrator.tracer, LoggingTracer)


class TestInfraBootstrap:
    def test_singleton(self, clean_env):
        clean_env.setenv("AI_PROVIDER", "stub")
        config = AIConfig.from_env(env_file=None)

        first = InfraBootstrap.get_instance(config)
        second = InfraBootstrap.get_instance()

        assert first is second
        assert isinstance(first.tracer, NoOpTracer)
        assert first.ai_service.ocr.metrics is first.metrics
        assert "provider=stub" in repr(first)

    def test_reset(self, clean_env):
        clean_env.setenv("AI_PROVIDER", "stub")
        config = AIConfig.from_env(env_file=None)

        first = InfraBootstrap.get_instance(config)
        InfraBootstrap.reset()

        assert InfraBootstrap.get_instance(config) is not first
