"""
Application configuration via environment variables (12-factor).
Pydantic BaseSettings validates and coerces all values at startup.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # ------------------------------------------------------------------
    # Downstream stage services
    # ------------------------------------------------------------------
    parser_service_url:    str = "http://localhost:5001"
    embedding_service_url: str = "http://localhost:5002"

    http_timeout_seconds:  float = 30.0    # per HTTP request to a stage service
    stage_timeout_seconds: float = 120.0   # per Parse / Chunk / Embed call

    # ------------------------------------------------------------------
    # Pipeline orchestration
    # ------------------------------------------------------------------
    convergence_max_wait_seconds:      float = 60.0
    convergence_poll_interval_seconds: float = 2.0
    convergence_probe_timeout_seconds: float = 30.0   # per storage status request

    max_concurrent_pipelines: int = 8

    # None = keep workflow records for the process lifetime
    workflow_retention_seconds: float | None = None

    # ------------------------------------------------------------------
    # LLM providers
    # ------------------------------------------------------------------
    llm_providers_file:     str = "providers.json"   # JSON provider catalogue
    llm_default_provider:   str = ""
    llm_embedding_provider: str = ""
    llm_enable_fallback:    bool = True

    # None = an unavailable provider stays out of rotation until reset
    provider_recovery_seconds: float | None = None

    # Used only when no providers file exists (env-derived catalogue)
    openai_api_key:   str = ""
    llm_model:        str = "gpt-4o-mini"
    embedding_model:  str = "text-embedding-3-small"
    llm_temperature:  float = 0.0
    llm_max_tokens:   int = 2048

    azure_openai_api_key:     str = ""
    azure_openai_endpoint:    str = ""
    azure_openai_deployment:  str = "gpt-4o"
    azure_openai_api_version: str = "2024-08-01-preview"

    github_token:          str = ""
    github_models_endpoint: str = "https://models.inference.ai.azure.com"

    ollama_base_url: str = ""   # empty = no local provider
    aws_region:      str = "us-east-1"

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------
    app_env: str = "development"   # development | staging | production
    debug: bool = False

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
