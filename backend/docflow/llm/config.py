"""
Provider catalogue — the static, load-once description of every backend.

Loaded at startup from a JSON file (settings.llm_providers_file):

    {
      "default_provider_name":   "openai",
      "embedding_provider_name": "openai",
      "enable_fallback": true,
      "providers": [
        {
          "name": "openai", "kind": "openai", "priority": 10, "enabled": true,
          "capabilities":   {"chat": true, "embedding": true},
          "default_models": {"chat": "gpt-4o-mini", "embedding": "text-embedding-3-small"},
          "api_key": "sk-..."
        }
      ]
    }

When the file does not exist the catalogue is derived from environment
keys instead (one entry per configured credential). The catalogue is not
hot-reloaded.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from docflow.core.config import Settings

logger = logging.getLogger(__name__)


class ProviderCapabilities(BaseModel):
    model_config = ConfigDict(frozen=True)

    chat:      bool = True
    embedding: bool = False


class DefaultModels(BaseModel):
    model_config = ConfigDict(frozen=True)

    chat:      str = ""
    embedding: str = ""


class ProviderConfig(BaseModel):
    """
    Static configuration for one provider. Immutable after load.

    kind:      backend family, used to look up the provider builder
    priority:  higher = more preferred during fallback selection
    enabled:   disabled entries never get a ProviderHandle
    """
    model_config = ConfigDict(frozen=True)

    name:            str
    kind:            str
    priority:        int                  = 0
    enabled:         bool                 = True
    capabilities:    ProviderCapabilities = Field(default_factory=ProviderCapabilities)
    default_models:  DefaultModels        = Field(default_factory=DefaultModels)
    api_key:         str                  = Field("", repr=False)
    endpoint:        str | None           = None
    timeout_seconds: float                = Field(30.0, gt=0)

    @field_validator("name", "kind")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class ProvidersConfiguration(BaseModel):
    model_config = ConfigDict(frozen=True)

    providers:               list[ProviderConfig] = Field(default_factory=list)
    default_provider_name:   str  = ""
    embedding_provider_name: str  = ""
    enable_fallback:         bool = True

    @model_validator(mode="after")
    def _unique_names(self) -> "ProvidersConfiguration":
        seen: set[str] = set()
        for provider in self.providers:
            if provider.name in seen:
                raise ValueError(f"Duplicate provider name: {provider.name!r}")
            seen.add(provider.name)
        return self


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def load_providers_config(settings: Settings) -> ProvidersConfiguration:
    """
    Read the provider catalogue from settings.llm_providers_file, falling
    back to an environment-derived catalogue when the file is absent.
    Explicit LLM_DEFAULT_PROVIDER / LLM_EMBEDDING_PROVIDER override the file.
    """
    path = Path(settings.llm_providers_file)
    if path.is_file():
        config = ProvidersConfiguration.model_validate(json.loads(path.read_text("utf-8")))
        logger.info("Provider catalogue loaded | file=%s providers=%d", path, len(config.providers))
    else:
        config = config_from_settings(settings)
        logger.info(
            "Provider catalogue built from environment | providers=%d",
            len(config.providers),
        )

    overrides: dict = {}
    if settings.llm_default_provider:
        overrides["default_provider_name"] = settings.llm_default_provider
    if settings.llm_embedding_provider:
        overrides["embedding_provider_name"] = settings.llm_embedding_provider
    if not settings.llm_enable_fallback:
        overrides["enable_fallback"] = False
    return config.model_copy(update=overrides) if overrides else config


def config_from_settings(settings: Settings) -> ProvidersConfiguration:
    """One provider per configured credential, highest priority first."""
    providers: list[ProviderConfig] = []

    if settings.openai_api_key:
        providers.append(ProviderConfig(
            name           = "openai",
            kind           = "openai",
            priority       = 10,
            capabilities   = ProviderCapabilities(chat=True, embedding=True),
            default_models = DefaultModels(chat=settings.llm_model, embedding=settings.embedding_model),
            api_key        = settings.openai_api_key,
        ))

    if settings.azure_openai_api_key and settings.azure_openai_endpoint:
        providers.append(ProviderConfig(
            name           = "azure_openai",
            kind           = "azure_openai",
            priority       = 8,
            capabilities   = ProviderCapabilities(chat=True, embedding=True),
            default_models = DefaultModels(
                chat=settings.azure_openai_deployment,
                embedding=settings.embedding_model,
            ),
            api_key        = settings.azure_openai_api_key,
            endpoint       = settings.azure_openai_endpoint,
        ))

    if settings.github_token:
        providers.append(ProviderConfig(
            name           = "github_models",
            kind           = "github_models",
            priority       = 5,
            capabilities   = ProviderCapabilities(chat=True, embedding=True),
            default_models = DefaultModels(chat="gpt-4o-mini", embedding=settings.embedding_model),
            api_key        = settings.github_token,
            endpoint       = settings.github_models_endpoint,
        ))

    if settings.ollama_base_url:
        providers.append(ProviderConfig(
            name           = "ollama",
            kind           = "ollama",
            priority       = 1,
            capabilities   = ProviderCapabilities(chat=True, embedding=True),
            default_models = DefaultModels(chat="llama3.1:8b", embedding="nomic-embed-text"),
            endpoint       = settings.ollama_base_url,
            timeout_seconds = 120.0,
        ))

    first = providers[0].name if providers else ""
    return ProvidersConfiguration(
        providers               = providers,
        default_provider_name   = first,
        embedding_provider_name = first,
        enable_fallback         = settings.llm_enable_fallback,
    )
