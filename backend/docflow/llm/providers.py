"""
LLM Provider Backends — Capability Interface + Builder Lookup

Every backend implements LLMProvider (chat and/or embedding). Backends are
constructed through PROVIDER_BUILDERS, a dict keyed by ProviderConfig.kind,
so the registry and selector never branch on provider type:

    builder  = PROVIDER_BUILDERS[config.kind]
    provider = builder(config, settings)

Registered kinds:
  openai         ChatOpenAI / OpenAIEmbeddings
  azure_openai   AzureChatOpenAI / AzureOpenAIEmbeddings
  github_models  OpenAI-compatible endpoint (ChatOpenAI with base_url)
  ollama         ChatOllama / OllamaEmbeddings (local, air-gapped)
  bedrock        ChatBedrock / BedrockEmbeddings

Adding a backend:
  register_provider_kind("my_kind", my_builder) and reference the kind in
  the provider catalogue.

LangChain model objects are created lazily on first use, so a missing SDK
or credential surfaces as a call failure on that provider rather than
breaking registry construction for every other provider.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable

from langchain_core.embeddings import Embeddings
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from docflow.core.config import Settings
from docflow.core.errors import ProviderCapabilityError
from docflow.llm.config import ProviderConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Capability interface
# ---------------------------------------------------------------------------

class LLMProvider(ABC):
    """Chat and/or embedding backend behind one ProviderConfig."""

    def __init__(self, config: ProviderConfig) -> None:
        self.config = config

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def supports_chat(self) -> bool:
        return self.config.capabilities.chat

    @property
    def supports_embeddings(self) -> bool:
        return self.config.capabilities.embedding

    @abstractmethod
    async def chat(self, prompt: str, system_prompt: str | None = None) -> str:
        """Single-turn chat completion. Returns the response text."""

    @abstractmethod
    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of texts, one vector per input."""

    async def embed_query(self, text: str) -> list[float]:
        vectors = await self.embed_documents([text])
        return vectors[0]


class LangChainProvider(LLMProvider):
    """
    LLMProvider over LangChain chat and embedding models.

    chat_factory / embeddings_factory build the LangChain objects; either may
    be None when the provider lacks that capability.
    """

    def __init__(
        self,
        config:             ProviderConfig,
        chat_factory:       Callable[[], BaseChatModel] | None,
        embeddings_factory: Callable[[], Embeddings] | None,
    ) -> None:
        super().__init__(config)
        self._chat_factory       = chat_factory
        self._embeddings_factory = embeddings_factory
        self._chat_model: BaseChatModel | None = None
        self._embeddings: Embeddings | None    = None

    def _chat(self) -> BaseChatModel:
        if self._chat_factory is None or not self.supports_chat:
            raise ProviderCapabilityError(self.name, "chat")
        if self._chat_model is None:
            self._chat_model = self._chat_factory()
        return self._chat_model

    def _embedder(self) -> Embeddings:
        if self._embeddings_factory is None or not self.supports_embeddings:
            raise ProviderCapabilityError(self.name, "embeddings")
        if self._embeddings is None:
            self._embeddings = self._embeddings_factory()
        return self._embeddings

    async def chat(self, prompt: str, system_prompt: str | None = None) -> str:
        messages: list[BaseMessage] = []
        if system_prompt:
            messages.append(SystemMessage(content=system_prompt))
        messages.append(HumanMessage(content=prompt))
        result = await self._chat().ainvoke(messages)
        return result.content  # type: ignore[return-value]

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return await self._embedder().aembed_documents(texts)

    async def embed_query(self, text: str) -> list[float]:
        return await self._embedder().aembed_query(text)


# ---------------------------------------------------------------------------
# Builders, one per kind
# ---------------------------------------------------------------------------

ProviderBuilder = Callable[[ProviderConfig, Settings], LLMProvider]


def _build_openai(config: ProviderConfig, settings: Settings) -> LLMProvider:
    def chat() -> BaseChatModel:
        from langchain_openai import ChatOpenAI
        return ChatOpenAI(
            model=config.default_models.chat or settings.llm_model,
            api_key=config.api_key or settings.openai_api_key,
            base_url=config.endpoint,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            timeout=config.timeout_seconds,
        )

    def embeddings() -> Embeddings:
        from langchain_openai import OpenAIEmbeddings
        return OpenAIEmbeddings(
            model=config.default_models.embedding or settings.embedding_model,
            api_key=config.api_key or settings.openai_api_key,
            base_url=config.endpoint,
            timeout=config.timeout_seconds,
        )

    return LangChainProvider(config, chat, embeddings)


def _build_azure_openai(config: ProviderConfig, settings: Settings) -> LLMProvider:
    def chat() -> BaseChatModel:
        from langchain_openai import AzureChatOpenAI
        return AzureChatOpenAI(
            azure_deployment=config.default_models.chat or settings.azure_openai_deployment,
            azure_endpoint=config.endpoint or settings.azure_openai_endpoint,
            api_key=config.api_key or settings.azure_openai_api_key,   # type: ignore[arg-type]
            api_version=settings.azure_openai_api_version,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            timeout=config.timeout_seconds,
        )

    def embeddings() -> Embeddings:
        from langchain_openai import AzureOpenAIEmbeddings
        return AzureOpenAIEmbeddings(
            azure_deployment=config.default_models.embedding or settings.embedding_model,
            azure_endpoint=config.endpoint or settings.azure_openai_endpoint,
            api_key=config.api_key or settings.azure_openai_api_key,   # type: ignore[arg-type]
            api_version=settings.azure_openai_api_version,
        )

    return LangChainProvider(config, chat, embeddings)


def _build_github_models(config: ProviderConfig, settings: Settings) -> LLMProvider:
    endpoint = config.endpoint or settings.github_models_endpoint

    def chat() -> BaseChatModel:
        from langchain_openai import ChatOpenAI
        return ChatOpenAI(
            model=config.default_models.chat or "gpt-4o-mini",
            api_key=config.api_key or settings.github_token,
            base_url=endpoint,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            timeout=config.timeout_seconds,
        )

    def embeddings() -> Embeddings:
        from langchain_openai import OpenAIEmbeddings
        return OpenAIEmbeddings(
            model=config.default_models.embedding or settings.embedding_model,
            api_key=config.api_key or settings.github_token,
            base_url=endpoint,
            check_embedding_ctx_length=False,   # tiktoken lookup fails for non-OpenAI hosts
        )

    return LangChainProvider(config, chat, embeddings)


def _build_ollama(config: ProviderConfig, settings: Settings) -> LLMProvider:
    base_url = config.endpoint or settings.ollama_base_url or "http://localhost:11434"

    def chat() -> BaseChatModel:
        from langchain_community.chat_models import ChatOllama
        return ChatOllama(
            model=config.default_models.chat or "llama3.1:8b",
            base_url=base_url,
            temperature=settings.llm_temperature,
        )

    def embeddings() -> Embeddings:
        from langchain_community.embeddings import OllamaEmbeddings
        return OllamaEmbeddings(
            model=config.default_models.embedding or "nomic-embed-text",
            base_url=base_url,
        )

    return LangChainProvider(config, chat, embeddings)


def _build_bedrock(config: ProviderConfig, settings: Settings) -> LLMProvider:
    def chat() -> BaseChatModel:
        from langchain_aws import ChatBedrock
        return ChatBedrock(
            model_id=config.default_models.chat or "anthropic.claude-3-5-sonnet-20241022-v2:0",
            region_name=settings.aws_region,
            model_kwargs={
                "temperature": settings.llm_temperature,
                "max_tokens":  settings.llm_max_tokens,
            },
        )

    def embeddings() -> Embeddings:
        from langchain_aws import BedrockEmbeddings
        return BedrockEmbeddings(
            model_id=config.default_models.embedding or "amazon.titan-embed-text-v2:0",
            region_name=settings.aws_region,
        )

    return LangChainProvider(config, chat, embeddings)


PROVIDER_BUILDERS: dict[str, ProviderBuilder] = {
    "openai":        _build_openai,
    "azure_openai":  _build_azure_openai,
    "github_models": _build_github_models,
    "ollama":        _build_ollama,
    "bedrock":       _build_bedrock,
}


def register_provider_kind(kind: str, builder: ProviderBuilder) -> None:
    """Make a new provider kind available to every registry built afterwards."""
    if kind in PROVIDER_BUILDERS:
        logger.warning("Provider kind re-registered | kind=%s", kind)
    PROVIDER_BUILDERS[kind] = builder


def build_provider(
    config:   ProviderConfig,
    settings: Settings,
    builders: dict[str, ProviderBuilder] | None = None,
) -> LLMProvider:
    """
    Look up the builder for config.kind and construct the backend.

    Raises:
        ValueError: If no builder is registered for the kind.
    """
    table: dict[str, Any] = builders if builders is not None else PROVIDER_BUILDERS
    try:
        builder = table[config.kind]
    except KeyError:
        raise ValueError(
            f"Unsupported provider kind '{config.kind}' for provider '{config.name}'. "
            f"Registered kinds: {sorted(table)}"
        ) from None
    return builder(config, settings)
