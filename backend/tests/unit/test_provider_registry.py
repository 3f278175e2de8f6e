"""
Unit Tests — Provider catalogue, registry and handles
══════════════════════════════════════════════════════
Coverage targets:
  ✅ catalogue loads from JSON; env overrides apply; duplicates rejected
  ✅ env-derived catalogue orders providers by credential priority
  ✅ disabled and unbuildable entries get no handle
  ✅ hard failure flips availability; ordinary errors do not
  ✅ call timeout flips availability
  ✅ recovery window re-enables a handle (half-open)
  ✅ LangChainProvider over langchain-core fake models
"""

from __future__ import annotations

import asyncio
import json

import pytest
from langchain_core.embeddings import FakeEmbeddings
from langchain_core.language_models import FakeListChatModel
from pydantic import ValidationError

from docflow.core.config import Settings
from docflow.core.errors import DocflowError, ProviderCapabilityError, ProviderNotFound
from docflow.llm.config import (
    ProvidersConfiguration,
    config_from_settings,
    load_providers_config,
)
from docflow.llm.providers import (
    PROVIDER_BUILDERS,
    LangChainProvider,
    build_provider,
    register_provider_kind,
)
from docflow.llm.registry import ProviderRegistry, is_hard_failure
from tests.conftest import fake_builder, provider


class APIConnectionError(Exception):
    """Same class name as the openai SDK error."""


class RateLimitError(Exception):
    pass


# ─────────────────────────────────────────────────────────────────────────────
# Catalogue loading
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestCatalogue:

    def test_load_from_json_file(self, tmp_path):
        path = tmp_path / "providers.json"
        path.write_text(json.dumps({
            "default_provider_name": "gh",
            "embedding_provider_name": "gh",
            "enable_fallback": True,
            "providers": [
                {"name": "gh", "kind": "github_models", "priority": 5,
                 "capabilities": {"chat": True, "embedding": True}},
                {"name": "local", "kind": "ollama", "priority": 1, "enabled": False},
            ],
        }))

        config = load_providers_config(Settings(llm_providers_file=str(path)))

        assert [p.name for p in config.providers] == ["gh", "local"]
        assert config.default_provider_name == "gh"
        assert config.providers[0].capabilities.embedding is True
        assert config.providers[1].enabled is False

    def test_env_overrides_file(self, tmp_path):
        path = tmp_path / "providers.json"
        path.write_text(json.dumps({
            "default_provider_name": "a",
            "providers": [{"name": "a", "kind": "openai"}, {"name": "b", "kind": "openai"}],
        }))

        config = load_providers_config(Settings(
            llm_providers_file=str(path),
            llm_default_provider="b",
            llm_enable_fallback=False,
        ))

        assert config.default_provider_name == "b"
        assert config.enable_fallback is False

    def test_duplicate_names_rejected(self):
        with pytest.raises(ValidationError):
            ProvidersConfiguration(providers=[provider("dup"), provider("dup")])

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError):
            provider("   ")

    def test_env_catalogue_orders_by_credential(self):
        config = config_from_settings(Settings(
            llm_providers_file="missing.json",
            openai_api_key="sk-x",
            github_token="ghp-x",
            ollama_base_url="http://localhost:11434",
        ))

        assert [(p.name, p.priority) for p in config.providers] == [
            ("openai", 10), ("github_models", 5), ("ollama", 1),
        ]
        assert config.default_provider_name == "openai"
        assert config.embedding_provider_name == "openai"

    def test_env_catalogue_empty_without_credentials(self):
        config = config_from_settings(Settings(
            llm_providers_file="missing.json", openai_api_key="", github_token="", ollama_base_url="",
        ))
        assert config.providers == []
        assert config.default_provider_name == ""

    def test_api_key_hidden_from_repr(self):
        cfg = provider("p").model_copy(update={"api_key": "sk-secret"})
        assert "sk-secret" not in repr(cfg)


# ─────────────────────────────────────────────────────────────────────────────
# Builders
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestBuilders:

    def test_openai_builder_is_lazy(self):
        cfg = provider("openai", kind="openai", embedding=True)
        built = build_provider(cfg, Settings(openai_api_key="sk-test"))

        assert isinstance(built, LangChainProvider)
        assert built.supports_chat and built.supports_embeddings

    def test_unknown_kind_raises(self):
        with pytest.raises(ValueError, match="Unsupported provider kind"):
            build_provider(provider("x", kind="carrier-pigeon"), Settings())

    def test_register_provider_kind(self, monkeypatch):
        monkeypatch.setitem(PROVIDER_BUILDERS, "fake-registered", fake_builder)
        register_provider_kind("fake-registered", fake_builder)

        built = build_provider(provider("x", kind="fake-registered"), Settings())
        assert built.name == "x"

    async def test_langchain_provider_chat_and_embed(self):
        cfg = provider("lc", kind="custom", embedding=True)
        lc = LangChainProvider(
            cfg,
            chat_factory=lambda: FakeListChatModel(responses=["forty-two"]),
            embeddings_factory=lambda: FakeEmbeddings(size=4),
        )

        assert await lc.chat("meaning of life?", system_prompt="be brief") == "forty-two"
        vectors = await lc.embed_documents(["a", "b"])
        assert len(vectors) == 2
        assert all(len(v) == 4 for v in vectors)
        assert len(await lc.embed_query("a")) == 4

    async def test_langchain_provider_missing_capability(self):
        lc = LangChainProvider(provider("chat-only"), chat_factory=None, embeddings_factory=None)
        with pytest.raises(ProviderCapabilityError) as exc_info:
            await lc.embed_documents(["x"])
        assert exc_info.value.capability == "embeddings"
        assert exc_info.value.error_code == "PROVIDER_CAPABILITY_UNSUPPORTED"
        with pytest.raises(DocflowError, match="does not support chat"):
            await lc.chat("hi")

    async def test_capability_error_does_not_mark_provider_unavailable(self, make_registry):
        registry = make_registry(provider("p1", 10))
        handle = registry.by_name("p1")

        async def unsupported(texts):
            raise ProviderCapabilityError("p1", "embeddings")

        handle.provider.embed_documents = unsupported
        with pytest.raises(ProviderCapabilityError):
            await handle.embed_documents(["x"])
        assert handle.available is True


# ─────────────────────────────────────────────────────────────────────────────
# Registry + handle availability
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestRegistry:

    def test_disabled_and_unbuildable_entries_skipped(self, make_registry):
        registry = make_registry(
            provider("ok"),
            provider("off", enabled=False),
            provider("broken", kind="no-such-kind"),
        )

        assert len(registry) == 1
        assert "ok" in registry
        assert "off" not in registry
        assert "broken" not in registry

    def test_by_name_unknown_raises(self, make_registry):
        with pytest.raises(ProviderNotFound):
            make_registry(provider("ok")).by_name("missing")

    def test_mark_unavailable_unknown_raises(self, make_registry):
        with pytest.raises(ProviderNotFound):
            make_registry().mark_unavailable("missing")

    def test_iteration_preserves_declaration_order(self, make_registry):
        registry = make_registry(provider("c", 1), provider("a", 9), provider("b", 5))
        assert [h.name for h in registry] == ["c", "a", "b"]

    def test_real_builders_used_by_default(self):
        config = ProvidersConfiguration(providers=[provider("openai", kind="openai")])
        registry = ProviderRegistry(config, Settings(openai_api_key="sk-test"))
        assert isinstance(registry.by_name("openai").provider, LangChainProvider)


@pytest.mark.unit
class TestHardFailures:

    @pytest.mark.parametrize("exc,expected", [
        (ConnectionError("refused"), True),
        (TimeoutError(), True),
        (APIConnectionError("dns"), True),
        (RateLimitError("slow down"), False),
        (ValueError("bad prompt"), False),
    ])
    def test_classification(self, exc, expected):
        assert is_hard_failure(exc) is expected

    async def test_hard_failure_flips_availability(self, make_registry):
        registry = make_registry(provider("p1"))
        handle = registry.by_name("p1")
        handle.provider.chat_error = APIConnectionError("connection reset")

        with pytest.raises(APIConnectionError):
            await handle.chat("hi")

        assert handle.available is False
        assert "APIConnectionError" in handle.last_error

    async def test_ordinary_error_keeps_provider_available(self, make_registry):
        registry = make_registry(provider("p1"))
        handle = registry.by_name("p1")
        handle.provider.chat_error = RateLimitError("429")

        with pytest.raises(RateLimitError):
            await handle.chat("hi")

        assert handle.available is True

    async def test_timeout_flips_availability(self, make_registry):
        registry = make_registry(provider("slow", timeout=0.01))
        handle = registry.by_name("slow")
        handle.provider.delay = 1.0

        with pytest.raises(asyncio.TimeoutError):
            await handle.chat("hi")

        assert handle.available is False

    async def test_successful_call_passes_through(self, make_registry):
        handle = make_registry(provider("p1", embedding=True)).by_name("p1")
        assert await handle.chat("ping") == "p1 says: ping"
        assert await handle.embed_query("abc") == [3.0, 0.0]


@pytest.mark.unit
class TestRecovery:

    def test_unavailable_is_sticky_by_default(self, make_registry, fake_clock):
        registry = make_registry(provider("p1"))
        registry.mark_unavailable("p1", "down")

        fake_clock.advance(10_000)
        assert registry.by_name("p1").available is False

    def test_recovery_window_reenables(self, make_registry, fake_clock):
        registry = make_registry(provider("p1"), recovery_seconds=30)
        registry.mark_unavailable("p1", "down")
        handle = registry.by_name("p1")

        fake_clock.advance(29)
        assert handle.available is False

        fake_clock.advance(1)
        assert handle.available is True

    async def test_failure_after_recovery_closes_again(self, make_registry, fake_clock):
        registry = make_registry(provider("p1"), recovery_seconds=30)
        handle = registry.by_name("p1")
        handle.provider.chat_error = ConnectionError("still down")

        with pytest.raises(ConnectionError):
            await handle.chat("hi")
        fake_clock.advance(30)
        assert handle.available is True

        with pytest.raises(ConnectionError):
            await handle.chat("hi")
        assert handle.available is False
