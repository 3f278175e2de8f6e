"""
Provider Selector — which provider should this call use?

Selection rules (same for every capability):

  1. The configured provider for the role (default_provider_name for chat,
     embedding_provider_name for embeddings) if it is enabled, available and
     has the capability.
  2. Otherwise, when enable_fallback is set, the enabled + available +
     capable handle with the highest priority. Ties keep catalogue order.
  3. Otherwise ProviderUnavailable.

Design principles:
  - Pure Python over the registry, no I/O.
  - Consulted once per call site. A failed call does NOT retry against the
    next provider; the failure only changes what the NEXT selection returns.
    Callers wanting per-request fallback walk available_providers()
    themselves (see FallbackChain).
"""

from __future__ import annotations

import logging
from enum import Enum

from docflow.core.errors import ProviderUnavailable
from docflow.llm.registry import ProviderHandle, ProviderRegistry

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    CHAT      = "chat"
    EMBEDDING = "embedding"


def _has_capability(handle: ProviderHandle, capability: Capability | None) -> bool:
    if capability is None:
        return True
    if capability == Capability.CHAT:
        return handle.supports_chat
    return handle.supports_embeddings


def _is_selectable(handle: ProviderHandle, capability: Capability | None) -> bool:
    return handle.enabled and handle.available and _has_capability(handle, capability)


class ProviderSelector:
    """
    Usage::

        selector = ProviderSelector(registry)
        handle   = selector.get_default()
        text     = await handle.chat("Summarise this clause")
    """

    def __init__(self, registry: ProviderRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    @property
    def enable_fallback(self) -> bool:
        return self._registry.config.enable_fallback

    def available_providers(self, capability: Capability | str | None = None) -> list[ProviderHandle]:
        """Enabled + available handles with the capability, priority descending."""
        cap = Capability(capability) if capability is not None else None
        candidates = [h for h in self._registry.all() if _is_selectable(h, cap)]
        # sorted() is stable, so equal priorities keep declaration order
        return sorted(candidates, key=lambda h: h.priority, reverse=True)

    def get(self, name: str) -> ProviderHandle:
        """
        Explicit lookup by name.

        Raises:
            ProviderNotFound:    name is not in the registry.
            ProviderUnavailable: the handle is currently unavailable.
        """
        handle = self._registry.by_name(name)
        if not _is_selectable(handle, None):
            raise ProviderUnavailable(f"Provider '{name}' is not available")
        return handle

    def get_default(self) -> ProviderHandle:
        return self._select(self._registry.config.default_provider_name, None, "default")

    def get_chat_provider(self) -> ProviderHandle:
        return self._select(self._registry.config.default_provider_name, Capability.CHAT, "chat")

    def get_embedding_provider(self) -> ProviderHandle:
        return self._select(
            self._registry.config.embedding_provider_name, Capability.EMBEDDING, "embedding",
        )

    def _select(self, preferred: str, capability: Capability | None, role: str) -> ProviderHandle:
        if preferred and preferred in self._registry:
            handle = self._registry.by_name(preferred)
            if _is_selectable(handle, capability):
                return handle

        if not self.enable_fallback:
            raise ProviderUnavailable(
                f"Configured {role} provider '{preferred}' is not available and fallback is disabled"
            )

        candidates = self.available_providers(capability)
        if not candidates:
            raise ProviderUnavailable(f"No available {role} providers found")

        selected = candidates[0]
        if preferred:
            logger.warning(
                "ProviderSelector | %s provider '%s' not available, using '%s'",
                role, preferred, selected.name,
            )
        else:
            logger.debug("ProviderSelector | role=%s selected=%s", role, selected.name)
        return selected
