"""
LLM Fallback Chain — explicit per-request provider failover

The selector never retries on its own. FallbackChain is the opt-in helper
for call sites that DO want per-request fallback: it takes the selector's
ordered list of available providers and tries each until one succeeds.

  available_providers("chat")  →  [p1 (prio 10), p2 (prio 5), ...]
  try p1 → hard failure (handle marks itself unavailable) → try p2 → ok

Every error is collected; if every provider fails the chain raises
ProviderUnavailable listing them. With enable_fallback=False only the
configured provider is attempted.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, TypeVar

from docflow.core.errors import ProviderUnavailable
from docflow.llm.registry import ProviderHandle
from docflow.llm.selector import Capability, ProviderSelector

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FallbackChain:
    """
    Ordered walk over available providers.

    Usage::

        chain  = FallbackChain(selector)
        answer = await chain.chat("What is the termination clause?")
    """

    def __init__(self, selector: ProviderSelector) -> None:
        self._selector = selector

    async def chat(self, prompt: str, system_prompt: str | None = None) -> tuple[str, ProviderHandle]:
        """
        Returns the first successful response and the handle that produced it.

        Raises:
            ProviderUnavailable: If every candidate fails or none is available.
        """
        return await self._run(
            Capability.CHAT,
            lambda h: h.chat(prompt, system_prompt),
        )

    async def embed_documents(self, texts: list[str]) -> tuple[list[list[float]], ProviderHandle]:
        return await self._run(
            Capability.EMBEDDING,
            lambda h: h.embed_documents(texts),
        )

    def _candidates(self, capability: Capability) -> list[ProviderHandle]:
        if not self._selector.enable_fallback:
            if capability == Capability.EMBEDDING:
                return [self._selector.get_embedding_provider()]
            return [self._selector.get_chat_provider()]

        primary = (
            self._selector.get_embedding_provider()
            if capability == Capability.EMBEDDING
            else self._selector.get_chat_provider()
        )
        others = [h for h in self._selector.available_providers(capability) if h is not primary]
        return [primary, *others]

    async def _run(
        self,
        capability: Capability,
        call: Callable[[ProviderHandle], Awaitable[T]],
    ) -> tuple[T, ProviderHandle]:
        errors: list[str] = []

        for handle in self._candidates(capability):
            if not handle.available:
                continue
            try:
                logger.debug("FallbackChain | trying provider=%s", handle.name)
                return await call(handle), handle
            except Exception as exc:
                err = f"{handle.name}: {type(exc).__name__}: {exc}"
                logger.warning("FallbackChain | provider failed: %s", err)
                errors.append(err)

        raise ProviderUnavailable(
            f"All {capability.value} providers failed:\n" + "\n".join(f"  - {e}" for e in errors)
        )
