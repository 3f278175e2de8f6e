"""
LLM Gateway — Unified Entry Point for all LLM Requests

  LLMGateway.chat() / .embed()
       │
       ▼
  ProviderSelector.get_chat_provider()      ← priority + availability
       │
       ▼
  ProviderHandle.chat()                     ← timeout, hard-failure marking
       │
       ▼
  GatewayResponse

The gateway selects ONCE per call. If the selected provider fails the error
propagates; the next call will pick another provider if the failure marked
this one unavailable. Pass use_fallback=True to walk the FallbackChain
within the same request instead.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass

from docflow.llm.fallback import FallbackChain
from docflow.llm.selector import ProviderSelector

logger = logging.getLogger(__name__)


@dataclass
class GatewayResponse:
    """The result of a single non-streaming LLM gateway call."""
    content:    str
    provider:   str
    model:      str
    latency_ms: float
    request_id: str


@dataclass
class EmbeddingResponse:
    vectors:    list[list[float]]
    provider:   str
    model:      str
    latency_ms: float


class LLMGateway:
    """
    Provider-agnostic LLM interface over the selector.
    All public methods are async and safe for concurrent use.
    """

    def __init__(self, selector: ProviderSelector) -> None:
        self._selector = selector
        self._fallback = FallbackChain(selector)

    async def chat(
        self,
        prompt:        str,
        system_prompt: str | None = None,
        use_fallback:  bool = False,
    ) -> GatewayResponse:
        """
        Raises:
            ProviderUnavailable: no chat provider qualifies (or all failed
                                 when use_fallback is set).
        """
        t0 = time.perf_counter()
        if use_fallback:
            content, handle = await self._fallback.chat(prompt, system_prompt)
        else:
            handle  = self._selector.get_chat_provider()
            content = await handle.chat(prompt, system_prompt)
        latency = (time.perf_counter() - t0) * 1000

        response = GatewayResponse(
            content    = content,
            provider   = handle.name,
            model      = handle.config.default_models.chat,
            latency_ms = latency,
            request_id = str(uuid.uuid4()),
        )
        logger.info(
            "LLMGateway | chat provider=%s model=%s chars_out=%d latency_ms=%.1f",
            response.provider, response.model, len(content), latency,
        )
        return response

    async def embed(self, texts: list[str], use_fallback: bool = False) -> EmbeddingResponse:
        t0 = time.perf_counter()
        if use_fallback:
            vectors, handle = await self._fallback.embed_documents(texts)
        else:
            handle  = self._selector.get_embedding_provider()
            vectors = await handle.embed_documents(texts)
        latency = (time.perf_counter() - t0) * 1000

        logger.info(
            "LLMGateway | embed provider=%s texts=%d latency_ms=%.1f",
            handle.name, len(texts), latency,
        )
        return EmbeddingResponse(
            vectors    = vectors,
            provider   = handle.name,
            model      = handle.config.default_models.embedding,
            latency_ms = latency,
        )
