"""
Provider Registry — one live ProviderHandle per enabled provider.

The registry is built once at startup from ProvidersConfiguration. Each
enabled entry is turned into a backend via the PROVIDER_BUILDERS lookup and
wrapped in a ProviderHandle that carries the mutable availability flag.

Availability:
  - Every handle starts available.
  - The first hard failure (connection error, auth error, timeout) observed
    through a handle flips it to unavailable.
  - By default the flag is sticky: the handle stays out of rotation until
    mark_available() is called (POST /providers/{name}/reset).
  - With recovery_seconds set, the handle becomes selectable again once the
    window has passed (half-open, like a circuit breaker). One more hard
    failure closes it again.

Flags are plain attributes read on every selection, so a flip is visible to
the next selector call without reloading the registry.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Awaitable, Callable, Iterator, TypeVar

from docflow.core.config import Settings, get_settings
from docflow.core.errors import ProviderNotFound
from docflow.llm.config import ProviderConfig, ProvidersConfiguration
from docflow.llm.providers import LLMProvider, ProviderBuilder, build_provider

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Hard failure detection
# ---------------------------------------------------------------------------

_HARD_FAILURE_EXCEPTION_TYPES = (
    # openai
    "APIConnectionError",
    "APITimeoutError",
    "AuthenticationError",
    "PermissionDeniedError",
    # httpx / generic
    "ConnectError",
    "ConnectTimeout",
    "ReadTimeout",
    "RemoteProtocolError",
    # botocore
    "NoCredentialsError",
    "EndpointConnectionError",
)


def is_hard_failure(exc: BaseException) -> bool:
    """True if the exception means the provider itself is unreachable or refusing us."""
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return True
    name = type(exc).__name__
    return any(name.endswith(n) for n in _HARD_FAILURE_EXCEPTION_TYPES)


# ---------------------------------------------------------------------------
# ProviderHandle
# ---------------------------------------------------------------------------

class ProviderHandle:
    """
    A configured provider plus its live availability flag.

    All calls go through the handle so a hard failure is recorded no matter
    which call site observed it. Calls never retry.
    """

    def __init__(
        self,
        provider:         LLMProvider,
        recovery_seconds: float | None = None,
        clock:            Callable[[], float] = time.monotonic,
    ) -> None:
        self.provider          = provider
        self._recovery_seconds = recovery_seconds
        self._clock            = clock
        self._available        = True
        self._unavailable_since: float | None = None
        self.last_error: str | None = None

    def __repr__(self) -> str:
        return (
            f"ProviderHandle(name={self.name!r}, priority={self.priority}, "
            f"available={self.available})"
        )

    @property
    def config(self) -> ProviderConfig:
        return self.provider.config

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def priority(self) -> int:
        return self.config.priority

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    @property
    def supports_chat(self) -> bool:
        return self.provider.supports_chat

    @property
    def supports_embeddings(self) -> bool:
        return self.provider.supports_embeddings

    @property
    def available(self) -> bool:
        if self._available:
            return True
        if self._recovery_seconds is None or self._unavailable_since is None:
            return False
        if self._clock() - self._unavailable_since >= self._recovery_seconds:
            logger.info("Provider recovery window elapsed | provider=%s", self.name)
            self._available = True
            self._unavailable_since = None
            return True
        return False

    def mark_unavailable(self, reason: str | None = None) -> None:
        was_available = self._available
        self._available = False
        self._unavailable_since = self._clock()
        self.last_error = reason
        if was_available:
            logger.warning("Provider marked unavailable | provider=%s reason=%s", self.name, reason)

    def mark_available(self) -> None:
        if not self._available:
            logger.info("Provider marked available | provider=%s", self.name)
        self._available = True
        self._unavailable_since = None

    # -----------------------------------------------------------------------
    # Calls through the provider
    # -----------------------------------------------------------------------

    async def chat(self, prompt: str, system_prompt: str | None = None) -> str:
        return await self._call("chat", lambda: self.provider.chat(prompt, system_prompt))

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return await self._call("embed_documents", lambda: self.provider.embed_documents(texts))

    async def embed_query(self, text: str) -> list[float]:
        return await self._call("embed_query", lambda: self.provider.embed_query(text))

    async def _call(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        timeout = self.config.timeout_seconds
        try:
            return await asyncio.wait_for(call(), timeout=timeout)
        except asyncio.TimeoutError:
            self.mark_unavailable(f"{operation} timed out after {timeout}s")
            raise
        except Exception as exc:
            if is_hard_failure(exc):
                self.mark_unavailable(f"{type(exc).__name__}: {exc}")
            else:
                logger.warning(
                    "Provider call failed | provider=%s op=%s error=%s: %s",
                    self.name, operation, type(exc).__name__, exc,
                )
            raise


# ---------------------------------------------------------------------------
# ProviderRegistry
# ---------------------------------------------------------------------------

class ProviderRegistry:
    """
    Name → ProviderHandle map, in catalogue declaration order.

    Usage::

        registry = ProviderRegistry(load_providers_config(settings), settings)
        registry.mark_unavailable("openai")
    """

    def __init__(
        self,
        config:           ProvidersConfiguration,
        settings:         Settings | None = None,
        builders:         dict[str, ProviderBuilder] | None = None,
        recovery_seconds: float | None = None,
        clock:            Callable[[], float] = time.monotonic,
    ) -> None:
        self.config    = config
        self._settings = settings or get_settings()
        self._lock     = threading.Lock()
        self._handles: dict[str, ProviderHandle] = {}

        for entry in config.providers:
            if not entry.enabled:
                logger.info("Provider disabled, skipping | provider=%s", entry.name)
                continue
            try:
                provider = build_provider(entry, self._settings, builders)
            except Exception:
                logger.exception(
                    "Failed to initialise provider | provider=%s kind=%s", entry.name, entry.kind,
                )
                continue
            self._handles[entry.name] = ProviderHandle(provider, recovery_seconds, clock)
            logger.info(
                "Initialised provider | provider=%s kind=%s priority=%d chat=%s embedding=%s",
                entry.name, entry.kind, entry.priority,
                entry.capabilities.chat, entry.capabilities.embedding,
            )

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, name: object) -> bool:
        return name in self._handles

    def __iter__(self) -> Iterator[ProviderHandle]:
        return iter(self.all())

    def all(self) -> list[ProviderHandle]:
        return list(self._handles.values())

    def by_name(self, name: str) -> ProviderHandle:
        try:
            return self._handles[name]
        except KeyError:
            raise ProviderNotFound(name) from None

    def mark_unavailable(self, name: str, reason: str | None = None) -> None:
        handle = self.by_name(name)
        with self._lock:
            handle.mark_unavailable(reason)

    def mark_available(self, name: str) -> None:
        handle = self.by_name(name)
        with self._lock:
            handle.mark_available()
