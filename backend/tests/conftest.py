"""
Root conftest.py — Shared fixtures for ALL tests (unit + integration)

Fixture hierarchy:
  function-scoped : fake_clock, tracker, fake_executor, make_registry,
                    make_orchestrator, app, async_client

Environment strategy:
  - No test talks to a real parser, embedding service or LLM provider.
  - Providers are FakeProvider instances registered under kind "fake".
  - Stage services are replaced by FakeStageExecutor (in-memory, scripted probe).
  - The CompletionPoller runs on FakeClock, so a 60s convergence window
    completes instantly.

How to run:
  pytest                                    # all tests
  pytest -m unit                            # unit tests only (fast, no I/O)
  pytest -m integration                     # API tests through the ASGI stack
  pytest tests/unit/test_orchestrator.py    # single file
"""

from __future__ import annotations

import asyncio
import os
import uuid
from typing import Any, AsyncGenerator, Callable

import pytest
import pytest_asyncio
from httpx import AsyncClient

# ─────────────────────────────────────────────────────────────────────────────
# Patch settings BEFORE any docflow imports so modules read test config
# ─────────────────────────────────────────────────────────────────────────────

os.environ.setdefault("APP_ENV",            "development")
os.environ.setdefault("DEBUG",              "true")
os.environ.setdefault("LLM_PROVIDERS_FILE", "does-not-exist.providers.json")
os.environ.setdefault("OPENAI_API_KEY",     "sk-test-key")

from docflow.core.config import Settings                                   # noqa: E402
from docflow.llm.config import ProviderConfig, ProvidersConfiguration     # noqa: E402
from docflow.llm.providers import LLMProvider                             # noqa: E402
from docflow.llm.registry import ProviderRegistry                         # noqa: E402
from docflow.workflows.orchestrator import OrchestratorConfig, PipelineOrchestrator  # noqa: E402
from docflow.workflows.poller import CompletionPoller                     # noqa: E402
from docflow.workflows.stages import ChunkSet                             # noqa: E402
from docflow.workflows.tracker import WorkflowTracker                     # noqa: E402


# ─────────────────────────────────────────────────────────────────────────────
# Stable identifiers
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def test_document_id() -> uuid.UUID:
    """A stable UUID for document references."""
    return uuid.UUID("cccccccc-cccc-cccc-cccc-cccccccccccc")


# ─────────────────────────────────────────────────────────────────────────────
# Fake clock — drives CompletionPoller and ProviderHandle recovery windows
# ─────────────────────────────────────────────────────────────────────────────

class FakeClock:
    """
    Monotonic clock whose sleep() advances time instead of waiting.

        clock = FakeClock()
        poller = CompletionPoller(clock=clock, sleep=clock.sleep)
    """

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


# ─────────────────────────────────────────────────────────────────────────────
# Fake LLM provider + registry factory
# ─────────────────────────────────────────────────────────────────────────────

class FakeProvider(LLMProvider):
    """
    In-memory LLMProvider. Set chat_error / embed_error to make the next
    calls raise; set delay to make them slow.
    """

    def __init__(self, config: ProviderConfig) -> None:
        super().__init__(config)
        self.chat_error:  BaseException | None = None
        self.embed_error: BaseException | None = None
        self.delay:       float = 0.0
        self.chat_calls:  list[str] = []
        self.embed_calls: list[list[str]] = []

    async def chat(self, prompt: str, system_prompt: str | None = None) -> str:
        self.chat_calls.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.chat_error is not None:
            raise self.chat_error
        return f"{self.name} says: {prompt}"

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        self.embed_calls.append(list(texts))
        if self.embed_error is not None:
            raise self.embed_error
        return [[float(len(t)), float(self.config.priority)] for t in texts]


def fake_builder(config: ProviderConfig, settings: Settings) -> LLMProvider:
    return FakeProvider(config)


def provider(
    name:      str,
    priority:  int = 0,
    enabled:   bool = True,
    chat:      bool = True,
    embedding: bool = False,
    timeout:   float = 5.0,
    kind:      str = "fake",
) -> ProviderConfig:
    """Shorthand ProviderConfig for tests."""
    return ProviderConfig(
        name            = name,
        kind            = kind,
        priority        = priority,
        enabled         = enabled,
        capabilities    = {"chat": chat, "embedding": embedding},
        default_models  = {"chat": f"{name}-chat", "embedding": f"{name}-embed"},
        timeout_seconds = timeout,
    )


@pytest.fixture
def make_registry(fake_clock) -> Callable[..., ProviderRegistry]:
    """
    Factory fixture: build a ProviderRegistry of FakeProviders.

    Usage:
        registry = make_registry(provider("p1", 10), provider("p2", 5), default="p1")
        registry.by_name("p1").provider.chat_error = ConnectionError("down")
    """
    def _build(
        *providers:       ProviderConfig,
        default:          str = "",
        embedding:        str = "",
        enable_fallback:  bool = True,
        recovery_seconds: float | None = None,
    ) -> ProviderRegistry:
        config = ProvidersConfiguration(
            providers               = list(providers),
            default_provider_name   = default,
            embedding_provider_name = embedding,
            enable_fallback         = enable_fallback,
        )
        return ProviderRegistry(
            config,
            Settings(),
            builders         = {"fake": fake_builder},
            recovery_seconds = recovery_seconds,
            clock            = fake_clock,
        )

    return _build


# ─────────────────────────────────────────────────────────────────────────────
# Fake stage executor
# ─────────────────────────────────────────────────────────────────────────────

class FakeStageExecutor:
    """
    Scripted StageExecutor.

      calls          stage names in invocation order ("parse", "chunk", "embed")
      probe_signals  returned by successive probes; the last one repeats.
                     An exception instance in the list is raised instead.
      on_stage       optional hook called with the stage name before it runs
      on_probe       optional hook called with the 1-based probe attempt
    """

    def __init__(
        self,
        chunks:        list[dict[str, Any]] | None = None,
        probe_signals: list[Any] | None = None,
    ) -> None:
        self.chunks = chunks if chunks is not None else [{"text": "alpha"}, {"text": "beta"}]
        self.probe_signals: list[Any] = list(probe_signals) if probe_signals else [1.0]
        self.calls: list[str] = []
        self.probe_calls = 0
        self.parse_error: BaseException | None = None
        self.chunk_error: BaseException | None = None
        self.embed_error: BaseException | None = None
        self.embedded:    list[ChunkSet] = []
        self.on_stage: Callable[[str], Any] | None = None
        self.on_probe: Callable[[int], Any] | None = None
        self.parse_gate: asyncio.Event | None = None

    def _enter(self, stage: str) -> None:
        self.calls.append(stage)
        if self.on_stage is not None:
            self.on_stage(stage)

    async def parse(self, document_id: uuid.UUID) -> None:
        self._enter("parse")
        if self.parse_gate is not None:
            await self.parse_gate.wait()
        if self.parse_error is not None:
            raise self.parse_error

    async def chunk(self, document_id: uuid.UUID) -> ChunkSet:
        self._enter("chunk")
        if self.chunk_error is not None:
            raise self.chunk_error
        return ChunkSet(document_id=document_id, chunks=list(self.chunks))

    async def embed(self, chunk_set: ChunkSet) -> None:
        self._enter("embed")
        if self.embed_error is not None:
            raise self.embed_error
        self.embedded.append(chunk_set)

    async def probe_storage_status(self, document_id: uuid.UUID) -> Any:
        self.probe_calls += 1
        if self.on_probe is not None:
            self.on_probe(self.probe_calls)
        signal = self.probe_signals[min(self.probe_calls, len(self.probe_signals)) - 1]
        if isinstance(signal, BaseException):
            raise signal
        return signal


@pytest.fixture
def fake_executor() -> FakeStageExecutor:
    return FakeStageExecutor()


# ─────────────────────────────────────────────────────────────────────────────
# Tracker + orchestrator
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def tracker() -> WorkflowTracker:
    return WorkflowTracker()


@pytest.fixture
def make_orchestrator(tracker, fake_executor, fake_clock):
    """
    Factory: PipelineOrchestrator over the shared tracker / executor,
    polling on the fake clock.
    """
    def _build(
        executor:      Any = None,
        max_wait:      float = 60.0,
        interval:      float = 2.0,
        stage_timeout: float = 5.0,
        probe_timeout: float = 30.0,
    ) -> PipelineOrchestrator:
        return PipelineOrchestrator(
            tracker,
            executor or fake_executor,
            poller=CompletionPoller(clock=fake_clock, sleep=fake_clock.sleep),
            config=OrchestratorConfig(
                stage_timeout             = stage_timeout,
                convergence_max_wait      = max_wait,
                convergence_interval      = interval,
                convergence_probe_timeout = probe_timeout,
            ),
        )

    return _build


# ─────────────────────────────────────────────────────────────────────────────
# FastAPI app with fakes wired onto app.state
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def app(tracker, make_orchestrator, make_registry):
    """
    FastAPI app with every core object replaced:
      - providers      → "primary" (prio 10, chat + embedding),
                         "secondary" (prio 5, chat only)
      - stage services → FakeStageExecutor via make_orchestrator
      - poller         → FakeClock

    The lifespan is not run by ASGITransport, so app.state is populated here.
    """
    from docflow.llm.gateway import LLMGateway
    from docflow.llm.selector import ProviderSelector
    from docflow.main import create_app
    from docflow.services.document_workflow import DocumentWorkflowService
    from docflow.workflows.runner import WorkflowRunner

    application = create_app()

    registry = make_registry(
        provider("primary",   priority=10, embedding=True),
        provider("secondary", priority=5),
        default="primary",
        embedding="primary",
    )
    selector = ProviderSelector(registry)
    runner   = WorkflowRunner(max_concurrent=4)

    application.state.provider_registry = registry
    application.state.provider_selector = selector
    application.state.llm_gateway       = LLMGateway(selector)
    application.state.workflow_tracker  = tracker
    application.state.workflow_runner   = runner
    application.state.workflow_service  = DocumentWorkflowService(
        tracker, make_orchestrator(), runner,
    )
    return application


@pytest_asyncio.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client over the ASGI app (no network)."""
    from httpx import ASGITransport
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    await app.state.workflow_runner.shutdown(timeout=1.0)
