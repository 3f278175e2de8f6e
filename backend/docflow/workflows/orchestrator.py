"""
Pipeline Orchestrator — drives one document through the processing stages

Stage sequence and the status written after each one:

  ┌──────────────────────┬─────────────────────────┬──────────┐
  │ stage                │ status stage            │ progress │
  ├──────────────────────┼─────────────────────────┼──────────┤
  │ Parse                │ Parsing Document        │ 0.2      │
  │ Chunk                │ Chunking Document       │ 0.4      │
  │ Embed                │ Generating Embeddings   │ 0.6      │
  │ ConvergeOnStorage    │ Storing Vectors         │ 0.8      │
  │   probe >= 1.0       │ Processing Complete     │ 1.0      │
  │   deadline reached   │ Completed with warnings │ 0.95     │
  │   probe < 0          │ Failed                  │ -1.0     │
  └──────────────────────┴─────────────────────────┴──────────┘

Failure handling:
  - Parse / Chunk / Embed are single awaited calls under a stage timeout.
    Any exception aborts the run with ("Failed", -1.0, <error text>); the
    remaining stages are never invoked. Nothing is retried here.
  - Convergence timing out is a SOFT failure: the document was parsed,
    chunked and embedded, only the storage acknowledgement is unverified.

Cancellation is cooperative: the tracker is checked before every stage and
on every poll. A stage call already in flight is not interrupted, but its
result is discarded and no further status is written.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar
from uuid import UUID

from docflow.core.config import Settings
from docflow.core.errors import StageExecutionFailure
from docflow.workflows.poller import CompletionPoller, PollStatus
from docflow.workflows.stages import ChunkSet, StageExecutor
from docflow.workflows.tracker import WorkflowRecord, WorkflowTracker

logger = logging.getLogger(__name__)

T = TypeVar("T")

STAGE_PARSING    = "Parsing Document"
STAGE_CHUNKING   = "Chunking Document"
STAGE_EMBEDDING  = "Generating Embeddings"
STAGE_STORING    = "Storing Vectors"
STAGE_COMPLETE   = "Processing Complete"
STAGE_WARNINGS   = "Completed with warnings"
STAGE_FAILED     = "Failed"

# Parse, Chunk, Embed, ConvergeOnStorage + the final completion slot
_PROGRESS_SLOTS = 5

SOFT_FAILURE_PROGRESS = 0.95


def _slot(index: int) -> float:
    return round(index / _PROGRESS_SLOTS, 4)


@dataclass(frozen=True)
class OrchestratorConfig:
    stage_timeout:             float = 120.0
    convergence_max_wait:      float = 60.0
    convergence_interval:      float = 2.0
    convergence_probe_timeout: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "OrchestratorConfig":
        return cls(
            stage_timeout             = settings.stage_timeout_seconds,
            convergence_max_wait      = settings.convergence_max_wait_seconds,
            convergence_interval      = settings.convergence_poll_interval_seconds,
            convergence_probe_timeout = settings.convergence_probe_timeout_seconds,
        )


class PipelineOrchestrator:
    """
    One instance can serve many documents; run() holds no per-document state
    outside the tracker.

    Usage::

        orchestrator = PipelineOrchestrator(tracker, HttpStageExecutor(...))
        record = await orchestrator.run(workflow_id, document_id)
    """

    def __init__(
        self,
        tracker:  WorkflowTracker,
        executor: StageExecutor,
        poller:   CompletionPoller | None = None,
        config:   OrchestratorConfig | None = None,
    ) -> None:
        self._tracker  = tracker
        self._executor = executor
        self._poller   = poller or CompletionPoller()
        self._config   = config or OrchestratorConfig()

    async def run(self, workflow_id: UUID, document_id: UUID) -> WorkflowRecord:
        """Execute every stage for document_id and return the final record."""
        logger.info("Pipeline start | workflow=%s doc=%s", workflow_id, document_id)
        try:
            await self._execute(workflow_id, document_id)
        except StageExecutionFailure as exc:
            logger.error(
                "Pipeline stage failed | workflow=%s doc=%s stage=%s error=%s",
                workflow_id, document_id, exc.stage, exc.message,
            )
            self._write(workflow_id, STAGE_FAILED, -1.0, exc.message)
        except asyncio.CancelledError:
            if not self._tracker.is_terminal(workflow_id):
                self._tracker.cancel(workflow_id)
            raise
        except Exception as exc:
            logger.exception("Pipeline crashed | workflow=%s doc=%s", workflow_id, document_id)
            self._write(workflow_id, STAGE_FAILED, -1.0, str(exc) or type(exc).__name__)
            raise

        record = self._tracker.get(workflow_id)
        logger.info(
            "Pipeline end | workflow=%s doc=%s stage=%s progress=%.2f",
            workflow_id, document_id, record.stage, record.progress,
        )
        return record

    # -----------------------------------------------------------------------
    # Stage sequence
    # -----------------------------------------------------------------------

    async def _execute(self, workflow_id: UUID, document_id: UUID) -> None:
        if self._cancelled(workflow_id):
            return
        await self._run_stage("Parse", lambda: self._executor.parse(document_id))
        if not self._write(workflow_id, STAGE_PARSING, _slot(1)):
            return

        chunk_set: ChunkSet | None = await self._run_stage(
            "Chunk", lambda: self._executor.chunk(document_id),
        )
        if not self._write(workflow_id, STAGE_CHUNKING, _slot(2)):
            return

        if chunk_set is not None:
            if not len(chunk_set):
                logger.warning("Chunk stage produced no chunks | doc=%s", document_id)
            await self._run_stage("Embed", lambda: self._executor.embed(chunk_set))
        else:
            logger.warning("Chunk stage returned nothing, skipping embed | doc=%s", document_id)
        if not self._write(workflow_id, STAGE_EMBEDDING, _slot(3)):
            return

        if not self._write(workflow_id, STAGE_STORING, _slot(4)):
            return
        await self._converge(workflow_id, document_id)

    async def _converge(self, workflow_id: UUID, document_id: UUID) -> None:
        max_wait = self._config.convergence_max_wait
        outcome = await self._poller.wait(
            probe=lambda: self._executor.probe_storage_status(document_id),
            max_wait=max_wait,
            interval=self._config.convergence_interval,
            probe_timeout=self._config.convergence_probe_timeout,
            should_stop=lambda: self._tracker.is_terminal(workflow_id),
        )

        if outcome.status == PollStatus.SUCCESS:
            self._write(workflow_id, STAGE_COMPLETE, 1.0)
        elif outcome.status == PollStatus.TIMEOUT:
            logger.warning(
                "Storage verification timed out | workflow=%s doc=%s attempts=%d",
                workflow_id, document_id, outcome.attempts,
            )
            self._write(
                workflow_id,
                STAGE_WARNINGS,
                SOFT_FAILURE_PROGRESS,
                f"Document processed but embedding verification timed out after {max_wait:g}s",
            )
        elif outcome.status == PollStatus.FAILURE:
            raise StageExecutionFailure("ConvergeOnStorage", outcome.message or "storage failed")
        else:
            logger.info("Pipeline stopped during convergence | workflow=%s", workflow_id)

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    async def _run_stage(self, stage: str, call: Callable[[], Awaitable[T]]) -> T:
        timeout = self._config.stage_timeout
        try:
            return await asyncio.wait_for(call(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise StageExecutionFailure(stage, f"{stage} timed out after {timeout:g}s") from exc
        except StageExecutionFailure:
            raise
        except Exception as exc:
            raise StageExecutionFailure(stage, str(exc) or type(exc).__name__) from exc

    def _cancelled(self, workflow_id: UUID) -> bool:
        if self._tracker.is_terminal(workflow_id):
            logger.info("Workflow no longer running, stopping | workflow=%s", workflow_id)
            return True
        return False

    def _write(
        self,
        workflow_id: UUID,
        stage:       str,
        progress:    float,
        message:     str | None = None,
    ) -> bool:
        """Update the tracker unless the workflow already went terminal. Returns True if written."""
        if self._cancelled(workflow_id):
            return False
        self._tracker.update(workflow_id, stage, progress, message)
        return True
