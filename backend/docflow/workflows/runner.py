"""
Workflow Runner — bounded pool of in-flight pipeline runs

Every submitted run becomes an asyncio.Task that the runner keeps a handle
to until it finishes, so:
  - failures are logged instead of disappearing with an unawaited task,
  - callers (tests, shutdown) can await a specific run,
  - shutdown can drain or cancel what is still running.

Concurrency is capped by a semaphore (settings.max_concurrent_pipelines).
Runs beyond the cap are scheduled immediately but wait for a slot before
their first stage. At most one run per workflow id is in flight.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable
from uuid import UUID

logger = logging.getLogger(__name__)


class WorkflowRunner:
    """
    Usage::

        runner = WorkflowRunner(max_concurrent=8)
        runner.submit(workflow_id, lambda: orchestrator.run(workflow_id, document_id))
        ...
        await runner.shutdown(timeout=30)
    """

    def __init__(self, max_concurrent: int = 8) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._tasks: dict[UUID, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    def active(self) -> list[UUID]:
        return list(self._tasks)

    def submit(self, workflow_id: UUID, run: Callable[[], Awaitable[Any]]) -> asyncio.Task:
        """
        Schedule run() for workflow_id. Must be called from the event loop.

        Raises:
            RuntimeError: a run for this workflow id is already in flight.
        """
        existing = self._tasks.get(workflow_id)
        if existing is not None and not existing.done():
            raise RuntimeError(f"Workflow {workflow_id} is already running")

        task = asyncio.create_task(self._guarded(run), name=f"workflow-{workflow_id}")
        self._tasks[workflow_id] = task
        task.add_done_callback(lambda t, wid=workflow_id: self._on_done(wid, t))
        logger.debug("Runner | submitted workflow=%s in_flight=%d", workflow_id, len(self._tasks))
        return task

    async def wait(self, workflow_id: UUID) -> Any:
        """Await one in-flight run. Returns None if it is not (or no longer) running."""
        task = self._tasks.get(workflow_id)
        if task is None:
            return None
        return await asyncio.shield(task)

    async def shutdown(self, timeout: float = 30.0) -> None:
        """Wait up to timeout seconds for in-flight runs, then cancel the rest."""
        tasks = list(self._tasks.values())
        if not tasks:
            return
        logger.info("Runner | draining in_flight=%d timeout=%.0fs", len(tasks), timeout)
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Runner | cancelled unfinished runs=%d", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)

    async def _guarded(self, run: Callable[[], Awaitable[Any]]) -> Any:
        async with self._semaphore:
            return await run()

    def _on_done(self, workflow_id: UUID, task: asyncio.Task) -> None:
        if self._tasks.get(workflow_id) is task:
            del self._tasks[workflow_id]
        if task.cancelled():
            logger.info("Runner | run cancelled workflow=%s", workflow_id)
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Runner | run failed workflow=%s error=%s: %s",
                workflow_id, type(exc).__name__, exc,
                exc_info=exc,
            )
