"""
Workflow Tracker — live status for every workflow in this process.

The only shared mutable resource in the orchestration core:
  - writers: the single orchestrator run that owns a workflow id
  - readers: any number of status queries (API, tests, other tasks)

Records are frozen dataclasses and are replaced as a unit under a short
lock, so a reader sees either the old record or the new one, never a mix.
The lock is never held across an await.

Lifecycle:
  start()   → stage="Started", progress=0.0
  update()  → any stage / progress in [-1.0, 1.0]
  cancel()  → stage="Cancelled", progress=-1.0, only when not yet terminal

Terminal means progress >= 1.0 or progress < 0. The tracker does not reject
updates after a terminal value; the orchestrator stops writing once it sees
one, so a late overwrite is possible only from an out-of-order caller.

Retention: records live for the process lifetime unless retention_seconds
is set, in which case records that have been terminal for longer than that
are pruned whenever a new workflow starts.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from uuid import UUID

from docflow.core.errors import WorkflowNotFound

logger = logging.getLogger(__name__)

STAGE_STARTED   = "Started"
STAGE_CANCELLED = "Cancelled"
CANCEL_MESSAGE  = "cancelled by caller"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_terminal_progress(progress: float) -> bool:
    return progress >= 1.0 or progress < 0


@dataclass(frozen=True)
class WorkflowRecord:
    """Immutable snapshot of one workflow's state."""
    id:           UUID
    name:         str
    stage:        str
    progress:     float
    message:      str | None
    last_updated: datetime
    params:       dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return is_terminal_progress(self.progress)

    @property
    def is_cancelled(self) -> bool:
        return self.stage == STAGE_CANCELLED and self.progress < 0


class WorkflowTracker:
    """
    Thread-safe id → WorkflowRecord map.

    Usage::

        tracker = WorkflowTracker()
        wid     = tracker.start("ProcessDocument", {"document_id": str(doc_id)})
        tracker.update(wid, "Parsing Document", 0.2)
        tracker.get(wid).progress   # 0.2
    """

    def __init__(
        self,
        retention_seconds: float | None = None,
        clock:             Callable[[], datetime] = _utcnow,
    ) -> None:
        self._records: dict[UUID, WorkflowRecord] = {}
        self._lock = threading.Lock()
        self._retention = timedelta(seconds=retention_seconds) if retention_seconds else None
        self._clock = clock

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, workflow_id: object) -> bool:
        return workflow_id in self._records

    # -----------------------------------------------------------------------
    # Operations
    # -----------------------------------------------------------------------

    def start(self, name: str, params: dict[str, Any] | None = None) -> UUID:
        """Create a fresh workflow record and return its id."""
        if self._retention is not None:
            self.prune()

        workflow_id = uuid.uuid4()
        record = WorkflowRecord(
            id           = workflow_id,
            name         = name,
            stage        = STAGE_STARTED,
            progress     = 0.0,
            message      = f"Workflow {name} initiated",
            last_updated = self._clock(),
            params       = dict(params or {}),
        )
        with self._lock:
            self._records[workflow_id] = record

        logger.info("Workflow started | workflow=%s name=%s", workflow_id, name)
        return workflow_id

    def get(self, workflow_id: UUID) -> WorkflowRecord:
        """
        Raises:
            WorkflowNotFound: unknown id (or pruned).
        """
        record = self._records.get(workflow_id)
        if record is None:
            raise WorkflowNotFound(workflow_id)
        return record

    def update(
        self,
        workflow_id: UUID,
        stage:       str,
        progress:    float,
        message:     str | None = None,
    ) -> None:
        """
        Replace the record for workflow_id. Unknown ids are ignored so a late
        update racing a prune or cancellation is harmless.

        Raises:
            ValueError: progress outside [-1.0, 1.0].
        """
        if not -1.0 <= progress <= 1.0:
            raise ValueError(f"progress must be within [-1.0, 1.0], got {progress}")

        with self._lock:
            current = self._records.get(workflow_id)
            if current is None:
                logger.debug("Update for unknown workflow ignored | workflow=%s", workflow_id)
                return
            self._records[workflow_id] = replace(
                current,
                stage        = stage,
                progress     = progress,
                message      = message if message is not None else f"Workflow at stage: {stage}",
                last_updated = self._clock(),
            )

        logger.info(
            "Workflow updated | workflow=%s stage=%s progress=%.0f%%",
            workflow_id, stage, progress * 100,
        )

    def cancel(self, workflow_id: UUID) -> bool:
        """
        Move a running workflow to Cancelled. Returns False if it was
        already terminal.

        Raises:
            WorkflowNotFound: unknown id.
        """
        with self._lock:
            current = self._records.get(workflow_id)
            if current is None:
                raise WorkflowNotFound(workflow_id)
            if current.is_terminal:
                return False
            self._records[workflow_id] = replace(
                current,
                stage        = STAGE_CANCELLED,
                progress     = -1.0,
                message      = CANCEL_MESSAGE,
                last_updated = self._clock(),
            )

        logger.info("Workflow cancelled | workflow=%s", workflow_id)
        return True

    def is_terminal(self, workflow_id: UUID) -> bool:
        """True if the workflow has reached a terminal state or no longer exists."""
        record = self._records.get(workflow_id)
        return record is None or record.is_terminal

    def records(self) -> list[WorkflowRecord]:
        with self._lock:
            return list(self._records.values())

    def prune(self, now: datetime | None = None) -> int:
        """Drop records that have been terminal for longer than the retention window."""
        if self._retention is None:
            return 0
        cutoff = (now or self._clock()) - self._retention
        with self._lock:
            stale = [
                wid for wid, rec in self._records.items()
                if rec.is_terminal and rec.last_updated < cutoff
            ]
            for wid in stale:
                del self._records[wid]
        if stale:
            logger.info("Pruned terminal workflows | count=%d", len(stale))
        return len(stale)
