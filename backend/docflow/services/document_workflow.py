"""
Document Workflow Service

The status-query contract exposed to callers:

  start_workflow(name, params)  → workflow_id   (record only, no run)
  start_processing(document_id) → WorkflowRecord (record + scheduled pipeline run)
  status(workflow_id)           → WorkflowRecord | WorkflowNotFound
  cancel(workflow_id)           → accepted: bool | WorkflowNotFound

start_processing returns as soon as the run is scheduled; the record it
returns is always the fresh ("Started", 0.0) one. Progress is observed by
polling status().
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from docflow.workflows.orchestrator import PipelineOrchestrator
from docflow.workflows.runner import WorkflowRunner
from docflow.workflows.tracker import WorkflowRecord, WorkflowTracker

logger = logging.getLogger(__name__)

PROCESS_DOCUMENT = "ProcessDocument"


class DocumentWorkflowService:
    def __init__(
        self,
        tracker:      WorkflowTracker,
        orchestrator: PipelineOrchestrator,
        runner:       WorkflowRunner,
    ) -> None:
        self._tracker      = tracker
        self._orchestrator = orchestrator
        self._runner       = runner

    def start_workflow(self, name: str, params: dict[str, Any] | None = None) -> UUID:
        return self._tracker.start(name, params)

    def start_processing(self, document_id: UUID) -> WorkflowRecord:
        workflow_id = self._tracker.start(PROCESS_DOCUMENT, {"document_id": str(document_id)})
        record = self._tracker.get(workflow_id)
        self._runner.submit(
            workflow_id,
            lambda: self._orchestrator.run(workflow_id, document_id),
        )
        logger.info("Processing scheduled | workflow=%s doc=%s", workflow_id, document_id)
        return record

    def status(self, workflow_id: UUID) -> WorkflowRecord:
        return self._tracker.get(workflow_id)

    def cancel(self, workflow_id: UUID) -> bool:
        return self._tracker.cancel(workflow_id)
