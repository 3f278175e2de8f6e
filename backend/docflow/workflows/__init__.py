"""
Workflow Orchestration Package
══════════════════════════════

Drives documents through Parse → Chunk → Embed → ConvergeOnStorage and
exposes live progress while doing it.

Modules
───────
  tracker.py       thread-safe id → WorkflowRecord map
  poller.py        bounded wait on a probe with no push channel
  stages.py        StageExecutor protocol + ChunkSet
  orchestrator.py  the stage sequence and status writes
  runner.py        bounded pool keeping a handle per run
"""

from docflow.workflows.orchestrator import OrchestratorConfig, PipelineOrchestrator
from docflow.workflows.poller import CompletionPoller, PollOutcome, PollStatus, ProbeSignal
from docflow.workflows.runner import WorkflowRunner
from docflow.workflows.stages import ChunkSet, StageExecutor
from docflow.workflows.tracker import WorkflowRecord, WorkflowTracker

__all__ = [
    "ChunkSet",
    "CompletionPoller",
    "OrchestratorConfig",
    "PipelineOrchestrator",
    "PollOutcome",
    "PollStatus",
    "ProbeSignal",
    "StageExecutor",
    "WorkflowRecord",
    "WorkflowRunner",
    "WorkflowTracker",
]
