"""
Workflow & Provider API — Pydantic Request/Response Schemas

Design decisions:
  - workflow_id is always server-generated (UUID4); never client-supplied.
  - progress is the pipeline fraction in [-1.0, 1.0]: -1.0 failed/cancelled,
    1.0 complete, 0.95 completed with unverified storage.
  - All timestamps are timezone-aware UTC.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from docflow.llm.registry import ProviderHandle
from docflow.workflows.tracker import WorkflowRecord


# ---------------------------------------------------------------------------
# Workflows
# ---------------------------------------------------------------------------

class StartWorkflowRequest(BaseModel):
    name:   str            = Field(..., min_length=1, max_length=100, description="Workflow name")
    params: dict[str, Any] = Field(default_factory=dict, description="Free-form start parameters")


class WorkflowStatusResponse(BaseModel):
    """Polled by clients to track async processing progress."""
    workflow_id:  UUID
    name:         str
    stage:        str
    progress:     float = Field(..., ge=-1.0, le=1.0)
    message:      str | None = None
    last_updated: datetime
    terminal:     bool  = Field(..., description="True once progress >= 1.0 or < 0")

    @classmethod
    def from_record(cls, record: WorkflowRecord) -> "WorkflowStatusResponse":
        return cls(
            workflow_id  = record.id,
            name         = record.name,
            stage        = record.stage,
            progress     = record.progress,
            message      = record.message,
            last_updated = record.last_updated,
            terminal     = record.is_terminal,
        )


class CancelWorkflowResponse(BaseModel):
    workflow_id: UUID
    accepted:    bool = Field(..., description="False when the workflow was already terminal")


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------

class ProviderStatusResponse(BaseModel):
    name:                str
    kind:                str
    priority:            int
    available:           bool
    supports_chat:       bool
    supports_embeddings: bool
    chat_model:          str
    embedding_model:     str
    last_error:          str | None = None

    @classmethod
    def from_handle(cls, handle: ProviderHandle) -> "ProviderStatusResponse":
        return cls(
            name                = handle.name,
            kind                = handle.config.kind,
            priority            = handle.priority,
            available           = handle.available,
            supports_chat       = handle.supports_chat,
            supports_embeddings = handle.supports_embeddings,
            chat_model          = handle.config.default_models.chat,
            embedding_model     = handle.config.default_models.embedding,
            last_error          = handle.last_error,
        )


class ChatRequest(BaseModel):
    message:       str        = Field(..., min_length=1, max_length=32_000)
    system_prompt: str | None = Field(None, max_length=8_000)
    use_fallback:  bool       = Field(False, description="Try lower-priority providers within this request")


class ChatResponse(BaseModel):
    content:    str
    provider:   str
    model:      str
    latency_ms: float
    request_id: str


# ---------------------------------------------------------------------------
# Structured error bodies
# ---------------------------------------------------------------------------

class ErrorDetail(BaseModel):
    """Single structured error; may appear in a list."""
    field:   str | None = Field(None, description="Request field that caused the error, if applicable")
    message: str
    code:    str         = Field(..., description="Machine-readable error code for client handling")


class ErrorResponse(BaseModel):
    """
    Uniform error envelope for all 4xx/5xx responses.
    Clients should check `error_code` for programmatic handling.
    """
    error_code: str               = Field(..., description="Stable machine-readable code")
    message:    str               = Field(..., description="Human-readable summary")
    details:    list[ErrorDetail] = Field(default_factory=list)
    request_id: str | None        = Field(None, description="Trace ID for log correlation")
