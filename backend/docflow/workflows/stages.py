"""
Stage executor contract consumed by the PipelineOrchestrator.

Parsing, chunking, embedding and vector storage run in other services; the
orchestrator only needs these four calls. See
docflow.services.stage_client.HttpStageExecutor for the HTTP implementation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from docflow.workflows.poller import ProbeSignal


@dataclass
class ChunkSet:
    """Chunks produced for one document, passed unchanged to the embed stage."""
    document_id: UUID
    chunks:      list[dict[str, Any]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.chunks)

    def to_payload(self) -> dict[str, Any]:
        return {"document_id": str(self.document_id), "chunks": self.chunks}


@runtime_checkable
class StageExecutor(Protocol):
    async def parse(self, document_id: UUID) -> None: ...

    async def chunk(self, document_id: UUID) -> ChunkSet: ...

    async def embed(self, chunk_set: ChunkSet) -> None: ...

    async def probe_storage_status(self, document_id: UUID) -> ProbeSignal | float: ...
