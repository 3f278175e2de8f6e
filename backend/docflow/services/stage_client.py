"""
HTTP Stage Executor — StageExecutor over the parser and embedding services

Endpoints called:
  POST {parser}/api/parsing/{document_id}/parse
  POST {parser}/api/parsing/{document_id}/chunk        → chunk list (JSON)
  POST {embedding}/api/embeddings/generate             ← chunk payload
  GET  {embedding}/api/embeddings/status/{document_id} → {stage, progress, message}

Every request carries an explicit timeout (settings.http_timeout_seconds).
A non-2xx response or transport error becomes StageExecutionFailure with the
response body / error text as the message, which the orchestrator records
verbatim as the workflow failure message.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

import httpx

from docflow.core.config import Settings
from docflow.core.errors import StageExecutionFailure
from docflow.workflows.poller import ProbeSignal
from docflow.workflows.stages import ChunkSet

logger = logging.getLogger(__name__)


class HttpStageExecutor:
    """
    Shares one httpx.AsyncClient across all pipeline runs.
    Call aclose() on shutdown (done by the app lifespan).
    """

    def __init__(
        self,
        parser_url:    str,
        embedding_url: str,
        timeout:       float = 30.0,
        client:        httpx.AsyncClient | None = None,
    ) -> None:
        self._parser_url    = parser_url.rstrip("/")
        self._embedding_url = embedding_url.rstrip("/")
        self._client        = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpStageExecutor":
        return cls(
            parser_url=settings.parser_service_url,
            embedding_url=settings.embedding_service_url,
            timeout=settings.http_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # -----------------------------------------------------------------------
    # StageExecutor
    # -----------------------------------------------------------------------

    async def parse(self, document_id: UUID) -> None:
        await self._request("Parse", "POST", f"{self._parser_url}/api/parsing/{document_id}/parse")

    async def chunk(self, document_id: UUID) -> ChunkSet:
        body = await self._request(
            "Chunk", "POST", f"{self._parser_url}/api/parsing/{document_id}/chunk",
        )
        chunks = body.get("chunks", []) if isinstance(body, dict) else body
        logger.info("Chunked | doc=%s chunks=%d", document_id, len(chunks or []))
        return ChunkSet(document_id=document_id, chunks=list(chunks or []))

    async def embed(self, chunk_set: ChunkSet) -> None:
        await self._request(
            "Embed", "POST", f"{self._embedding_url}/api/embeddings/generate",
            json=chunk_set.to_payload(),
        )

    async def probe_storage_status(self, document_id: UUID) -> ProbeSignal:
        body = await self._request(
            "ConvergeOnStorage", "GET", f"{self._embedding_url}/api/embeddings/status/{document_id}",
        )
        if not isinstance(body, dict) or "progress" not in body:
            raise StageExecutionFailure("ConvergeOnStorage", f"Malformed status payload: {body!r}")
        return ProbeSignal(
            progress=float(body["progress"]),
            stage=body.get("stage"),
            message=body.get("message"),
        )

    # -----------------------------------------------------------------------
    # Transport
    # -----------------------------------------------------------------------

    async def _request(self, stage: str, method: str, url: str, **kwargs: Any) -> Any:
        try:
            resp = await self._client.request(method, url, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Stage call failed | stage=%s url=%s status=%d",
                stage, url, exc.response.status_code,
            )
            detail = exc.response.text or exc.response.reason_phrase
            raise StageExecutionFailure(
                stage, f"{stage} failed with HTTP {exc.response.status_code}: {detail}",
            ) from exc
        except httpx.RequestError as exc:
            logger.error("Stage call network error | stage=%s url=%s error=%s", stage, url, exc)
            raise StageExecutionFailure(stage, f"{stage} request error: {exc}") from exc

        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError:
            return {"raw": resp.text}
