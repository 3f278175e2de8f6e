"""
Workflow API Router

  POST /api/v1/workflows/documents/{document_id}   start processing (202)
  POST /api/v1/workflows                           register a workflow record (201)
  GET  /api/v1/workflows/{workflow_id}             live status
  POST /api/v1/workflows/{workflow_id}/cancel      cooperative cancellation

Processing is asynchronous: the 202 response carries the fresh
("Started", 0.0) status and a Location header to poll.
Unknown workflow ids surface as 404 WORKFLOW_NOT_FOUND via the
DocflowError handler in docflow.main.
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from docflow.api.dependencies import Workflows
from docflow.schemas.workflows import (
    CancelWorkflowResponse,
    ErrorResponse,
    StartWorkflowRequest,
    WorkflowStatusResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/workflows",
    tags=["Workflows"],
)


@router.post(
    "/documents/{document_id}",
    response_model=WorkflowStatusResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start the processing pipeline for a document",
    description=(
        "Schedules Parse → Chunk → Embed → ConvergeOnStorage and returns immediately. "
        "Poll GET /workflows/{id} for progress."
    ),
)
async def start_document_processing(document_id: UUID, workflows: Workflows) -> JSONResponse:
    record = workflows.start_processing(document_id)
    body = WorkflowStatusResponse.from_record(record)
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content=body.model_dump(mode="json"),
        headers={
            "X-Workflow-ID": str(record.id),
            "Location":      f"/api/v1/workflows/{record.id}",
        },
    )


@router.post(
    "",
    response_model=WorkflowStatusResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a workflow record without running a pipeline",
)
async def start_workflow(payload: StartWorkflowRequest, workflows: Workflows) -> WorkflowStatusResponse:
    workflow_id = workflows.start_workflow(payload.name, payload.params)
    return WorkflowStatusResponse.from_record(workflows.status(workflow_id))


@router.get(
    "/{workflow_id}",
    response_model=WorkflowStatusResponse,
    summary="Poll workflow status",
    responses={404: {"model": ErrorResponse}},
)
async def get_workflow_status(workflow_id: UUID, workflows: Workflows) -> WorkflowStatusResponse:
    return WorkflowStatusResponse.from_record(workflows.status(workflow_id))


@router.post(
    "/{workflow_id}/cancel",
    response_model=CancelWorkflowResponse,
    summary="Cancel a running workflow",
    description=(
        "Cooperative: a stage already in flight finishes, but no further stages run. "
        "accepted=false when the workflow had already finished, failed or been cancelled."
    ),
    responses={404: {"model": ErrorResponse}},
)
async def cancel_workflow(workflow_id: UUID, workflows: Workflows) -> CancelWorkflowResponse:
    accepted = workflows.cancel(workflow_id)
    logger.info("Cancel requested | workflow=%s accepted=%s", workflow_id, accepted)
    return CancelWorkflowResponse(workflow_id=workflow_id, accepted=accepted)
