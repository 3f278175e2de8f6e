"""
FastAPI Application — Entry Point

Document pipeline orchestration API

Architecture:
  - All routes are versioned under /api/v1/
  - Core objects are built once in the lifespan and stored on app.state:
      WorkflowTracker, PipelineOrchestrator, WorkflowRunner,
      ProviderRegistry, ProviderSelector, LLMGateway
  - Pipeline runs execute in-process as asyncio tasks owned by the runner
  - Structured JSON error responses on all 4xx/5xx

Middleware stack (innermost → outermost):
  1. CORS: restrict to configured origins
  2. Request ID injection: X-Request-ID header on every response
  3. Request logging: one log line per request with latency
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from docflow.api.v1.providers import router as providers_router
from docflow.api.v1.workflows import router as workflows_router
from docflow.core.config import Settings, settings
from docflow.core.errors import (
    DocflowError,
    ProviderCapabilityError,
    ProviderNotFound,
    ProviderUnavailable,
    WorkflowNotFound,
)
from docflow.llm.config import load_providers_config
from docflow.llm.gateway import LLMGateway
from docflow.llm.registry import ProviderRegistry
from docflow.llm.selector import ProviderSelector
from docflow.schemas.workflows import ErrorDetail, ErrorResponse
from docflow.services.document_workflow import DocumentWorkflowService
from docflow.services.stage_client import HttpStageExecutor
from docflow.workflows.orchestrator import OrchestratorConfig, PipelineOrchestrator
from docflow.workflows.runner import WorkflowRunner
from docflow.workflows.tracker import WorkflowTracker

logger = logging.getLogger(__name__)

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

_ERROR_STATUS: dict[type[DocflowError], int] = {
    WorkflowNotFound:        status.HTTP_404_NOT_FOUND,
    ProviderNotFound:        status.HTTP_404_NOT_FOUND,
    ProviderUnavailable:     status.HTTP_503_SERVICE_UNAVAILABLE,
    ProviderCapabilityError: status.HTTP_501_NOT_IMPLEMENTED,
}


# ---------------------------------------------------------------------------
# Core wiring
# ---------------------------------------------------------------------------

def build_state(app: FastAPI, cfg: Settings) -> HttpStageExecutor:
    """Construct the long-lived core objects and attach them to app.state."""
    registry = ProviderRegistry(
        load_providers_config(cfg),
        cfg,
        recovery_seconds=cfg.provider_recovery_seconds,
    )
    selector = ProviderSelector(registry)
    tracker  = WorkflowTracker(retention_seconds=cfg.workflow_retention_seconds)
    executor = HttpStageExecutor.from_settings(cfg)
    runner   = WorkflowRunner(max_concurrent=cfg.max_concurrent_pipelines)
    orchestrator = PipelineOrchestrator(
        tracker,
        executor,
        config=OrchestratorConfig.from_settings(cfg),
    )

    app.state.provider_registry = registry
    app.state.provider_selector = selector
    app.state.llm_gateway       = LLMGateway(selector)
    app.state.workflow_tracker  = tracker
    app.state.workflow_runner   = runner
    app.state.workflow_service  = DocumentWorkflowService(tracker, orchestrator, runner)
    return executor


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown hooks)
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: build the registry and pipeline objects, log a config summary.
    Shutdown: drain in-flight pipeline runs, close the stage HTTP client.
    """
    logger.info(
        "Starting docflow | env=%s parser=%s embedding=%s",
        settings.app_env, settings.parser_service_url, settings.embedding_service_url,
    )
    executor = build_state(app, settings)

    registry: ProviderRegistry = app.state.provider_registry
    if not len(registry):
        logger.warning("No LLM providers configured, chat and embedding selection will fail")
    logger.info("Providers: %s", ", ".join(h.name for h in registry.all()) or "-")

    yield

    logger.info("Shutting down docflow")
    await app.state.workflow_runner.shutdown(timeout=settings.stage_timeout_seconds)
    await executor.aclose()


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app() -> FastAPI:
    app = FastAPI(
        title="Document Pipeline Orchestrator",
        description=(
            "Drives documents through parse, chunk, embed and storage stages with live "
            "progress, and selects among interchangeable LLM providers."
        ),
        version="1.0.0",
        docs_url="/api/docs" if not settings.is_production else None,
        redoc_url="/api/redoc" if not settings.is_production else None,
        openapi_url="/api/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )

    allowed_origins = ["*"] if settings.app_env == "development" else []
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID", "X-Workflow-ID", "Location"],
    )

    # ----------------------------------------------------------------
    # Request ID + structured logging middleware
    # ----------------------------------------------------------------

    @app.middleware("http")
    async def request_id_and_logging(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start = time.perf_counter()

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = request_id

        logger.info(
            "HTTP %s %s %d %.1fms",
            request.method, request.url.path, response.status_code, duration_ms,
        )
        return response

    # ----------------------------------------------------------------
    # Exception handlers: uniform structured error responses
    # ----------------------------------------------------------------

    @app.exception_handler(DocflowError)
    async def docflow_exception_handler(request: Request, exc: DocflowError):
        status_code = next(
            (code for cls, code in _ERROR_STATUS.items() if isinstance(exc, cls)),
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
        body = ErrorResponse(
            error_code=exc.error_code,
            message=str(exc),
            request_id=request.headers.get("X-Request-ID"),
        )
        return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Convert Pydantic/FastAPI validation errors to structured ErrorResponse."""
        details = [
            ErrorDetail(
                field=" → ".join(str(loc) for loc in err["loc"]),
                message=err["msg"],
                code="VALIDATION_ERROR",
            )
            for err in exc.errors()
        ]
        body = ErrorResponse(
            error_code="VALIDATION_ERROR",
            message="Request validation failed.",
            details=details,
            request_id=request.headers.get("X-Request-ID"),
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=body.model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Catch-all for unhandled exceptions. Never exposes stack traces."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        logger.exception(
            "Unhandled exception | path=%s request_id=%s",
            request.url.path, request_id,
        )
        body = ErrorResponse(
            error_code="INTERNAL_ERROR",
            message="An unexpected error occurred.",
            request_id=request_id,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=body.model_dump(mode="json"),
            headers={"X-Request-ID": request_id},
        )

    # ----------------------------------------------------------------
    # Routers
    # ----------------------------------------------------------------

    app.include_router(workflows_router, prefix="/api/v1")
    app.include_router(providers_router, prefix="/api/v1")

    # ----------------------------------------------------------------
    # Health & readiness endpoints (used by load balancer)
    # ----------------------------------------------------------------

    @app.get(
        "/health",
        tags=["Operations"],
        summary="Liveness probe",
        description="Returns 200 if the process is alive. No external checks.",
    )
    async def health() -> dict:
        return {"status": "ok", "service": "docflow-api"}

    @app.get(
        "/ready",
        tags=["Operations"],
        summary="Readiness probe",
        description="Returns 200 only if at least one LLM provider is available.",
    )
    async def readiness(request: Request) -> JSONResponse:
        selector: ProviderSelector = request.app.state.provider_selector
        available = [h.name for h in selector.available_providers()]
        runner: WorkflowRunner = request.app.state.workflow_runner
        content = {"providers": available, "in_flight_workflows": len(runner)}
        if not available:
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "not_ready", **content},
            )
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={"status": "ready", **content},
        )

    return app


# ---------------------------------------------------------------------------
# Application instance (imported by uvicorn)
# ---------------------------------------------------------------------------

app = create_app()


# ---------------------------------------------------------------------------
# Local development entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "docflow.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.app_env == "development",
        log_level="debug" if settings.debug else "info",
        access_log=True,
    )
