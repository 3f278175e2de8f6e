"""
Provider & Chat API Router

  GET  /api/v1/providers                 every handle with live availability
  POST /api/v1/providers/{name}/reset    put an unavailable provider back in rotation
  POST /api/v1/chat                      one chat completion via the selector

Chat returns 503 PROVIDER_UNAVAILABLE when no chat provider qualifies and
502 PROVIDER_ERROR when the selected provider fails the call.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from docflow.api.dependencies import Gateway, Registry, Selector
from docflow.core.errors import DocflowError
from docflow.schemas.workflows import ChatRequest, ChatResponse, ErrorResponse, ProviderStatusResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Providers"])


@router.get(
    "/providers",
    response_model=list[ProviderStatusResponse],
    summary="List providers in selection order",
)
async def list_providers(registry: Registry, selector: Selector) -> list[ProviderStatusResponse]:
    ranked = selector.available_providers()
    unavailable = [h for h in registry.all() if h not in ranked]
    return [ProviderStatusResponse.from_handle(h) for h in (*ranked, *unavailable)]


@router.post(
    "/providers/{name}/reset",
    response_model=ProviderStatusResponse,
    summary="Mark a provider available again",
    responses={404: {"model": ErrorResponse}},
)
async def reset_provider(name: str, registry: Registry) -> ProviderStatusResponse:
    registry.mark_available(name)
    logger.info("Provider reset via API | provider=%s", name)
    return ProviderStatusResponse.from_handle(registry.by_name(name))


@router.post(
    "/chat",
    response_model=ChatResponse,
    summary="Chat completion through the highest-priority available provider",
    responses={502: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def chat(payload: ChatRequest, gateway: Gateway) -> ChatResponse | JSONResponse:
    try:
        result = await gateway.chat(
            payload.message,
            system_prompt=payload.system_prompt,
            use_fallback=payload.use_fallback,
        )
    except DocflowError:
        raise
    except Exception as exc:
        logger.warning("Chat provider call failed | error=%s: %s", type(exc).__name__, exc)
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content=ErrorResponse(
                error_code="PROVIDER_ERROR",
                message=f"The selected provider failed: {type(exc).__name__}",
            ).model_dump(mode="json"),
        )
    return ChatResponse(
        content    = result.content,
        provider   = result.provider,
        model      = result.model,
        latency_ms = result.latency_ms,
        request_id = result.request_id,
    )
