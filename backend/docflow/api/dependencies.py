"""
Composed FastAPI Dependencies

The long-lived core objects (tracker, registry, selector, gateway, workflow
service) are built once in the app lifespan and stored on app.state. Route
handlers import the aliases from here (never app.state directly) so tests
can swap any of them with app.dependency_overrides.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from docflow.llm.gateway import LLMGateway
from docflow.llm.registry import ProviderRegistry
from docflow.llm.selector import ProviderSelector
from docflow.services.document_workflow import DocumentWorkflowService


def get_workflow_service(request: Request) -> DocumentWorkflowService:
    return request.app.state.workflow_service


def get_provider_registry(request: Request) -> ProviderRegistry:
    return request.app.state.provider_registry


def get_provider_selector(request: Request) -> ProviderSelector:
    return request.app.state.provider_selector


def get_llm_gateway(request: Request) -> LLMGateway:
    return request.app.state.llm_gateway


# ---------------------------------------------------------------------------
# Type aliases for cleaner route signatures
# ---------------------------------------------------------------------------

Workflows = Annotated[DocumentWorkflowService, Depends(get_workflow_service)]
Registry  = Annotated[ProviderRegistry,        Depends(get_provider_registry)]
Selector  = Annotated[ProviderSelector,        Depends(get_provider_selector)]
Gateway   = Annotated[LLMGateway,              Depends(get_llm_gateway)]
