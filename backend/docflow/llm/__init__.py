"""
LLM Provider Package

Priority- and availability-based selection over interchangeable chat and
embedding backends:
  - OpenAI           (GPT-4o, text-embedding-3)
  - Azure OpenAI     (same models, different endpoint)
  - GitHub Models    (OpenAI-compatible endpoint)
  - Ollama / Local   (air-gapped)
  - AWS Bedrock

Public API::

    from docflow.llm import ProviderRegistry, ProviderSelector, LLMGateway

    registry = ProviderRegistry(load_providers_config(settings), settings)
    selector = ProviderSelector(registry)
    response = await LLMGateway(selector).chat("Summarise clause 4")
"""

from docflow.llm.config import ProviderConfig, ProvidersConfiguration, load_providers_config
from docflow.llm.fallback import FallbackChain
from docflow.llm.gateway import GatewayResponse, LLMGateway
from docflow.llm.providers import LLMProvider, register_provider_kind
from docflow.llm.registry import ProviderHandle, ProviderRegistry
from docflow.llm.selector import Capability, ProviderSelector

__all__ = [
    "Capability",
    "FallbackChain",
    "GatewayResponse",
    "LLMGateway",
    "LLMProvider",
    "ProviderConfig",
    "ProviderHandle",
    "ProviderRegistry",
    "ProviderSelector",
    "ProvidersConfiguration",
    "load_providers_config",
    "register_provider_kind",
]
