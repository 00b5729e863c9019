"""
Multi-provider LLM clients.

This module provides a unified interface to query models from different providers:
- Anthropic/Claude (Messages API)
- DeepSeek (OpenAI-compatible chat completions)
- Google Gemini (generateContent)

Usage:
    from promptfan.providers import OrchestrationService, with_temperature

    service = OrchestrationService.from_api_keys({"deepseek": key})

    # Query one model
    text, elapsed = await service.query_with_timing(ctx, "Hello", "deepseek-chat")

    # Query every configured provider in parallel
    results = await service.query_all(ctx, "Hello", with_temperature(0.2))
"""

from .anthropic_provider import AnthropicProvider
from .base import (
    Option,
    ParamValue,
    Provider,
    RequestOptions,
    apply_options,
    with_custom_param,
    with_max_tokens,
    with_model,
    with_temperature,
)
from .deepseek_provider import DeepseekProvider
from .google_provider import GoogleProvider
from .models import DEFAULT_REGISTRY, SUPPORTED_PROVIDERS, ModelRegistry
from .service import PROVIDER_FACTORIES, OrchestrationService, ProviderResponse, effective_temperature

__all__ = [
    "AnthropicProvider",
    "DEFAULT_REGISTRY",
    "DeepseekProvider",
    "GoogleProvider",
    "ModelRegistry",
    "Option",
    "OrchestrationService",
    "PROVIDER_FACTORIES",
    "ParamValue",
    "Provider",
    "ProviderResponse",
    "RequestOptions",
    "SUPPORTED_PROVIDERS",
    "apply_options",
    "effective_temperature",
    "with_custom_param",
    "with_max_tokens",
    "with_model",
    "with_temperature",
]
