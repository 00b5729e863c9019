"""Supported providers and the models each one serves."""

from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ..errors import NoModelsError

# The first model listed for a provider is its default.
SUPPORTED_PROVIDERS: Dict[str, List[str]] = {
    "anthropic": [
        "claude-3-7-sonnet-latest",
    ],
    "deepseek": [
        "deepseek-coder",
        "deepseek-chat",
    ],
    "google": [
        "gemini-2.5-pro-exp-03-25",
        "gemini-2.0-flash",
        "gemini-2.0-flash-lite",
        "gemini-1.5-flash",
        "gemini-1.5-flash-8b",
    ],
}


class ModelRegistry:
    """
    Immutable provider -> models table with its inverse index.

    Build a separate instance when a different table is needed; the shared
    DEFAULT_REGISTRY is never mutated.
    """

    def __init__(self, providers: Mapping[str, Sequence[str]]):
        table = {}
        index = {}
        for provider, models in providers.items():
            table[provider] = tuple(models)
            for model in models:
                owner = index.get(model)
                if owner is not None and owner != provider:
                    raise ValueError(
                        f"model {model} is listed under both {owner} and {provider}"
                    )
                index[model] = provider

        self._providers = MappingProxyType(table)
        self._model_to_provider = MappingProxyType(index)

    def providers(self) -> List[str]:
        return sorted(self._providers)

    def is_valid_provider(self, provider: str) -> bool:
        return provider in self._providers

    def is_valid_model(self, model: str) -> bool:
        return model in self._model_to_provider

    def models_for_provider(self, provider: str) -> Tuple[str, ...]:
        return self._providers.get(provider, ())

    def provider_for_model(self, model: str) -> Optional[str]:
        return self._model_to_provider.get(model)

    def default_model_for_provider(self, provider: str) -> str:
        """
        Return the first (default) model for a provider.

        Raises:
            NoModelsError: If the provider is unknown or lists no models
        """
        models = self.models_for_provider(provider)
        if not models:
            raise NoModelsError(provider)
        return models[0]


DEFAULT_REGISTRY = ModelRegistry(SUPPORTED_PROVIDERS)
