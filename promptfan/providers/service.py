"""
Orchestration service for multi-provider LLM queries.

Routes a single-model query to the provider serving that model, timing the
call and recording it in the query history, and fans one prompt out to every
configured provider concurrently.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Type

import httpx

from ..config import DEFAULT_TEMPERATURE, REQUEST_TIMEOUT
from ..context import QueryContext
from ..errors import NoModelsError, PromptFanError, ProviderNotConfiguredError, UnknownModelError
from ..storage import QueryHistory
from .anthropic_provider import AnthropicProvider
from .base import Option, Provider, apply_options, with_model
from .deepseek_provider import DeepseekProvider
from .google_provider import GoogleProvider
from .models import DEFAULT_REGISTRY, ModelRegistry

logger = logging.getLogger(__name__)

# Adapter class per provider name, resolved once when a service is built
PROVIDER_FACTORIES: Dict[str, Type[Provider]] = {
    "anthropic": AnthropicProvider,
    "deepseek": DeepseekProvider,
    "google": GoogleProvider,
}

ErrorSink = Callable[[Exception], None]


@dataclass
class ProviderResponse:
    """One provider's result within a fan-out query."""
    provider: str
    model: str = ""
    response: str = ""
    error: Optional[Exception] = None
    elapsed_time: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


def effective_temperature(options: Iterable[Option]) -> float:
    """
    Temperature recorded in history for a set of options.

    An explicit 0.0 is kept as 0.0; only an unset temperature falls back to
    the default.
    """
    opts = apply_options(options)
    if opts.temperature is None:
        return DEFAULT_TEMPERATURE
    return opts.temperature


def _report_history_error(exc: Exception) -> None:
    logger.error("Failed to log query: %s", exc)


class OrchestrationService:
    """
    Owns the configured provider adapters.

    Usage:
        async with OrchestrationService.from_api_keys(keys, history=history) as service:
            text, elapsed = await service.query_with_timing(ctx, "hi", "deepseek-chat")
            results = await service.query_all(ctx, "hi")
    """

    def __init__(
        self,
        providers: Mapping[str, Provider],
        registry: ModelRegistry = DEFAULT_REGISTRY,
        history: Optional[QueryHistory] = None,
        error_sink: Optional[ErrorSink] = None,
    ):
        self.providers: Dict[str, Provider] = dict(providers)
        self.registry = registry
        self.history = history
        self.error_sink = error_sink or _report_history_error
        self._pending_writes: Set[asyncio.Task] = set()

    @classmethod
    def from_api_keys(
        cls,
        api_keys: Mapping[str, str],
        http_client: Optional[httpx.AsyncClient] = None,
        registry: ModelRegistry = DEFAULT_REGISTRY,
        history: Optional[QueryHistory] = None,
        error_sink: Optional[ErrorSink] = None,
        timeout: float = REQUEST_TIMEOUT,
    ) -> "OrchestrationService":
        """
        Build adapters for every provider that has a non-empty API key.

        Args:
            api_keys: Provider name -> API key
            http_client: Optional shared client; adapters open their own otherwise
            timeout: Per-request timeout for adapter-owned clients
        """
        providers = {}
        for name, factory in PROVIDER_FACTORIES.items():
            api_key = api_keys.get(name)
            if api_key:
                providers[name] = factory(api_key, http_client=http_client, timeout=timeout)
        return cls(providers, registry=registry, history=history, error_sink=error_sink)

    def configured_providers(self) -> List[str]:
        return sorted(self.providers)

    async def query_with_timing(
        self,
        ctx: Optional[QueryContext],
        prompt: str,
        model: str,
        *options: Option,
    ) -> Tuple[str, float]:
        """
        Query one model and time the call.

        Args:
            ctx: Cancellation/deadline signal (None for no deadline)
            prompt: Prompt text
            model: Model identifier; routes the query to its provider
            options: Additional request options

        Returns:
            Tuple of (response text, elapsed seconds)

        Raises:
            UnknownModelError: If the registry doesn't know the model
            ProviderNotConfiguredError: If no adapter serves the model's provider
            PromptFanError: Whatever the adapter raised, unchanged
        """
        ctx = ctx or QueryContext.background()

        if not self.registry.is_valid_model(model):
            raise UnknownModelError(model)

        provider_name = self.registry.provider_for_model(model)
        provider = self.providers.get(provider_name)
        if provider is None:
            raise ProviderNotConfiguredError(provider_name)

        options = (with_model(model),) + options
        temperature = effective_temperature(options)

        start_time = time.perf_counter()
        try:
            response = await provider.query(ctx, prompt, *options)
        except PromptFanError as e:
            elapsed_time = time.perf_counter() - start_time
            logger.debug("Query to %s failed after %.0fms: %s", model, elapsed_time * 1000, e)
            raise
        elapsed_time = time.perf_counter() - start_time

        # Only successful queries are logged, without blocking the caller
        if self.history is not None:
            self._log_in_background(prompt, model, response, elapsed_time, temperature)

        return response, elapsed_time

    async def query(
        self,
        ctx: Optional[QueryContext],
        prompt: str,
        model: str,
        *options: Option,
    ) -> str:
        response, _ = await self.query_with_timing(ctx, prompt, model, *options)
        return response

    async def query_all(
        self,
        ctx: Optional[QueryContext],
        prompt: str,
        *options: Option,
    ) -> Dict[str, ProviderResponse]:
        """
        Send a prompt to every configured provider concurrently.

        Each provider is queried with its default model. A failing provider
        never fails the call: its entry carries the error instead. Fan-out
        queries are not written to the history.

        Returns:
            Dict mapping provider name to its ProviderResponse, one entry per
            configured provider
        """
        ctx = ctx or QueryContext.background()
        results: Dict[str, ProviderResponse] = {}
        results_lock = asyncio.Lock()

        async def query_provider(provider_name: str, provider: Provider) -> None:
            try:
                model = self.registry.default_model_for_provider(provider_name)
            except NoModelsError as e:
                async with results_lock:
                    results[provider_name] = ProviderResponse(provider=provider_name, error=e)
                return

            response = ""
            error = None
            start_time = time.perf_counter()
            try:
                response = await provider.query(ctx, prompt, with_model(model), *options)
            except Exception as e:
                error = e
                logger.warning("Provider %s (%s) failed: %s", provider_name, model, e)
            elapsed_time = time.perf_counter() - start_time

            async with results_lock:
                results[provider_name] = ProviderResponse(
                    provider=provider_name,
                    model=model,
                    response=response,
                    error=error,
                    elapsed_time=elapsed_time,
                )

        logger.debug("Querying %d providers: %s", len(self.providers), self.configured_providers())

        # Wait for every provider, not just the first to answer
        await asyncio.gather(*(
            query_provider(name, provider) for name, provider in self.providers.items()
        ))

        return results

    def _log_in_background(
        self,
        prompt: str,
        model: str,
        response: str,
        elapsed_time: float,
        temperature: float,
    ) -> None:
        task = asyncio.create_task(
            self._write_history(prompt, model, response, elapsed_time, temperature)
        )
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _write_history(
        self,
        prompt: str,
        model: str,
        response: str,
        elapsed_time: float,
        temperature: float,
    ) -> None:
        try:
            await self.history.log_query(prompt, model, response, elapsed_time, temperature)
        except Exception as e:
            self.error_sink(e)

    async def wait_for_history(self) -> None:
        """Wait until every background history write has finished."""
        while True:
            pending = [task for task in self._pending_writes if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def aclose(self) -> None:
        """Finish pending history writes, then release every adapter."""
        await self.wait_for_history()
        for provider in self.providers.values():
            await provider.aclose()

    async def __aenter__(self) -> "OrchestrationService":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
