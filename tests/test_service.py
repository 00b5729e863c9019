"""Tests for the orchestration service."""

import asyncio
import time

import httpx
import pytest

from promptfan.context import QueryContext
from promptfan.errors import (
    HistoryWriteError,
    NoModelsError,
    ProviderNotConfiguredError,
    QueryCanceledError,
    QueryTimeoutError,
    TransportError,
    UnknownModelError,
)
from promptfan.providers import (
    DeepseekProvider,
    GoogleProvider,
    ModelRegistry,
    OrchestrationService,
    with_custom_param,
    with_temperature,
)


class TestQueryWithTiming:
    """Single-model queries."""

    @pytest.mark.asyncio
    async def test_returns_response_and_logs_record(self, fake_provider, history):
        registry = ModelRegistry({"test": ["test-model"]})
        service = OrchestrationService(
            {"test": fake_provider("test", response="Test response")},
            registry=registry,
            history=history,
        )

        response, elapsed = await service.query_with_timing(QueryContext.background(), "hello", "test-model")
        await service.aclose()

        assert response == "Test response"
        assert elapsed >= 0
        records = await history.get_recent_queries(10)
        assert len(records) == 1
        assert records[0].prompt == "hello"
        assert records[0].model == "test-model"
        assert records[0].response == "Test response"
        assert records[0].temperature == 0.7

    @pytest.mark.asyncio
    async def test_unknown_model(self, fake_provider, history):
        registry = ModelRegistry({"test": ["test-model"]})
        provider = fake_provider("test")
        service = OrchestrationService({"test": provider}, registry=registry, history=history)

        with pytest.raises(UnknownModelError) as exc_info:
            await service.query_with_timing(QueryContext.background(), "hello", "unknown-model")
        await service.aclose()

        assert exc_info.value.stage == "model validation"
        assert provider.calls == []
        assert await history.get_recent_queries(10) == []

    @pytest.mark.asyncio
    async def test_known_model_without_adapter(self, fake_provider):
        registry = ModelRegistry({"test": ["test-model"], "other": ["other-model"]})
        service = OrchestrationService({"test": fake_provider("test")}, registry=registry)

        with pytest.raises(ProviderNotConfiguredError) as exc_info:
            await service.query_with_timing(None, "hello", "other-model")

        assert exc_info.value.provider == "other"
        assert exc_info.value.stage == "provider configuration"

    @pytest.mark.asyncio
    async def test_routes_model_and_caller_options(self, fake_provider):
        registry = ModelRegistry({"test": ["test-model", "test-model-2"]})
        provider = fake_provider("test")
        service = OrchestrationService({"test": provider}, registry=registry)

        await service.query(None, "hello", "test-model-2", with_custom_param("system", "terse"))

        prompt, opts = provider.calls[0]
        assert prompt == "hello"
        assert opts.model == "test-model-2"
        assert opts.custom_params == {"system": "terse"}

    @pytest.mark.asyncio
    async def test_adapter_failure_is_unchanged_and_not_logged(self, fake_provider, history):
        registry = ModelRegistry({"test": ["test-model"]})
        error = TransportError("connection refused")
        service = OrchestrationService(
            {"test": fake_provider("test", error=error)},
            registry=registry,
            history=history,
        )

        with pytest.raises(TransportError) as exc_info:
            await service.query_with_timing(None, "hello", "test-model")
        await service.aclose()

        assert exc_info.value is error
        assert await history.get_recent_queries(10) == []

    @pytest.mark.asyncio
    async def test_explicit_zero_temperature_is_logged(self, fake_provider, history):
        registry = ModelRegistry({"test": ["test-model"]})
        service = OrchestrationService({"test": fake_provider("test")}, registry=registry, history=history)

        await service.query_with_timing(None, "cold", "test-model", with_temperature(0.0))
        await service.query_with_timing(None, "warm", "test-model", with_temperature(0.3))
        await service.aclose()

        temperatures = {r.prompt: r.temperature for r in await history.get_recent_queries(10)}
        assert temperatures == {"cold": 0.0, "warm": 0.3}

    @pytest.mark.asyncio
    async def test_history_failure_goes_to_error_sink(self, fake_provider, tmp_path):
        from promptfan.storage import QueryHistory

        broken = QueryHistory(tmp_path / "queries.db")
        broken.close()
        reported = []
        registry = ModelRegistry({"test": ["test-model"]})
        service = OrchestrationService(
            {"test": fake_provider("test", response="still fine")},
            registry=registry,
            history=broken,
            error_sink=reported.append,
        )

        response, _ = await service.query_with_timing(None, "hello", "test-model")
        await service.aclose()

        assert response == "still fine"
        assert len(reported) == 1
        assert reported[0].stage == "history"

    @pytest.mark.asyncio
    async def test_unencodable_text_goes_to_error_sink(self, fake_provider, history):
        reported = []
        registry = ModelRegistry({"test": ["test-model"]})
        service = OrchestrationService(
            {"test": fake_provider("test", response="ok")},
            registry=registry,
            history=history,
            error_sink=reported.append,
        )

        response, _ = await service.query_with_timing(None, "bad \ud800 prompt", "test-model")
        await service.aclose()

        assert response == "ok"
        assert await history.get_recent_queries(10) == []
        assert len(reported) == 1
        assert isinstance(reported[0], HistoryWriteError)

    @pytest.mark.asyncio
    async def test_timeout(self, fake_provider):
        registry = ModelRegistry({"test": ["test-model"]})
        service = OrchestrationService({"test": fake_provider("test", delay=10)}, registry=registry)

        with pytest.raises(QueryTimeoutError):
            await service.query_with_timing(QueryContext.with_timeout(0.05), "hello", "test-model")


class TestQueryAll:
    """Fan-out queries."""

    @pytest.mark.asyncio
    async def test_failing_provider_does_not_affect_others(self, fake_provider, history):
        registry = ModelRegistry({"a": ["m1"], "b": ["m2"]})
        service = OrchestrationService(
            {
                "a": fake_provider("a", response="from a"),
                "b": fake_provider("b", error=TransportError("unreachable")),
            },
            registry=registry,
            history=history,
        )

        results = await service.query_all(QueryContext.background(), "x")
        await service.aclose()

        assert set(results) == {"a", "b"}
        assert results["a"].ok
        assert results["a"].response == "from a"
        assert results["a"].model == "m1"
        assert isinstance(results["b"].error, TransportError)
        assert results["b"].model == "m2"
        assert results["b"].response == ""

    @pytest.mark.asyncio
    async def test_fan_out_is_not_logged(self, fake_provider, history):
        registry = ModelRegistry({"a": ["m1"]})
        service = OrchestrationService({"a": fake_provider("a")}, registry=registry, history=history)

        await service.query_all(None, "x")
        await service.aclose()

        assert await history.get_recent_queries(10) == []

    @pytest.mark.asyncio
    async def test_cancel_reaches_every_provider(self, fake_provider):
        registry = ModelRegistry({"a": ["m1"], "b": ["m2"]})
        service = OrchestrationService(
            {"a": fake_provider("a", delay=10), "b": fake_provider("b", delay=10)},
            registry=registry,
        )
        ctx = QueryContext.background()
        asyncio.get_running_loop().call_later(0.05, ctx.cancel)

        results = await asyncio.wait_for(service.query_all(ctx, "x"), timeout=5)

        assert set(results) == {"a", "b"}
        for result in results.values():
            assert isinstance(result.error, QueryCanceledError)

    @pytest.mark.asyncio
    async def test_deadline_reaches_every_provider(self, fake_provider):
        registry = ModelRegistry({"a": ["m1"], "b": ["m2"]})
        service = OrchestrationService(
            {"a": fake_provider("a", delay=10), "b": fake_provider("b", delay=10)},
            registry=registry,
        )

        results = await asyncio.wait_for(
            service.query_all(QueryContext.with_timeout(0.05), "x"), timeout=5
        )

        assert set(results) == {"a", "b"}
        for result in results.values():
            assert isinstance(result.error, QueryTimeoutError)

    @pytest.mark.asyncio
    async def test_providers_run_concurrently(self, fake_provider):
        registry = ModelRegistry({"a": ["m1"], "b": ["m2"], "c": ["m3"]})
        service = OrchestrationService(
            {name: fake_provider(name, delay=0.3) for name in ("a", "b", "c")},
            registry=registry,
        )

        start = time.perf_counter()
        results = await service.query_all(None, "x")
        elapsed = time.perf_counter() - start

        assert all(r.ok for r in results.values())
        assert elapsed < 0.8

    @pytest.mark.asyncio
    async def test_provider_without_models(self, fake_provider):
        registry = ModelRegistry({"a": ["m1"], "empty": []})
        empty = fake_provider("empty")
        service = OrchestrationService({"a": fake_provider("a"), "empty": empty}, registry=registry)

        results = await service.query_all(None, "x")

        assert results["a"].ok
        assert isinstance(results["empty"].error, NoModelsError)
        assert results["empty"].model == ""
        assert empty.calls == []

    @pytest.mark.asyncio
    async def test_options_reach_every_provider(self, fake_provider):
        registry = ModelRegistry({"a": ["m1"], "b": ["m2"]})
        providers = {"a": fake_provider("a"), "b": fake_provider("b")}
        service = OrchestrationService(providers, registry=registry)

        await service.query_all(None, "x", with_temperature(0.1))

        for name, model in (("a", "m1"), ("b", "m2")):
            _, opts = providers[name].calls[0]
            assert opts.model == model
            assert opts.temperature == 0.1

    @pytest.mark.asyncio
    async def test_no_providers(self):
        service = OrchestrationService({})
        assert await service.query_all(None, "x") == {}


class TestConstruction:
    """Building services from API keys."""

    @pytest.mark.asyncio
    async def test_only_providers_with_keys(self):
        service = OrchestrationService.from_api_keys({"deepseek": "key", "anthropic": "", "unknown": "key"})
        assert service.configured_providers() == ["deepseek"]
        assert isinstance(service.providers["deepseek"], DeepseekProvider)
        await service.aclose()

    @pytest.mark.asyncio
    async def test_aclose_releases_adapters(self, fake_provider):
        provider = fake_provider("a")
        async with OrchestrationService({"a": provider}, registry=ModelRegistry({"a": ["m1"]})):
            pass
        assert provider.closed

    @pytest.mark.asyncio
    async def test_google_client_released_on_close(self):
        async with httpx.AsyncClient() as shared:
            service = OrchestrationService.from_api_keys({"google": "key", "deepseek": "key"}, http_client=shared)
            assert isinstance(service.providers["google"], GoogleProvider)
            await service.aclose()
            assert not shared.is_closed

        service = OrchestrationService.from_api_keys({"google": "key"})
        google = service.providers["google"]
        await service.aclose()
        assert google.http_client.is_closed
