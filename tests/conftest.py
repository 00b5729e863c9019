"""Shared fixtures for promptfan tests."""

import asyncio
from typing import Optional

import pytest

from promptfan.context import QueryContext
from promptfan.providers.base import Option, Provider
from promptfan.storage import QueryHistory


class FakeProvider(Provider):
    """Provider returning a canned response, optionally after a delay or with an error."""

    def __init__(
        self,
        name: str,
        response: str = "canned response",
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        super().__init__(api_key="test-key")
        self.name = name
        self.response = response
        self.error = error
        self.delay = delay
        self.calls = []
        self.closed = False

    async def query(self, ctx: QueryContext, prompt: str, *options: Option) -> str:
        opts = self.resolve_options(options)
        self.calls.append((prompt, opts))
        if self.delay:
            await ctx.run(asyncio.sleep(self.delay))
        if self.error is not None:
            raise self.error
        return self.response

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_provider():
    """Factory for FakeProvider instances."""
    return FakeProvider


@pytest.fixture
def history(tmp_path):
    """A query history backed by a temporary database."""
    store = QueryHistory(tmp_path / "queries.db")
    yield store
    store.close()
