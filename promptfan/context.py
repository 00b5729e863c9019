"""Cancellation and deadline signal shared by every call of one query."""

import asyncio
import inspect
import time
from typing import Awaitable, Optional, TypeVar

from .errors import QueryCanceledError, QueryTimeoutError

T = TypeVar("T")


class QueryContext:
    """
    Cancellation/deadline signal threaded through a top-level query.

    A single context is shared by every concurrent task of a fan-out; calling
    ``cancel()`` or letting the deadline pass aborts every call still running
    under ``run()``.

    Usage:
        ctx = QueryContext.with_timeout(120)
        text = await ctx.run(client.post(url, json=payload))
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._canceled = asyncio.Event()

    @classmethod
    def background(cls) -> "QueryContext":
        """A context that is never canceled and has no deadline."""
        return cls()

    @classmethod
    def with_timeout(cls, timeout: float) -> "QueryContext":
        return cls(timeout=timeout)

    def cancel(self) -> None:
        self._canceled.set()

    @property
    def cancelled(self) -> bool:
        return self._canceled.is_set()

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None without one."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def check(self) -> None:
        """Raise if the context is already canceled or past its deadline."""
        if self.cancelled:
            raise QueryCanceledError()
        if self._deadline is not None and self.remaining() == 0:
            raise QueryTimeoutError(timeout=self.timeout)

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Await ``awaitable`` unless the context is canceled or expires first.

        Args:
            awaitable: The call to guard

        Returns:
            The awaitable's result

        Raises:
            QueryCanceledError: cancel() was called before the call finished
            QueryTimeoutError: the deadline passed before the call finished
        """
        try:
            self.check()
        except QueryCanceledError:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise

        call = asyncio.ensure_future(awaitable)
        canceled = asyncio.ensure_future(self._canceled.wait())
        try:
            done, _ = await asyncio.wait(
                {call, canceled},
                timeout=self.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            canceled.cancel()
            if not call.done():
                call.cancel()
                await asyncio.gather(call, return_exceptions=True)

        if call in done:
            return call.result()
        if self.cancelled:
            raise QueryCanceledError()
        raise QueryTimeoutError(timeout=self.timeout)
