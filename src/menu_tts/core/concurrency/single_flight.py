"""
Single-Flight Call Coalescing

Concurrent callers asking for the same key share one in-flight operation and
all receive its result (or its exception). Once the operation settles, the
next call for that key starts a new one.

Used for:
- Access token refresh (one request to the token endpoint at a time)
- Speech synthesis (one provider call per cache key at a time)

Usage:
    flight = SingleFlight()
    audio = await flight.run(cache_key, lambda: client.synthesize(text))
"""

import asyncio
from collections.abc import Awaitable, Callable, Hashable
from typing import Any, TypeVar

T = TypeVar("T")


class SingleFlight:
    """
    Per-key coalescing of async operations.

    The shared operation runs as its own task, so a waiter that is cancelled
    does not cancel the work the other waiters depend on.
    """

    def __init__(self):
        self._inflight: dict[Hashable, asyncio.Task] = {}

    async def run(self, key: Hashable, fn: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``fn`` for ``key`` unless a call for ``key`` is already in flight.

        Args:
            key: Coalescing key
            fn: Zero-argument coroutine factory

        Returns:
            The shared result
        """
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._execute(key, fn))
            self._inflight[key] = task
        return await asyncio.shield(task)

    async def _execute(self, key: Hashable, fn: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await fn()
        finally:
            # Cleared before waiters resume so a failed call is never reused
            self._inflight.pop(key, None)

    def in_flight(self, key: Hashable) -> bool:
        """True while an operation for ``key`` is running."""
        return key in self._inflight

    def __len__(self) -> int:
        return len(self._inflight)
