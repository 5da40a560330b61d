"""Request coalescing for in-flight async operations."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Hashable
from typing import Any, Generic, TypeVar

import anyio

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")


class _PendingCall:
    """Shared outcome of a single in-flight call."""

    def __init__(self) -> None:
        self.done = anyio.Event()
        self.succeeded = False
        self.result: Any = None
        self.error: Exception | None = None


class RequestCoalescer(Generic[K, T]):
    """Deduplicate concurrent calls that share a key.

    The first caller for a key runs the operation; callers arriving while it
    is in flight await the same outcome (value or exception) instead of
    starting new work. The key is released as soon as the operation settles,
    so a request made afterwards always runs fresh. Nothing is cached.
    """

    def __init__(self) -> None:
        self._pending: dict[K, _PendingCall] = {}

    def in_flight(self, key: K) -> bool:
        """Return True if an operation for key is currently running."""
        return key in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    async def run(self, key: K, func: Callable[[], Awaitable[T]]) -> T:
        """Run func for key, or join the call already in flight for key."""
        while True:
            pending = self._pending.get(key)
            if pending is None:
                return await self._lead(key, func)

            await pending.done.wait()
            if pending.succeeded:
                return pending.result
            if pending.error is not None:
                raise pending.error
            # The leader was cancelled before settling; start over.

    async def _lead(self, key: K, func: Callable[[], Awaitable[T]]) -> T:
        pending = _PendingCall()
        self._pending[key] = pending
        try:
            result = await func()
        except Exception as exc:
            pending.error = exc
            raise
        else:
            pending.result = result
            pending.succeeded = True
            return result
        finally:
            del self._pending[key]
            pending.done.set()
