from __future__ import annotations

import asyncio
import functools
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, ParamSpec, Protocol, TypeVar

import structlog

logger = structlog.get_logger()

IDLE_MESSAGE = "None"

P = ParamSpec("P")
R = TypeVar("R")


class SerializationGuard:
    """Single lock serializing every stats operation.

    The lock is reentrant for the task that holds it, so an operation running
    under the guard (quote sampling, topic scoring) can call other guarded
    repository methods without deadlocking. Waiters are served in FIFO order.

    ``lock_message`` names the operation currently in flight. It exists for
    diagnosing stuck or long-held locks and plays no part in mutual exclusion.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._owner: asyncio.Task[Any] | None = None
        self._markers: list[str] = []
        self._acquired_at: float | None = None

    @property
    def lock_message(self) -> str:
        return self._markers[-1] if self._markers else IDLE_MESSAGE

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    def status(self) -> dict[str, Any]:
        held_for = None
        if self._acquired_at is not None:
            held_for = round(time.monotonic() - self._acquired_at, 3)
        return {
            "operation": self.lock_message,
            "locked": self.locked,
            "depth": len(self._markers),
            "held_for_seconds": held_for,
        }

    @asynccontextmanager
    async def hold(self, operation: str) -> AsyncIterator[None]:
        task = asyncio.current_task()
        reentrant = task is not None and self._owner is task

        if not reentrant:
            await self._lock.acquire()
            self._owner = task
            self._acquired_at = time.monotonic()

        self._markers.append(operation)
        try:
            yield
        finally:
            self._markers.pop()
            if not reentrant:
                held_for = time.monotonic() - (self._acquired_at or 0.0)
                self._owner = None
                self._acquired_at = None
                self._lock.release()
                logger.debug("Stats lock released", operation=operation, held_for=held_for)


class _Guarded(Protocol):
    guard: SerializationGuard


def serialized(
    func: Callable[P, Awaitable[R]],
) -> Callable[P, Awaitable[R]]:
    """Run a coroutine method under ``self.guard``, marking it by qualified name."""

    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        owner: _Guarded = args[0]  # type: ignore[assignment]
        async with owner.guard.hold(func.__qualname__):
            return await func(*args, **kwargs)

    return wrapper
