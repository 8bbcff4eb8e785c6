from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Debouncer(Generic[T]):
    """
    Coalesce rapid pushes to the last value once `delay_ms` passes quietly.

    Must be used from a running event loop.
    """

    def __init__(self, delay_ms: int, callback: Callable[[T], Awaitable[None] | None]):
        self.delay = delay_ms / 1000
        self.callback = callback
        self._task: asyncio.Task[None] | None = None
        self._value: T | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def push(self, value: T) -> None:
        self._value = value
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._fire())

    async def _fire(self) -> None:
        await asyncio.sleep(self.delay)
        self._task = None
        await self._invoke(self._value)  # type: ignore[arg-type]

    async def _invoke(self, value: T) -> None:
        try:
            result = self.callback(value)
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            logger.exception("Debounced callback failed")

    async def flush(self) -> None:
        """Fire now if a value is waiting. Failures are logged like a timed fire."""
        if self.pending:
            self.cancel()
            await self._invoke(self._value)  # type: ignore[arg-type]

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
