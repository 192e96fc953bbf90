"""Detached background work.

Click increments run after the response path has moved on. ``DetachedTaskRunner``
schedules them with ``asyncio.create_task``, keeps a strong reference until each
finishes, and logs failures instead of letting them reach the caller.
"""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

__all__ = ["DetachedTaskRunner"]


class DetachedTaskRunner:
    def __init__(self, logger: logging.Logger | logging.LoggerAdapter | None = None) -> None:
        self._logger = logger or logging.getLogger("shortener.tasks")
        self._tasks: set[asyncio.Task] = set()
        self.failures = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task:
        """Schedule ``coro`` without awaiting it."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            self._logger.debug(f"Detached task cancelled: {task.get_name()}")
            return
        exc = task.exception()
        if exc is not None:
            self.failures += 1
            self._logger.warning(f"Detached task failed: {task.get_name()}: {exc}")

    async def drain(self) -> None:
        """Wait for every task spawned so far, including ones spawned while waiting."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
