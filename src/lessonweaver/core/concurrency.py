"""Concurrency control utilities for async operations."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable

from lessonweaver.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ConcurrencyLimiter:
    """Bound the number of coroutines running a section at once."""

    max_concurrent: int
    _semaphore: asyncio.Semaphore = field(init=False)
    _running: int = field(default=0)

    def __post_init__(self):
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self._semaphore = asyncio.Semaphore(self.max_concurrent)

    async def acquire(self) -> None:
        await self._semaphore.acquire()
        self._running += 1

    def release(self) -> None:
        self._semaphore.release()
        self._running -= 1

    async def __aenter__(self):
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.release()

    @property
    def running(self) -> int:
        """Get number of running holders."""
        return self._running


class TaskRegistry:
    """Background tasks keyed by entity id.

    At most one task runs per key: spawning a key whose task is still running returns that task
    instead of starting a second one. Finished tasks remove themselves from the registry.
    """

    def __init__(self, name: str = "tasks") -> None:
        self._name = name
        self._tasks: dict[str, asyncio.Task] = {}

    def spawn(self, key: str, factory: Callable[[], Awaitable[Any]]) -> asyncio.Task:
        """Start `factory()` under `key` unless a task for `key` is already running.

        Args:
            key: Entity identifier.
            factory: Zero-argument callable returning the coroutine to run.

        Returns:
            The running task for `key`.
        """

        existing = self._tasks.get(key)
        if existing is not None and not existing.done():
            logger.debug("%s: %s already running", self._name, key)
            return existing

        task = asyncio.ensure_future(factory())
        self._tasks[key] = task
        task.add_done_callback(lambda t, k=key: self._on_done(k, t))
        return task

    def _on_done(self, key: str, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("%s: task %s failed: %s", self._name, key, exc, exc_info=exc)

    def get(self, key: str) -> asyncio.Task | None:
        return self._tasks.get(key)

    def is_running(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    async def join(self, keys: Iterable[str]) -> list[Any]:
        """Wait for the tasks registered under `keys`.

        Keys without a running task are skipped. Exceptions are returned, not raised.
        """

        tasks = [self._tasks[k] for k in keys if k in self._tasks]
        if not tasks:
            return []
        return await asyncio.gather(*tasks, return_exceptions=True)

    async def wait_all(self) -> None:
        """Wait for all registered tasks to complete."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    def cancel_all(self) -> None:
        for task in self._tasks.values():
            if not task.done():
                task.cancel()

    @property
    def active_keys(self) -> list[str]:
        return [k for k, t in self._tasks.items() if not t.done()]
