"""Background task tracking for timers and watchers."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Awaitable, Callable


class TaskSupervisor:
    """Track timer and watcher tasks so they can be cancelled together."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def create_task(
        self, coro: Awaitable[Any], *, name: str | None = None
    ) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(coro)
        if name:
            task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def create_periodic(
        self,
        tick: Callable[[], Any],
        interval: float,
        *,
        name: str | None = None,
    ) -> asyncio.Task[Any]:
        """Call ``tick`` every ``interval`` seconds until cancelled."""

        async def _runner() -> None:
            while True:
                await asyncio.sleep(interval)
                result = tick()
                if asyncio.iscoroutine(result):
                    await result

        return self.create_task(_runner(), name=name)

    def cancel_all(self) -> int:
        """Cancel every pending task, returning how many were cancelled."""
        cancelled = 0
        for task in list(self._tasks):
            if not task.done():
                task.cancel()
                cancelled += 1
        return cancelled

    async def wait_all_cancelled(self, timeout: float = 5.0) -> None:
        if not self._tasks:
            return
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(
                asyncio.gather(*self._tasks, return_exceptions=True), timeout
            )

    @property
    def tasks(self) -> set[asyncio.Task[Any]]:
        return set(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)
