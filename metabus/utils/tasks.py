"""Detached background tasks for fire-and-forget work."""

import asyncio
from typing import Any, Coroutine, Dict, Set

import structlog


logger = structlog.get_logger(__name__)


class BackgroundTasks:
    """Runs coroutines detached from their caller.

    Failures are logged and never propagate. Strong references are kept
    until each task finishes so the event loop cannot garbage-collect them.
    """

    def __init__(self, name: str = "background") -> None:
        self.name = name
        self._tasks: Set[asyncio.Task] = set()
        self._failed = 0

    def spawn(self, coro: Coroutine[Any, Any, Any], *, label: str) -> asyncio.Task:
        """Schedule ``coro`` on the running loop and return its task."""
        task = asyncio.create_task(coro, name=f"{self.name}:{label}")
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)

        if task.cancelled():
            logger.debug("Background task cancelled", task=task.get_name())
            return

        error = task.exception()
        if error is not None:
            self._failed += 1
            logger.error(
                "Background task failed",
                task=task.get_name(),
                error=str(error),
                exc_info=error,
            )

    async def drain(self) -> None:
        """Wait until every pending task, including ones spawned meanwhile, settles."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        """Cancel pending tasks and wait for them to finish."""
        for task in list(self._tasks):
            task.cancel()
        await self.drain()

    def __len__(self) -> int:
        return len(self._tasks)

    def get_stats(self) -> Dict[str, int]:
        return {"pending_tasks": len(self._tasks), "failed_tasks": self._failed}
