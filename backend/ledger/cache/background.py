"""
Detached background writes.

Cache writes on the response path are dispatched here so the request never
waits for them. Failures are logged and otherwise dropped.
"""

import asyncio
import logging
from typing import Awaitable, Optional, Set

logger = logging.getLogger(__name__)


class BackgroundWriter:
    """Tracks fire-and-forget tasks so they can be drained on shutdown."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, coro: Awaitable, description: str = "background write") -> asyncio.Task:
        """Schedule a coroutine without awaiting it."""
        task = asyncio.ensure_future(coro)
        task.set_name(description)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"{task.get_name()} failed: {error}", exc_info=error)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for the currently pending tasks to finish."""
        if not self._tasks:
            return
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning(f"{len(pending)} background writes still pending after drain")

    async def cancel_all(self) -> None:
        """Cancel whatever is still pending."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
