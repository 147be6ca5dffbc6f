"""
Session Pool

Spawns one task per transfer and keeps track of it until it finishes,
so the listener never waits on a transfer and shutdown can abandon
whatever is still in flight.
"""

import asyncio
import logging
from typing import Awaitable, Optional, Set

logger = logging.getLogger(__name__)


class SessionPool:
    """Tracks running transfer tasks, bounded by max_sessions."""

    def __init__(self, max_sessions: int = 64):
        self.max_sessions = max_sessions
        self._tasks: Set[asyncio.Task] = set()

    @property
    def active(self) -> int:
        return len(self._tasks)

    @property
    def is_full(self) -> bool:
        return len(self._tasks) >= self.max_sessions

    def spawn(self, coro: Awaitable, name: Optional[str] = None) -> asyncio.Task:
        """Start a session task and return immediately."""
        task = asyncio.ensure_future(coro)
        if name:
            task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Session {task.get_name()} crashed: {exc!r}", exc_info=exc)

    async def wait(self):
        """Wait for every running session to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self):
        """Cancel every running session and wait for it to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Abandoned {len(tasks)} in-flight transfers")
