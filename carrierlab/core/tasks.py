"""Cancellation handles for engine-owned background work.

Every sampling loop, the dispatcher, the monitor and each recurring job
is held by the engine as a CancellableTask. The engine never relies on
the identity of the underlying asyncio task for anything but cancel/wait.
"""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class CancellableTask:
    """Thin wrapper around an asyncio.Task with a single cancel() entry point."""

    def __init__(self, coro: Coroutine[Any, Any, Any], name: str):
        self.name = name
        self._task: asyncio.Task[Any] = asyncio.create_task(coro, name=name)
        self._task.add_done_callback(self._log_unexpected_exit)

    @property
    def done(self) -> bool:
        return self._task.done()

    def is_current(self) -> bool:
        """True when called from inside this task."""
        try:
            return asyncio.current_task() is self._task
        except RuntimeError:
            return False

    def add_done_callback(self, callback: Callable[["CancellableTask"], None]) -> None:
        """Invoke ``callback(self)`` once the task has finished."""
        self._task.add_done_callback(lambda _: callback(self))

    def cancel(self) -> bool:
        """Request cancellation. Returns False if the task already finished."""
        return self._task.cancel()

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait for the task to finish without propagating its outcome.

        Returns:
            True if the task finished within the timeout.
        """
        if self._task.done():
            return True
        done, _ = await asyncio.wait({self._task}, timeout=timeout)
        return bool(done)

    def _log_unexpected_exit(self, task: asyncio.Task[Any]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Background task {self.name} exited with error: {exc}",
                exc_info=exc,
            )
