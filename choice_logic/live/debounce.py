"""
Cancel-and-restart debounce timer for the live runner.

Holds at most one pending asyncio task. Scheduling again cancels the
pending task and starts a new one, so only the latest trigger ever runs.
"""

import asyncio
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class Debouncer:
    """Delay a callback until triggers stop arriving for `delay` seconds.

    Must be used from inside a running event loop.

    Args:
        delay: Quiet period in seconds before the callback runs.
    """

    def __init__(self, delay: float):
        self.delay = delay
        self._task: asyncio.Task | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self, callback: Callable[[], object]) -> None:
        """Replace any pending call with a new delayed call to `callback`."""
        self.cancel()
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(callback))

    def cancel(self) -> None:
        """Drop the pending call, if any."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def wait(self) -> None:
        """Wait until no call is pending, including calls scheduled by callbacks."""
        while self._task is not None:
            task = self._task
            await asyncio.wait({task})
            if self._task is task:
                self._task = None

    async def _run(self, callback: Callable[[], object]) -> None:
        await asyncio.sleep(self.delay)

        # Detach before running so the callback may schedule a successor.
        if self._task is asyncio.current_task():
            self._task = None

        try:
            callback()
        except Exception:
            logger.exception("Debounced callback failed")
