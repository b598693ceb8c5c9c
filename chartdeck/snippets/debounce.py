"""Trailing-edge debouncer on the running asyncio event loop.

Each Debouncer owns at most one pending asyncio.Task. schedule() cancels
that task and starts a new one, so the callback runs once, `delay`
seconds after the last call. A callback that has already started is not
cancelled by a later schedule() or cancel(); only the waiting is.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class Debouncer:
    """A cancellable, reschedulable delayed call."""

    def __init__(self, delay: float, callback: Callable[[], Awaitable[None]], name: str = "debounce"):
        self.delay = delay
        self.callback = callback
        self.name = name
        self._task: Optional[asyncio.Task] = None
        self._running: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        """True while a call is waiting for its delay to elapse."""
        return self._task is not None and not self._task.done()

    def schedule(self, delay: Optional[float] = None) -> None:
        """(Re)start the countdown. Must be called with a running loop."""
        self.cancel()
        wait = self.delay if delay is None else delay
        self._task = asyncio.get_running_loop().create_task(self._run(wait))

    def fire_soon(self) -> None:
        """Replace any pending countdown with an immediate call."""
        self.schedule(delay=0)

    def cancel(self) -> bool:
        """Drop the pending call, if any. Returns whether one was dropped."""
        if not self.pending:
            self._task = None
            return False
        self._task.cancel()
        self._task = None
        logger.debug(f"[{self.name}] pending call cancelled")
        return True

    async def _run(self, wait: float) -> None:
        await asyncio.sleep(wait)
        # Detach first: the callback may schedule the next call itself
        current = asyncio.current_task()
        if self._task is current:
            self._task = None
        self._running = current
        try:
            await self.callback()
        except Exception:
            logger.exception(f"[{self.name}] debounced callback failed")
        finally:
            if self._running is current:
                self._running = None

    async def wait(self) -> None:
        """Wait for the pending call (and one already running) to finish."""
        while True:
            task = self._task if self.pending else self._running
            if task is None or task.done():
                return
            # asyncio.wait never raises for a cancelled task; loop to pick up a reschedule
            await asyncio.wait({task})
