"""
Cancellable delayed callbacks on the running event loop.

Both the duty cycle (self-rescheduling) and the audit log (one debounced
timer per incident) are built on :class:`Timer`.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

from warden.util.logger import get_logger

logger = get_logger("timer")


def unix_now() -> int:
    """Current time as integer unix seconds, the unit stored in the database."""
    return int(time.time())


class Timer:
    """
    A delayed coroutine callback that can be cancelled and re-armed.

    ``start()`` replaces any pending run, so re-arming is a single synchronous
    call with no suspension point in between. Once the delay elapses the task
    detaches itself from the timer before awaiting the callback; the callback
    is therefore free to call ``start()`` on its own timer without cancelling
    itself.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[None]],
        delay: float,
        *,
        name: str = "timer",
    ) -> None:
        self._callback = callback
        self.delay = delay
        self.name = name
        self._task: asyncio.Task[None] | None = None

    @property
    def active(self) -> bool:
        """True while a run is armed and has not fired yet."""
        return self._task is not None and not self._task.done()

    def start(self, delay: float | None = None) -> None:
        """Arm the timer, cancelling any previously armed run."""
        self.cancel()
        if delay is not None:
            self.delay = delay
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(self.delay), name=f"warden-{self.name}")

    def cancel(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    async def _run(self, delay: float) -> None:
        await asyncio.sleep(delay)
        # Detach before firing; a cancel() from here on no longer reaches us
        if self._task is asyncio.current_task():
            self._task = None
        try:
            await self._callback()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[TIMER] Callback of %s failed: %s", self.name, exc, exc_info=True)
