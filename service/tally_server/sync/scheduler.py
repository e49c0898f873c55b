"""
Scheduled tasks for the SyncEngine.

Two small asyncio primitives:
- DebounceTimer: one cancelable delayed call; arming replaces the pending one
- PeriodicTask: a fixed-interval loop running until stopped

Invariants:
    - At most one debounce delay is pending at any time
    - cancel() only cancels a pending delay, never a callback already running
    - Callback exceptions are logged and never kill the loop

How to change safely:
    - Both classes need a running event loop to arm/start
    - Keep strong references to created tasks (asyncio only holds weak ones)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

Callback = Callable[[], Awaitable[None]]


class DebounceTimer:
    """Cancelable delayed callback.

    Example:
        >>> timer = DebounceTimer(save, name="save-debounce")
        >>> timer.arm(10)  # save in 10s
        >>> timer.arm(10)  # ...no, 10s from now
    """

    def __init__(self, callback: Callback, name: str = "debounce") -> None:
        self._callback = callback
        self.name = name
        self._pending: Optional[asyncio.Task] = None
        self._firing: Optional[asyncio.Task] = None

    @property
    def is_armed(self) -> bool:
        """Whether a delay is pending."""
        return self._pending is not None and not self._pending.done()

    def arm(self, delay: float) -> None:
        """Cancel any pending delay and start a new one."""
        self.cancel()
        self._pending = asyncio.get_running_loop().create_task(
            self._run(delay), name=self.name
        )

    def cancel(self) -> None:
        """Cancel the pending delay, if any."""
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    async def close(self) -> None:
        """Cancel the pending delay and wait for a running callback."""
        self.cancel()
        if self._firing is not None and not self._firing.done():
            with contextlib.suppress(asyncio.CancelledError):
                await self._firing

    async def _run(self, delay: float) -> None:
        await asyncio.sleep(delay)

        # Past this point the callback belongs to _firing, so a later arm()
        # or cancel() cannot interrupt it.
        current = asyncio.current_task()
        if self._pending is current:
            self._pending = None
        self._firing = current
        try:
            await self._callback()
        except Exception as e:
            logger.error(f"{self.name} callback failed: {e}", exc_info=True)
        finally:
            if self._firing is current:
                self._firing = None


class PeriodicTask:
    """Runs a callback every interval seconds.

    The first run happens one interval after start().

    Example:
        >>> flush = PeriodicTask(save, interval_seconds=300, name="flush")
        >>> flush.start()
        >>> await flush.stop()
    """

    def __init__(self, callback: Callback, interval_seconds: float, name: str = "periodic") -> None:
        self._callback = callback
        self.interval_seconds = interval_seconds
        self.name = name
        self._task: Optional[asyncio.Task] = None
        self._run_count = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def run_count(self) -> int:
        return self._run_count

    def start(self) -> None:
        """Start the loop."""
        if self.is_running:
            logger.warning(f"{self.name} already running")
            return
        self._task = asyncio.get_running_loop().create_task(self._loop(), name=self.name)

    async def stop(self) -> None:
        """Stop the loop and wait for it to exit."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.interval_seconds)
                self._run_count += 1
                try:
                    await self._callback()
                except Exception as e:
                    logger.error(f"{self.name} callback failed: {e}", exc_info=True)
        except asyncio.CancelledError:
            logger.debug(f"{self.name} cancelled")
            raise
