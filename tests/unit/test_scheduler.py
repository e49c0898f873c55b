"""
Unit tests for the sync scheduling primitives.

Tests cover:
- Debounce arming, re-arming and cancellation
- A running callback surviving cancel()
- Periodic task firing and stopping
- Callback errors not stopping the loop
"""

import asyncio

import pytest

from service.tally_server.sync.scheduler import DebounceTimer, PeriodicTask


class Recorder:
    """Async callback that counts calls."""

    def __init__(self, delay: float = 0.0, fail: bool = False):
        self.calls = 0
        self.completed = 0
        self.delay = delay
        self.fail = fail

    async def __call__(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("boom")
        self.completed += 1


class TestDebounceTimer:
    """Tests for DebounceTimer."""

    @pytest.mark.asyncio
    async def test_fires_after_delay(self):
        """Callback runs once after the delay."""
        callback = Recorder()
        timer = DebounceTimer(callback)

        timer.arm(0.02)
        assert timer.is_armed
        await asyncio.sleep(0.08)

        assert callback.calls == 1
        assert not timer.is_armed

    @pytest.mark.asyncio
    async def test_rearm_replaces(self):
        """Re-arming restarts the delay instead of stacking."""
        callback = Recorder()
        timer = DebounceTimer(callback)

        for _ in range(5):
            timer.arm(0.05)
            await asyncio.sleep(0.01)
        assert callback.calls == 0

        await asyncio.sleep(0.1)
        assert callback.calls == 1

    @pytest.mark.asyncio
    async def test_cancel(self):
        """Cancelled timer never fires."""
        callback = Recorder()
        timer = DebounceTimer(callback)

        timer.arm(0.02)
        timer.cancel()
        await asyncio.sleep(0.06)

        assert callback.calls == 0
        assert not timer.is_armed

    @pytest.mark.asyncio
    async def test_cancel_does_not_interrupt_running_callback(self):
        """Once fired, the callback completes even if cancel() is called."""
        callback = Recorder(delay=0.05)
        timer = DebounceTimer(callback)

        timer.arm(0.01)
        await asyncio.sleep(0.03)
        assert callback.calls == 1

        timer.cancel()
        await timer.close()
        assert callback.completed == 1

    @pytest.mark.asyncio
    async def test_callback_error_is_contained(self):
        """A failing callback does not break later arming."""
        callback = Recorder(fail=True)
        timer = DebounceTimer(callback)

        timer.arm(0.01)
        await asyncio.sleep(0.04)
        timer.arm(0.01)
        await asyncio.sleep(0.04)

        assert callback.calls == 2


class TestPeriodicTask:
    """Tests for PeriodicTask."""

    @pytest.mark.asyncio
    async def test_fires_repeatedly(self):
        """Callback runs once per interval."""
        callback = Recorder()
        task = PeriodicTask(callback, interval_seconds=0.02)

        task.start()
        await asyncio.sleep(0.09)
        await task.stop()

        assert callback.calls >= 2
        assert task.run_count == callback.calls
        assert not task.is_running

    @pytest.mark.asyncio
    async def test_first_run_after_one_interval(self):
        """Nothing runs before the first interval elapses."""
        callback = Recorder()
        task = PeriodicTask(callback, interval_seconds=0.2)

        task.start()
        await asyncio.sleep(0.02)
        await task.stop()

        assert callback.calls == 0

    @pytest.mark.asyncio
    async def test_errors_do_not_stop_loop(self):
        """The loop keeps going after a failing callback."""
        callback = Recorder(fail=True)
        task = PeriodicTask(callback, interval_seconds=0.02)

        task.start()
        await asyncio.sleep(0.09)
        assert task.is_running
        await task.stop()

        assert callback.calls >= 2

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        """Stopping a task that never started is a no-op."""
        task = PeriodicTask(Recorder(), interval_seconds=1)
        await task.stop()
        assert not task.is_running
