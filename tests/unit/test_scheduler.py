"""
Unit tests for the monitor scheduler.

Intervals are set in fractions of a minute so the loop fires quickly.
"""

import asyncio

import pytest

from app.services.scheduler import MonitorScheduler

FAST = 0.01 / 60  # 10 ms


class Counter:
    def __init__(self, delay: float = 0.0, fail: bool = False):
        self.calls = 0
        self.delay = delay
        self.fail = fail
        self.completed = 0

    async def __call__(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("tick failed")
        self.completed += 1


@pytest.mark.asyncio
async def test_ticks_repeatedly_until_stopped():
    callback = Counter()
    scheduler = MonitorScheduler(callback, interval_minutes=FAST)

    scheduler.start()
    await asyncio.sleep(0.1)
    scheduler.stop()
    await scheduler.wait_stopped()
    calls = callback.calls

    assert calls >= 2
    assert not scheduler.running
    await asyncio.sleep(0.05)
    assert callback.calls == calls


@pytest.mark.asyncio
async def test_start_twice_does_not_stack_timers():
    scheduler = MonitorScheduler(Counter(), interval_minutes=FAST)

    scheduler.start()
    scheduler.start()
    await scheduler.wait_stopped()

    assert scheduler.running
    assert scheduler.active_loops == 1

    scheduler.stop()
    await scheduler.wait_stopped()
    assert scheduler.active_loops == 0


@pytest.mark.asyncio
async def test_restart_applies_new_interval():
    scheduler = MonitorScheduler(Counter(), interval_minutes=15)
    scheduler.start()
    scheduler.start(interval_minutes=30)

    assert scheduler.interval_seconds == 1800

    scheduler.stop()
    await scheduler.wait_stopped()


@pytest.mark.asyncio
async def test_stop_when_stopped_is_noop():
    scheduler = MonitorScheduler(Counter())
    scheduler.stop()
    await scheduler.wait_stopped()
    assert not scheduler.running


@pytest.mark.asyncio
async def test_stop_does_not_interrupt_running_tick():
    callback = Counter(delay=0.1)
    scheduler = MonitorScheduler(callback, interval_minutes=FAST)

    scheduler.start()
    while callback.calls == 0:
        await asyncio.sleep(0.005)
    scheduler.stop()
    await scheduler.wait_stopped()

    assert callback.calls == 1
    assert callback.completed == 1


@pytest.mark.asyncio
async def test_failing_tick_does_not_stop_loop():
    callback = Counter(fail=True)
    scheduler = MonitorScheduler(callback, interval_minutes=FAST)

    scheduler.start()
    await asyncio.sleep(0.1)
    scheduler.stop()
    await scheduler.wait_stopped()

    assert callback.calls >= 2


@pytest.mark.asyncio
async def test_run_once_invokes_callback_directly():
    callback = Counter()
    scheduler = MonitorScheduler(callback)

    await scheduler.run_once()

    assert callback.calls == 1
    assert scheduler.tick_count == 1
    assert not scheduler.running
