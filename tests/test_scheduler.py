"""Tests for the manual and asyncio schedulers."""

import asyncio

import pytest

from lickduel.engine.scheduler import AsyncioScheduler, ManualScheduler


def test_manual_scheduler_runs_callbacks_in_order():
    scheduler = ManualScheduler()
    fired = []
    scheduler.call_later(200, lambda: fired.append(("b", scheduler.now())))
    scheduler.call_later(100, lambda: fired.append(("a", scheduler.now())))
    scheduler.call_later(200, lambda: fired.append(("c", scheduler.now())))

    scheduler.advance(150)
    assert fired == [("a", 100)]
    assert scheduler.now() == 150

    scheduler.advance(50)
    assert fired == [("a", 100), ("b", 200), ("c", 200)]


def test_manual_scheduler_cancel_and_chaining():
    scheduler = ManualScheduler()
    fired = []
    handle = scheduler.call_later(10, lambda: fired.append("cancelled"))
    handle.cancel()
    scheduler.call_later(10, lambda: scheduler.call_later(10, lambda: fired.append("chained")))

    assert scheduler.pending == 1
    scheduler.advance(20)
    assert fired == ["chained"]
    assert scheduler.pending == 0


def test_manual_scheduler_cannot_go_backwards():
    scheduler = ManualScheduler(start_ms=100)
    with pytest.raises(ValueError):
        scheduler.advance_to(50)


def test_asyncio_scheduler_uses_loop_time():
    async def run():
        scheduler = AsyncioScheduler()
        start = scheduler.now()
        fired = []
        scheduler.call_later(10, lambda: fired.append(scheduler.now() - start))
        scheduler.call_later(-5, lambda: fired.append("immediate"))
        await asyncio.sleep(0.05)
        return fired

    fired = asyncio.run(run())
    assert fired[0] == "immediate"
    # Loop timers may fire up to one clock resolution early.
    assert fired[1] >= 9.0


def test_asyncio_scheduler_handles_cancel():
    async def run():
        scheduler = AsyncioScheduler()
        fired = []
        handle = scheduler.call_later(5, lambda: fired.append(True))
        handle.cancel()
        await asyncio.sleep(0.02)
        return fired

    assert asyncio.run(run()) == []
