"""Tests for periodic scheduling."""

import asyncio

import pytest

from pricebot.runner.scheduler import PeriodicTask


def test_rejects_non_positive_interval() -> None:
    """Test interval validation."""
    with pytest.raises(ValueError, match="interval_seconds must be positive"):
        PeriodicTask("poll", lambda: None, 0)


@pytest.mark.asyncio
async def test_runs_at_startup_and_on_interval() -> None:
    """Test that the job fires immediately and then repeatedly."""
    calls = 0

    async def job():
        nonlocal calls
        calls += 1

    stop_event = asyncio.Event()
    task = PeriodicTask("poll", job, 0.01)
    runner = asyncio.create_task(task.run(stop_event))

    await asyncio.sleep(0.055)
    stop_event.set()
    await asyncio.wait_for(runner, timeout=1)

    assert calls >= 3
    assert task.ticks == calls


@pytest.mark.asyncio
async def test_slow_job_does_not_delay_ticks() -> None:
    """Test that ticks keep firing while a previous run is in flight."""
    started = 0
    release = asyncio.Event()

    async def job():
        nonlocal started
        started += 1
        await release.wait()

    stop_event = asyncio.Event()
    task = PeriodicTask("poll", job, 0.01)
    runner = asyncio.create_task(task.run(stop_event))

    await asyncio.sleep(0.035)
    assert started >= 2

    stop_event.set()
    release.set()
    await asyncio.wait_for(runner, timeout=1)


@pytest.mark.asyncio
async def test_job_errors_are_contained() -> None:
    """Test that a failing job does not stop the schedule."""

    async def job():
        raise RuntimeError("boom")

    task = PeriodicTask("poll", job, 10)

    await task.tick()

    assert task.ticks == 1
