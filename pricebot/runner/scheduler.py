"""Fixed-interval task scheduling."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class PeriodicTask:
    """Fires a coroutine at startup and then on a fixed wall-clock interval.

    Each tick starts the job as its own task, so a slow run does not delay
    the next tick. Jobs are expected to guard themselves against overlap.
    """

    def __init__(
        self,
        name: str,
        job: Callable[[], Awaitable[Any]],
        interval_seconds: float,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self.name = name
        self.job = job
        self.interval_seconds = interval_seconds
        self.ticks = 0
        self._inflight: set[asyncio.Task] = set()

    def tick(self) -> asyncio.Task:
        """Start one run of the job."""
        self.ticks += 1
        task = asyncio.create_task(self._run_job(), name=f"{self.name}-{self.ticks}")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _run_job(self) -> None:
        try:
            await self.job()
        except Exception as e:
            logger.error("Scheduled job failed", task=self.name, error=str(e))

    async def run(self, stop_event: asyncio.Event) -> None:
        """Tick until stop_event is set, then wait for in-flight runs."""
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        logger.info("Periodic task started", task=self.name, interval=self.interval_seconds)

        while not stop_event.is_set():
            self.tick()
            next_tick += self.interval_seconds
            try:
                await asyncio.wait_for(
                    stop_event.wait(), timeout=max(0.0, next_tick - loop.time())
                )
            except TimeoutError:
                pass

        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
        logger.info("Periodic task stopped", task=self.name, ticks=self.ticks)
