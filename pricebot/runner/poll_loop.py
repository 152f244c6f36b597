"""Poll cycle: fetch, diff against the cache, dispatch alerts."""

from datetime import UTC, datetime
from typing import Any

import structlog

from ..core.interfaces import AlertSink, MetricSource
from ..core.types import CycleState, TrackedPair
from ..monitor.change import MetricCache, percent_change
from ..monitor.formatting import format_summary
from ..monitor.notifier import Notifier

logger = structlog.get_logger(__name__)


class PollLoop:
    """Runs poll cycles over the tracked pairs and owns the metric cache."""

    def __init__(
        self,
        source: MetricSource | None,
        notifier: Notifier,
        pairs: list[TrackedPair],
        cache: MetricCache | None = None,
    ) -> None:
        """Initialize poll loop.

        Args:
            source: Metric source, None when the stream is not configured
            notifier: Alert dispatcher
            pairs: Tracked pairs to fetch each cycle
            cache: Metric cache, a fresh one by default
        """
        self.source = source
        self.notifier = notifier
        self.pairs = pairs
        self.cache = cache or MetricCache()

        self.state = CycleState.IDLE
        self.cycles = 0
        self.skipped_overlaps = 0
        self.failed_cycles = 0
        self.alerts_sent = 0
        self.last_cycle_at: datetime | None = None
        self.last_error: str | None = None
        self.last_fetch_errors: list[str] = []

    @property
    def in_progress(self) -> bool:
        return self.state is not CycleState.IDLE

    async def run_once(self) -> bool:
        """Execute one cycle.

        Returns:
            True if the cycle ran, False if it was skipped
        """
        if self.source is None or not self.pairs:
            logger.debug("Poll skipped, stream not configured or no pairs")
            return False

        if self.in_progress:
            self.skipped_overlaps += 1
            logger.warning(
                "Previous poll cycle still running, skipping tick",
                state=self.state.value,
                skipped=self.skipped_overlaps,
            )
            return False

        try:
            self.state = CycleState.FETCHING
            result = await self.source.fetch(self.pairs)
            self.last_fetch_errors = [e.pair_id for e in result.errors]
            logger.info(
                "Fetched stream metrics",
                count=len(result.metrics),
                failed=len(result.errors),
            )

            for metric in result.metrics:
                self.state = CycleState.DIFFING
                previous = self.cache.put(metric)
                if previous is None:
                    logger.debug("Baseline recorded", pair_id=metric.pair_id)
                    continue

                change = percent_change(metric.price_value, previous.price_value)

                self.state = CycleState.DISPATCHING
                self.alerts_sent += await self.notifier.dispatch(
                    metric, previous, change
                )

            self.last_error = None

        except Exception as e:
            self.failed_cycles += 1
            self.last_error = str(e)
            logger.error("Metrics polling failed", error=str(e))

        finally:
            self.cycles += 1
            self.last_cycle_at = datetime.now(UTC)
            self.state = CycleState.IDLE

        return True

    def get_status(self) -> dict[str, Any]:
        """Snapshot of poller counters for /status."""
        return {
            "state": self.state.value,
            "active": self.source is not None,
            "tracked_pairs": [pair.pair_id for pair in self.pairs],
            "cached_pairs": sorted(self.cache.snapshot()),
            "cycles": self.cycles,
            "failed_cycles": self.failed_cycles,
            "skipped_overlaps": self.skipped_overlaps,
            "alerts_sent": self.alerts_sent,
            "last_cycle_at": self.last_cycle_at,
            "last_error": self.last_error,
            "last_fetch_errors": self.last_fetch_errors,
        }


class SummaryBroadcaster:
    """Pushes a price summary to administrators, independent of the cache."""

    def __init__(
        self, source: MetricSource, sink: AlertSink, pairs: list[TrackedPair]
    ) -> None:
        self.source = source
        self.sink = sink
        self.pairs = pairs
        self._running = False
        self.broadcasts = 0

    async def run_once(self) -> bool:
        if not self.pairs or self._running:
            return False

        self._running = True
        try:
            result = await self.source.fetch(self.pairs)
            await self.sink.push(format_summary(result.metrics))
            self.broadcasts += 1
            logger.info("Summary broadcast", pairs=len(result.metrics))
        except Exception as e:
            logger.error("Summary broadcast failed", error=str(e))
        finally:
            self._running = False
        return True
