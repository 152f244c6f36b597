"""Change detection between consecutive observations."""

from ..core.types import Metric


def percent_change(current: float, previous: float) -> float:
    """Percentage change from previous to current; 0.0 when previous is 0."""
    if previous == 0:
        return 0.0
    return (current - previous) / previous * 100


class MetricCache:
    """Last metric seen per pair id, owned by a single poll loop."""

    def __init__(self) -> None:
        self._entries: dict[str, Metric] = {}

    def get(self, pair_id: str) -> Metric | None:
        return self._entries.get(pair_id)

    def put(self, metric: Metric) -> Metric | None:
        """Store metric, returning the entry it replaced."""
        previous = self._entries.get(metric.pair_id)
        self._entries[metric.pair_id] = metric
        return previous

    def snapshot(self) -> dict[str, Metric]:
        return dict(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, pair_id: object) -> bool:
        return pair_id in self._entries
