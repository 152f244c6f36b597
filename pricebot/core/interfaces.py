"""Core interfaces for the price alert bot."""

from typing import Protocol, runtime_checkable

from .types import FetchResult, Subscription, TrackedPair


class MetricSource(Protocol):
    """Price metric source protocol."""

    async def fetch(self, pairs: list[TrackedPair]) -> FetchResult:
        """Fetch the latest metric for each pair that has data."""
        ...


class Messenger(Protocol):
    """Delivers a message to a single chat."""

    async def send_message(self, chat_id: int, text: str) -> None:
        """Send text to chat_id."""
        ...


class AlertSink(Protocol):
    """Alert sink protocol."""

    async def push(self, message: str) -> None:
        """Push alert message."""
        ...


@runtime_checkable
class SubscriptionRepository(Protocol):
    """Durable subscriber id to Subscription mapping."""

    async def get(self, chat_id: int) -> Subscription | None:
        """Return the subscription for chat_id, if any."""
        ...

    async def set(self, chat_id: int, subscription: Subscription) -> None:
        """Store subscription and persist immediately."""
        ...

    async def remove(self, chat_id: int) -> None:
        """Delete subscription and persist immediately."""
        ...

    async def entries(self) -> list[tuple[int, Subscription]]:
        """Snapshot of all stored subscriptions."""
        ...
