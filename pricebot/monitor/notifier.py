"""Threshold-based alert dispatch to subscribers."""

import structlog

from ..core.interfaces import Messenger, SubscriptionRepository
from ..core.types import Metric
from .formatting import format_alert

logger = structlog.get_logger(__name__)


class Notifier:
    """Sends a price alert to every subscriber whose filter matches."""

    def __init__(self, store: SubscriptionRepository, messenger: Messenger) -> None:
        """Initialize notifier.

        Args:
            store: Subscription repository to iterate
            messenger: Delivery channel for formatted alerts
        """
        self.store = store
        self.messenger = messenger

    async def dispatch(self, metric: Metric, previous: Metric, change: float) -> int:
        """Notify matching subscribers of a change on metric's pair.

        Returns:
            Number of subscribers successfully notified
        """
        entries = await self.store.entries()
        message: str | None = None
        sent = 0

        for chat_id, subscription in entries:
            if not subscription.matches(metric.pair_id):
                continue
            if abs(change) < subscription.threshold:
                continue

            if message is None:
                message = format_alert(metric, previous, change)

            try:
                await self.messenger.send_message(chat_id, message)
                sent += 1
            except Exception as e:
                logger.error(
                    "Failed to deliver alert",
                    chat_id=chat_id,
                    pair_id=metric.pair_id,
                    error=str(e),
                )

        if sent:
            logger.info(
                "Alerts dispatched",
                pair_id=metric.pair_id,
                change=round(change, 4),
                recipients=sent,
            )
        return sent
