"""Application wiring and entry point."""

import argparse
import asyncio
import signal
import sys
from typing import Any

import structlog

from ..alerts.telegram import (
    TelegramAlertSink,
    TelegramBotClient,
    TelegramCommandHandler,
)
from ..config.log_setup import configure_logging
from ..config.settings import AppSettings, load_settings
from ..core.interfaces import SubscriptionRepository
from ..data.somnia import SomniaStreamReader
from ..monitor.notifier import Notifier
from ..persist.storage import JsonFileSubscriptionStore, SQLiteSubscriptionStore
from .poll_loop import PollLoop, SummaryBroadcaster
from .scheduler import PeriodicTask

logger = structlog.get_logger(__name__)


class AlertBotApp:
    """Price alert bot: command polling plus scheduled poll and summary tasks."""

    def __init__(self, settings: AppSettings) -> None:
        """Initialize the bot with assembled components.

        Raises:
            ValueError: If the Telegram bot token is missing
        """
        if not settings.telegram_bot_token:
            raise ValueError("TELEGRAM_BOT_TOKEN is required")

        self.settings = settings
        self.stop_event = asyncio.Event()
        self.components = self._assemble(settings)

        logger.info(
            "Alert bot initialized",
            dry_run=self.dry_run,
            tracked_pairs=len(settings.tracked_pairs),
            summary_enabled=self.components["summary"] is not None,
        )

    @property
    def dry_run(self) -> bool:
        return self.components["source"] is None

    def _build_store(self, settings: AppSettings) -> SubscriptionRepository:
        if settings.subscriptions_backend == "sqlite":
            logger.info("Using SQLite subscription store", db_path=settings.database_path)
            return SQLiteSubscriptionStore(db_path=settings.database_path)
        logger.info("Using JSON subscription store", path=settings.subscriptions_path)
        return JsonFileSubscriptionStore(path=settings.subscriptions_path)

    def _assemble(self, settings: AppSettings) -> dict[str, Any]:
        """Assemble bot components from settings."""
        components: dict[str, Any] = {}

        client = TelegramBotClient(
            bot_token=settings.telegram_bot_token,
            base_url=settings.telegram_base_url,
        )
        components["client"] = client

        store = self._build_store(settings)
        components["store"] = store

        if settings.stream_configured:
            components["source"] = SomniaStreamReader.from_settings(settings)
            logger.info("Somnia stream reader configured", rpc_url=settings.somnia_rpc_url)
        else:
            components["source"] = None
            logger.warning(
                "Somnia settings missing, bot will operate in dry-run mode",
                missing=settings.missing_stream_settings,
            )

        components["poll_loop"] = PollLoop(
            source=components["source"],
            notifier=Notifier(store=store, messenger=client),
            pairs=settings.tracked_pairs,
        )

        handler = TelegramCommandHandler(
            client=client,
            store=store,
            tracked_pairs=settings.tracked_pairs,
            default_threshold=settings.default_threshold,
        )
        handler.set_status_provider(components["poll_loop"])
        components["commands"] = handler

        if (
            components["source"] is not None
            and settings.summary_interval_ms > 0
            and settings.telegram_admin_ids
        ):
            components["summary"] = SummaryBroadcaster(
                source=components["source"],
                sink=TelegramAlertSink(client, settings.telegram_admin_ids),
                pairs=settings.tracked_pairs,
            )
        else:
            components["summary"] = None

        return components

    def _tasks(self) -> list[PeriodicTask]:
        tasks = []
        if not self.dry_run:
            tasks.append(
                PeriodicTask(
                    "poll",
                    self.components["poll_loop"].run_once,
                    self.settings.poll_interval_ms / 1000,
                )
            )
        if self.components["summary"] is not None:
            tasks.append(
                PeriodicTask(
                    "summary",
                    self.components["summary"].run_once,
                    self.settings.summary_interval_ms / 1000,
                )
            )
        return tasks

    async def run_forever(self) -> None:
        """Run command polling and scheduled tasks until stopped."""
        logger.info("Starting alert bot", dry_run=self.dry_run)

        runners = [
            asyncio.create_task(
                self.components["commands"].run_polling(self.stop_event)
            )
        ]
        runners.extend(
            asyncio.create_task(task.run(self.stop_event)) for task in self._tasks()
        )

        try:
            await self.stop_event.wait()
        except asyncio.CancelledError:
            logger.info("Alert bot cancelled")
        finally:
            self.stop_event.set()
            # Command polling may sit in a long poll; cancel rather than wait it out.
            runners[0].cancel()
            await asyncio.gather(*runners, return_exceptions=True)
            await self.close()

    def stop(self) -> None:
        """Request shutdown."""
        logger.info("Stopping alert bot")
        self.stop_event.set()

    async def close(self) -> None:
        store = self.components["store"]
        if isinstance(store, SQLiteSubscriptionStore):
            await store.close()
        await self.components["client"].close()
        logger.info("Alert bot stopped")


async def main() -> None:
    """Main entry point for the alert bot."""
    parser = argparse.ArgumentParser(description="Somnia Price Alert Bot")
    parser.add_argument(
        "--config", default="configs/dev.yaml", help="Configuration file path"
    )
    parser.add_argument(
        "--profile",
        default="dev",
        choices=["dev", "prod"],
        help="Configuration profile",
    )

    args = parser.parse_args()

    try:
        settings = load_settings(args.profile, args.config)
        configure_logging(settings.log_level)
        logger.info("Settings loaded", profile=args.profile, config=args.config)

        app = AlertBotApp(settings)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, app.stop)

        await app.run_forever()

    except Exception as e:
        logger.error("Fatal error", error=str(e))
        sys.exit(1)


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
