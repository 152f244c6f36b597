"""Tests for application assembly."""

import asyncio
import tempfile
from pathlib import Path

import pytest

from pricebot.alerts.telegram import TelegramBotClient, TelegramCommandHandler
from pricebot.config.settings import AppSettings
from pricebot.data.somnia import SomniaStreamReader
from pricebot.persist.storage import JsonFileSubscriptionStore, SQLiteSubscriptionStore
from pricebot.runner.pipeline import AlertBotApp
from pricebot.runner.poll_loop import PollLoop, SummaryBroadcaster

STREAM_SETTINGS = {
    "somnia_rpc_url": "https://dream-rpc.somnia.network",
    "somnia_stream_address": "0x0000000000000000000000000000000000000010",
    "somnia_schema_id": "0x" + "ab" * 32,
}


@pytest.fixture
def tmp_dir():
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp)


def make_settings(tmp_dir: Path, **overrides) -> AppSettings:
    fields = {
        "env": "dev",
        "telegram_bot_token": "test_token",
        "subscriptions_path": str(tmp_dir / "subscriptions.json"),
        "database_path": str(tmp_dir / "bot.sqlite"),
    }
    fields.update(overrides)
    return AppSettings(**fields)


def test_requires_bot_token(tmp_dir) -> None:
    """Test that a missing Telegram token is a startup error."""
    with pytest.raises(ValueError, match="TELEGRAM_BOT_TOKEN is required"):
        AlertBotApp(make_settings(tmp_dir, telegram_bot_token=None))


def test_dry_run_without_stream_settings(tmp_dir) -> None:
    """Test that incomplete stream settings disable polling."""
    app = AlertBotApp(make_settings(tmp_dir, telegram_admin_ids=[1]))

    assert app.dry_run is True
    assert app.components["source"] is None
    assert app.components["summary"] is None
    assert isinstance(app.components["poll_loop"], PollLoop)
    assert isinstance(app.components["commands"], TelegramCommandHandler)
    assert isinstance(app.components["client"], TelegramBotClient)
    assert isinstance(app.components["store"], JsonFileSubscriptionStore)
    assert app._tasks() == []


def test_live_assembly(tmp_dir) -> None:
    """Test full assembly with stream and admin settings."""
    app = AlertBotApp(
        make_settings(
            tmp_dir,
            telegram_admin_ids=[1, 2],
            poll_interval_ms=60_000,
            **STREAM_SETTINGS,
        )
    )

    assert app.dry_run is False
    assert isinstance(app.components["source"], SomniaStreamReader)
    assert isinstance(app.components["summary"], SummaryBroadcaster)
    assert app.components["commands"].status_provider is app.components["poll_loop"]

    tasks = app._tasks()
    assert [t.name for t in tasks] == ["poll", "summary"]
    assert [t.interval_seconds for t in tasks] == [60.0, 600.0]


def test_summary_disabled_by_interval(tmp_dir) -> None:
    """Test that summary_interval_ms=0 disables the broadcast."""
    app = AlertBotApp(
        make_settings(
            tmp_dir, telegram_admin_ids=[1], summary_interval_ms=0, **STREAM_SETTINGS
        )
    )

    assert app.components["summary"] is None
    assert [t.name for t in app._tasks()] == ["poll"]


def test_sqlite_backend(tmp_dir) -> None:
    """Test backend selection."""
    app = AlertBotApp(make_settings(tmp_dir, subscriptions_backend="sqlite"))

    assert isinstance(app.components["store"], SQLiteSubscriptionStore)


@pytest.mark.asyncio
async def test_run_forever_stops(tmp_dir) -> None:
    """Test that stop() ends run_forever and closes the client."""
    app = AlertBotApp(make_settings(tmp_dir))
    polled = asyncio.Event()

    async def run_polling(stop_event):
        polled.set()
        await stop_event.wait()

    app.components["commands"].run_polling = run_polling

    runner = asyncio.create_task(app.run_forever())
    await asyncio.wait_for(polled.wait(), timeout=1)
    app.stop()
    await asyncio.wait_for(runner, timeout=1)

    assert app.components["client"].session.is_closed
