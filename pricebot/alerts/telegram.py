"""Telegram bot surface: API client, admin alert sink and subscriber commands."""

import asyncio
import json
import math
import re
from html import escape
from typing import Any, Protocol, runtime_checkable

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config.pairs import resolve_pair_ids
from ..core.interfaces import AlertSink, Messenger, SubscriptionRepository
from ..core.types import DEFAULT_THRESHOLD, Subscription, TrackedPair

logger = structlog.get_logger(__name__)

BOT_COMMANDS = [
    {"command": "start", "description": "Subscribe to price alerts"},
    {"command": "subscribe", "description": "Follow specific pairs (/subscribe ETH-USD)"},
    {"command": "setthreshold", "description": "Change alert threshold (/setthreshold 10)"},
    {"command": "pairs", "description": "List tracked pairs"},
    {"command": "status", "description": "Show poller status"},
    {"command": "stop", "description": "Unsubscribe from updates"},
    {"command": "help", "description": "Show available commands"},
]

THRESHOLD_ERROR = "Please provide a threshold greater than 0 and at most 100."


class TelegramAPIError(Exception):
    """Telegram Bot API returned ok=false."""


@runtime_checkable
class StatusProvider(Protocol):
    """Protocol for status callback provider."""

    def get_status(self) -> dict[str, Any]:
        """Get current system status."""
        ...


class TelegramBotClient(Messenger):
    """Thin async client for the Telegram Bot API."""

    def __init__(
        self,
        bot_token: str,
        base_url: str = "https://api.telegram.org",
        session: httpx.AsyncClient | None = None,
        request_timeout: float = 30.0,
    ) -> None:
        """Initialize Telegram client.

        Args:
            bot_token: Telegram bot token
            base_url: Bot API base URL
            session: Optional HTTP session for requests
            request_timeout: Timeout for regular (non long-poll) calls
        """
        self.bot_token = bot_token
        self.session = session or httpx.AsyncClient()
        self.base_url = f"{base_url.rstrip('/')}/bot{bot_token}"
        self.request_timeout = request_timeout

    async def _call(
        self, method: str, payload: dict[str, Any], timeout: float | None = None
    ) -> Any:
        url = f"{self.base_url}/{method}"
        response = await self.session.post(
            url, json=payload, timeout=timeout or self.request_timeout
        )
        response.raise_for_status()

        result = response.json()
        if not result.get("ok"):
            raise TelegramAPIError(
                f"Telegram API error: {result.get('description', 'Unknown error')}"
            )
        return result.get("result")

    async def send_message(self, chat_id: int, text: str) -> None:
        """Send an HTML message to chat_id."""
        await self._call(
            "sendMessage", {"chat_id": chat_id, "text": text, "parse_mode": "HTML"}
        )

    async def get_updates(
        self, offset: int | None = None, timeout: int = 30
    ) -> list[dict[str, Any]]:
        """Long-poll for updates newer than offset."""
        payload: dict[str, Any] = {"timeout": timeout, "allowed_updates": ["message"]}
        if offset is not None:
            payload["offset"] = offset
        return await self._call("getUpdates", payload, timeout=timeout + 10) or []

    async def set_my_commands(self, commands: list[dict[str, str]]) -> None:
        await self._call("setMyCommands", {"commands": commands})

    async def close(self) -> None:
        await self.session.aclose()
        logger.info("Telegram client closed")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class TelegramAlertSink(AlertSink):
    """Pushes broadcast messages to the configured admin chats."""

    def __init__(self, client: Messenger, admin_user_ids: list[int]) -> None:
        """Initialize Telegram alert sink.

        Args:
            client: Messenger used for delivery
            admin_user_ids: List of admin chat IDs to send alerts to
        """
        self.client = client
        self.admin_user_ids = admin_user_ids

        logger.info("Telegram alert sink initialized", admin_count=len(admin_user_ids))

    async def push(self, message: str) -> None:
        """Push alert message to all admin users.

        Args:
            message: Alert message to send
        """
        if not self.admin_user_ids:
            logger.warning("No admin users configured, skipping alert")
            return

        success_count = 0
        for user_id in self.admin_user_ids:
            try:
                await self.client.send_message(user_id, message)
                success_count += 1
                logger.debug("Alert sent to admin", user_id=user_id)
            except Exception as e:
                logger.error(
                    "Failed to send alert to admin", user_id=user_id, error=str(e)
                )

        logger.info(
            "Alert push completed",
            total_admins=len(self.admin_user_ids),
            success_count=success_count,
        )


def parse_command(text: str) -> tuple[str, str]:
    """Split "/cmd@bot args" into ("/cmd", "args")."""
    head, *rest = re.split(r"\s+", text.strip(), maxsplit=1)
    args = rest[0] if rest else ""
    command = head.split("@", 1)[0].lower()
    return command, args.strip()


def parse_threshold(raw: str) -> float | None:
    """Parse a threshold percentage, returning None if out of (0, 100]."""
    try:
        value = float(raw.strip().rstrip("%"))
    except ValueError:
        return None
    if not math.isfinite(value) or value <= 0 or value > 100:
        return None
    return value


class TelegramCommandHandler:
    """Handles subscriber commands and keeps subscriptions up to date."""

    def __init__(
        self,
        client: TelegramBotClient,
        store: SubscriptionRepository,
        tracked_pairs: list[TrackedPair],
        default_threshold: float = DEFAULT_THRESHOLD,
    ) -> None:
        """Initialize command handler.

        Args:
            client: Telegram client for replies and update polling
            store: Subscription repository
            tracked_pairs: Pairs subscribers may follow
            default_threshold: Threshold given to new subscribers
        """
        self.client = client
        self.store = store
        self.tracked_pairs = tracked_pairs
        self.default_threshold = default_threshold
        self.status_provider: StatusProvider | None = None
        self.offset: int | None = None

        logger.info("Telegram command handler initialized")

    def set_status_provider(self, provider: StatusProvider) -> None:
        """Set status provider for /status command."""
        self.status_provider = provider
        logger.debug("Status provider set")

    async def get_or_create(self, chat_id: int) -> Subscription:
        existing = await self.store.get(chat_id)
        if existing is not None:
            return existing
        subscription = Subscription(threshold=self.default_threshold)
        await self.store.set(chat_id, subscription)
        logger.info("Subscription created", chat_id=chat_id)
        return subscription

    async def handle_command(self, chat_id: int, text: str) -> str:
        """Handle a command and return the reply text."""
        if not text.startswith("/"):
            return "Invalid command format. Send /help for the command list."

        command, args = parse_command(text)

        if command == "/start":
            return await self._handle_start(chat_id)
        elif command == "/subscribe":
            return await self._handle_subscribe(chat_id, args)
        elif command == "/setthreshold":
            return await self._handle_set_threshold(chat_id, args)
        elif command == "/stop":
            return await self._handle_stop(chat_id)
        elif command == "/pairs":
            return self._handle_pairs_command()
        elif command == "/status":
            return self._handle_status_command()
        elif command == "/help":
            return self._handle_help_command()
        else:
            return f"Unknown command: {escape(command)}"

    async def _handle_start(self, chat_id: int) -> str:
        subscription = await self.get_or_create(chat_id)
        tracking = (
            f"Tracking pairs: {escape(', '.join(subscription.pairs))}"
            if subscription.pairs
            else "Tracking all supported pairs."
        )
        return "\n".join(
            [
                "👋 Welcome to the Somnia price alerts bot!",
                "",
                f"Current threshold: {subscription.threshold:g}%",
                tracking,
                "",
                "Commands:",
                "• /subscribe &lt;pair&gt;[,&lt;pair&gt;...]",
                "• /setthreshold &lt;percent&gt;",
                "• /pairs",
                "• /stop",
            ]
        )

    async def _handle_subscribe(self, chat_id: int, args: str) -> str:
        requested = [item for item in re.split(r"[,\s]+", args) if item]
        available = [pair.pair_id for pair in self.tracked_pairs]

        if not requested:
            subscription = await self.get_or_create(chat_id)
            subscription.pairs = []
            await self.store.set(chat_id, subscription)
            return "You will receive alerts for all pairs."

        resolved, unknown = resolve_pair_ids(requested, self.tracked_pairs)
        if unknown:
            return (
                f"Unknown pairs: {escape(', '.join(unknown))}. "
                f"Available: {escape(', '.join(available))}"
            )

        subscription = await self.get_or_create(chat_id)
        subscription.pairs = resolved
        await self.store.set(chat_id, subscription)
        return f"Updated subscriptions: {escape(', '.join(resolved))}"

    async def _handle_set_threshold(self, chat_id: int, args: str) -> str:
        value = parse_threshold(args) if args else None
        if value is None:
            return THRESHOLD_ERROR

        subscription = await self.get_or_create(chat_id)
        subscription.threshold = value
        await self.store.set(chat_id, subscription)
        return f"Alert threshold set to {value:g}%."

    async def _handle_stop(self, chat_id: int) -> str:
        await self.store.remove(chat_id)
        logger.info("Subscription removed", chat_id=chat_id)
        return "Unsubscribed. Use /start to join again."

    def _handle_pairs_command(self) -> str:
        if not self.tracked_pairs:
            return "No pairs are tracked."
        lines = ["📈 <b>Tracked pairs</b>", ""]
        for pair in self.tracked_pairs:
            lines.append(
                f"• <b>{escape(pair.pair_id)}</b> "
                f"({escape(pair.base_token)}/{escape(pair.quote_token)}, "
                f"{escape(pair.source)})"
            )
        return "\n".join(lines)

    def _handle_status_command(self) -> str:
        if self.status_provider is None:
            return "⚠️ Status provider not available"

        try:
            status = self.status_provider.get_status()
            status_json = json.dumps(status, indent=2, default=str)

            # Telegram has a 4096 character limit for messages
            if len(status_json) > 4000:
                status_json = status_json[:4000] + "\n... (truncated)"

            return f"📊 <b>Poller Status</b>\n\n<pre>{escape(status_json)}</pre>"

        except Exception as e:
            logger.error("Failed to get status", error=str(e))
            return f"❌ Error getting status: {escape(str(e))}"

    def _handle_help_command(self) -> str:
        return (
            "🤖 <b>Price Alert Commands</b>\n\n"
            "<b>/start</b> - Subscribe or show your settings\n"
            "<b>/subscribe</b> [pair,...] - Follow pairs (empty follows all)\n"
            "<b>/setthreshold</b> &lt;percent&gt; - Minimum move to alert on\n"
            "<b>/pairs</b> - List tracked pairs\n"
            "<b>/status</b> - Show poller status\n"
            "<b>/stop</b> - Unsubscribe\n"
            "<b>/help</b> - Show this help message"
        )

    async def handle_update(self, update: dict[str, Any]) -> None:
        """Handle incoming Telegram update.

        Args:
            update: Telegram update object
        """
        try:
            message = update.get("message") or {}
            chat_id = message.get("chat", {}).get("id")
            text = message.get("text", "")

            if not chat_id or not text.startswith("/"):
                return

            response = await self.handle_command(chat_id, text)
            await self.client.send_message(chat_id, response)

            logger.info("Command handled", command=parse_command(text)[0], chat_id=chat_id)

        except Exception as e:
            logger.error("Failed to handle update", error=str(e))

    async def poll_once(self, timeout: int = 30) -> int:
        """Fetch and handle one batch of updates; returns the batch size."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(5),
            wait=wait_exponential(multiplier=1, min=1, max=30),
            retry=retry_if_exception_type((httpx.NetworkError, httpx.TimeoutException)),
            reraise=True,
        )
        updates: list[dict[str, Any]] = []
        async for attempt in retrying:
            with attempt:
                updates = await self.client.get_updates(self.offset, timeout=timeout)

        for update in updates:
            self.offset = update["update_id"] + 1
            await self.handle_update(update)

        return len(updates)

    async def run_polling(self, stop_event: asyncio.Event, timeout: int = 30) -> None:
        """Long-poll for commands until stop_event is set."""
        try:
            await self.client.set_my_commands(BOT_COMMANDS)
        except Exception as e:
            logger.warning("Failed to register bot commands", error=str(e))

        logger.info("Command polling started")
        while not stop_event.is_set():
            try:
                await self.poll_once(timeout=timeout)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Update polling failed", error=str(e))
                await asyncio.sleep(5)
        logger.info("Command polling stopped")
