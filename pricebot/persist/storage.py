"""Subscription persistence: JSON file and SQLite backends."""

import asyncio
import json
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from ..core.interfaces import SubscriptionRepository
from ..core.types import DEFAULT_THRESHOLD, Subscription

logger = structlog.get_logger(__name__)


def subscription_from_record(record: dict[str, Any]) -> Subscription:
    """Build a Subscription from a stored record.

    Older files stored the pair filter under "protocols"; a missing or
    non-positive threshold falls back to the default.
    """
    pairs = record.get("pairs")
    if not isinstance(pairs, list):
        pairs = record.get("protocols")
    if not isinstance(pairs, list):
        pairs = []

    threshold = record.get("threshold")
    if (
        not isinstance(threshold, int | float)
        or isinstance(threshold, bool)
        or not 0 < threshold <= 100
    ):
        threshold = DEFAULT_THRESHOLD

    return Subscription(pairs=[str(p) for p in pairs], threshold=threshold)


class JsonFileSubscriptionStore(SubscriptionRepository):
    """Subscriptions kept in a single JSON document keyed by chat id.

    The file is loaded on first access and rewritten in full after every
    mutation.
    """

    def __init__(self, path: str = "./data/subscriptions.json") -> None:
        """Initialize JSON store.

        Args:
            path: Location of the subscriptions file
        """
        self.path = Path(path)
        self._cache: dict[str, Subscription] = {}
        self._loaded = False
        self._lock = asyncio.Lock()

    def _ensure_file(self) -> None:
        if not self.path.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text("{}", encoding="utf-8")
            logger.info("Created subscriptions file", path=str(self.path))

    def _load(self) -> None:
        if self._loaded:
            return

        self._ensure_file()
        raw = self.path.read_text(encoding="utf-8")
        parsed = json.loads(raw) if raw.strip() else {}

        self._cache = {
            str(chat_id): subscription_from_record(value)
            for chat_id, value in parsed.items()
            if isinstance(value, dict)
        }
        self._loaded = True
        logger.debug("Subscriptions loaded", count=len(self._cache))

    def _persist(self) -> None:
        data = {
            chat_id: subscription.model_dump()
            for chat_id, subscription in self._cache.items()
        }
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    async def get(self, chat_id: int) -> Subscription | None:
        async with self._lock:
            self._load()
            subscription = self._cache.get(str(chat_id))
            return subscription.model_copy(deep=True) if subscription else None

    async def set(self, chat_id: int, subscription: Subscription) -> None:
        async with self._lock:
            self._load()
            self._cache[str(chat_id)] = subscription.model_copy(deep=True)
            self._persist()
        logger.debug("Subscription saved", chat_id=chat_id)

    async def remove(self, chat_id: int) -> None:
        async with self._lock:
            self._load()
            self._cache.pop(str(chat_id), None)
            self._persist()
        logger.debug("Subscription removed", chat_id=chat_id)

    async def entries(self) -> list[tuple[int, Subscription]]:
        async with self._lock:
            self._load()
            return [
                (int(chat_id), subscription.model_copy(deep=True))
                for chat_id, subscription in self._cache.items()
            ]


class SQLiteSubscriptionStore(SubscriptionRepository):
    """SQLite-backed subscription store with an in-memory mirror."""

    def __init__(self, db_path: str = "bot.sqlite") -> None:
        """Initialize SQLite store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._cache: dict[int, Subscription] = {}
        self._loaded = False
        self._lock = asyncio.Lock()

        logger.info("SQLite subscription store initialized", db_path=db_path)

    async def initialize(self) -> None:
        """Create the subscriptions table."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS subscriptions (
                    chat_id INTEGER PRIMARY KEY,
                    pairs TEXT NOT NULL,
                    threshold REAL NOT NULL
                )
            """)
            await db.commit()

        logger.info("Database tables initialized")

    async def _load(self) -> None:
        if self._loaded:
            return

        await self.initialize()
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "SELECT chat_id, pairs, threshold FROM subscriptions"
            ) as cursor:
                rows = await cursor.fetchall()

        self._cache = {
            int(chat_id): subscription_from_record(
                {"pairs": json.loads(pairs), "threshold": threshold}
            )
            for chat_id, pairs, threshold in rows
        }
        self._loaded = True
        logger.debug("Subscriptions loaded", count=len(self._cache))

    async def get(self, chat_id: int) -> Subscription | None:
        async with self._lock:
            await self._load()
            subscription = self._cache.get(chat_id)
            return subscription.model_copy(deep=True) if subscription else None

    async def set(self, chat_id: int, subscription: Subscription) -> None:
        async with self._lock:
            await self._load()
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    """
                    INSERT INTO subscriptions (chat_id, pairs, threshold)
                    VALUES (?, ?, ?)
                    ON CONFLICT(chat_id) DO UPDATE SET
                        pairs = excluded.pairs,
                        threshold = excluded.threshold
                """,
                    (chat_id, json.dumps(subscription.pairs), subscription.threshold),
                )
                await db.commit()
            self._cache[chat_id] = subscription.model_copy(deep=True)

        logger.debug("Subscription saved", chat_id=chat_id)

    async def remove(self, chat_id: int) -> None:
        async with self._lock:
            await self._load()
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    "DELETE FROM subscriptions WHERE chat_id = ?", (chat_id,)
                )
                await db.commit()
            self._cache.pop(chat_id, None)

        logger.debug("Subscription removed", chat_id=chat_id)

    async def entries(self) -> list[tuple[int, Subscription]]:
        async with self._lock:
            await self._load()
            return [
                (chat_id, subscription.model_copy(deep=True))
                for chat_id, subscription in self._cache.items()
            ]

    async def close(self) -> None:
        """Close storage.

        Each operation opens and closes its own connection, so there is nothing
        to release here.
        """
        logger.info("Storage closed")

    async def __aenter__(self):
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
