"""
Key-Value Storage

The persistence boundary: an opaque async key-value interface the session
store state is serialized into and out of. Two backends are provided, an
in-memory dict and an SQLite table.
"""

from abc import ABC, abstractmethod
from datetime import datetime

import aiosqlite
from loguru import logger


class KeyValueStorage(ABC):
    """Async string key-value storage."""

    @abstractmethod
    async def get(self, name: str) -> str | None:
        pass

    @abstractmethod
    async def set(self, name: str, value: str):
        pass

    @abstractmethod
    async def remove(self, name: str):
        pass

    async def close(self):
        """Release resources held by the backend."""
        pass


class MemoryStorage(KeyValueStorage):
    """Dict-backed storage, used for tests and ephemeral runs."""

    def __init__(self):
        self.data: dict[str, str] = {}

    async def get(self, name: str) -> str | None:
        return self.data.get(name)

    async def set(self, name: str, value: str):
        self.data[name] = value

    async def remove(self, name: str):
        self.data.pop(name, None)


class SqliteStorage(KeyValueStorage):
    """Stores values in a single SQLite table keyed by name."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        if not self.db_path:
            raise ValueError("Database path cannot be empty.")
        self._initialized = False

    async def initialize(self):
        """Create the key-value table if needed."""
        if self._initialized:
            return

        logger.info(f"Initializing key-value database: {self.db_path}")

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("PRAGMA journal_mode = WAL")  # Write-Ahead Logging for better concurrency
            await db.execute("PRAGMA synchronous = NORMAL")
            await db.execute("PRAGMA busy_timeout = 30000")  # 30 second timeout for locks

            await db.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    name TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            await db.commit()

        self._initialized = True
        logger.info("✅ Key-value database initialized")

    async def get(self, name: str) -> str | None:
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("SELECT value FROM kv_store WHERE name = ?", (name,))
            row = await cursor.fetchone()
            return row[0] if row else None

    async def set(self, name: str, value: str):
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO kv_store (name, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (name, value, datetime.now().isoformat()),
            )
            await db.commit()

    async def remove(self, name: str):
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("DELETE FROM kv_store WHERE name = ?", (name,))
            await db.commit()
