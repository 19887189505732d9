"""
SQLite Storage

A small aiosqlite-backed store with two tables: `kv_store`, the durable
key-value surface used for session records, the credential and the appearance
preference, and `user_configs`, which holds the persisted AppConfig rows.
"""

import json
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Optional, Protocol

import aiosqlite
from loguru import logger

CONFIG_METADATA_FIELDS = ("config_id", "created_at", "updated_at")

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS kv_store (
        key TEXT PRIMARY KEY,
        value BLOB NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_configs (
        config_id TEXT PRIMARY KEY,
        config_data TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
)


class KeyValueStorage(Protocol):
    """Durable byte storage the session store and credential handling write through."""

    async def get(self, key: str) -> Optional[bytes]: ...

    async def set(self, key: str, value: bytes) -> None: ...

    async def remove(self, key: str) -> None: ...


class DatabaseManager:
    """Owns the application database file and implements KeyValueStorage."""

    def __init__(self, db_path: str):
        if not db_path:
            raise ValueError("Database path cannot be empty.")
        self.db_path = db_path
        self._initialized = False

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[aiosqlite.Connection]:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("PRAGMA busy_timeout = 30000")
            yield db

    async def initialize(self):
        """Create the schema on first use. Safe to call repeatedly."""
        if self._initialized:
            return

        logger.info(f"Opening storage at {self.db_path}")
        async with self._connection() as db:
            await db.execute("PRAGMA journal_mode = WAL")  # readers don't block the session writer
            await db.execute("PRAGMA synchronous = NORMAL")
            for statement in SCHEMA:
                await db.execute(statement)
            await db.commit()

        self._initialized = True
        logger.info("✅ Storage ready")

    # --- Key-value surface ---

    async def get(self, key: str) -> Optional[bytes]:
        await self.initialize()
        async with self._connection() as db:
            cursor = await db.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
            row = await cursor.fetchone()
        if row is None:
            return None
        # Values written by older builds may have been stored as TEXT.
        return row[0].encode("utf-8") if isinstance(row[0], str) else bytes(row[0])

    async def set(self, key: str, value: bytes) -> None:
        await self.initialize()
        async with self._connection() as db:
            await db.execute(
                "INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
                (key, value, datetime.now().isoformat()),
            )
            await db.commit()
        logger.debug(f"kv_store['{key}'] <- {len(value)} bytes")

    async def remove(self, key: str) -> None:
        """Delete a key. Missing keys are ignored."""
        await self.initialize()
        async with self._connection() as db:
            await db.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            await db.commit()
        logger.debug(f"kv_store['{key}'] removed")

    # --- Application configuration ---

    async def get_user_config(self, config_id: str = "default") -> Optional[Dict[str, Any]]:
        """
        Load a stored configuration row as a plain dict, including its id and
        timestamps. Returns None when the row is missing or unreadable.
        """
        await self.initialize()
        async with self._connection() as db:
            cursor = await db.execute(
                "SELECT config_data, created_at, updated_at FROM user_configs WHERE config_id = ?",
                (config_id,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None

        config_json, created_at, updated_at = row
        try:
            data = json.loads(config_json)
        except json.JSONDecodeError as e:
            logger.error(f"Stored config '{config_id}' is not valid JSON: {e}")
            return None
        return {**data, "config_id": config_id, "created_at": created_at, "updated_at": updated_at}

    async def save_user_config(self, config_id: str, config_data: Dict[str, Any]) -> None:
        """Upsert a configuration row; metadata fields live in their own columns."""
        await self.initialize()
        payload = {k: v for k, v in config_data.items() if k not in CONFIG_METADATA_FIELDS}
        now = datetime.now().isoformat()
        async with self._connection() as db:
            await db.execute(
                "INSERT INTO user_configs (config_id, config_data, created_at, updated_at) VALUES (?, ?, ?, ?) "
                "ON CONFLICT(config_id) DO UPDATE SET config_data = excluded.config_data, "
                "updated_at = excluded.updated_at",
                (config_id, json.dumps(payload), now, now),
            )
            await db.commit()
        logger.debug(f"Saved config '{config_id}'")

    async def get_database_info(self) -> dict:
        """Summarize the database for the health endpoint."""
        await self.initialize()
        async with self._connection() as db:
            cursor = await db.execute("SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name")
            tables = [name for (name,) in await cursor.fetchall()]
            cursor = await db.execute("SELECT key FROM kv_store ORDER BY key")
            keys = [key for (key,) in await cursor.fetchall()]

        return {
            "database_path": self.db_path,
            "size_mb": round(os.path.getsize(self.db_path) / (1024 * 1024), 2),
            "tables": tables,
            "keys": keys,
        }
