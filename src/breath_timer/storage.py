"""Key/value blob storage for the history, session and progress stores."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger("breath_timer.storage")

HISTORY_KEY = "pranayama_history_v2"
SESSIONS_KEY = "pranayama_sessions_v1"
PROGRESS_KEY = "pranayama_progress_v1"


class StorageError(Exception):
    """Raised when the backing store cannot be read or written."""


class Storage(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryStorage:
    """Dict-backed storage. Used by tests and as a scratch store."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self.data: dict[str, str] = dict(initial or {})
        self.writes = 0

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value
        self.writes += 1

    def close(self) -> None:
        pass


class SqliteStorage:
    """Blobs kept in a single kv_store table, committed on every set()."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path)
            self._init_tables()
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"Cannot open {self.db_path}: {e}") from e

    def _init_tables(self) -> None:
        cursor = self._conn.cursor()
        # WAL keeps CLI reads from blocking a running dashboard's writes
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._conn.commit()

    def get(self, key: str) -> Optional[str]:
        try:
            row = self._conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Read of {key} failed: {e}") from e
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        try:
            self._conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value, datetime.now().isoformat()),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Write of {key} failed: {e}") from e

    def close(self) -> None:
        self._conn.close()


class JsonBlob:
    """One JSON-encoded value under a storage key.

    Reads return None on a missing or malformed blob; writes log and swallow StorageError so callers on the tick path never see it.
    """

    def __init__(self, storage: Storage, key: str):
        self.storage = storage
        self.key = key

    def read(self):
        """Return the decoded blob, or None if absent or unreadable."""
        try:
            raw = self.storage.get(self.key)
        except StorageError as e:
            logger.warning(f"{self.key}: read failed, starting empty ({e})")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"{self.key}: malformed blob, starting empty")
            return None

    def write(self, payload) -> bool:
        try:
            self.storage.set(self.key, json.dumps(payload))
        except StorageError as e:
            logger.warning(f"{self.key}: write failed, keeping in-memory state ({e})")
            return False
        return True
