"""
Local persistent cache for the client.

One SQLite file holds two tables:
- transactions: mirror of the user's transactions, primary key = transaction id,
  indexed by user_id.
- session: durable key/value slots (signed-in user id, theme preference).

Every sqlite3 failure, and any row that no longer validates, is re-raised as
CacheError so callers can fall back to an empty cache.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Iterable, List, Optional, Union

from pydantic import ValidationError

from ..schemas import Transaction
from .errors import CacheError

logger = logging.getLogger(__name__)

_COLUMNS = ("id", "user_id", "type", "amount", "title", "description", "tags", "created_at", "unsynced")


class LocalCacheStore:
    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._conn: Optional[sqlite3.Connection] = None

    # --------------- connection ---------------
    def _connect(self) -> sqlite3.Connection:
        if self._conn is not None:
            return self._conn
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.path))
            conn.row_factory = sqlite3.Row
            with conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS transactions (
                        id INTEGER PRIMARY KEY,
                        user_id INTEGER NOT NULL,
                        type TEXT NOT NULL,
                        amount INTEGER NOT NULL,
                        title TEXT,
                        description TEXT,
                        tags TEXT,
                        created_at TEXT,
                        unsynced INTEGER NOT NULL DEFAULT 0
                    )
                """)
                conn.execute("CREATE INDEX IF NOT EXISTS by_user_id ON transactions (user_id)")
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS session (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)
        except (sqlite3.Error, OSError) as exc:
            logger.error("Opening local cache %s failed: %s", self.path, exc)
            raise CacheError(f"Local cache unavailable: {exc}") from exc
        logger.debug("Local cache opened at %s", self.path)
        self._conn = conn
        return conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # --------------- transactions ---------------
    @staticmethod
    def _values(tx: Transaction) -> tuple:
        return (
            tx.id,
            tx.user_id,
            tx.type,
            tx.amount,
            tx.title,
            tx.description,
            tx.tags,
            tx.created_at,
            int(tx.unsynced),
        )

    @staticmethod
    def _from_row(row: sqlite3.Row) -> Transaction:
        data = dict(row)
        data["unsynced"] = bool(data["unsynced"])
        return Transaction(**data)

    def get_all(self, user_id: int) -> List[Transaction]:
        """All cached transactions of the user, newest first."""
        conn = self._connect()
        try:
            rows = conn.execute(
                f"SELECT {', '.join(_COLUMNS)} FROM transactions WHERE user_id = ? "
                "ORDER BY created_at DESC, id DESC",
                (user_id,),
            ).fetchall()
        except sqlite3.Error as exc:
            raise CacheError(f"Reading cached transactions failed: {exc}") from exc
        try:
            return [self._from_row(r) for r in rows]
        except ValidationError as exc:
            logger.error("Corrupted row in local cache for user %s: %s", user_id, exc)
            raise CacheError(f"Cached transactions are corrupted: {exc}") from exc

    def replace_all(self, transactions: Iterable[Transaction], user_id: int) -> None:
        """Drop every cached row of user_id and store the given set, atomically."""
        conn = self._connect()
        placeholders = ", ".join("?" for _ in _COLUMNS)
        try:
            with conn:
                conn.execute("DELETE FROM transactions WHERE user_id = ?", (user_id,))
                conn.executemany(
                    f"INSERT OR REPLACE INTO transactions ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                    [self._values(tx) for tx in transactions],
                )
        except sqlite3.Error as exc:
            raise CacheError(f"Replacing cached transactions failed: {exc}") from exc

    def put(self, transaction: Transaction) -> None:
        conn = self._connect()
        placeholders = ", ".join("?" for _ in _COLUMNS)
        try:
            with conn:
                conn.execute(
                    f"INSERT OR REPLACE INTO transactions ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                    self._values(transaction),
                )
        except sqlite3.Error as exc:
            raise CacheError(f"Saving transaction {transaction.id} locally failed: {exc}") from exc

    def delete(self, transaction_id: int) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute("DELETE FROM transactions WHERE id = ?", (transaction_id,))
        except sqlite3.Error as exc:
            raise CacheError(f"Deleting transaction {transaction_id} locally failed: {exc}") from exc

    # --------------- session slots ---------------
    def get_item(self, key: str) -> Optional[str]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT value FROM session WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            raise CacheError(f"Reading session key {key} failed: {exc}") from exc
        return row["value"] if row else None

    def set_item(self, key: str, value: str) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    "INSERT INTO session (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP",
                    (key, value),
                )
        except sqlite3.Error as exc:
            raise CacheError(f"Writing session key {key} failed: {exc}") from exc

    def remove_item(self, key: str) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute("DELETE FROM session WHERE key = ?", (key,))
        except sqlite3.Error as exc:
            raise CacheError(f"Removing session key {key} failed: {exc}") from exc
