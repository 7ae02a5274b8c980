"""
Database connection and initialization helpers.
This file is the single source of truth for opening the SQLite connection.
"""

import sqlite3
import os
from pathlib import Path
from typing import Generator

from .config import DATA_DIR

# Default location of the database file.
# Override with MONEY_TRACKER_DB_PATH to run tests against a temporary copy.
_DEFAULT_DB_PATH = DATA_DIR / "money_tracker.db"
DB_PATH = Path(os.environ.get("MONEY_TRACKER_DB_PATH", str(_DEFAULT_DB_PATH)))


def get_connection() -> sqlite3.Connection:
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(
        str(DB_PATH),
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def get_db_conn() -> Generator[sqlite3.Connection, None, None]:
    """
    Dependency for FastAPI to get database connection.
    """
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


def _reset_database_if_requested() -> None:
    """
    When FORCE_DB_RESET=1 the database file is removed (if present).
    If the file cannot be removed (mounted volume), every table is dropped instead.
    Called at the start of initialise_database().
    """
    flag = os.environ.get("FORCE_DB_RESET", "").strip()
    if flag != "1":
        return

    try:
        if DB_PATH.exists():
            DB_PATH.unlink()
            return
    except OSError:
        pass

    conn = get_connection()
    cur = conn.cursor()
    try:
        cur.execute("PRAGMA foreign_keys = OFF;")
        # children before parents
        for tbl in ["transactions", "users"]:
            cur.execute(f"DROP TABLE IF EXISTS {tbl}")
        conn.commit()
    finally:
        conn.close()


def initialise_database() -> None:
    """Create database tables if they don't exist."""
    _reset_database_if_requested()
    conn = get_connection()

    cur = conn.cursor()

    cur.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            username TEXT NOT NULL UNIQUE,
            password TEXT NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    cur.execute("""
        CREATE TABLE IF NOT EXISTS transactions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            type TEXT NOT NULL CHECK (type IN ('income', 'expense')),
            amount INTEGER NOT NULL CHECK (amount > 0),
            title VARCHAR(100),
            description TEXT,
            tags VARCHAR(255),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE
        )
    """)

    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_transactions_user_created "
        "ON transactions (user_id, created_at)"
    )

    conn.commit()
    conn.close()
