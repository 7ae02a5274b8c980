"""
User and transaction operations backing the /api endpoint.

Every function takes an open sqlite3 connection plus the decoded request data,
returns the JSON body of a successful response and raises ApiError otherwise.
"""

from __future__ import annotations

import logging
import math
import sqlite3
from typing import Any, Dict, List, Optional

from passlib.context import CryptContext

from ..config import TAGS_MAX_LENGTH, TITLE_MAX_LENGTH
from ..exceptions import ApiError

logger = logging.getLogger(__name__)
auth_logger = logging.getLogger("money_tracker.auth")

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

TRANSACTION_TYPES = ("income", "expense")
UNCHANGED_MESSAGE = "Transaction data unchanged"
NOT_FOUND_MESSAGE = "Transaction not found or not owned by user"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


# --------------- input helpers ---------------

def parse_amount(value: Any) -> Optional[int]:
    """Numeric value (number or numeric string) truncated to int; None if not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        return int(number) if math.isfinite(number) else None
    return None


def parse_int(value: Any, default: int = 0) -> int:
    """Lenient int conversion used for ids coming from query strings."""
    if isinstance(value, bool):
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        parsed = parse_amount(value)
        return parsed if parsed is not None else default


def clean_text(value: Any, max_length: Optional[int] = None) -> Optional[str]:
    """Trim an optional text field; blank becomes None, long input is truncated."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if max_length is not None and len(text) > max_length:
        text = text[:max_length]
    return text


def _core_fields(data: Dict[str, Any], invalid_message: str) -> Dict[str, Any]:
    tx_type = data.get("type")
    amount = parse_amount(data.get("amount"))
    if tx_type not in TRANSACTION_TYPES or amount is None:
        raise ApiError(400, invalid_message)
    if amount <= 0:
        raise ApiError(400, "Amount must be positive")
    return {
        "type": tx_type,
        "amount": amount,
        "title": clean_text(data.get("title"), TITLE_MAX_LENGTH),
        "description": clean_text(data.get("description")),
        "tags": clean_text(data.get("tags"), TAGS_MAX_LENGTH),
    }


def _row_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
    item = dict(row)
    item["amount"] = int(item["amount"])
    return item


# --------------- users ---------------

def register_user(db_conn: sqlite3.Connection, data: Dict[str, Any]) -> Dict[str, Any]:
    username = data.get("username")
    password = data.get("password")
    if not username or not password:
        raise ApiError(400, "Username and password required")

    try:
        db_conn.execute(
            "INSERT INTO users (username, password) VALUES (?, ?)",
            (username, hash_password(password)),
        )
        db_conn.commit()
    except sqlite3.IntegrityError:
        auth_logger.info(f"REGISTER rejected, username taken: {username}")
        raise ApiError(409, "Username already exists")

    auth_logger.info(f"REGISTER success username={username}")
    return {"status": "success", "message": "Registration successful"}


def login_user(db_conn: sqlite3.Connection, data: Dict[str, Any]) -> Dict[str, Any]:
    username = data.get("username")
    password = data.get("password")
    if not username or not password:
        raise ApiError(400, "Username and password required")

    auth_logger.info(f"LOGIN attempt username={username}")
    row = db_conn.execute(
        "SELECT id, password FROM users WHERE username = ?", (username,)
    ).fetchone()
    if row is None:
        auth_logger.info(f"LOGIN failed, unknown username={username}")
        raise ApiError(404, "User not found")
    if not verify_password(password, row["password"]):
        auth_logger.info(f"LOGIN failed, bad password username={username}")
        raise ApiError(401, "Invalid credentials")

    auth_logger.info(f"LOGIN success username={username} user_id={row['id']}")
    return {"status": "success", "user_id": row["id"]}


# --------------- transactions ---------------

def fetch_transactions(db_conn: sqlite3.Connection, user_id: int) -> List[Dict[str, Any]]:
    rows = db_conn.execute(
        "SELECT id, type, amount, title, description, tags, created_at "
        "FROM transactions WHERE user_id = ? ORDER BY created_at DESC, id DESC",
        (user_id,),
    ).fetchall()
    return [_row_to_dict(r) for r in rows]


def _get_owned(db_conn: sqlite3.Connection, transaction_id: int, user_id: int) -> Optional[sqlite3.Row]:
    return db_conn.execute(
        "SELECT id, user_id, type, amount, title, description, tags, created_at "
        "FROM transactions WHERE id = ? AND user_id = ?",
        (transaction_id, user_id),
    ).fetchone()


def add_transaction(db_conn: sqlite3.Connection, data: Dict[str, Any]) -> Dict[str, Any]:
    if data.get("user_id") is None:
        raise ApiError(400, "Invalid core transaction data")
    fields = _core_fields(data, "Invalid core transaction data")
    user_id = parse_int(data["user_id"])

    try:
        cur = db_conn.execute(
            "INSERT INTO transactions (user_id, type, amount, title, description, tags) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                user_id,
                fields["type"],
                fields["amount"],
                fields["title"],
                fields["description"],
                fields["tags"],
            ),
        )
        db_conn.commit()
    except sqlite3.IntegrityError as exc:
        logger.warning("add_transaction rejected for user_id=%s: %s", user_id, exc)
        raise ApiError(500, f"Failed to add transaction: {exc}")

    new_id = cur.lastrowid
    row = _get_owned(db_conn, new_id, user_id)
    return {
        "status": "success",
        "message": "Transaction added",
        "transaction": _row_to_dict(row),
    }


def update_transaction(db_conn: sqlite3.Connection, data: Dict[str, Any]) -> Dict[str, Any]:
    if data.get("user_id") is None or data.get("transaction_id") is None:
        raise ApiError(400, "Invalid core transaction data for update")
    fields = _core_fields(data, "Invalid core transaction data for update")
    user_id = parse_int(data["user_id"])
    transaction_id = parse_int(data["transaction_id"])

    existing = _get_owned(db_conn, transaction_id, user_id)
    if existing is None:
        raise ApiError(404, NOT_FOUND_MESSAGE)

    if all(existing[k] == v for k, v in fields.items()):
        return {"status": "success", "message": UNCHANGED_MESSAGE}

    db_conn.execute(
        "UPDATE transactions SET type = ?, amount = ?, title = ?, description = ?, tags = ? "
        "WHERE id = ? AND user_id = ?",
        (
            fields["type"],
            fields["amount"],
            fields["title"],
            fields["description"],
            fields["tags"],
            transaction_id,
            user_id,
        ),
    )
    db_conn.commit()

    row = _get_owned(db_conn, transaction_id, user_id)
    return {
        "status": "success",
        "message": "Transaction updated",
        "transaction": _row_to_dict(row),
    }


def delete_transaction(db_conn: sqlite3.Connection, user_id: int, transaction_id: int) -> Dict[str, Any]:
    cur = db_conn.execute(
        "DELETE FROM transactions WHERE id = ? AND user_id = ?",
        (transaction_id, user_id),
    )
    db_conn.commit()
    if cur.rowcount == 0:
        raise ApiError(404, NOT_FOUND_MESSAGE)
    return {"status": "success", "message": "Transaction deleted"}
