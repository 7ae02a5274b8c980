from __future__ import annotations

import re
from typing import Optional

from ..schemas import Transaction, TransactionPayload
from .errors import TransactionValidationError
from .events import FormFieldChanged

TRANSACTION_TYPES = ("income", "expense")
INVALID_AMOUNT_MESSAGE = "Please enter a valid, positive amount for the transaction."

_DIGITS = re.compile(r"[0-9]+")


def format_number(num: Optional[int]) -> str:
    """50000 -> '50.000'."""
    if num is None:
        return ""
    return f"{int(num):,}".replace(",", ".")


def parse_formatted_number(text: str) -> Optional[int]:
    """'50.000' -> 50000; None when the text is not a whole number."""
    raw = (text or "").replace(".", "")
    if not _DIGITS.fullmatch(raw):
        return None
    return int(raw)


def normalize_tags(raw: Optional[str]) -> Optional[str]:
    """' food , ,rent ' -> 'food,rent'; blank -> None."""
    if not raw:
        return None
    tags = [t.strip() for t in raw.split(",")]
    return ",".join(t for t in tags if t) or None


class TransactionForm:
    def __init__(self) -> None:
        self.clear()

    def clear(self) -> None:
        self.amount = ""
        self.type = "income"
        self.title = ""
        self.description = ""
        self.tags = ""
        self.editing_transaction_id: Optional[int] = None

    @property
    def is_editing(self) -> bool:
        return self.editing_transaction_id is not None

    def set_amount(self, text: str) -> bool:
        raw = text.replace(".", "")
        if raw == "":
            self.amount = ""
            return True
        if not _DIGITS.fullmatch(raw):
            return False
        self.amount = format_number(int(raw))
        return True

    def set_type(self, value: str) -> None:
        if value not in TRANSACTION_TYPES:
            raise ValueError(f"Unknown transaction type: {value}")
        self.type = value

    def handle(self, event: FormFieldChanged) -> None:
        if event.field == "amount":
            self.set_amount(event.value)
        elif event.field == "type":
            self.set_type(event.value)
        elif event.field in ("title", "description", "tags"):
            setattr(self, event.field, event.value)
        else:
            raise ValueError(f"Unknown form field: {event.field}")

    def load(self, transaction: Transaction) -> None:
        self.editing_transaction_id = transaction.id
        self.amount = format_number(transaction.amount)
        self.type = transaction.type
        self.title = transaction.title or ""
        self.description = transaction.description or ""
        self.tags = transaction.tags or ""

    def build_payload(self, user_id: int) -> TransactionPayload:
        amount = parse_formatted_number(self.amount)
        if amount is None or amount <= 0:
            raise TransactionValidationError(INVALID_AMOUNT_MESSAGE)
        return TransactionPayload(
            user_id=user_id,
            transaction_id=self.editing_transaction_id,
            type=self.type,
            amount=amount,
            title=self.title.strip() or None,
            description=self.description.strip() or None,
            tags=normalize_tags(self.tags),
        )
