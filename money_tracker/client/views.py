"""Read-only views derived from the in-memory transaction list."""

from typing import Iterable, List, NamedTuple, Optional

from ..schemas import Transaction


class Summary(NamedTuple):
    income: int
    expenses: int
    balance: int


def split_tags(tags: Optional[str]) -> List[str]:
    if not tags:
        return []
    return [t.strip() for t in tags.split(",") if t.strip()]


def unique_tags(transactions: Iterable[Transaction]) -> List[str]:
    found = set()
    for tx in transactions:
        found.update(split_tags(tx.tags))
    return sorted(found)


def filter_by_tag(transactions: List[Transaction], tag: Optional[str]) -> List[Transaction]:
    if not tag:
        return list(transactions)
    return [tx for tx in transactions if tag in split_tags(tx.tags)]


def summarize(transactions: Iterable[Transaction]) -> Summary:
    income = 0
    expenses = 0
    for tx in transactions:
        if tx.type == "income":
            income += tx.amount
        else:
            expenses += tx.amount
    return Summary(income, expenses, income - expenses)


def filtered_summary(transactions: List[Transaction], tag: Optional[str]) -> Summary:
    # no filter selected -> nothing to report
    if not tag:
        return Summary(0, 0, 0)
    return summarize(filter_by_tag(transactions, tag))
