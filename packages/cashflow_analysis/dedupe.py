"""Cross-file duplicate detection.

A transaction's dedup key is a pure function of its content:

``"<YYYY-MM-DD>|<abs(amount) rounded half-up to 2dp>|<normalized description[:50]>"``

Descriptions are lowercased, runs of whitespace (tabs and newlines included)
become one space, and punctuation is dropped.

The deduplicator makes a single left-to-right pass; the first transaction
seen with a key is canonical and later ones are returned as duplicates
(copies with ``is_duplicate=True`` and ``duplicate_of_key`` set). Merge order
follows upload order, so the earlier-processed copy of a statement period
that was uploaded twice is the one retained. :func:`discount_duplicates`
then takes the duplicates back out of the merged totals.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from .models import AggregateAnalysis, MonthlyBreakdownEntry, Transaction

DESCRIPTION_KEY_LENGTH: int = 50

_NON_ALNUM_RE = re.compile(r"[^a-z0-9 ]+")
_WS_RE = re.compile(r"\s+")
_ISO_PREFIX_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")
_DATE_FORMATS: tuple[str, ...] = ("%m/%d/%Y", "%m/%d/%y", "%Y/%m/%d")
_CENT = Decimal("0.01")


def normalize_date(value: str) -> str:
    """Return ``value`` as ``YYYY-MM-DD`` when recognizable, else stripped verbatim."""

    s = value.strip()
    m = _ISO_PREFIX_RE.match(s)
    if m:
        return m.group(0)
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date().isoformat()
        except ValueError:
            continue
    return s


def normalize_description(value: str) -> str:
    s = _NON_ALNUM_RE.sub("", _WS_RE.sub(" ", value.lower()))
    return _WS_RE.sub(" ", s).strip()[:DESCRIPTION_KEY_LENGTH]


def dedup_key(tx: Transaction) -> str:
    amount = Decimal(str(abs(tx.amount))).quantize(_CENT, rounding=ROUND_HALF_UP)
    return f"{normalize_date(tx.date)}|{amount}|{normalize_description(tx.description)}"


@dataclass(frozen=True, slots=True)
class DedupResult:
    unique: tuple[Transaction, ...]
    duplicates: tuple[Transaction, ...]


def deduplicate(transactions: Iterable[Transaction]) -> DedupResult:
    """Split ``transactions`` into first occurrences and later duplicates. O(n)."""

    seen: dict[str, Transaction] = {}
    unique: list[Transaction] = []
    duplicates: list[Transaction] = []
    for tx in transactions:
        key = dedup_key(tx)
        if key in seen:
            duplicates.append(replace(tx, is_duplicate=True, duplicate_of_key=key))
            continue
        seen[key] = tx
        unique.append(tx)
    return DedupResult(unique=tuple(unique), duplicates=tuple(duplicates))


def discount_duplicates(
    aggregate: AggregateAnalysis, dedup: DedupResult
) -> AggregateAnalysis:
    """Remove the amounts of duplicate transactions from the aggregate totals.

    Each duplicate comes off total income (inflow) or total expenses
    (outflow), off the net, and off its month in the breakdown. Months are
    never dropped, even when a month is left with no transactions.
    """

    if not dedup.duplicates:
        return replace(aggregate, transactions=dedup.unique)

    income = aggregate.total_income
    expenses = aggregate.total_expenses
    months = {m.month: m for m in aggregate.monthly_breakdown}
    for tx in dedup.duplicates:
        inflow = tx.amount if tx.amount > 0 else 0.0
        outflow = -tx.amount if tx.amount < 0 else 0.0
        income -= inflow
        expenses -= outflow
        month = months.get(normalize_date(tx.date)[:7])
        if month is None:
            continue
        months[month.month] = MonthlyBreakdownEntry(
            month=month.month,
            income=month.income - inflow,
            expenses=month.expenses - outflow,
            net_cash_flow=month.net_cash_flow - tx.amount,
            transaction_count=max(month.transaction_count - 1, 0),
        )

    return replace(
        aggregate,
        transactions=dedup.unique,
        monthly_breakdown=tuple(months[m.month] for m in aggregate.monthly_breakdown),
        total_income=income,
        total_expenses=expenses,
        net_cash_flow=aggregate.net_cash_flow - sum(t.amount for t in dedup.duplicates),
    )


__all__ = [
    "DedupResult",
    "dedup_key",
    "deduplicate",
    "discount_duplicates",
    "normalize_date",
    "normalize_description",
]
