"""Monthly averages over complete statement months.

Statement periods rarely start and end on month boundaries, so the first and
last month of a breakdown are often partial. A boundary month whose
transaction count is below ``ratio`` times the mean count is excluded before
averaging; interior months are always kept. When exclusion would leave no
months, the unfiltered breakdown is used.
"""

from __future__ import annotations

import statistics
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date

from .config import PARTIAL_MONTH_RATIO
from .models import AggregateAnalysis, DepositFrequency, MonthlyBreakdownEntry, Transaction

# Median gap (days) between deposits at or below which the cadence applies.
WEEKLY_MAX_GAP_DAYS: float = 9.0
BIWEEKLY_MAX_GAP_DAYS: float = 18.0


@dataclass(frozen=True, slots=True)
class MonthlyAverages:
    complete_months: tuple[str, ...]
    excluded_months: tuple[str, ...]
    number_of_months: int
    monthly_deposits: float
    monthly_expenses: float
    monthly_leftover: float

    @property
    def average_monthly_balance(self) -> float:
        """Leftover that can offset principal each month (never negative)."""
        return max(0.0, self.monthly_leftover)


def select_complete_months(
    breakdown: Sequence[MonthlyBreakdownEntry],
    *,
    ratio: float = PARTIAL_MONTH_RATIO,
) -> tuple[list[MonthlyBreakdownEntry], list[MonthlyBreakdownEntry]]:
    """Return ``(complete, excluded)`` months of an ascending ``breakdown``."""

    months = list(breakdown)
    if len(months) <= 1:
        return months, []

    avg_count = sum(m.transaction_count for m in months) / len(months)
    threshold = ratio * avg_count

    complete = list(months)
    excluded: list[MonthlyBreakdownEntry] = []
    if complete[0].transaction_count < threshold:
        excluded.append(complete.pop(0))
    if len(complete) > 1 and complete[-1].transaction_count < threshold:
        excluded.append(complete.pop())

    if not complete:
        return months, []
    return complete, excluded


def compute_monthly_averages(
    aggregate: AggregateAnalysis,
    *,
    ratio: float = PARTIAL_MONTH_RATIO,
) -> MonthlyAverages:
    complete, excluded = select_complete_months(aggregate.monthly_breakdown, ratio=ratio)
    n = max(1, len(complete))
    return MonthlyAverages(
        complete_months=tuple(m.month for m in complete),
        excluded_months=tuple(m.month for m in excluded),
        number_of_months=n,
        monthly_deposits=aggregate.total_income / n,
        monthly_expenses=aggregate.total_expenses / n,
        monthly_leftover=aggregate.net_cash_flow / n,
    )


def detect_deposit_frequency(transactions: Sequence[Transaction]) -> DepositFrequency:
    """Infer the income cadence from the median gap between deposit dates.

    Falls back to ``"monthly"`` with fewer than two distinct dated deposits.
    """

    days: set[date] = set()
    for tx in transactions:
        if tx.category != "income" or tx.amount <= 0:
            continue
        try:
            days.add(date.fromisoformat(tx.date[:10]))
        except ValueError:
            continue
    ordered = sorted(days)
    if len(ordered) < 2:
        return "monthly"
    gap = statistics.median((b - a).days for a, b in zip(ordered, ordered[1:]))
    if gap <= WEEKLY_MAX_GAP_DAYS:
        return "weekly"
    if gap <= BIWEEKLY_MAX_GAP_DAYS:
        return "biweekly"
    return "monthly"


__all__ = [
    "MonthlyAverages",
    "compute_monthly_averages",
    "detect_deposit_frequency",
    "select_complete_months",
]
