"""Combine per-chunk categorization results into one aggregate."""

from __future__ import annotations

import math
from collections.abc import Sequence

from .models import AggregateAnalysis, ChunkResult, MonthlyBreakdownEntry, Transaction

# Summed per-chunk net vs. income - expenses may differ by rounding only.
NET_CASH_FLOW_TOLERANCE: float = 0.01


def merge_monthly_breakdowns(
    breakdowns: Sequence[Sequence[MonthlyBreakdownEntry]],
) -> tuple[MonthlyBreakdownEntry, ...]:
    """Sum entries sharing a ``month`` key; return one entry per month, ascending."""

    by_month: dict[str, MonthlyBreakdownEntry] = {}
    for breakdown in breakdowns:
        for entry in breakdown:
            prev = by_month.get(entry.month)
            if prev is None:
                by_month[entry.month] = entry
                continue
            by_month[entry.month] = MonthlyBreakdownEntry(
                month=entry.month,
                income=prev.income + entry.income,
                expenses=prev.expenses + entry.expenses,
                net_cash_flow=prev.net_cash_flow + entry.net_cash_flow,
                transaction_count=prev.transaction_count + entry.transaction_count,
            )
    return tuple(by_month[m] for m in sorted(by_month))


def merge_chunk_results(results: Sequence[ChunkResult]) -> AggregateAnalysis:
    """Merge ``results`` (in chunk order) into an :class:`AggregateAnalysis`.

    Transactions are concatenated in chunk order, totals summed, and the
    confidence is the mean of the per-chunk confidences. The net cash flow is
    the sum of the per-chunk nets; disagreement with ``total_income -
    total_expenses`` sets ``net_cash_flow_mismatch`` instead of failing.
    """

    if not results:
        return AggregateAnalysis(
            transactions=(),
            monthly_breakdown=(),
            total_income=0.0,
            total_expenses=0.0,
            net_cash_flow=0.0,
            confidence=0.0,
        )

    transactions: list[Transaction] = []
    for r in results:
        transactions.extend(r.transactions)

    total_income = math.fsum(r.total_income for r in results)
    total_expenses = math.fsum(r.total_expenses for r in results)
    net_cash_flow = math.fsum(r.net_cash_flow for r in results)
    mismatch = abs(net_cash_flow - (total_income - total_expenses)) > NET_CASH_FLOW_TOLERANCE

    return AggregateAnalysis(
        transactions=tuple(transactions),
        monthly_breakdown=merge_monthly_breakdowns([r.monthly_breakdown for r in results]),
        total_income=total_income,
        total_expenses=total_expenses,
        net_cash_flow=net_cash_flow,
        confidence=math.fsum(r.confidence for r in results) / len(results),
        net_cash_flow_mismatch=mismatch,
    )


__all__ = ["merge_chunk_results", "merge_monthly_breakdowns"]
