import pytest

from cashflow_analysis.averaging import (
    compute_monthly_averages,
    detect_deposit_frequency,
    select_complete_months,
)
from cashflow_analysis.models import AggregateAnalysis, MonthlyBreakdownEntry, Transaction


def _months(*counts: int) -> tuple[MonthlyBreakdownEntry, ...]:
    return tuple(
        MonthlyBreakdownEntry(
            month=f"2024-{i + 1:02d}",
            income=0.0,
            expenses=0.0,
            net_cash_flow=0.0,
            transaction_count=c,
        )
        for i, c in enumerate(counts)
    )


def _aggregate(counts, *, income, expenses, net=None) -> AggregateAnalysis:
    return AggregateAnalysis(
        transactions=(),
        monthly_breakdown=_months(*counts),
        total_income=income,
        total_expenses=expenses,
        net_cash_flow=income - expenses if net is None else net,
        confidence=0.9,
    )


def test_sparse_first_month_is_excluded():
    complete, excluded = select_complete_months(_months(2, 20, 19, 21))

    assert [m.month for m in complete] == ["2024-02", "2024-03", "2024-04"]
    assert [m.month for m in excluded] == ["2024-01"]


def test_both_boundary_months_can_be_excluded():
    complete, excluded = select_complete_months(_months(3, 20, 20, 2))

    assert [m.month for m in complete] == ["2024-02", "2024-03"]
    assert sorted(m.month for m in excluded) == ["2024-01", "2024-04"]


def test_interior_months_are_never_excluded():
    complete, excluded = select_complete_months(_months(20, 1, 20))
    assert len(complete) == 3
    assert excluded == []


def test_single_month_is_kept():
    complete, excluded = select_complete_months(_months(1))
    assert [m.month for m in complete] == ["2024-01"]
    assert excluded == []


def test_two_months_never_drop_to_zero():
    complete, excluded = select_complete_months(_months(1, 40))
    assert [m.month for m in complete] == ["2024-02"]
    assert [m.month for m in excluded] == ["2024-01"]


def test_averages_divide_by_complete_months():
    averages = compute_monthly_averages(
        _aggregate((2, 20, 19, 21), income=9000.0, expenses=6000.0)
    )

    assert averages.number_of_months == 3
    assert averages.monthly_deposits == pytest.approx(3000.0)
    assert averages.monthly_expenses == pytest.approx(2000.0)
    assert averages.monthly_leftover == pytest.approx(1000.0)
    assert averages.average_monthly_balance == pytest.approx(1000.0)
    assert averages.excluded_months == ("2024-01",)


def test_negative_leftover_gives_zero_balance():
    averages = compute_monthly_averages(_aggregate((10, 10), income=1000.0, expenses=3000.0))

    assert averages.monthly_leftover == pytest.approx(-1000.0)
    assert averages.average_monthly_balance == 0.0


def test_no_months_uses_a_single_period():
    averages = compute_monthly_averages(_aggregate((), income=0.0, expenses=0.0))
    assert averages.number_of_months == 1
    assert averages.complete_months == ()


def _deposits(*dates: str) -> list[Transaction]:
    return [Transaction(date=d, description="Payroll", amount=2000.0, category="income") for d in dates]


@pytest.mark.parametrize(
    ("dates", "expected"),
    [
        (("2024-01-05", "2024-01-12", "2024-01-19", "2024-01-26"), "weekly"),
        (("2024-01-05", "2024-01-19", "2024-02-02", "2024-02-16"), "biweekly"),
        (("2024-01-01", "2024-02-01", "2024-03-01"), "monthly"),
        (("2024-01-01",), "monthly"),
        ((), "monthly"),
    ],
)
def test_deposit_frequency(dates, expected):
    assert detect_deposit_frequency(_deposits(*dates)) == expected


def test_deposit_frequency_ignores_expenses():
    txs = _deposits("2024-01-01", "2024-02-01") + [
        Transaction(date=f"2024-01-{d:02d}", description="Coffee", amount=-4.0, category="expense")
        for d in range(2, 30, 3)
    ]
    assert detect_deposit_frequency(txs) == "monthly"
