import asyncio
import json

import pytest
from helpers.openai_stub import FakeDocumentClient, categorize_payload

import cashflow_analysis.api as api_mod
from cashflow_analysis import (
    AnalysisSettings,
    ChunkBatchError,
    ChunkFailurePolicy,
    StatementFile,
    analyze_statements,
    analyze_statements_sync,
)
from cashflow_analysis.telemetry import RecordingObserver

JAN_FEB = (
    "Date,Description,Amount\n"
    "2024-01-05,Payroll ACME,2500.00\n"
    "2024-01-10,Rent,-1800.00\n"
    "2024-02-05,Payroll ACME,2500.00\n"
    "2024-02-10,Rent,-1800.00\n"
    "2024-02-14,Flowers,-60.00\n"
)
FEB_MAR = (
    "Date,Description,Amount\n"
    "2024-02-05,PAYROLL ACME,2500.00\n"
    "2024-03-05,Payroll ACME,2500.00\n"
    "2024-03-10,Rent,-1800.00\n"
)


def _csv(name: str, body: str) -> StatementFile:
    return StatementFile(filename=name, data=body.encode("utf-8"), extension=".csv")


def _settings(**overrides) -> AnalysisSettings:
    base = {
        "extraction_retry_delay_sec": 0.0,
        "extraction_timeouts_sec": {"spreadsheet": 2.0, "image": 2.0, "pdf": 2.0},
    }
    base.update(overrides)
    return AnalysisSettings(**base)


def _analyze(files, client, *, housing_payment=1800.0, observer=None, **settings):
    return asyncio.run(
        analyze_statements(
            files,
            housing_payment,
            client=client,
            settings=_settings(**settings),
            observer=observer,
        )
    )


def test_overlapping_statements_end_to_end():
    client = FakeDocumentClient()
    obs = RecordingObserver()

    result = _analyze([_csv("jan_feb.csv", JAN_FEB), _csv("feb_mar.csv", FEB_MAR)], client,
                      observer=obs)

    # All 8 records fit in one chunk
    assert len(client.categorize_calls) == 1
    assert client.categorize_calls[0]["housing_payment"] == 1800.0

    # The February payroll appears on both statements; the first upload wins
    assert len(result.transactions) == 7
    assert len(result.duplicate_transactions) == 1
    dup = result.duplicate_transactions[0]
    assert dup.source_file == "feb_mar.csv"
    assert dup.duplicate_of_key == "2024-02-05|2500.00|payroll acme"
    assert all(not t.is_duplicate for t in result.transactions)

    # The duplicate payroll is counted once
    assert result.total_income == pytest.approx(7_500.0)
    assert result.total_expenses == pytest.approx(5_460.0)
    assert result.net_cash_flow == pytest.approx(2_040.0)

    assert [m.month for m in result.monthly_breakdown] == ["2024-01", "2024-02", "2024-03"]
    feb = result.monthly_breakdown[1]
    assert feb.income == pytest.approx(2_500.0)
    assert feb.net_cash_flow == pytest.approx(640.0)
    assert feb.transaction_count == 3
    assert result.complete_months == ("2024-01", "2024-02", "2024-03")
    assert result.monthly_deposits == pytest.approx(2_500.0)
    assert result.average_monthly_balance == pytest.approx(680.0)
    assert result.deposit_frequency == "monthly"
    assert 0.3 <= result.confidence <= 0.99
    assert result.warnings == ()
    assert obs.names()[0] == "analyze:start"
    assert obs.names()[-1] == "analyze:done"


def test_same_statement_uploaded_twice_matches_single_upload():
    once = _analyze([_csv("a.csv", JAN_FEB)], FakeDocumentClient())
    twice = _analyze(
        [_csv("a.csv", JAN_FEB), _csv("a copy.csv", JAN_FEB)], FakeDocumentClient()
    )

    assert len(twice.duplicate_transactions) == 5
    assert len(twice.transactions) == len(once.transactions)
    assert twice.total_income == pytest.approx(once.total_income)
    assert twice.total_expenses == pytest.approx(once.total_expenses)
    assert twice.net_cash_flow == pytest.approx(once.net_cash_flow)
    assert twice.monthly_deposits == pytest.approx(once.monthly_deposits)
    assert twice.monthly_expenses == pytest.approx(once.monthly_expenses)
    assert twice.complete_months == once.complete_months
    for got, want in zip(twice.monthly_breakdown, once.monthly_breakdown, strict=True):
        assert got.month == want.month
        assert got.income == pytest.approx(want.income)
        assert got.expenses == pytest.approx(want.expenses)
        assert got.net_cash_flow == pytest.approx(want.net_cash_flow)
        assert got.transaction_count == want.transaction_count



def test_result_serializes_to_camel_case_json():
    result = _analyze([_csv("a.csv", JAN_FEB)], FakeDocumentClient())
    doc = json.loads(json.dumps(result.to_dict()))

    for key in (
        "totalIncome",
        "totalExpenses",
        "netCashFlow",
        "monthlyDeposits",
        "monthlyExpenses",
        "monthlyLeftover",
        "averageMonthlyBalance",
        "depositFrequency",
        "monthlyBreakdown",
        "transactions",
        "flaggedTransactions",
        "duplicateTransactions",
        "confidence",
        "failedFiles",
        "failedChunks",
    ):
        assert key in doc
    assert doc["transactions"][0]["sourceFile"] == "a.csv"
    assert doc["monthlyBreakdown"][0]["transactionCount"] == 2


def test_large_inputs_are_chunked():
    rows = "".join(f"2024-01-{d:02d},Coffee {d},-4.00\n" for d in range(1, 6))
    client = FakeDocumentClient()

    result = _analyze(
        [_csv("a.csv", "Date,Description,Amount\n" + rows)],
        client,
        chunk_threshold=2,
        max_per_chunk=2,
    )

    sizes = [len(json.loads(c["payload"])) for c in client.categorize_calls]
    assert sorted(sizes) == [1, 2, 2]
    assert len(result.transactions) == 5
    assert result.total_expenses == pytest.approx(20.0)


def test_unparsed_extraction_text_is_categorized_raw():
    raw = "Statement for January: salary 2500 on the 5th"
    seen: list[str] = []

    def categorize(payload: str) -> str:
        seen.append(payload)
        return categorize_payload(
            json.dumps([{"date": "2024-01-05", "description": "Salary", "amount": 2500.0}])
        )

    client = FakeDocumentClient(extract=lambda *a: raw, categorize=categorize)
    result = _analyze([StatementFile("photo.jpg", b"jpeg", ".jpg")], client)

    assert seen == [raw]
    assert result.total_income == pytest.approx(2500.0)


def test_failed_files_become_warnings():
    result = _analyze(
        [_csv("good.csv", JAN_FEB), StatementFile("legacy.xls", b"", ".xls")],
        FakeDocumentClient(),
    )

    assert [f.filename for f in result.failed_files] == ["legacy.xls"]
    assert any("legacy.xls" in w for w in result.warnings)


def test_partial_policy_surfaces_failed_chunks():
    def categorize(payload: str) -> str:
        if "Coffee 1" in payload:
            raise ConnectionError("reset by peer")
        return categorize_payload(payload)

    rows = "".join(f"2024-01-{d:02d},Coffee {d},-4.00\n" for d in range(1, 5))
    result = _analyze(
        [_csv("a.csv", "Date,Description,Amount\n" + rows)],
        FakeDocumentClient(categorize=categorize),
        chunk_threshold=2,
        max_per_chunk=2,
        chunk_failure_policy=ChunkFailurePolicy.PARTIAL,
    )

    assert [f.chunk_index for f in result.failed_chunks] == [0]
    assert len(result.transactions) == 2
    assert any("chunk" in w for w in result.warnings)


def test_fail_fast_policy_raises():
    def categorize(payload: str) -> str:
        return "I cannot help with that."

    with pytest.raises(ChunkBatchError):
        _analyze([_csv("a.csv", JAN_FEB)], FakeDocumentClient(categorize=categorize))


def test_flagged_transactions_are_listed():
    def categorize(payload: str) -> str:
        body = json.loads(categorize_payload(payload))
        for tx in body["transactions"]:
            if tx["description"] == "Flowers":
                tx["flagged"] = True
                tx["flagReason"] = "one-time purchase"
        return json.dumps(body)

    result = _analyze([_csv("a.csv", JAN_FEB)], FakeDocumentClient(categorize=categorize))

    assert [t.description for t in result.flagged_transactions] == ["Flowers"]
    assert result.flagged_transactions[0].flag_reason == "one-time purchase"


def test_net_cash_flow_mismatch_is_a_warning():
    def categorize(payload: str) -> str:
        body = json.loads(categorize_payload(payload))
        body["netCashFlow"] += 500.0
        return json.dumps(body)

    result = _analyze([_csv("a.csv", JAN_FEB)], FakeDocumentClient(categorize=categorize))
    assert any("net cash flow" in w.lower() for w in result.warnings)


@pytest.mark.parametrize(
    ("files", "housing"),
    [([], 1800.0), ([StatementFile("a.csv", b"x", ".csv")], -1.0)],
)
def test_invalid_arguments(files, housing):
    with pytest.raises(ValueError):
        _analyze(files, FakeDocumentClient(), housing_payment=housing)


def test_sync_wrapper_and_default_client(monkeypatch: pytest.MonkeyPatch):
    fake = FakeDocumentClient()
    models: list[str] = []

    def _client_factory(*, model: str) -> FakeDocumentClient:
        models.append(model)
        return fake

    monkeypatch.setattr(api_mod, "OpenAIDocumentClient", _client_factory)
    monkeypatch.setenv("CASHFLOW_OPENAI_MODEL", "gpt-4o")

    result = analyze_statements_sync([_csv("a.csv", JAN_FEB)], 1800.0)

    assert models == ["gpt-4o"]
    assert len(fake.categorize_calls) == 1
    assert len(result.transactions) == 5
