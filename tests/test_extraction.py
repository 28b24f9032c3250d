import asyncio
import io
from datetime import datetime

import openpyxl
import pytest
from helpers.openai_stub import FakeDocumentClient

import cashflow_analysis.extraction as extraction_mod
from cashflow_analysis.config import AnalysisSettings
from cashflow_analysis.errors import (
    AllFilesFailedError,
    CallTimeoutError,
    ExtractionError,
    UnsupportedFileTypeError,
)
from cashflow_analysis.extraction import (
    extract_statement,
    extract_statements,
    extract_with_retry,
    file_kind,
    read_csv_rows,
    read_xlsx_rows,
)
from cashflow_analysis.models import StatementFile
from cashflow_analysis.telemetry import RecordingObserver

LINES = "2024-01-05 | Payroll ACME | +2,500.00\n2024-01-10 | Rent | -1,800.00\n"


def _settings(**overrides) -> AnalysisSettings:
    base = {
        "extraction_retry_delay_sec": 0.0,
        "extraction_timeouts_sec": {"spreadsheet": 1.0, "image": 1.0, "pdf": 1.0},
    }
    base.update(overrides)
    return AnalysisSettings(**base)


def _csv_file(name: str = "jan.csv") -> StatementFile:
    data = b"Date,Description,Amount\n2024-01-05,Payroll,2500.00\n,,\n2024-01-10,Rent,-1800.00\n"
    return StatementFile(filename=name, data=data, extension=".csv")


def _xlsx_bytes() -> bytes:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.append([])
    ws.append(["Date", "Description", "Amount"])
    ws.append([datetime(2024, 1, 5), "Payroll", 2500.0])
    ws.append([datetime(2024, 1, 10), "Rent", -1800.0])
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


# ---- Routing -----------------------------------------------------------------


@pytest.mark.parametrize(
    ("ext", "kind"),
    [(".csv", "spreadsheet"), ("XLSX", "spreadsheet"), (".pdf", "pdf"), (".PNG", "image"),
     ("jpeg", "image"), (".webp", "image")],
)
def test_file_kind(ext, kind):
    assert file_kind(StatementFile(filename="f", data=b"", extension=ext)) == kind


@pytest.mark.parametrize("ext", [".xls", ".docx", ""])
def test_unsupported_extensions(ext):
    with pytest.raises(UnsupportedFileTypeError):
        file_kind(StatementFile(filename="f", data=b"", extension=ext))


# ---- Local readers -----------------------------------------------------------


def test_read_csv_rows_skips_blank_rows():
    rows = read_csv_rows(_csv_file().data)
    assert rows == [
        {"Date": "2024-01-05", "Description": "Payroll", "Amount": "2500.00"},
        {"Date": "2024-01-10", "Description": "Rent", "Amount": "-1800.00"},
    ]


def test_read_xlsx_rows_uses_first_non_empty_row_as_header():
    rows = read_xlsx_rows(_xlsx_bytes())
    assert rows == [
        {"Date": "2024-01-05", "Description": "Payroll", "Amount": 2500.0},
        {"Date": "2024-01-10", "Description": "Rent", "Amount": -1800.0},
    ]


def test_disclosure_pages_are_not_transaction_pages():
    body = "2024-01-05 Payroll 2,500.00\n" * 10
    assert extraction_mod._is_transaction_page(body)
    assert not extraction_mod._is_transaction_page(body + "Member FDIC")
    assert not extraction_mod._is_transaction_page("short page")


# ---- Single-file extraction ----------------------------------------------------


def test_spreadsheet_rows_are_tagged_with_source_file():
    client = FakeDocumentClient()
    statement = asyncio.run(extract_statement(_csv_file("jan.csv"), client))

    assert statement.text is None
    assert [r["sourceFile"] for r in statement.rows] == ["jan.csv", "jan.csv"]
    # Spreadsheets never reach the collaborator
    assert client.extract_calls == []


def test_header_only_spreadsheet_fails():
    file = StatementFile(filename="empty.csv", data=b"Date,Description,Amount\n", extension=".csv")
    with pytest.raises(ExtractionError, match="no data rows"):
        asyncio.run(extract_statement(file, FakeDocumentClient()))


def test_image_is_sent_to_collaborator_and_lines_parsed():
    client = FakeDocumentClient(extract=lambda filename, mime_type, data, text: LINES)
    file = StatementFile(filename="scan.png", data=b"\x89PNG", extension=".png")

    statement = asyncio.run(extract_statement(file, client))

    assert client.extract_calls == [
        {"filename": "scan.png", "mime_type": "image/png", "data": b"\x89PNG", "text": None}
    ]
    assert statement.rows == (
        {"date": "2024-01-05", "description": "Payroll ACME", "amount": 2500.0,
         "sourceFile": "scan.png"},
        {"date": "2024-01-10", "description": "Rent", "amount": -1800.0, "sourceFile": "scan.png"},
    )


def test_pdf_text_layer_is_sent_to_collaborator(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(extraction_mod, "read_pdf_text", lambda data: "PAGE TEXT")
    client = FakeDocumentClient(extract=lambda filename, mime_type, data, text: LINES)

    statement = asyncio.run(
        extract_statement(StatementFile("stmt.pdf", b"%PDF", ".pdf"), client)
    )

    assert client.extract_calls[0]["text"] == "PAGE TEXT"
    assert client.extract_calls[0]["mime_type"] == "application/pdf"
    assert len(statement.rows) == 2


def test_pdf_without_transaction_pages_fails(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(extraction_mod, "read_pdf_text", lambda data: "")
    with pytest.raises(ExtractionError, match="no readable transaction pages"):
        asyncio.run(extract_statement(StatementFile("s.pdf", b"%PDF", ".pdf"), FakeDocumentClient()))


def test_unparseable_text_is_kept_raw():
    raw = "Deposits: payroll twenty-five hundred on the fifth"
    client = FakeDocumentClient(extract=lambda *a: raw)

    statement = asyncio.run(extract_statement(StatementFile("a.jpg", b"x", ".jpg"), client))

    assert statement.rows is None
    assert statement.text == raw


def test_empty_collaborator_output_fails():
    client = FakeDocumentClient(extract=lambda *a: "   ")
    with pytest.raises(ExtractionError, match="no transactions"):
        asyncio.run(extract_statement(StatementFile("a.jpg", b"x", ".jpg"), client))


# ---- Retries and deadlines -----------------------------------------------------


def test_transient_failure_is_retried():
    attempts = {"n": 0}

    def flaky(*_a):
        attempts["n"] += 1
        if attempts["n"] == 1:
            raise RuntimeError("upstream 503")
        return LINES

    obs = RecordingObserver()
    statement = asyncio.run(
        extract_with_retry(
            StatementFile("a.png", b"x", ".png"),
            FakeDocumentClient(extract=flaky),
            settings=_settings(),
            observer=obs,
        )
    )

    assert attempts["n"] == 2
    assert len(statement.rows) == 2
    assert obs.names() == ["extract:retry", "extract:done"]


def test_retries_are_bounded():
    def down(*_a):
        raise RuntimeError("down")

    client = FakeDocumentClient(extract=down)
    obs = RecordingObserver()

    with pytest.raises(RuntimeError, match="down"):
        asyncio.run(
            extract_with_retry(
                StatementFile("a.png", b"x", ".png"),
                client,
                settings=_settings(extraction_attempts=3),
                observer=obs,
            )
        )
    assert len(client.extract_calls) == 3
    assert obs.names() == ["extract:retry", "extract:retry", "extract:failed"]


def test_slow_extraction_times_out():
    async def slow(*_a):
        await asyncio.sleep(5)
        return LINES

    settings = _settings(
        extraction_attempts=1,
        extraction_timeouts_sec={"spreadsheet": 1.0, "image": 0.05, "pdf": 1.0},
    )
    with pytest.raises(CallTimeoutError, match="extraction of a.png timed out after 0.05 seconds"):
        asyncio.run(
            extract_with_retry(
                StatementFile("a.png", b"x", ".png"),
                FakeDocumentClient(extract=slow),
                settings=settings,
                observer=RecordingObserver(),
            )
        )


def test_unsupported_type_is_not_retried():
    obs = RecordingObserver()
    with pytest.raises(UnsupportedFileTypeError):
        asyncio.run(
            extract_with_retry(
                StatementFile("old.xls", b"x", ".xls"),
                FakeDocumentClient(),
                settings=_settings(),
                observer=obs,
            )
        )
    assert obs.events == []


# ---- Batch extraction ----------------------------------------------------------


def test_partial_success_keeps_upload_order_and_reports_failures():
    async def extract(filename, mime_type, data, text):
        if filename == "first.png":
            await asyncio.sleep(0.05)
        return LINES

    files = [
        StatementFile("first.png", b"x", ".png"),
        StatementFile("old.xls", b"x", ".xls"),
        _csv_file("third.csv"),
    ]
    obs = RecordingObserver()

    outcome = asyncio.run(
        extract_statements(files, FakeDocumentClient(extract=extract), settings=_settings(),
                           observer=obs)
    )

    assert [s.filename for s in outcome.statements] == ["first.png", "third.csv"]
    assert [f.filename for f in outcome.failures] == ["old.xls"]
    assert "extract:partial" in obs.names()


def test_all_files_failing_raises_with_every_filename():
    files = [StatementFile("a.xls", b"", ".xls"), StatementFile("b.csv", b"", ".csv")]

    with pytest.raises(AllFilesFailedError) as ei:
        asyncio.run(extract_statements(files, FakeDocumentClient(), settings=_settings()))

    assert [f.filename for f in ei.value.failures] == ["a.xls", "b.csv"]
    assert "All 2 statement file(s) failed to process" in str(ei.value)
    assert "a.xls" in str(ei.value) and "b.csv" in str(ei.value)


def test_no_files_yields_empty_outcome():
    outcome = asyncio.run(extract_statements([], FakeDocumentClient(), settings=_settings()))
    assert outcome.statements == () and outcome.failures == ()
