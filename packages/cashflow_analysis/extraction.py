"""Extraction adapter: statement files -> pre-extracted records or raw text.

Routing by extension:

- ``.csv`` / ``.xlsx``: parsed locally into rows (first sheet, header row
  first). Column names are kept as-is for the categorization call.
- ``.pdf``: text layer read with ``pdfplumber`` (disclosure and near-blank
  pages skipped), then sent to the collaborator for line extraction.
- images: sent to the collaborator as-is for line extraction.

Collaborator text is parsed as ``YYYY-MM-DD | description | +-amount`` lines.
When no line parses, the raw text is kept for token-estimate chunking.
Every record is tagged with ``sourceFile``.

``extract_statements`` processes all files concurrently. Each file is retried
sequentially (attempt -> fixed delay -> attempt) and every attempt is raced
against a per-file-type deadline. Failures are tolerated per file; only when
every file fails is :class:`~cashflow_analysis.errors.AllFilesFailedError`
raised.
"""

from __future__ import annotations

import asyncio
import csv
import io
import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

import openpyxl
import pdfplumber

from .ai_client import DocumentAIClient
from .config import AnalysisSettings
from .errors import AllFilesFailedError, ExtractionError, UnsupportedFileTypeError
from .models import ExtractedStatement, FileFailure, StatementFile
from .parsing import parse_delimited_lines
from .pmap import Fulfilled, Rejected, call_with_timeout, p_map_settled
from .telemetry import NullObserver, PipelineObserver

SPREADSHEET_EXTENSIONS: frozenset[str] = frozenset({".csv", ".xlsx"})
PDF_EXTENSIONS: frozenset[str] = frozenset({".pdf"})
IMAGE_MIME_TYPES: Mapping[str, str] = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}

# Pages carrying any of these markers hold no transactions.
SKIP_PAGE_KEYWORDS: tuple[str, ...] = (
    "IN CASE OF ERRORS",
    "INTENTIONALLY LEFT BLANK",
    "MEMBER FDIC",
    "DISCLOSURE",
    "PRIVACY NOTICE",
    "TERMS AND CONDITIONS",
    "IMPORTANT INFORMATION",
)
MIN_PAGE_CHARS: int = 100


def file_kind(file: StatementFile) -> str:
    """Return ``"spreadsheet"``, ``"pdf"`` or ``"image"`` for ``file``."""

    ext = file.normalized_extension
    if ext in SPREADSHEET_EXTENSIONS:
        return "spreadsheet"
    if ext in PDF_EXTENSIONS:
        return "pdf"
    if ext in IMAGE_MIME_TYPES:
        return "image"
    raise UnsupportedFileTypeError(file.filename, ext)


# ---- Local readers (blocking; run in a worker thread) --------------------------


def _cell(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


def read_csv_rows(data: bytes) -> list[dict[str, Any]]:
    text = data.decode("utf-8-sig", errors="replace")
    reader = csv.DictReader(io.StringIO(text, newline=""))
    if not reader.fieldnames:
        raise csv.Error("CSV appears to have no header row")
    rows: list[dict[str, Any]] = []
    for row in reader:
        cleaned = {
            k.strip(): (v.strip() if isinstance(v, str) else v)
            for k, v in row.items()
            if k is not None and k.strip()
        }
        if any(v not in (None, "") for v in cleaned.values()):
            rows.append(cleaned)
    return rows


def read_xlsx_rows(data: bytes) -> list[dict[str, Any]]:
    wb = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    try:
        ws = wb.worksheets[0]
        header: list[str | None] | None = None
        rows: list[dict[str, Any]] = []
        for values in ws.iter_rows(values_only=True):
            if all(v is None or (isinstance(v, str) and not v.strip()) for v in values):
                continue
            if header is None:
                header = [str(v).strip() if v is not None else None for v in values]
                continue
            rows.append(
                {name: _cell(v) for name, v in zip(header, values, strict=False) if name}
            )
        return rows
    finally:
        wb.close()


def _is_transaction_page(text: str) -> bool:
    upper = text.upper()
    if any(keyword in upper for keyword in SKIP_PAGE_KEYWORDS):
        return False
    return len(text.strip()) >= MIN_PAGE_CHARS


def read_pdf_text(data: bytes) -> str:
    pages: list[str] = []
    with pdfplumber.open(io.BytesIO(data)) as pdf:
        for page in pdf.pages:
            text = page.extract_text() or ""
            if _is_transaction_page(text):
                pages.append(text)
    return "\n\n".join(pages)


# ---- Single-file extraction -------------------------------------------------------


def _tag(rows: Sequence[Mapping[str, Any]], filename: str) -> tuple[dict[str, Any], ...]:
    return tuple({**row, "sourceFile": filename} for row in rows)


async def extract_statement(file: StatementFile, client: DocumentAIClient) -> ExtractedStatement:
    """Extract one file (single attempt, no deadline)."""

    kind = file_kind(file)
    ext = file.normalized_extension

    if kind == "spreadsheet":
        reader = read_csv_rows if ext == ".csv" else read_xlsx_rows
        try:
            rows = await asyncio.to_thread(reader, file.data)
        except (csv.Error, UnicodeError, ValueError, KeyError, OSError) as e:
            raise ExtractionError(f"{file.filename}: unreadable spreadsheet: {e}") from e
        if not rows:
            raise ExtractionError(f"{file.filename}: spreadsheet contains no data rows")
        return ExtractedStatement(filename=file.filename, rows=_tag(rows, file.filename))

    if kind == "pdf":
        try:
            text = await asyncio.to_thread(read_pdf_text, file.data)
        except Exception as e:  # noqa: BLE001 - pdfminer raises assorted types
            raise ExtractionError(f"{file.filename}: unreadable PDF: {e}") from e
        if not text.strip():
            raise ExtractionError(f"{file.filename}: PDF has no readable transaction pages")
        raw = await client.extract_transactions(
            filename=file.filename, mime_type="application/pdf", text=text
        )
    else:
        raw = await client.extract_transactions(
            filename=file.filename, mime_type=IMAGE_MIME_TYPES[ext], data=file.data
        )

    lines = parse_delimited_lines(raw)
    if lines:
        return ExtractedStatement(filename=file.filename, rows=_tag(lines, file.filename))
    if raw.strip():
        return ExtractedStatement(filename=file.filename, text=raw)
    raise ExtractionError(f"{file.filename}: no transactions could be extracted")


async def extract_with_retry(
    file: StatementFile,
    client: DocumentAIClient,
    *,
    settings: AnalysisSettings,
    observer: PipelineObserver,
) -> ExtractedStatement:
    """Extract ``file`` with sequential retries and a per-attempt deadline.

    Unsupported file types fail immediately without retrying.
    """

    kind = file_kind(file)
    timeout = settings.extraction_timeouts_sec.get(kind)
    attempt = 1
    while True:
        t0 = time.perf_counter()
        try:
            result = await call_with_timeout(
                extract_statement(file, client),
                timeout=timeout,
                what=f"extraction of {file.filename}",
            )
        except Exception as e:
            dt_ms = (time.perf_counter() - t0) * 1000.0
            if attempt >= settings.extraction_attempts:
                observer.emit(
                    "extract:failed",
                    level=logging.ERROR,
                    file=file.filename,
                    attempts=attempt,
                    latency_ms=dt_ms,
                    error=e.__class__.__name__,
                )
                raise
            observer.emit(
                "extract:retry",
                level=logging.WARNING,
                file=file.filename,
                attempt=attempt,
                latency_ms=dt_ms,
                error=e.__class__.__name__,
            )
            await asyncio.sleep(settings.extraction_retry_delay_sec)
            attempt += 1
            continue

        observer.emit(
            "extract:done",
            file=file.filename,
            kind=kind,
            attempt=attempt,
            records=len(result.rows or ()),
            raw_text=result.text is not None,
            latency_ms=(time.perf_counter() - t0) * 1000.0,
        )
        return result


@dataclass(frozen=True, slots=True)
class ExtractionOutcome:
    statements: tuple[ExtractedStatement, ...]
    failures: tuple[FileFailure, ...]


async def extract_statements(
    files: Sequence[StatementFile],
    client: DocumentAIClient,
    *,
    settings: AnalysisSettings,
    observer: PipelineObserver | None = None,
) -> ExtractionOutcome:
    """Extract all ``files`` concurrently, tolerating individual failures.

    Successful statements keep upload order. Raises
    :class:`AllFilesFailedError` naming every file when none succeeded.
    """

    obs = observer or NullObserver()
    if not files:
        return ExtractionOutcome(statements=(), failures=())

    async def _one(file: StatementFile) -> ExtractedStatement:
        return await extract_with_retry(file, client, settings=settings, observer=obs)

    settled = await p_map_settled(files, _one, concurrency=len(files))

    statements: list[ExtractedStatement] = []
    failures: list[FileFailure] = []
    for file, outcome in zip(files, settled, strict=True):
        if isinstance(outcome, Fulfilled):
            statements.append(outcome.value)
        elif isinstance(outcome, Rejected):
            failures.append(FileFailure(filename=file.filename, error=str(outcome.error)))

    if not statements:
        raise AllFilesFailedError(failures)
    if failures:
        obs.emit(
            "extract:partial",
            level=logging.WARNING,
            succeeded=len(statements),
            failed=len(failures),
            files=",".join(f.filename for f in failures),
        )
    return ExtractionOutcome(statements=tuple(statements), failures=tuple(failures))


__all__ = [
    "ExtractionOutcome",
    "extract_statement",
    "extract_statements",
    "extract_with_retry",
    "file_kind",
    "read_csv_rows",
    "read_pdf_text",
    "read_xlsx_rows",
]
