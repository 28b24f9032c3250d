"""Decoding and validation of document-AI collaborator output.

- ``extract_response_text``: locate the text output of a Responses API result.
- ``decode_json_document``: three-step recovery of a JSON object from model
  text (direct parse, fenced code block, first ``{...}`` region).
- ``parse_chunk_result``: validate a decoded mapping against the chunk-result
  schema with Pydantic and convert it to :class:`~cashflow_analysis.models.ChunkResult`.
  Missing or mistyped fields raise :class:`~cashflow_analysis.errors.SchemaError`.
- ``parse_delimited_lines``: parse extraction text of the form
  ``YYYY-MM-DD | description | +-amount``.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import SchemaError
from .models import Category, ChunkResult, MonthlyBreakdownEntry, Transaction

_FENCED_BLOCK_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_OBJECT_REGION_RE = re.compile(r"\{.*\}", re.DOTALL)
_MONTH_RE = re.compile(r"^\d{4}-\d{2}$")
_LINE_RE = re.compile(
    r"^\s*(?:[-*]\s+)?(?P<date>\d{4}-\d{2}-\d{2})\s*\|\s*(?P<desc>.+?)\s*\|"
    r"\s*(?P<sign>[+-])?\s*\$?\s*(?P<num>\d[\d,]*(?:\.\d+)?)\s*$"
)


# ---------------------------------------------------------------------------
# Raw text location and JSON recovery
# ---------------------------------------------------------------------------


def extract_response_text(resp: Any) -> str:
    """Return the text output of a Responses API result.

    Prefer ``resp.output_text``; fall back to ``resp.output[0].content[0].text``.
    Raises ``ValueError`` when no text can be located.
    """

    text: str | None = getattr(resp, "output_text", None)
    if not text:
        try:
            first = resp.output[0] if getattr(resp, "output", None) else None
            content = getattr(first, "content", None)
            if content:
                txt_obj = getattr(content[0], "text", None)
                if isinstance(txt_obj, str):
                    text = txt_obj
                else:
                    # Some SDKs expose text as an object with a ``value`` string.
                    maybe_val = getattr(txt_obj, "value", None)
                    if isinstance(maybe_val, str):
                        text = maybe_val
        except (AttributeError, IndexError, TypeError):
            text = None
    if not text or not isinstance(text, str):
        raise ValueError("Unexpected Responses API shape; unable to locate text output")
    return text


_NOT_JSON = object()


def _try_loads(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return _NOT_JSON


def decode_json_document(text: str) -> Mapping[str, Any]:
    """Decode a JSON object from model output that may carry formatting artifacts.

    Attempts, in order: the text as-is, the body of the first fenced code
    block, and the outermost ``{...}`` region. Raises ``ValueError`` when all
    three fail, and :class:`SchemaError` when the decoded value is not an
    object.
    """

    decoded = _try_loads(text.strip())
    if decoded is _NOT_JSON:
        fenced = _FENCED_BLOCK_RE.search(text)
        if fenced:
            decoded = _try_loads(fenced.group(1).strip())
    if decoded is _NOT_JSON:
        region = _OBJECT_REGION_RE.search(text)
        if region:
            decoded = _try_loads(region.group(0))
    if decoded is _NOT_JSON:
        preview = text[:120].replace("\n", " ")
        raise ValueError(f"Model output was not valid JSON after recovery attempts: {preview!r}")
    if not isinstance(decoded, Mapping):
        raise SchemaError("Invalid chunk result: expected a JSON object at top level")
    return decoded


# ---------------------------------------------------------------------------
# Chunk-result schema
# ---------------------------------------------------------------------------


class _WireTransaction(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, populate_by_name=True)

    date: str
    description: str
    amount: float
    category: Category
    flagged: bool = False
    flag_reason: str | None = Field(default=None, alias="flagReason")
    source_file: str | None = Field(default=None, alias="sourceFile")

    @field_validator("category", mode="before")
    @classmethod
    def _lower_category(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("date", "description")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("must be a non-empty string")
        return v

    @field_validator("flag_reason", "source_file")
    @classmethod
    def _blank_to_none(cls, v: str | None) -> str | None:
        return v or None


class _WireMonth(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, populate_by_name=True)

    month: str
    income: float
    expenses: float
    net_cash_flow: float = Field(alias="netCashFlow")
    transaction_count: int = Field(alias="transactionCount", ge=0)

    @field_validator("month")
    @classmethod
    def _month_key(cls, v: str) -> str:
        if not _MONTH_RE.match(v):
            raise ValueError("month must be formatted YYYY-MM")
        return v


class _WireChunkResult(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    transactions: list[_WireTransaction]
    monthly_breakdown: list[_WireMonth] = Field(alias="monthlyBreakdown")
    total_income: float = Field(alias="totalIncome")
    total_expenses: float = Field(alias="totalExpenses")
    net_cash_flow: float = Field(alias="netCashFlow")
    confidence: float = Field(ge=0.0, le=1.0)


def _schema_error(err: ValidationError) -> SchemaError:
    first = err.errors()[0]
    loc = ".".join(str(part) for part in first.get("loc", ())) or "<root>"
    return SchemaError(f"Invalid chunk result: {loc}: {first.get('msg')}", field=loc)


def parse_chunk_result(body: Mapping[str, Any]) -> ChunkResult:
    """Validate ``body`` against the chunk-result schema."""

    if not isinstance(body, Mapping):
        raise SchemaError("Invalid chunk result: expected a JSON object at top level")
    try:
        parsed = _WireChunkResult.model_validate(body)
    except ValidationError as e:
        raise _schema_error(e) from e

    return ChunkResult(
        transactions=tuple(
            Transaction(
                date=t.date,
                description=t.description,
                amount=t.amount,
                category=t.category,
                flagged=t.flagged,
                flag_reason=t.flag_reason,
                source_file=t.source_file,
            )
            for t in parsed.transactions
        ),
        monthly_breakdown=tuple(
            MonthlyBreakdownEntry(
                month=m.month,
                income=m.income,
                expenses=m.expenses,
                net_cash_flow=m.net_cash_flow,
                transaction_count=m.transaction_count,
            )
            for m in parsed.monthly_breakdown
        ),
        total_income=parsed.total_income,
        total_expenses=parsed.total_expenses,
        net_cash_flow=parsed.net_cash_flow,
        confidence=parsed.confidence,
    )


def parse_chunk_text(text: str) -> ChunkResult:
    return parse_chunk_result(decode_json_document(text))


# ---------------------------------------------------------------------------
# Extraction text
# ---------------------------------------------------------------------------


def parse_delimited_lines(text: str) -> list[dict[str, Any]]:
    """Parse ``YYYY-MM-DD | description | +-amount`` lines into records.

    Amounts may carry a currency symbol and thousands separators. Lines that
    do not match the format (headers, notes, blank lines) are skipped.
    """

    out: list[dict[str, Any]] = []
    for line in text.splitlines():
        m = _LINE_RE.match(line)
        if not m:
            continue
        amount = float(m.group("num").replace(",", ""))
        if m.group("sign") == "-":
            amount = -amount
        out.append({"date": m.group("date"), "description": m.group("desc"), "amount": amount})
    return out


__all__ = [
    "decode_json_document",
    "extract_response_text",
    "parse_chunk_result",
    "parse_chunk_text",
    "parse_delimited_lines",
]
