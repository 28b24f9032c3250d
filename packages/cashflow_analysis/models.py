"""Data models for ``cashflow_analysis``.

Domain objects are frozen, slotted dataclasses with snake_case fields. The
camelCase field names used by the document-AI collaborator and by the JSON
output of the CLI appear only in the ``to_dict`` helpers here and in the
pydantic wire models in :mod:`cashflow_analysis.parsing`.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Literal

type Category = Literal["income", "expense", "housing", "one-time", "recurring"]
"""Closed set of categories assigned by the categorization call."""

CATEGORIES: tuple[str, ...] = ("income", "expense", "housing", "one-time", "recurring")

type DepositFrequency = Literal["weekly", "biweekly", "monthly"]

type RawRecord = Mapping[str, Any]
"""A pre-extracted transaction as handed to the categorization call.

Spreadsheet rows keep their original column names; lines parsed from
extraction text carry ``date``, ``description`` and ``amount``. Every record
is tagged with ``sourceFile``.
"""


@dataclass(frozen=True, slots=True)
class Transaction:
    """A categorized transaction. ``amount`` is signed: positive = inflow."""

    date: str
    description: str
    amount: float
    category: Category
    flagged: bool = False
    flag_reason: str | None = None
    is_duplicate: bool = False
    duplicate_of_key: str | None = None
    source_file: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "description": self.description,
            "amount": self.amount,
            "category": self.category,
            "flagged": self.flagged,
            "flagReason": self.flag_reason,
            "isDuplicate": self.is_duplicate,
            "duplicateOfKey": self.duplicate_of_key,
            "sourceFile": self.source_file,
        }


@dataclass(frozen=True, slots=True)
class MonthlyBreakdownEntry:
    month: str  # YYYY-MM
    income: float
    expenses: float
    net_cash_flow: float
    transaction_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "month": self.month,
            "income": self.income,
            "expenses": self.expenses,
            "netCashFlow": self.net_cash_flow,
            "transactionCount": self.transaction_count,
        }


@dataclass(frozen=True, slots=True)
class ChunkResult:
    """Validated categorization output for one chunk."""

    transactions: tuple[Transaction, ...]
    monthly_breakdown: tuple[MonthlyBreakdownEntry, ...]
    total_income: float
    total_expenses: float
    net_cash_flow: float
    confidence: float


@dataclass(frozen=True, slots=True)
class AggregateAnalysis:
    """Combination of all chunk results of one batch.

    ``net_cash_flow_mismatch`` is a data-quality flag: the summed per-chunk
    net disagrees with ``total_income - total_expenses``.
    """

    transactions: tuple[Transaction, ...]
    monthly_breakdown: tuple[MonthlyBreakdownEntry, ...]
    total_income: float
    total_expenses: float
    net_cash_flow: float
    confidence: float
    net_cash_flow_mismatch: bool = False


@dataclass(frozen=True, slots=True)
class StatementFile:
    """An uploaded statement: original filename, raw bytes, and extension."""

    filename: str
    data: bytes
    extension: str

    @property
    def normalized_extension(self) -> str:
        ext = self.extension.strip().lower()
        return ext if ext.startswith(".") else f".{ext}"


@dataclass(frozen=True, slots=True)
class ExtractedStatement:
    """Extraction output for one file.

    Exactly one of ``rows`` (parsed records) and ``text`` (raw collaborator
    text that did not parse into delimited lines) is populated.
    """

    filename: str
    rows: tuple[RawRecord, ...] | None = None
    text: str | None = None

    def __post_init__(self) -> None:
        if (self.rows is None) == (self.text is None):
            raise ValueError("ExtractedStatement requires exactly one of rows/text")


@dataclass(frozen=True, slots=True)
class FileFailure:
    filename: str
    error: str


@dataclass(frozen=True, slots=True)
class ChunkFailure:
    """Per-chunk failure marker returned under the ``partial`` policy."""

    chunk_index: int
    error: str
    timed_out: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"chunkIndex": self.chunk_index, "error": self.error, "timedOut": self.timed_out}


@dataclass(frozen=True, slots=True)
class CashFlowAnalysis:
    """Pipeline output consumed by the loan-simulation calculator."""

    total_income: float
    total_expenses: float
    net_cash_flow: float
    monthly_deposits: float
    monthly_expenses: float
    monthly_leftover: float
    average_monthly_balance: float
    deposit_frequency: DepositFrequency
    monthly_breakdown: tuple[MonthlyBreakdownEntry, ...]
    complete_months: tuple[str, ...]
    excluded_months: tuple[str, ...]
    transactions: tuple[Transaction, ...]
    flagged_transactions: tuple[Transaction, ...]
    duplicate_transactions: tuple[Transaction, ...]
    confidence: float
    warnings: tuple[str, ...] = ()
    failed_files: tuple[FileFailure, ...] = ()
    failed_chunks: tuple[ChunkFailure, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalIncome": self.total_income,
            "totalExpenses": self.total_expenses,
            "netCashFlow": self.net_cash_flow,
            "monthlyDeposits": self.monthly_deposits,
            "monthlyExpenses": self.monthly_expenses,
            "monthlyLeftover": self.monthly_leftover,
            "averageMonthlyBalance": self.average_monthly_balance,
            "depositFrequency": self.deposit_frequency,
            "monthlyBreakdown": _dicts(self.monthly_breakdown),
            "completeMonths": list(self.complete_months),
            "excludedMonths": list(self.excluded_months),
            "transactions": _dicts(self.transactions),
            "flaggedTransactions": _dicts(self.flagged_transactions),
            "duplicateTransactions": _dicts(self.duplicate_transactions),
            "confidence": self.confidence,
            "warnings": list(self.warnings),
            "failedFiles": [{"filename": f.filename, "error": f.error} for f in self.failed_files],
            "failedChunks": _dicts(self.failed_chunks),
        }


def _dicts(items: Sequence[Any]) -> list[dict[str, Any]]:
    return [item.to_dict() for item in items]
