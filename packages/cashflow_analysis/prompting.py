"""Prompt construction for the document-AI collaborator.

This module builds:
- The extraction instructions that ask for one ``YYYY-MM-DD | description |
  +-amount`` line per transaction.
- The system and user prompts for chunk categorization, with the chunk JSON
  delimited by ``BEGIN_TRANSACTIONS_JSON``/``END_TRANSACTIONS_JSON`` markers.
- A deterministic JSON serialization of pre-extracted records.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from typing import Any

from .models import CATEGORIES

BEGIN_MARKER = "BEGIN_TRANSACTIONS_JSON"
END_MARKER = "END_TRANSACTIONS_JSON"

# Housing payments match the reference amount within +-max($50, 2%).
HOUSING_TOLERANCE_MIN: float = 50.0
HOUSING_TOLERANCE_PCT: float = 0.02


def housing_tolerance(housing_payment: float) -> float:
    return max(HOUSING_TOLERANCE_MIN, abs(housing_payment) * HOUSING_TOLERANCE_PCT)


def serialize_records(records: Sequence[Mapping[str, Any]]) -> str:
    """Serialize pre-extracted records to a compact JSON array."""

    return json.dumps([dict(r) for r in records], ensure_ascii=False, default=str)


def build_extraction_instructions() -> str:
    return (
        "Extract every transaction from this bank statement. Output one line per "
        "transaction and nothing else, formatted exactly as: "
        "YYYY-MM-DD | description | amount. Use a leading '-' for withdrawals and "
        "debits and '+' for deposits and credits. Do not include balances, headers, "
        "or summary rows."
    )


def build_system_instructions() -> str:
    return (
        "You are a financial analyst categorizing bank statement transactions. "
        "Respond with a single valid JSON object only, following the requested shape."
    )


def build_categorization_prompt(payload: str, *, housing_payment: float) -> str:
    """Build the user content for one chunk categorization call.

    ``payload`` is the chunk: a JSON array of pre-extracted records, or raw
    statement text when extraction did not yield delimited lines.
    """

    tolerance = housing_tolerance(housing_payment)
    categories = " | ".join(CATEGORIES)
    return "\n".join(
        [
            "Categorize each transaction below.",
            f"Reference housing payment: ${housing_payment:,.2f}. Treat rent or mortgage "
            f"payments within +/-${tolerance:,.2f} of it as category \"housing\".",
            f"Allowed categories: {categories}.",
            "- Sign convention: positive amount = inflow, negative = outflow.",
            "- Flag irregular items (one-time, luxury, unusually large) with flagged=true "
            "and a short flagReason.",
            "- Keep each transaction's sourceFile when present.",
            "- Group by calendar month (YYYY-MM) in monthlyBreakdown; one entry per month.",
            "- confidence is your confidence in this analysis, between 0 and 1.",
            "",
            "Respond with JSON of this shape:",
            '{"transactions": [{"date": "YYYY-MM-DD", "description": "...", "amount": 0, '
            '"category": "income", "flagged": false, "flagReason": null, "sourceFile": null}], '
            '"monthlyBreakdown": [{"month": "YYYY-MM", "income": 0, "expenses": 0, '
            '"netCashFlow": 0, "transactionCount": 0}], "totalIncome": 0, '
            '"totalExpenses": 0, "netCashFlow": 0, "confidence": 0.85}',
            "",
            BEGIN_MARKER,
            payload,
            END_MARKER,
        ]
    )


__all__ = [
    "BEGIN_MARKER",
    "END_MARKER",
    "build_categorization_prompt",
    "build_extraction_instructions",
    "build_system_instructions",
    "housing_tolerance",
    "serialize_records",
]
