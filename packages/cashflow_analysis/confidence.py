"""Composite confidence score for an analysis.

Five factors, each normalized to [0, 1], are weighted and summed; the result
is clamped to ``[CONFIDENCE_FLOOR, CONFIDENCE_CEILING]``:

=============================  ======  ==============================================
Factor                         Weight  Definition
=============================  ======  ==============================================
AI-reported confidence         0.40    merged (mean) chunk confidence
Transaction-count adequacy     0.20    ``min(unique / 100, 1)``
Flag-ratio penalty             0.20    ``1 - min(flagged / unique * 0.5, 0.3)``
Month-count adequacy           0.10    ``min(months / 3, 1)``
Income consistency             0.10    ``1`` if income count >= months, else ``0.7``
=============================  ======  ==============================================
"""

from __future__ import annotations

from dataclasses import dataclass

from .config import (
    ADEQUATE_MONTH_COUNT,
    ADEQUATE_TRANSACTION_COUNT,
    CONFIDENCE_CEILING,
    CONFIDENCE_FLOOR,
    FLAG_PENALTY_CAP,
    FLAG_RATIO_SCALE,
    INCONSISTENT_INCOME_FACTOR,
    WEIGHT_AI_CONFIDENCE,
    WEIGHT_FLAG_RATIO,
    WEIGHT_INCOME_CONSISTENCY,
    WEIGHT_MONTH_COUNT,
    WEIGHT_TRANSACTION_COUNT,
)


@dataclass(frozen=True, slots=True)
class ConfidenceInputs:
    ai_confidence: float
    unique_count: int
    flagged_count: int
    month_count: int
    income_count: int


def clamp_confidence(value: float) -> float:
    return min(CONFIDENCE_CEILING, max(CONFIDENCE_FLOOR, value))


def _unit(value: float) -> float:
    return min(1.0, max(0.0, value))


def score_confidence(inputs: ConfidenceInputs) -> float:
    ai = _unit(inputs.ai_confidence)
    count_factor = _unit(inputs.unique_count / ADEQUATE_TRANSACTION_COUNT)
    if inputs.unique_count > 0:
        flag_ratio = inputs.flagged_count / inputs.unique_count
    else:
        flag_ratio = 0.0
    flag_factor = 1.0 - min(flag_ratio * FLAG_RATIO_SCALE, FLAG_PENALTY_CAP)
    month_factor = _unit(inputs.month_count / ADEQUATE_MONTH_COUNT)
    income_factor = (
        1.0 if inputs.income_count >= inputs.month_count else INCONSISTENT_INCOME_FACTOR
    )

    score = (
        WEIGHT_AI_CONFIDENCE * ai
        + WEIGHT_TRANSACTION_COUNT * count_factor
        + WEIGHT_FLAG_RATIO * _unit(flag_factor)
        + WEIGHT_MONTH_COUNT * month_factor
        + WEIGHT_INCOME_CONSISTENCY * income_factor
    )
    return clamp_confidence(score)


__all__ = ["ConfidenceInputs", "clamp_confidence", "score_confidence"]
