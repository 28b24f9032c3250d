"""Tunables for the statement-analysis pipeline.

Every threshold the pipeline uses is a named module constant here and is
bundled into :class:`AnalysisSettings`. ``AnalysisSettings.from_env()``
applies ``CASHFLOW_*`` environment overrides; blank values fall back to the
defaults and malformed values raise ``ValueError`` with the variable name.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType


class ChunkFailurePolicy(StrEnum):
    """How the orchestrator aggregates per-chunk outcomes.

    - ``FAIL_FAST``: the first failing chunk aborts the batch; in-flight
      chunks are cancelled and no partial result is returned.
    - ``PARTIAL``: failed chunks are reported as markers next to the merged
      result of the chunks that succeeded. Fails only when none succeeded.
    """

    FAIL_FAST = "fail_fast"
    PARTIAL = "partial"


# ---- Chunk planning ----------------------------------------------------------

# Count-based chunking kicks in only above this many records.
CHUNK_THRESHOLD: int = 300
MAX_PER_CHUNK: int = 150
# Per-chunk ceiling for raw text payloads; tokens are estimated as chars / 4.
TOKEN_CEILING: int = 15_000
CHARS_PER_TOKEN: int = 4

# ---- Timeouts and concurrency ------------------------------------------------

CHUNK_TIMEOUT_SEC: float = 90.0
# Used instead of CHUNK_TIMEOUT_SEC when the whole batch is a single request.
BATCH_TIMEOUT_SEC: float = 150.0
# ``None`` dispatches every chunk of a batch at once; an int caps in-flight calls.
CHUNK_CONCURRENCY: int | None = None

EXTRACTION_ATTEMPTS: int = 2
EXTRACTION_RETRY_DELAY_SEC: float = 2.0
EXTRACTION_TIMEOUTS_SEC: Mapping[str, float] = MappingProxyType(
    {"spreadsheet": 45.0, "image": 60.0, "pdf": 120.0}
)

# ---- Monthly averaging -------------------------------------------------------

# A boundary month is partial when its count is below this share of the mean.
PARTIAL_MONTH_RATIO: float = 0.5

# ---- Confidence --------------------------------------------------------------

WEIGHT_AI_CONFIDENCE: float = 0.40
WEIGHT_TRANSACTION_COUNT: float = 0.20
WEIGHT_FLAG_RATIO: float = 0.20
WEIGHT_MONTH_COUNT: float = 0.10
WEIGHT_INCOME_CONSISTENCY: float = 0.10

# Transaction/month counts at which the adequacy factors saturate at 1.0.
ADEQUATE_TRANSACTION_COUNT: int = 100
ADEQUATE_MONTH_COUNT: int = 3
# Flag penalty: ratio * FLAG_RATIO_SCALE, capped at FLAG_PENALTY_CAP.
FLAG_RATIO_SCALE: float = 0.5
FLAG_PENALTY_CAP: float = 0.3
INCONSISTENT_INCOME_FACTOR: float = 0.7

CONFIDENCE_FLOOR: float = 0.3
CONFIDENCE_CEILING: float = 0.99

# ---- Collaborator ------------------------------------------------------------

DEFAULT_MODEL: str = "gpt-4o-mini"


@dataclass(frozen=True, slots=True)
class AnalysisSettings:
    chunk_threshold: int = CHUNK_THRESHOLD
    max_per_chunk: int = MAX_PER_CHUNK
    token_ceiling: int = TOKEN_CEILING
    chunk_timeout_sec: float = CHUNK_TIMEOUT_SEC
    batch_timeout_sec: float = BATCH_TIMEOUT_SEC
    chunk_concurrency: int | None = CHUNK_CONCURRENCY
    chunk_failure_policy: ChunkFailurePolicy = ChunkFailurePolicy.FAIL_FAST
    extraction_attempts: int = EXTRACTION_ATTEMPTS
    extraction_retry_delay_sec: float = EXTRACTION_RETRY_DELAY_SEC
    extraction_timeouts_sec: Mapping[str, float] = field(
        default_factory=lambda: EXTRACTION_TIMEOUTS_SEC
    )
    partial_month_ratio: float = PARTIAL_MONTH_RATIO
    model: str = DEFAULT_MODEL

    def __post_init__(self) -> None:
        for name in ("chunk_threshold", "max_per_chunk", "token_ceiling", "chunk_concurrency"):
            val = getattr(self, name)
            if val is None and name == "chunk_concurrency":
                continue
            if isinstance(val, bool) or not isinstance(val, int) or val < 1:
                raise ValueError(f"AnalysisSettings.{name} must be a positive integer")
        if self.extraction_attempts < 1:
            raise ValueError("AnalysisSettings.extraction_attempts must be >= 1")
        for name in ("chunk_timeout_sec", "batch_timeout_sec"):
            if getattr(self, name) <= 0:
                raise ValueError(f"AnalysisSettings.{name} must be positive")
        if self.extraction_retry_delay_sec < 0:
            raise ValueError("AnalysisSettings.extraction_retry_delay_sec must be >= 0")
        if not 0.0 < self.partial_month_ratio <= 1.0:
            raise ValueError("AnalysisSettings.partial_month_ratio must be within (0, 1]")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> AnalysisSettings:
        """Build settings from ``CASHFLOW_*`` variables (``os.environ`` by default)."""

        env = os.environ if environ is None else environ
        kwargs: dict[str, object] = {}

        int_vars = {
            "chunk_threshold": "CASHFLOW_CHUNK_THRESHOLD",
            "max_per_chunk": "CASHFLOW_MAX_PER_CHUNK",
            "token_ceiling": "CASHFLOW_TOKEN_CEILING",
            "chunk_concurrency": "CASHFLOW_CHUNK_CONCURRENCY",
            "extraction_attempts": "CASHFLOW_EXTRACTION_ATTEMPTS",
        }
        float_vars = {
            "chunk_timeout_sec": "CASHFLOW_CHUNK_TIMEOUT_SEC",
            "batch_timeout_sec": "CASHFLOW_BATCH_TIMEOUT_SEC",
            "extraction_retry_delay_sec": "CASHFLOW_EXTRACTION_RETRY_DELAY_SEC",
        }
        for attr, var in int_vars.items():
            raw = (env.get(var) or "").strip()
            if raw:
                try:
                    kwargs[attr] = int(raw)
                except ValueError as e:
                    raise ValueError(f"{var} must be an integer, got {raw!r}") from e
        for attr, var in float_vars.items():
            raw = (env.get(var) or "").strip()
            if raw:
                try:
                    kwargs[attr] = float(raw)
                except ValueError as e:
                    raise ValueError(f"{var} must be a number, got {raw!r}") from e

        policy = (env.get("CASHFLOW_CHUNK_FAILURE_POLICY") or "").strip().lower()
        if policy:
            try:
                kwargs["chunk_failure_policy"] = ChunkFailurePolicy(policy)
            except ValueError as e:
                allowed = ", ".join(p.value for p in ChunkFailurePolicy)
                raise ValueError(
                    f"CASHFLOW_CHUNK_FAILURE_POLICY must be one of: {allowed}; got {policy!r}"
                ) from e

        model = (env.get("CASHFLOW_OPENAI_MODEL") or "").strip()
        if model:
            kwargs["model"] = model

        return cls(**kwargs)  # type: ignore[arg-type]
