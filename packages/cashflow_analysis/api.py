"""Public entry points for statement analysis.

:func:`analyze_statements` runs the whole pipeline:

files -> extraction (concurrent, retried per file) -> chunk planning ->
parallel categorization -> merge -> dedup -> monthly averages + confidence
-> :class:`~cashflow_analysis.models.CashFlowAnalysis`.

All stages after categorization are pure and run only once every chunk has
settled. Progress is reported through the injected observer.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable, Sequence
from os import PathLike
from pathlib import Path

from .ai_client import DocumentAIClient, OpenAIDocumentClient
from .averaging import compute_monthly_averages, detect_deposit_frequency
from .chunking import plan_chunks, plan_text_chunks
from .confidence import ConfidenceInputs, score_confidence
from .config import AnalysisSettings, PARTIAL_MONTH_RATIO
from .dedupe import deduplicate, discount_duplicates
from .extraction import extract_statements
from .merge import merge_chunk_results
from .models import (
    AggregateAnalysis,
    CashFlowAnalysis,
    ChunkFailure,
    ExtractedStatement,
    FileFailure,
    StatementFile,
)
from .orchestrator import analyze_chunks
from .prompting import serialize_records
from .telemetry import LoggingObserver, PipelineObserver


def load_statement_files(paths: Iterable[str | PathLike[str]]) -> list[StatementFile]:
    """Read statement files from disk, keeping the given order."""

    out: list[StatementFile] = []
    for p in map(Path, paths):
        out.append(StatementFile(filename=p.name, data=p.read_bytes(), extension=p.suffix))
    return out


def build_chunk_payloads(
    statements: Sequence[ExtractedStatement], *, settings: AnalysisSettings
) -> list[str]:
    """Plan categorization payloads for extracted statements.

    Records from all statements (upload order) are chunked by count and
    serialized as JSON arrays; raw text statements follow, each sliced by the
    token-estimate planner.
    """

    records = [row for s in statements if s.rows is not None for row in s.rows]
    payloads = [
        serialize_records(chunk)
        for chunk in plan_chunks(
            records, threshold=settings.chunk_threshold, max_per_chunk=settings.max_per_chunk
        )
    ]
    for s in statements:
        if s.text is not None:
            payloads.extend(plan_text_chunks(s.text, token_ceiling=settings.token_ceiling))
    return payloads


def build_cash_flow_analysis(
    aggregate: AggregateAnalysis,
    *,
    partial_month_ratio: float = PARTIAL_MONTH_RATIO,
    failed_files: Sequence[FileFailure] = (),
    failed_chunks: Sequence[ChunkFailure] = (),
    total_files: int | None = None,
    total_chunks: int | None = None,
) -> CashFlowAnalysis:
    """Deduplicate, average, and score a merged aggregate."""

    dedup = deduplicate(aggregate.transactions)
    aggregate = discount_duplicates(aggregate, dedup)
    averages = compute_monthly_averages(aggregate, ratio=partial_month_ratio)
    flagged = tuple(t for t in dedup.unique if t.flagged)
    confidence = score_confidence(
        ConfidenceInputs(
            ai_confidence=aggregate.confidence,
            unique_count=len(dedup.unique),
            flagged_count=len(flagged),
            month_count=len(aggregate.monthly_breakdown),
            income_count=sum(1 for t in dedup.unique if t.category == "income"),
        )
    )

    warnings: list[str] = []
    if failed_files:
        of_total = f" of {total_files}" if total_files is not None else ""
        names = ", ".join(f.filename for f in failed_files)
        warnings.append(f"{len(failed_files)}{of_total} file(s) could not be processed: {names}")
    if failed_chunks:
        of_total = f" of {total_chunks}" if total_chunks is not None else ""
        warnings.append(
            f"{len(failed_chunks)}{of_total} chunk(s) failed; results exclude their transactions"
        )
    if aggregate.net_cash_flow_mismatch:
        warnings.append("Reported net cash flow differs from total income minus total expenses")

    return CashFlowAnalysis(
        total_income=aggregate.total_income,
        total_expenses=aggregate.total_expenses,
        net_cash_flow=aggregate.net_cash_flow,
        monthly_deposits=averages.monthly_deposits,
        monthly_expenses=averages.monthly_expenses,
        monthly_leftover=averages.monthly_leftover,
        average_monthly_balance=averages.average_monthly_balance,
        deposit_frequency=detect_deposit_frequency(dedup.unique),
        monthly_breakdown=aggregate.monthly_breakdown,
        complete_months=averages.complete_months,
        excluded_months=averages.excluded_months,
        transactions=dedup.unique,
        flagged_transactions=flagged,
        duplicate_transactions=dedup.duplicates,
        confidence=confidence,
        warnings=tuple(warnings),
        failed_files=tuple(failed_files),
        failed_chunks=tuple(failed_chunks),
    )


async def analyze_statements(
    files: Sequence[StatementFile],
    housing_payment: float,
    *,
    client: DocumentAIClient | None = None,
    settings: AnalysisSettings | None = None,
    observer: PipelineObserver | None = None,
) -> CashFlowAnalysis:
    """Analyze uploaded bank statements into a consolidated cash-flow summary.

    Parameters
    ----------
    files:
        Uploaded statements in upload order. Order decides which copy of a
        duplicated transaction is kept.
    housing_payment:
        Reference housing payment passed to the categorization call as
        context (rent/mortgage within +-max($50, 2%) is categorized housing).
    client:
        Document-AI collaborator; defaults to :class:`OpenAIDocumentClient`.
    settings:
        Pipeline tunables; defaults to :meth:`AnalysisSettings.from_env`.
    observer:
        Progress sink; defaults to :class:`LoggingObserver`.

    Raises
    ------
    ValueError
        No files, or a negative ``housing_payment``.
    AllFilesFailedError
        Every file failed extraction.
    ChunkBatchError
        Categorization failed under the configured chunk failure policy.
    """

    if not files:
        raise ValueError("analyze_statements requires at least one statement file")
    if housing_payment < 0:
        raise ValueError("housing_payment must be non-negative")

    cfg = settings or AnalysisSettings.from_env()
    ai = client or OpenAIDocumentClient(model=cfg.model)
    obs = observer or LoggingObserver()

    t0 = time.perf_counter()
    obs.emit("analyze:start", files=len(files))

    extraction = await extract_statements(files, ai, settings=cfg, observer=obs)
    payloads = build_chunk_payloads(extraction.statements, settings=cfg)
    obs.emit(
        "plan:done",
        statements=len(extraction.statements),
        chunks=len(payloads),
    )

    batch = await analyze_chunks(
        payloads, ai, housing_payment=housing_payment, settings=cfg, observer=obs
    )
    aggregate = merge_chunk_results(batch.results)
    analysis = build_cash_flow_analysis(
        aggregate,
        partial_month_ratio=cfg.partial_month_ratio,
        failed_files=extraction.failures,
        failed_chunks=batch.failures,
        total_files=len(files),
        total_chunks=len(payloads),
    )

    obs.emit(
        "analyze:done",
        transactions=len(analysis.transactions),
        duplicates=len(analysis.duplicate_transactions),
        months=len(analysis.complete_months),
        confidence=analysis.confidence,
        latency_ms=(time.perf_counter() - t0) * 1000.0,
    )
    return analysis


def analyze_statements_sync(
    files: Sequence[StatementFile],
    housing_payment: float,
    *,
    client: DocumentAIClient | None = None,
    settings: AnalysisSettings | None = None,
    observer: PipelineObserver | None = None,
) -> CashFlowAnalysis:
    """Blocking wrapper around :func:`analyze_statements` for non-async callers."""

    return asyncio.run(
        analyze_statements(
            files, housing_payment, client=client, settings=settings, observer=observer
        )
    )


__all__ = [
    "analyze_statements",
    "analyze_statements_sync",
    "build_cash_flow_analysis",
    "build_chunk_payloads",
    "load_statement_files",
]
