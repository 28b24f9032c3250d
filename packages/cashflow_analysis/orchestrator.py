"""Parallel chunk categorization.

One categorization request per chunk is dispatched concurrently (all at once
unless ``settings.chunk_concurrency`` caps it). Each request gets a single
attempt raced against a deadline: ``chunk_timeout_sec`` per chunk, or
``batch_timeout_sec`` when the whole batch is one request. Expiry cancels the
in-flight call.

The aggregation policy is explicit (:class:`~cashflow_analysis.config.ChunkFailurePolicy`):

- ``FAIL_FAST``: the first failure cancels the remaining chunks and raises
  :class:`~cashflow_analysis.errors.ChunkBatchError`; nothing partial is returned.
- ``PARTIAL``: every chunk runs to completion; failures come back as
  :class:`~cashflow_analysis.models.ChunkFailure` markers next to the results of
  the chunks that succeeded. Raises only when no chunk succeeded.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass

from .ai_client import DocumentAIClient
from .config import AnalysisSettings, ChunkFailurePolicy
from .errors import ChunkAnalysisError, ChunkBatchError
from .models import ChunkFailure, ChunkResult
from .parsing import parse_chunk_text
from .pmap import Fulfilled, Rejected, call_with_timeout, p_map, p_map_settled
from .telemetry import NullObserver, PipelineObserver


@dataclass(frozen=True, slots=True)
class ChunkBatchOutcome:
    """Successful chunk results (chunk order) and per-chunk failure markers."""

    results: tuple[ChunkResult, ...]
    failures: tuple[ChunkFailure, ...] = ()


def resolve_timeout(n_chunks: int, settings: AnalysisSettings) -> float:
    return settings.batch_timeout_sec if n_chunks == 1 else settings.chunk_timeout_sec


async def analyze_chunks(
    payloads: Sequence[str],
    client: DocumentAIClient,
    *,
    housing_payment: float,
    settings: AnalysisSettings,
    observer: PipelineObserver | None = None,
) -> ChunkBatchOutcome:
    """Categorize every chunk payload and aggregate per ``settings``."""

    obs = observer or NullObserver()
    n_chunks = len(payloads)
    if n_chunks == 0:
        return ChunkBatchOutcome(results=())

    timeout = resolve_timeout(n_chunks, settings)
    policy = settings.chunk_failure_policy
    obs.emit(
        "categorize:start",
        chunks=n_chunks,
        timeout_sec=timeout,
        policy=policy.value,
    )

    async def _categorize(indexed: tuple[int, str]) -> ChunkResult:
        chunk_index, payload = indexed
        t0 = time.perf_counter()
        obs.emit("categorize:chunk_start", chunk_index=chunk_index, chars=len(payload))
        try:
            text = await call_with_timeout(
                client.categorize_chunk(payload, housing_payment=housing_payment),
                timeout=timeout,
                what=f"categorization of chunk {chunk_index}",
            )
            result = parse_chunk_text(text)
        except Exception as e:
            obs.emit(
                "categorize:chunk_failed",
                level=logging.ERROR,
                chunk_index=chunk_index,
                latency_ms=(time.perf_counter() - t0) * 1000.0,
                error=e.__class__.__name__,
            )
            raise ChunkAnalysisError(chunk_index, e) from e
        obs.emit(
            "categorize:chunk_done",
            chunk_index=chunk_index,
            transactions=len(result.transactions),
            latency_ms=(time.perf_counter() - t0) * 1000.0,
        )
        return result

    indexed = list(enumerate(payloads))
    concurrency = settings.chunk_concurrency or n_chunks

    if policy is ChunkFailurePolicy.FAIL_FAST:
        try:
            results = await p_map(
                indexed, _categorize, concurrency=concurrency, stop_on_error=True
            )
        except ChunkAnalysisError as e:
            obs.emit(
                "categorize:batch_aborted",
                level=logging.ERROR,
                chunk_index=e.chunk_index,
                timed_out=e.timed_out,
            )
            raise ChunkBatchError(f"Statement analysis aborted: {e}", [e]) from e
        return ChunkBatchOutcome(results=tuple(results))

    settled = await p_map_settled(indexed, _categorize, concurrency=concurrency)
    ok: list[ChunkResult] = []
    errors: list[ChunkAnalysisError] = []
    for chunk_index, outcome in enumerate(settled):
        if isinstance(outcome, Fulfilled):
            ok.append(outcome.value)
        elif isinstance(outcome, Rejected):
            err = outcome.error
            errors.append(
                err if isinstance(err, ChunkAnalysisError) else ChunkAnalysisError(chunk_index, err)
            )

    if not ok:
        raise ChunkBatchError(
            f"Statement analysis failed: all {n_chunks} chunk(s) failed; first: {errors[0]}",
            errors,
        )
    if errors:
        obs.emit(
            "categorize:partial",
            level=logging.WARNING,
            succeeded=len(ok),
            failed=len(errors),
        )
    failures = tuple(
        ChunkFailure(chunk_index=e.chunk_index, error=str(e.cause), timed_out=e.timed_out)
        for e in errors
    )
    return ChunkBatchOutcome(results=tuple(ok), failures=failures)


__all__ = ["ChunkBatchOutcome", "analyze_chunks", "resolve_timeout"]
