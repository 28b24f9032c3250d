"""Chunk planning for categorization requests.

Two independent strategies keep each categorization call under the
collaborator's output-size ceiling:

- ``plan_chunks``: count-based windows over a flat record list (primary path).
- ``plan_text_chunks``: token-estimate slicing of a raw payload string
  (fallback for text that did not parse into records).

Both are pure; ranges are half-open and order is preserved.
"""

from __future__ import annotations

import json
import math
from collections.abc import Iterable, Sequence
from typing import TypeVar

from .config import CHARS_PER_TOKEN, CHUNK_THRESHOLD, MAX_PER_CHUNK, TOKEN_CEILING

T = TypeVar("T")


def total_chunks_for(total: int, *, chunk_size: int) -> int:
    return math.ceil(total / max(1, chunk_size))


def chunk_bounds(chunk_idx: int, *, total: int, chunk_size: int) -> tuple[int, int]:
    base = chunk_idx * chunk_size
    end = min(base + chunk_size, total)
    return base, end


def iter_chunk_bounds(total: int, *, chunk_size: int) -> Iterable[tuple[int, int, int]]:
    """Yield ``(chunk_index, base, end)`` with ``0 <= base < end <= total``."""

    for k in range(total_chunks_for(total, chunk_size=chunk_size)):
        base, end = chunk_bounds(k, total=total, chunk_size=chunk_size)
        yield k, base, end


def plan_chunks(
    records: Sequence[T],
    *,
    threshold: int = CHUNK_THRESHOLD,
    max_per_chunk: int = MAX_PER_CHUNK,
) -> list[list[T]]:
    """Split ``records`` into contiguous windows of at most ``max_per_chunk``.

    Records are only split when there are more than ``threshold`` of them;
    otherwise the whole set is a single chunk. An empty input yields no chunks.
    Concatenating the returned chunks reproduces ``records`` exactly.
    """

    if not isinstance(max_per_chunk, int) or max_per_chunk <= 0:
        raise ValueError("max_per_chunk must be a positive integer")
    if not records:
        return []
    if len(records) <= threshold:
        return [list(records)]
    return [
        list(records[base:end])
        for _, base, end in iter_chunk_bounds(len(records), chunk_size=max_per_chunk)
    ]


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def plan_text_chunks(payload: str, *, token_ceiling: int = TOKEN_CEILING) -> list[str]:
    """Slice a JSON-array payload so each slice stays under ``token_ceiling``.

    - A payload whose estimate is within the ceiling is returned as-is.
    - A payload that is not a JSON array is returned whole (no partial
      chunking is attempted on free text).
    - Otherwise the average estimated size per item determines how many items
      fit per slice; each slice is re-serialized as a JSON array.
    """

    if token_ceiling <= 0:
        raise ValueError("token_ceiling must be positive")
    est = estimate_tokens(payload)
    if est <= token_ceiling:
        return [payload]
    try:
        items = json.loads(payload)
    except json.JSONDecodeError:
        return [payload]
    if not isinstance(items, list) or not items:
        return [payload]

    avg_tokens = est / len(items)
    per_chunk = max(1, math.floor(token_ceiling / avg_tokens))
    return [
        json.dumps(items[base:end], ensure_ascii=False)
        for _, base, end in iter_chunk_bounds(len(items), chunk_size=per_chunk)
    ]


__all__ = [
    "chunk_bounds",
    "estimate_tokens",
    "iter_chunk_bounds",
    "plan_chunks",
    "plan_text_chunks",
    "total_chunks_for",
]
