"""A small asyncio abstraction inspired by ``p-map``.

Goals
-----
- A single call with an iterable, an async mapper, and a ``concurrency`` cap.
- Preserve input order while running work concurrently.
- Race each mapper call against an optional ``timeout``. Expiry cancels the
  in-flight coroutine (and with it any awaited network request) rather than
  merely abandoning it.
- Make the aggregation policy explicit: ``p_map_settled`` reports one
  ``Fulfilled``/``Rejected`` per input, ``p_map`` either fails fast
  (``stop_on_error=True``) or raises an ``ExceptionGroup`` of all failures.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Generic, TypeVar

from .errors import CallTimeoutError

InT = TypeVar("InT")
OutT = TypeVar("OutT")


@dataclass(frozen=True, slots=True)
class Fulfilled(Generic[OutT]):
    value: OutT


@dataclass(frozen=True, slots=True)
class Rejected:
    error: Exception


type Settled[T] = Fulfilled[T] | Rejected


def _default_describe(idx: int) -> str:
    return f"call {idx}"


async def call_with_timeout(
    awaitable: Awaitable[OutT], *, timeout: float | None, what: str
) -> OutT:
    """Await ``awaitable``, cancelling it once ``timeout`` seconds elapse.

    Expiry surfaces as :class:`CallTimeoutError` ("<what> timed out after N
    seconds"); ``timeout=None`` waits indefinitely.
    """

    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except CallTimeoutError:
        raise
    except TimeoutError as e:
        raise CallTimeoutError(what, timeout) from e


def _check_concurrency(concurrency: int) -> None:
    if isinstance(concurrency, bool) or not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")


async def p_map_settled(
    iterable: Iterable[InT],
    mapper: Callable[[InT], Awaitable[OutT]],
    *,
    concurrency: int,
    timeout: float | None = None,
    describe: Callable[[int], str] = _default_describe,
) -> list[Settled[OutT]]:
    """Run ``mapper`` over ``iterable`` and return every outcome in input order.

    Mapper exceptions (including timeouts, reported as
    :class:`~cashflow_analysis.errors.CallTimeoutError`) are captured as
    ``Rejected``; cancellation of the caller still propagates.
    """

    _check_concurrency(concurrency)
    sem = asyncio.Semaphore(concurrency)

    async def _run(idx: int, item: InT) -> Settled[OutT]:
        async with sem:
            try:
                value = await call_with_timeout(
                    mapper(item), timeout=timeout, what=describe(idx)
                )
            except Exception as e:  # noqa: BLE001 - captured, reported to caller
                return Rejected(e)
            return Fulfilled(value)

    return list(await asyncio.gather(*(_run(i, item) for i, item in enumerate(iterable))))


async def p_map(
    iterable: Iterable[InT],
    mapper: Callable[[InT], Awaitable[OutT]],
    *,
    concurrency: int,
    stop_on_error: bool = True,
    timeout: float | None = None,
    describe: Callable[[int], str] = _default_describe,
) -> list[OutT]:
    """Map ``iterable`` through ``mapper`` with a bounded concurrency limit.

    - The returned list preserves the input order.
    - When ``stop_on_error`` is True (default), the first mapper error is
      propagated immediately and all other pending or running calls are
      cancelled.
    - When ``stop_on_error`` is False, all mappers run to completion and an
      ``ExceptionGroup`` of all failures is raised if any failed.
    """

    _check_concurrency(concurrency)

    if not stop_on_error:
        settled = await p_map_settled(
            iterable, mapper, concurrency=concurrency, timeout=timeout, describe=describe
        )
        errors = [s.error for s in settled if isinstance(s, Rejected)]
        if errors:
            raise ExceptionGroup("p_map: one or more mapper calls failed", errors)
        return [s.value for s in settled if isinstance(s, Fulfilled)]

    sem = asyncio.Semaphore(concurrency)

    async def _run(idx: int, item: InT) -> OutT:
        async with sem:
            return await call_with_timeout(mapper(item), timeout=timeout, what=describe(idx))

    tasks = [asyncio.create_task(_run(i, item)) for i, item in enumerate(iterable)]
    try:
        for fut in asyncio.as_completed(tasks):
            await fut
    except BaseException:
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    return [t.result() for t in tasks]


__all__ = ["Fulfilled", "Rejected", "Settled", "call_with_timeout", "p_map", "p_map_settled"]
