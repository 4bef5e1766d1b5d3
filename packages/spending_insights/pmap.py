"""Bounded, order-preserving concurrent map over a thread pool.

- ``p_map``: map items through a function with at most ``concurrency`` calls
  in flight; the first failure propagates and unstarted work is cancelled.
- ``p_map_settled``: same bounded execution, but every item settles on its
  own. Returns one :class:`Settled` per input, in input order, so one failing
  item never affects its neighbours (used for per-record persistence).
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Generic, TypeVar

InT = TypeVar("InT")
OutT = TypeVar("OutT")


@dataclass(frozen=True, slots=True)
class Settled(Generic[InT, OutT]):
    item: InT
    value: OutT | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _check_concurrency(concurrency: int) -> None:
    if isinstance(concurrency, bool) or not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")


def _drive(
    items: Iterator[tuple[int, InT]],
    fn: Callable[[InT], OutT],
    concurrency: int,
    on_done: Callable[[int, Future[OutT]], None],
) -> None:
    """Keep up to ``concurrency`` futures in flight and report each completion."""

    with ThreadPoolExecutor(max_workers=concurrency) as pool:
        active: dict[Future[OutT], int] = {}

        def _top_up() -> None:
            while len(active) < concurrency:
                nxt = next(items, None)
                if nxt is None:
                    return
                idx, item = nxt
                active[pool.submit(fn, item)] = idx

        _top_up()
        while active:
            done, _pending = wait(active, return_when=FIRST_COMPLETED)
            for fut in done:
                idx = active.pop(fut)
                try:
                    on_done(idx, fut)
                except BaseException:
                    for other in active:
                        other.cancel()
                    pool.shutdown(wait=False, cancel_futures=True)
                    raise
            _top_up()


def p_map(
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT],
    *,
    concurrency: int,
) -> list[OutT]:
    """Map ``iterable`` through ``mapper`` with bounded concurrency.

    Output order matches input order. The first mapper error is re-raised.
    """

    _check_concurrency(concurrency)
    results: dict[int, OutT] = {}

    def _collect(idx: int, fut: Future[OutT]) -> None:
        results[idx] = fut.result()

    _drive(enumerate(iterable), mapper, concurrency, _collect)
    return [results[i] for i in range(len(results))]


def p_map_settled(
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT],
    *,
    concurrency: int,
) -> list[Settled[InT, OutT]]:
    """Run ``mapper`` over every item and capture each outcome independently."""

    _check_concurrency(concurrency)
    materialized = list(iterable)
    outcomes: dict[int, Settled[InT, OutT]] = {}

    def _collect(idx: int, fut: Future[OutT]) -> None:
        item = materialized[idx]
        try:
            outcomes[idx] = Settled(item=item, value=fut.result())
        except Exception as e:  # noqa: BLE001 - captured per item by contract
            outcomes[idx] = Settled(item=item, error=e)

    _drive(enumerate(materialized), mapper, concurrency, _collect)
    return [outcomes[i] for i in range(len(materialized))]


__all__ = ["Settled", "p_map", "p_map_settled"]
