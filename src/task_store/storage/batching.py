"""Chunking and concurrent fan-out helpers for batch store requests."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, wait
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")


def chunk(items: Sequence[T], size: int) -> list[list[T]]:
    """Split ``items`` into contiguous slices of at most ``size`` elements."""
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    return [list(items[start : start + size]) for start in range(0, len(items), size)]


def fan_out(fn: Callable[[list[T]], R], batches: list[list[T]], *, max_workers: int) -> list[R]:
    """Run ``fn`` for every batch concurrently and join on all of them.

    Results are returned in batch order. Every batch settles before the first
    failure (in batch order) is re-raised.
    """
    if not batches:
        return []
    if len(batches) == 1:
        return [fn(batches[0])]

    with ThreadPoolExecutor(max_workers=min(max_workers, len(batches))) as pool:
        futures = [pool.submit(fn, batch) for batch in batches]
        wait(futures)

    for future in futures:
        exc = future.exception()
        if exc is not None:
            raise exc
    return [future.result() for future in futures]
