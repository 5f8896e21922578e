from __future__ import annotations

from typing import Iterator, Sequence, TypeVar

T = TypeVar("T")


def chunked(values: Sequence[T], size: int) -> Iterator[list[T]]:
    """
    Yield contiguous slices of at most `size` items, in order.

    Slices are cut on demand so only the current chunk is copied.
    """
    if size <= 0:
        raise ValueError("chunk size must be positive")

    for start in range(0, len(values), size):
        yield list(values[start : start + size])
