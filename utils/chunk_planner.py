from __future__ import annotations

from collections.abc import Sequence


def partition(ids: Sequence[int], chunk_size: int) -> list[list[int]]:
    """Split `ids` into contiguous slices of `chunk_size`.

    The last slice holds the remainder. Concatenating the slices gives back
    `ids` unchanged.
    """

    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    ids = list(ids)
    return [ids[i : i + chunk_size] for i in range(0, len(ids), chunk_size)]
