"""In-place sorting helpers for integer lists."""

from __future__ import annotations

__all__ = ["sort_int64", "sort_uint64"]


def sort_int64(a: list[int]) -> None:
    """Sort a list of signed integers in increasing order, in place."""
    a.sort()


def sort_uint64(a: list[int]) -> None:
    """Sort a list of unsigned integers in increasing order, in place."""
    a.sort()