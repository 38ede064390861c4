"""Random alphanumeric strings."""

from __future__ import annotations

import random

__all__ = ["RAND_SOURCE", "LETTERS", "rand_str"]

LETTERS = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ1234567890"
_IDX_BITS = 6
_IDX_MASK = (1 << _IDX_BITS) - 1
_IDX_PER_DRAW = 63 // _IDX_BITS

RAND_SOURCE = random.Random()


def rand_str(n: int) -> str:
    """Return a random string of ``n`` letters and digits."""
    out: list[str] = []
    while len(out) < n:
        cache = RAND_SOURCE.getrandbits(63)
        for _ in range(_IDX_PER_DRAW):
            idx = cache & _IDX_MASK
            if idx < len(LETTERS):
                out.append(LETTERS[idx])
                if len(out) == n:
                    break
            cache >>= _IDX_BITS
    return "".join(out)