"""A thread-safe bidirectional map."""

from __future__ import annotations

import threading
from typing import Any, Hashable

__all__ = ["BiMap"]


class BiMap:
    """Map keeping a forward and an inverse mapping in step."""

    def __init__(self) -> None:
        self._forward: dict[Hashable, Any] = {}
        self._inverse: dict[Hashable, Any] = {}
        self._lock = threading.Lock()

    def _get(self, k: Hashable, mapping: dict, default: Any) -> Any:
        with self._lock:
            return mapping.get(k, default)

    def get(self, k: Hashable, default: Any = None) -> Any:
        """Return the forward value for ``k`` or ``default``."""
        return self._get(k, self._forward, default)

    def get_inverse(self, k: Hashable, default: Any = None) -> Any:
        """Return the inverse value for ``k`` or ``default``."""
        return self._get(k, self._inverse, default)

    def _must_get(self, k: Hashable, mapping: dict, label: str) -> Any:
        with self._lock:
            try:
                return mapping[k]
            except KeyError:
                raise KeyError(f"key {k!r} not found in {label} map") from None

    def must_get(self, k: Hashable) -> Any:
        """Return the forward value for ``k``; raise KeyError if absent."""
        return self._must_get(k, self._forward, "forward")

    def must_get_inverse(self, k: Hashable) -> Any:
        """Return the inverse value for ``k``; raise KeyError if absent."""
        return self._must_get(k, self._inverse, "inverse")

    def _set(self, k: Hashable, v: Hashable, first: dict, second: dict) -> "BiMap":
        with self._lock:
            first[k] = v
            second[v] = k
        return self

    def set(self, k: Hashable, v: Hashable) -> "BiMap":
        """Map ``k`` to ``v`` forward and ``v`` to ``k`` inverse."""
        return self._set(k, v, self._forward, self._inverse)

    def set_inverse(self, k: Hashable, v: Hashable) -> "BiMap":
        """Map ``k`` to ``v`` inverse and ``v`` to ``k`` forward."""
        return self._set(k, v, self._inverse, self._forward)