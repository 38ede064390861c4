"""Named counters that allow a fixed number of events per period."""

from __future__ import annotations

import threading
from typing import Any

from .timeutil import _seconds

__all__ = ["Limiter", "LimiterBucket"]


class LimiterBucket:
    """A counter capped at ``cap`` that is emptied every ``period``."""

    def __init__(self, cap: int, period: Any) -> None:
        self._period = _seconds(period)
        if self._period <= 0:
            raise ValueError("period must be positive")
        self._cap = cap
        self._count = 0
        self._lock = threading.Lock()
        self._closed = threading.Event()
        self._thread = threading.Thread(target=self._tick, daemon=True)
        self._thread.start()

    def inc(self) -> bool:
        """Count one event; return False if the cap is already reached."""
        with self._lock:
            if self._count >= self._cap:
                return False
            self._count += 1
            return True

    def _tick(self) -> None:
        while not self._closed.wait(self._period):
            with self._lock:
                self._count = 0

    def close(self) -> None:
        """Stop emptying the bucket."""
        self._closed.set()


class Limiter:
    """A collection of named buckets."""

    def __init__(self) -> None:
        self._buckets: dict[str, LimiterBucket] = {}
        self._lock = threading.Lock()

    def add(self, name: str, cap: int, period: Any) -> LimiterBucket:
        """Return the bucket called ``name``, creating it if needed."""
        with self._lock:
            if name not in self._buckets:
                self._buckets[name] = LimiterBucket(cap, period)
            return self._buckets[name]

    def bucket(self, name: str) -> LimiterBucket | None:
        """Return the bucket called ``name`` or None."""
        with self._lock:
            return self._buckets.get(name)

    def close(self) -> None:
        """Close every bucket."""
        with self._lock:
            for bucket in self._buckets.values():
                bucket.close()

    def __enter__(self) -> "Limiter":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()