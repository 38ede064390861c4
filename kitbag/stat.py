"""Periodic computation of statistics and thread-safe counters."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable

from .timeutil import _seconds, now

__all__ = [
    "AtomicDuration",
    "AtomicUint64",
    "StatMetadata",
    "StatOptions",
    "StatValue",
    "Stater",
    "AtomicUint64RateStat",
    "AtomicDurationPercentageStat",
    "AtomicDurationAvgStat",
]

_UINT64_MASK = (1 << 64) - 1
_POLL_INTERVAL = 0.01


def _as_timedelta(d: Any) -> timedelta:
    return d if isinstance(d, timedelta) else timedelta(seconds=d)


class AtomicDuration:
    """A duration that can be added to from several threads."""

    def __init__(self, d: Any = timedelta(0)) -> None:
        self._d = _as_timedelta(d)
        self._lock = threading.Lock()

    def add(self, delta: Any) -> None:
        with self._lock:
            self._d += _as_timedelta(delta)

    def duration(self) -> timedelta:
        with self._lock:
            return self._d


class AtomicUint64:
    """An unsigned 64-bit counter that can be updated from several threads."""

    def __init__(self, v: int = 0) -> None:
        self._v = v & _UINT64_MASK
        self._lock = threading.Lock()

    def add(self, delta: int) -> int:
        """Add ``delta`` (wrapping at 64 bits) and return the new value."""
        with self._lock:
            self._v = (self._v + delta) & _UINT64_MASK
            return self._v

    def load(self) -> int:
        with self._lock:
            return self._v


@dataclass(eq=False)
class StatMetadata:
    """Describes a stat; instances are compared by identity."""

    description: str = ""
    label: str = ""
    name: str = ""
    unit: str = ""


@dataclass
class StatOptions:
    """A stat: its metadata and an object with ``value(delta)`` or a callable."""

    metadata: StatMetadata
    valuer: Any


@dataclass
class StatValue:
    """A computed value for a stat."""

    metadata: StatMetadata
    value: Any


class Stater:
    """Computes registered stats every ``period`` and hands them to a callback."""

    def __init__(
        self,
        handle_func: Callable[[list[StatValue]], Any] | None = None,
        period: Any = 1.0,
    ) -> None:
        self._period = _seconds(period)
        if self._period <= 0:
            raise ValueError("period must be positive")
        self._handle = handle_func
        self._lock = threading.Lock()
        self._stats: dict[StatMetadata, StatOptions] = {}
        self._running = False
        self._running_lock = threading.Lock()
        self._cancel: threading.Event | None = None

    def start(self, ctx: threading.Event | None = None) -> None:
        """Compute stats until stopped or ``ctx`` is set. Blocks."""
        if ctx is not None and ctx.is_set():
            return
        with self._running_lock:
            if self._running:
                return
            self._running = True
            cancel = threading.Event()
            self._cancel = cancel
        try:
            last_stat_at = now()
            next_tick = time.monotonic() + self._period
            while not self._wait_until(next_tick, cancel, ctx):
                next_tick += self._period
                if next_tick < time.monotonic():
                    next_tick = time.monotonic() + self._period
                current = now()
                delta = current - last_stat_at
                last_stat_at = current
                stats = self._collect(delta)
                if self._handle is not None:
                    threading.Thread(
                        target=self._handle, args=(stats,), daemon=True
                    ).start()
        finally:
            with self._running_lock:
                self._running = False

    @staticmethod
    def _wait_until(
        deadline: float, cancel: threading.Event, ctx: threading.Event | None
    ) -> bool:
        while True:
            if cancel.is_set() or (ctx is not None and ctx.is_set()):
                return True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            cancel.wait(min(remaining, _POLL_INTERVAL))

    def _collect(self, delta: timedelta) -> list[StatValue]:
        stats = []
        with self._lock:
            for options in self._stats.values():
                valuer = options.valuer
                value_fn = getattr(valuer, "value", None)
                if callable(value_fn):
                    value = value_fn(delta)
                elif callable(valuer):
                    value = valuer(delta)
                else:
                    continue
                stats.append(StatValue(options.metadata, value))
        return stats

    def stop(self) -> None:
        """Stop a running :meth:`start`."""
        if self._cancel is not None:
            self._cancel.set()

    def add_stats(self, *args: StatOptions) -> None:
        with self._lock:
            for options in args:
                self._stats[options.metadata] = options

    def del_stats(self, *args: StatOptions) -> None:
        with self._lock:
            for options in args:
                self._stats.pop(options.metadata, None)


class AtomicUint64RateStat:
    """Rate per second at which a counter grows between calls."""

    def __init__(self, v: AtomicUint64) -> None:
        self._v = v
        self._last: int | None = None

    def value(self, delta: Any) -> float:
        current = self._v.load()
        last = self._last or 0
        self._last = current
        delta = _as_timedelta(delta)
        if delta <= timedelta(0):
            return 0.0
        return ((current - last) & _UINT64_MASK) / delta.total_seconds()


class AtomicDurationPercentageStat:
    """Share, in percent, of elapsed time added to a duration between calls."""

    def __init__(self, d: AtomicDuration) -> None:
        self._d = d
        self._last: timedelta | None = None

    def value(self, delta: Any) -> float:
        current = self._d.duration()
        last = self._last or timedelta(0)
        self._last = current
        delta = _as_timedelta(delta)
        if delta <= timedelta(0):
            return 0.0
        return (current - last) / delta * 100


class AtomicDurationAvgStat:
    """Average duration per counted event between calls."""

    def __init__(self, d: AtomicDuration, count: AtomicUint64) -> None:
        self._d = d
        self._count = count
        self._last: timedelta | None = None
        self._last_count: int | None = None

    def value(self, delta: Any) -> timedelta:
        current = self._d.duration()
        current_count = self._count.load()
        last = self._last or timedelta(0)
        last_count = self._last_count or 0
        self._last = current
        self._last_count = current_count
        n = (current_count - last_count) & _UINT64_MASK
        if n == 0:
            return timedelta(0)
        return (current - last) / n