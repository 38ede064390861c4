"""Ordered function queues, thread limiting, events and debugging mutexes.

A *ctx* argument is a :class:`threading.Event` that signals cancellation
once it is set.
"""

from __future__ import annotations

import enum
import inspect
import io
import threading
import time
from collections import deque
from concurrent.futures import CancelledError
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable

from .logger import LoggerLevel, adapt_std_logger
from .stat import (
    AtomicDuration,
    AtomicDurationPercentageStat,
    StatMetadata,
    StatOptions,
)
from .timeutil import _seconds

__all__ = [
    "STAT_NAME_WORK_RATIO",
    "ChanAddStrategy",
    "ChanOrder",
    "ChanOptions",
    "ChanStats",
    "Chan",
    "BufferPool",
    "BufferPoolItem",
    "ThreadLimiter",
    "Eventer",
    "DebugMutex",
    "debug_mutex_with_lock_logging",
    "debug_mutex_with_deadlock_detection",
    "FIFOMutex",
]

STAT_NAME_WORK_RATIO = "astikit.work.ratio"

_POLL_INTERVAL = 0.01


class ChanAddStrategy(str, enum.Enum):
    """When :meth:`Chan.add` blocks."""

    # Add waits until the function has been executed
    BLOCK_WHEN_STARTED = "block.when.started"
    # Add never blocks
    NO_BLOCK = "no.block"


class ChanOrder(str, enum.Enum):
    """Order in which queued functions run."""

    FIFO = "fifo"
    FILO = "filo"


@dataclass
class ChanOptions:
    """Options of a :class:`Chan`.

    Unless ``process_all`` is true, functions still queued when the chan is
    cancelled are dropped. No function can be added after cancellation.
    """

    add_strategy: str = ChanAddStrategy.NO_BLOCK
    order: str = ChanOrder.FIFO
    process_all: bool = False


@dataclass(frozen=True)
class ChanStats:
    """Statistics of a :class:`Chan`."""

    work_duration: timedelta


class Chan:
    """Executes queued functions in order, one at a time."""

    def __init__(self, options: ChanOptions | None = None) -> None:
        self._options = options or ChanOptions()
        self._cond = threading.Condition()
        self._funcs: deque[Callable[[], Any]] = deque()
        self._cancel: threading.Event | None = None
        self._parent: threading.Event | None = None
        self._running = False
        self._work = AtomicDuration()

    def _is_done(self) -> bool:
        if self._cancel is not None and self._cancel.is_set():
            return True
        return self._parent is not None and self._parent.is_set()

    def start(self, ctx: threading.Event | None = None) -> None:
        """Run queued functions until stopped or ``ctx`` is set. Blocks."""
        with self._cond:
            if self._running:
                return
            self._running = True
            self._cancel = threading.Event()
            self._parent = ctx
        try:
            while True:
                with self._cond:
                    if self._is_done() and (
                        not self._options.process_all or not self._funcs
                    ):
                        return
                    if not self._funcs:
                        self._cond.wait(_POLL_INTERVAL if ctx is not None else None)
                        continue
                    fn = self._funcs.popleft()
                started = time.perf_counter()
                try:
                    fn()
                finally:
                    self._work.add(timedelta(seconds=time.perf_counter() - started))
        finally:
            with self._cond:
                self._running = False

    def stop(self) -> None:
        """Cancel the chan."""
        with self._cond:
            if self._cancel is not None:
                self._cancel.set()
            self._cond.notify_all()

    def add(self, fn: Callable[[], Any]) -> None:
        """Queue ``fn``; dropped if the chan has been cancelled."""
        done: threading.Event | None = None
        with self._cond:
            if self._is_done():
                return
            if self._options.add_strategy == ChanAddStrategy.BLOCK_WHEN_STARTED:
                done = threading.Event()
                inner = fn

                def fn() -> None:
                    try:
                        inner()
                    finally:
                        done.set()

            if self._options.order == ChanOrder.FILO:
                self._funcs.appendleft(fn)
            else:
                self._funcs.append(fn)
            self._cond.notify_all()
        if done is not None:
            done.wait()

    def reset(self) -> None:
        """Drop every queued function."""
        with self._cond:
            self._funcs.clear()

    def stats(self) -> ChanStats:
        return ChanStats(work_duration=self._work.duration())

    def stat_options(self) -> list[StatOptions]:
        return [
            StatOptions(
                metadata=StatMetadata(
                    description="Percentage of time doing work",
                    label="Work ratio",
                    name=STAT_NAME_WORK_RATIO,
                    unit="%",
                ),
                valuer=AtomicDurationPercentageStat(self._work),
            )
        ]


class BufferPoolItem:
    """A byte buffer borrowed from a :class:`BufferPool`."""

    def __init__(self, buffer: io.BytesIO, pool: "BufferPool") -> None:
        self.buffer = buffer
        self._pool = pool

    def write(self, data: bytes) -> int:
        return self.buffer.write(data)

    def getvalue(self) -> bytes:
        return self.buffer.getvalue()

    def close(self) -> None:
        """Empty the buffer and give it back to the pool."""
        self.buffer.seek(0)
        self.buffer.truncate(0)
        self._pool._put(self.buffer)

    def __enter__(self) -> "BufferPoolItem":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


class BufferPool:
    """A pool of reusable byte buffers."""

    def __init__(self) -> None:
        self._free: list[io.BytesIO] = []
        self._lock = threading.Lock()

    def new(self) -> BufferPoolItem:
        with self._lock:
            buffer = self._free.pop() if self._free else io.BytesIO()
        return BufferPoolItem(buffer, self)

    def _put(self, buffer: io.BytesIO) -> None:
        with self._lock:
            self._free.append(buffer)


class ThreadLimiter:
    """Runs functions in threads, never more than ``max_threads`` at once."""

    def __init__(self, max_threads: int = 1) -> None:
        self._max = max_threads if max_threads > 0 else 1
        self._busy = 0
        self._closed = False
        self._cond = threading.Condition()

    def close(self) -> None:
        """Refuse further work and wake up callers waiting for a slot."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def do(self, fn: Callable[[], Any]) -> None:
        """Run ``fn`` in a thread once a slot is free.

        Raises CancelledError if the limiter is closed.
        """
        with self._cond:
            while self._busy >= self._max and not self._closed:
                self._cond.wait()
            if self._closed:
                raise CancelledError("limiter is closed")
            self._busy += 1

        def run() -> None:
            try:
                fn()
            finally:
                with self._cond:
                    self._busy -= 1
                    self._cond.notify()

        threading.Thread(target=run, daemon=True).start()

    def __enter__(self) -> "ThreadLimiter":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


class Eventer:
    """Dispatches named events to handlers through a :class:`Chan`."""

    def __init__(self, chan_options: ChanOptions | None = None) -> None:
        self._chan = Chan(chan_options)
        self._handlers: dict[str, list[Callable[[Any], Any]]] = {}
        self._lock = threading.Lock()

    def on(self, name: str, handler: Callable[[Any], Any]) -> None:
        with self._lock:
            self._handlers.setdefault(name, []).append(handler)

    def dispatch(self, name: str, payload: Any) -> None:
        with self._lock:
            handlers = list(self._handlers.get(name, ()))
        for handler in handlers:
            self._chan.add(lambda h=handler: h(payload))

    def start(self, ctx: threading.Event | None = None) -> None:
        """Process dispatched events. Blocks."""
        self._chan.start(ctx)

    def stop(self) -> None:
        self._chan.stop()

    def reset(self) -> None:
        self._chan.reset()


class _RWLock:
    """A readers-writer lock that may be released by any thread."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            if not self._writer:
                raise RuntimeError("unlock of unlocked mutex")
            self._writer = False
            self._cond.notify_all()

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            if not self._readers:
                raise RuntimeError("runlock of unlocked mutex")
            self._readers -= 1
            if not self._readers:
                self._cond.notify_all()


DebugMutexOption = Callable[["DebugMutex"], None]


def debug_mutex_with_lock_logging(level: LoggerLevel) -> DebugMutexOption:
    """Log every lock request, acquisition and release at ``level``."""

    def apply(m: "DebugMutex") -> None:
        m._level = level

    return apply


def debug_mutex_with_deadlock_detection(timeout: Any) -> DebugMutexOption:
    """Log an error when acquiring the lock takes longer than ``timeout``."""

    def apply(m: "DebugMutex") -> None:
        m._timeout = _seconds(timeout)

    return apply


class DebugMutex:
    """A readers-writer mutex that can log its use to help find deadlocks."""

    def __init__(self, name: str, logger: Any = None, *opts: DebugMutexOption) -> None:
        self._name = name
        self._logger = adapt_std_logger(logger)
        self._level: LoggerLevel | None = None
        self._timeout = 0.0
        self._lock = _RWLock()
        self._last_caller = ""
        self._last_caller_lock = threading.Lock()
        for opt in opts:
            opt(self)

    @staticmethod
    def _caller() -> str:
        frame = inspect.currentframe()
        try:
            target = frame.f_back.f_back if frame and frame.f_back else None
            if target is None:
                return ""
            return f"{target.f_code.co_filename}:{target.f_lineno}"
        finally:
            del frame

    def _log(self, format: str, *args: Any) -> None:
        if self._level is None:
            return
        self._logger.writef(self._level, format, *args)

    def _watch_timeout(self, caller: str, fn: Callable[[], None]) -> None:
        if self._timeout <= 0:
            fn()
            return

        def report() -> None:
            with self._last_caller_lock:
                last_caller = self._last_caller
            self._logger.errorf(
                "%s mutex timed out at %s with last caller at %s",
                self._name,
                caller,
                last_caller,
            )

        timer = threading.Timer(self._timeout, report)
        timer.daemon = True
        timer.start()
        try:
            fn()
        finally:
            timer.cancel()

    def _acquire(self, kind: str, caller: str, fn: Callable[[], None]) -> None:
        self._log("requesting %s for %s at %s", kind, self._name, caller)
        self._watch_timeout(caller, fn)
        self._log("%s acquired for %s at %s", kind, self._name, caller)
        with self._last_caller_lock:
            self._last_caller = caller

    def lock(self) -> None:
        self._acquire("lock", self._caller(), self._lock.acquire_write)

    def unlock(self) -> None:
        self._lock.release_write()
        self._log("unlock executed for %s", self._name)

    def rlock(self) -> None:
        self._acquire("rlock", self._caller(), self._lock.acquire_read)

    def runlock(self) -> None:
        self._lock.release_read()
        self._log("unlock executed for %s", self._name)

    def __enter__(self) -> "DebugMutex":
        self._acquire("lock", self._caller(), self._lock.acquire_write)
        return self

    def __exit__(self, *exc: Any) -> None:
        self.unlock()


@dataclass
class FIFOMutex:
    """A mutex handing itself over to waiters in arrival order."""

    _busy: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock)
    _waiting: deque = field(default_factory=deque)

    def lock(self) -> None:
        with self._lock:
            if not self._busy:
                self._busy = True
                return
            ready = threading.Event()
            self._waiting.append(ready)
        ready.wait()

    def unlock(self) -> None:
        with self._lock:
            if not self._waiting:
                self._busy = False
                return
            self._waiting.popleft().set()

    def __enter__(self) -> "FIFOMutex":
        self.lock()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.unlock()