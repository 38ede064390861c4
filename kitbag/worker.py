"""A worker that blocks until stopped, handling signals and tracking tasks."""

from __future__ import annotations

import queue
import signal
import threading
from typing import Any, Callable

from .fileops import is_term_signal, term_signal_handler
from .logger import adapt_std_logger

__all__ = ["Worker", "Task"]

_NOTIFIED_SIGNALS = tuple(
    sig
    for sig in (
        getattr(signal, name, None)
        for name in ("SIGABRT", "SIGHUP", "SIGINT", "SIGQUIT", "SIGTERM", "SIGUSR1", "SIGUSR2")
    )
    if sig is not None
)
_POLL_INTERVAL = 0.05


class _WaitGroup:
    """Counts outstanding work and lets callers wait until none is left."""

    def __init__(self) -> None:
        self._count = 0
        self._cond = threading.Condition()

    def add(self, n: int = 1) -> None:
        with self._cond:
            self._count += n
            if self._count < 0:
                raise RuntimeError("negative wait group counter")
            if self._count == 0:
                self._cond.notify_all()

    def done(self) -> None:
        self.add(-1)

    def wait(self) -> None:
        with self._cond:
            while self._count > 0:
                self._cond.wait()


class _Once:
    """Runs a function at most once; later callers wait for the first run."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._done = False

    def do(self, fn: Callable[[], Any]) -> None:
        with self._lock:
            if self._done:
                return
            try:
                fn()
            finally:
                self._done = True


class Task:
    """A unit of work tracked by its parent until it is done."""

    def __init__(self, parent: _WaitGroup) -> None:
        self._wg = _WaitGroup()
        self._parent = parent
        self._done_once = _Once()
        self._wait_once = _Once()
        parent.add(1)

    def new_sub_task(self) -> "Task":
        """Create a task this task waits for."""
        return Task(self._wg)

    def do(self, f: Callable[[], Any]) -> None:
        """Run ``f`` in a thread, then wait for sub tasks and mark the task done."""

        def run() -> None:
            try:
                f()
                self.wait()
            finally:
                self.done()

        threading.Thread(target=run, daemon=True).start()

    def done(self) -> None:
        """Mark the task as done."""
        self._done_once.do(self._parent.done)

    def wait(self) -> None:
        """Wait for the first level of sub tasks to be done."""
        self._wait_once.do(self._wg.wait)


class Worker:
    """Blocks in :meth:`wait` until stopped and every task is done.

    ``context`` is a :class:`threading.Event` set once the worker stops.
    """

    def __init__(self, logger: Any = None) -> None:
        self.logger = adapt_std_logger(logger)
        self.context = threading.Event()
        self._wg = _WaitGroup()
        self._stop_once = _Once()
        self._wait_once = _Once()
        self._wg.add(1)
        self.logger.info("starting worker...")

    def handle_signals(self, *args: Callable[[Any], Any]) -> None:
        """Pass received signals to the handlers; a terminating signal stops the worker.

        Must be called from the main thread.
        """
        handlers = [term_signal_handler(self.stop), *args]
        received: queue.Queue = queue.Queue()

        def notify(signum: int, frame: Any) -> None:
            received.put(signal.Signals(signum))

        for sig in _NOTIFIED_SIGNALS:
            signal.signal(sig, notify)

        def loop() -> None:
            while not self.context.is_set():
                try:
                    s = received.get(timeout=_POLL_INTERVAL)
                except queue.Empty:
                    continue
                for handler in handlers:
                    handler(s)
                if is_term_signal(s):
                    return

        self.new_task().do(loop)

    def stop(self) -> None:
        """Stop the worker."""

        def run() -> None:
            self.logger.info("stopping worker...")
            self.context.set()
            self._wg.done()

        self._stop_once.do(run)

    def wait(self) -> None:
        """Block until the worker is stopped and its tasks are done."""

        def run() -> None:
            self.logger.info("worker is now waiting...")
            self._wg.wait()

        self._wait_once.do(run)

    def new_task(self) -> Task:
        """Create a task the worker waits for."""
        return Task(self._wg)