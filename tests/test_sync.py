import inspect
import threading
import time
from concurrent.futures import CancelledError
from datetime import timedelta

import pytest

from kitbag.logger import LoggerLevel
from kitbag.sync import (
    STAT_NAME_WORK_RATIO,
    BufferPool,
    Chan,
    ChanAddStrategy,
    ChanOptions,
    ChanOrder,
    DebugMutex,
    Eventer,
    FIFOMutex,
    ThreadLimiter,
    debug_mutex_with_deadlock_detection,
    debug_mutex_with_lock_logging,
)


class _RecordingLogger:
    def __init__(self):
        self.lock = threading.Lock()
        self.lines = []

    def _add(self, line):
        with self.lock:
            self.lines.append(line)

    def fatal(self, *args):
        self._add("fatal: " + "".join(str(a) for a in args))

    def fatalf(self, format, *args):
        self._add("fatal: " + format % args)

    def print(self, *args):
        self._add("print: " + "".join(str(a) for a in args))

    def printf(self, format, *args):
        self._add("print: " + format % args)


def _run_two(options):
    c = Chan(options)
    o = []

    def first():
        o.append(1)
        c.stop()

    c.add(first)
    c.add(lambda: o.append(2))
    c.start()
    return o


def test_chan_drops_unprocessed_by_default():
    assert len(_run_two(ChanOptions())) == 1


def test_chan_process_all():
    assert len(_run_two(ChanOptions(process_all=True))) == 2


def test_chan_default_order():
    c = Chan(ChanOptions(process_all=True))
    o = []
    c.add(lambda: o.append(1))

    def second():
        o.append(2)
        c.stop()

    c.add(second)
    c.start()
    assert o == [1, 2]


def test_chan_filo_order():
    c = Chan(ChanOptions(order=ChanOrder.FILO, process_all=True))
    o = []
    c.add(lambda: o.append(1))

    def second():
        o.append(2)
        c.stop()

    c.add(second)
    c.start()
    assert o == [2, 1]


def test_chan_block_when_started():
    c = Chan(ChanOptions(add_strategy=ChanAddStrategy.BLOCK_WHEN_STARTED))
    o = []

    def producer():
        c.add(lambda: o.append(1))
        o.append(2)
        c.add(lambda: o.append(3))
        o.append(4)
        c.stop()

    threading.Thread(target=producer).start()
    c.start()
    assert o == [1, 2, 3, 4]
    assert c.stats().work_duration >= timedelta(0)


def test_chan_add_after_stop_is_dropped():
    c = Chan(ChanOptions(add_strategy=ChanAddStrategy.BLOCK_WHEN_STARTED))
    o = []
    threading.Thread(target=lambda: (c.add(lambda: o.append(1)), c.stop())).start()
    c.start()
    c.add(lambda: o.append(2))
    assert o == [1]


def test_chan_parent_context_cancels():
    c = Chan()
    ctx = threading.Event()
    threading.Timer(0.05, ctx.set).start()
    started = time.monotonic()
    c.start(ctx)
    assert ctx.is_set()
    assert time.monotonic() - started < 5


def test_chan_reset_drops_queue():
    c = Chan(ChanOptions(process_all=True))
    o = []
    c.add(lambda: o.append(1))
    c.reset()
    c.add(lambda: (o.append(2), c.stop()))
    c.start()
    assert o == [2]


def test_chan_stats_and_stat_options():
    c = Chan()
    c.add(lambda: (time.sleep(0.02), c.stop()))
    c.start()
    assert c.stats().work_duration >= timedelta(seconds=0.02)
    options = c.stat_options()
    assert len(options) == 1
    assert options[0].metadata.name == STAT_NAME_WORK_RATIO
    assert options[0].metadata.unit == "%"
    assert options[0].valuer.value(timedelta(seconds=1)) > 0


def test_buffer_pool_reuses_emptied_buffers():
    pool = BufferPool()
    item = pool.new()
    item.write(b"hello")
    assert item.getvalue() == b"hello"
    buffer = item.buffer
    item.close()
    again = pool.new()
    assert again.buffer is buffer
    assert again.getvalue() == b""


def test_thread_limiter_caps_concurrency():
    limiter = ThreadLimiter(2)
    lock = threading.Lock()
    state = {"current": 0, "max": 0}
    n = 4
    finished = threading.Semaphore(0)

    def fn():
        with lock:
            state["current"] += 1
            state["max"] = max(state["max"], state["current"])
        time.sleep(0.01)
        with lock:
            state["current"] -= 1
        finished.release()

    for _ in range(n):
        limiter.do(fn)
    for _ in range(n):
        assert finished.acquire(timeout=5)
    limiter.close()
    assert state["max"] == 2
    with pytest.raises(CancelledError):
        limiter.do(fn)


def test_thread_limiter_closed_raises():
    limiter = ThreadLimiter(1)
    limiter.close()
    with pytest.raises(CancelledError):
        limiter.do(lambda: None)


def test_eventer():
    e = Eventer(ChanOptions(process_all=True))
    o = []
    e.on("1", o.append)
    e.on("2", o.append)

    def producer():
        time.sleep(0.01)
        e.dispatch("1", "1.1")
        e.dispatch("2", "2")
        e.dispatch("3", "ignored")
        e.dispatch("1", "1.2")
        e.stop()

    threading.Thread(target=producer).start()
    e.start()
    assert o == ["1.1", "2", "1.2"]


def test_debug_mutex_deadlock_detection():
    logger = _RecordingLogger()
    m = DebugMutex("test", logger, debug_mutex_with_deadlock_detection(0.001))
    first_line = inspect.currentframe().f_lineno + 1
    m.lock()
    threading.Timer(0.1, m.unlock).start()
    second_line = inspect.currentframe().f_lineno + 1
    m.lock()
    m.unlock()
    with logger.lock:
        lines = list(logger.lines)
    assert len(lines) == 1
    assert f"test_sync.py:{second_line} with" in lines[0]
    assert lines[0].endswith(f"test_sync.py:{first_line}")


def test_debug_mutex_lock_logging():
    logger = _RecordingLogger()
    m = DebugMutex("test", logger, debug_mutex_with_lock_logging(LoggerLevel.INFO))
    m.rlock()
    m.runlock()
    assert len(logger.lines) == 3
    assert logger.lines[0].startswith("print: requesting rlock for test at ")
    assert logger.lines[1].startswith("print: rlock acquired for test at ")
    assert logger.lines[2] == "print: unlock executed for test"


def test_debug_mutex_unlock_unlocked_raises():
    m = DebugMutex("test")
    with pytest.raises(RuntimeError):
        m.unlock()


def test_fifo_mutex_order():
    m = FIFOMutex()
    r = []
    m.lock()
    threads = []

    def worker(i):
        m.lock()
        r.append(i)
        m.unlock()

    for i in range(1, 11):
        t = threading.Thread(target=worker, args=(i,))
        t.start()
        threads.append(t)
        deadline = time.monotonic() + 5
        while len(m._waiting) < i and time.monotonic() < deadline:
            time.sleep(0.001)
    assert len(m._waiting) == 10
    m.unlock()
    for t in threads:
        t.join(timeout=5)
    assert r == list(range(1, 11))
    assert list(m._waiting) == []