import threading
from datetime import datetime, timedelta, timezone

import pytest

from kitbag.stat import (
    AtomicDuration,
    AtomicDurationAvgStat,
    AtomicDurationPercentageStat,
    AtomicUint64,
    AtomicUint64RateStat,
    StatMetadata,
    StatOptions,
    Stater,
    StatValue,
)
from kitbag.timeutil import mock_now


def test_stater():
    clock = {"now": datetime.fromtimestamp(0, timezone.utc)}
    clock_lock = threading.Lock()

    def fake_now():
        with clock_lock:
            return clock["now"]

    u1 = AtomicUint64()
    m1 = StatMetadata(description="1")
    o1 = StatOptions(m1, AtomicUint64RateStat(u1))
    d2 = AtomicDuration()
    m2 = StatMetadata(description="2")
    o2 = StatOptions(m2, AtomicDurationPercentageStat(d2))
    d3 = AtomicDuration()
    m3 = StatMetadata(description="3")
    o3 = StatOptions(m3, AtomicDurationAvgStat(d3, u1))
    m4 = StatMetadata(description="4")
    o4 = StatOptions(m4, lambda d: 42)

    ctx = threading.Event()
    calls = {"count": 0}
    calls_lock = threading.Lock()
    captured = []

    def handle(stats):
        with calls_lock:
            calls["count"] += 1
            if calls["count"] == 1:
                u1.add(10)
                d2.add(timedelta(seconds=4))
                d3.add(timedelta(seconds=10))
                with clock_lock:
                    clock["now"] = datetime.fromtimestamp(5, timezone.utc)
            elif calls["count"] == 2:
                captured.extend(stats)
                ctx.set()

    with mock_now(fake_now):
        stater = Stater(handle_func=handle, period=0.05)
        stater.add_stats(o1, o2, o3, o4)
        stater.start(ctx)
        stater.stop()

    for expected in [
        StatValue(m1, 2.0),
        StatValue(m2, 80.0),
        StatValue(m3, timedelta(seconds=1)),
        StatValue(m4, 42),
    ]:
        assert expected in captured


def test_stater_del_stats():
    ctx = threading.Event()
    captured = []

    def handle(stats):
        if not ctx.is_set():
            captured.append(stats)
            ctx.set()

    m1 = StatMetadata(name="one")
    m2 = StatMetadata(name="two")
    o1 = StatOptions(m1, lambda d: 1)
    o2 = StatOptions(m2, lambda d: 42)
    stater = Stater(handle_func=handle, period=0.02)
    stater.add_stats(o1, o2)
    stater.del_stats(o1)
    stater.start(ctx)
    assert captured[0] == [StatValue(m2, 42)]


def test_stater_cancelled_context_does_not_run():
    ctx = threading.Event()
    ctx.set()
    calls = []
    stater = Stater(handle_func=calls.append, period=0.01)
    stater.add_stats(StatOptions(StatMetadata(), lambda d: 1))
    stater.start(ctx)
    assert calls == []


def test_stater_invalid_period():
    with pytest.raises(ValueError):
        Stater(period=0)


def test_rate_stat():
    counter = AtomicUint64()
    rate = AtomicUint64RateStat(counter)
    assert rate.value(timedelta(0)) == 0.0
    counter.add(10)
    assert rate.value(timedelta(seconds=5)) == 2.0
    assert rate.value(timedelta(seconds=1)) == 0.0


def test_percentage_stat():
    d = AtomicDuration()
    pct = AtomicDurationPercentageStat(d)
    d.add(timedelta(seconds=1))
    assert pct.value(timedelta(seconds=2)) == 50.0
    assert pct.value(timedelta(0)) == 0.0


def test_avg_stat():
    d = AtomicDuration()
    count = AtomicUint64()
    avg = AtomicDurationAvgStat(d, count)
    assert avg.value(timedelta(seconds=1)) == timedelta(0)
    d.add(timedelta(seconds=6))
    count.add(3)
    assert avg.value(timedelta(seconds=1)) == timedelta(seconds=2)


def test_atomic_duration_and_counter():
    d = AtomicDuration(timedelta(seconds=1))
    d.add(timedelta(milliseconds=500))
    d.add(0.5)
    assert d.duration() == timedelta(seconds=2)
    c = AtomicUint64((1 << 64) - 1)
    assert c.add(2) == 1
    assert c.load() == 1