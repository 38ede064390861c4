"""Cancellable sleep, a mockable clock, Unix timestamps and stopwatches.

A *ctx* argument is a :class:`threading.Event` that signals cancellation
once it is set.
"""

from __future__ import annotations

import json
import re
import threading
import time
from concurrent.futures import CancelledError
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

__all__ = [
    "sleep",
    "now",
    "mock_now",
    "Timestamp",
    "TimestampNano",
    "Stopwatch",
    "duration_minimalist_format",
]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MICROSECOND = timedelta(microseconds=1)
_SECOND = timedelta(seconds=1)
_INT_RE = re.compile(r"[+-]?[0-9]+")


def _seconds(d: Any) -> float:
    """Return a duration given as a timedelta or a number of seconds, in seconds."""
    if isinstance(d, timedelta):
        return d.total_seconds()
    return float(d)


def sleep(ctx: threading.Event | None, d: Any) -> None:
    """Sleep for ``d`` (seconds or timedelta); raise CancelledError if ``ctx`` is set first."""
    seconds = max(_seconds(d), 0.0)
    if ctx is None:
        time.sleep(seconds)
        return
    if ctx.wait(seconds):
        raise CancelledError("context canceled")


def _system_now() -> datetime:
    return datetime.now(timezone.utc)


_now_fn: Callable[[], datetime] = _system_now


def now() -> datetime:
    """Return the current time, or the mocked time while a mock is active."""
    return _now_fn()


class _MockedNow:
    def __init__(self, previous: Callable[[], datetime]) -> None:
        self._previous = previous

    def close(self) -> None:
        global _now_fn
        _now_fn = self._previous

    def __enter__(self) -> "_MockedNow":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


def mock_now(fn: Callable[[], datetime]) -> _MockedNow:
    """Make :func:`now` call ``fn`` until the returned object is closed."""
    global _now_fn
    mocked = _MockedNow(_now_fn)
    _now_fn = fn
    return mocked


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.astimezone(timezone.utc)


def _to_ns(dt: datetime) -> int:
    return (_aware(dt) - _EPOCH) // _MICROSECOND * 1000


def _from_ns(ns: int) -> datetime:
    return _EPOCH + timedelta(microseconds=ns // 1000)


def _parse_int(text: bytes | str) -> int:
    if isinstance(text, (bytes, bytearray)):
        text = text.decode()
    if not _INT_RE.fullmatch(text):
        raise ValueError(f"invalid integer {text!r}")
    return int(text)


def _to_ns_duration(d: timedelta | int) -> int:
    if isinstance(d, timedelta):
        return (d.days * 86400 + d.seconds) * 10**9 + d.microseconds * 1000
    return int(d)


@dataclass(frozen=True)
class Timestamp:
    """A time serialised as whole seconds since the Unix epoch."""

    time: datetime

    def marshal_text(self) -> bytes:
        return str((_aware(self.time) - _EPOCH) // _SECOND).encode()

    @classmethod
    def unmarshal_text(cls, text: bytes | str) -> "Timestamp":
        return cls(_EPOCH + timedelta(seconds=_parse_int(text)))

    def marshal_json(self) -> bytes:
        return self.marshal_text()

    @classmethod
    def unmarshal_json(cls, text: bytes | str) -> "Timestamp":
        return cls.unmarshal_text(text)


@dataclass(frozen=True)
class TimestampNano:
    """A time serialised as nanoseconds since the Unix epoch."""

    time: datetime

    def marshal_text(self) -> bytes:
        return str(_to_ns(self.time)).encode()

    @classmethod
    def unmarshal_text(cls, text: bytes | str) -> "TimestampNano":
        return cls(_from_ns(_parse_int(text)))

    def marshal_json(self) -> bytes:
        return self.marshal_text()

    @classmethod
    def unmarshal_json(cls, text: bytes | str) -> "TimestampNano":
        return cls.unmarshal_text(text)


@dataclass
class Stopwatch:
    """A tree of timed steps; starting a step ends the previous sibling."""

    id: str = ""
    created_at: datetime = field(default_factory=now)
    done_at: datetime | None = None
    children: list["Stopwatch"] = field(default_factory=list)

    def new_child(self, id: str) -> "Stopwatch":
        """Start a child step, ending the previous one."""
        child = Stopwatch(id)
        self._propagate_done(child.created_at)
        self.children.append(child)
        return child

    def _propagate_done(self, done_at: datetime) -> None:
        if not self.children:
            return
        last = self.children[-1]
        if last.done_at is None:
            last.done_at = done_at
        last._propagate_done(done_at)

    def done(self) -> None:
        """Mark this step, and its running descendants, as done."""
        if self.done_at is None:
            self.done_at = now()
        self._propagate_done(self.done_at)

    def find_child(self, id: str, *args: str) -> "Stopwatch | None":
        """Return the descendant reached through the given ids, or None."""
        return self._child([id, *args])

    def _child(self, ids: list[str]) -> "Stopwatch | None":
        for idx, id in enumerate(ids):
            for child in self.children:
                if child.id != id:
                    continue
                if idx == len(ids) - 1:
                    return child
                return child._child(ids[idx:])
        return None

    def duration(self) -> timedelta:
        """Return the elapsed time, up to now if the step is not done."""
        if self.done_at is not None:
            return self.done_at - self.created_at
        return now() - self.created_at

    def merge(self, i: "Stopwatch") -> None:
        """Append the children of ``i`` to this stopwatch."""
        if not i.children:
            return
        self._propagate_done(i.children[0].created_at)
        self.children.extend(i.children)

    def dump(self) -> str:
        """Return an indented, human-readable summary of the tree."""
        return self._dump("", self.created_at)

    def _dump(self, indent: str, root_created_at: datetime) -> str:
        elapsed = duration_minimalist_format(self.duration())
        if indent:
            offset = duration_minimalist_format(self.created_at - root_created_at)
            lines = [f"{indent}[{offset}]{self.id}: {elapsed}"]
        else:
            lines = [elapsed]
        lines.extend(c._dump(indent + "  ", root_created_at) for c in self.children)
        return "\n".join(lines)

    def _to_dict(self) -> dict[str, Any]:
        return {
            "children": [c._to_dict() for c in self.children],
            "created_at": _to_ns(self.created_at),
            "done_at": 0 if self.done_at is None else _to_ns(self.done_at),
            "id": self.id,
        }

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "Stopwatch":
        created = data.get("created_at", 0)
        done = data.get("done_at", 0)
        if not isinstance(created, int) or not isinstance(done, int):
            raise ValueError("timestamps must be integers")
        return cls(
            id=data.get("id", ""),
            created_at=_from_ns(created),
            done_at=None if done == 0 else _from_ns(done),
            children=[cls._from_dict(c) for c in data.get("children") or []],
        )

    def marshal_json(self) -> bytes:
        return json.dumps(self._to_dict(), separators=(",", ":")).encode()

    @classmethod
    def unmarshal_json(cls, text: bytes | str) -> "Stopwatch":
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("stopwatch JSON must be an object")
        return cls._from_dict(data)


def duration_minimalist_format(d: timedelta | int) -> str:
    """Format a duration (timedelta or nanoseconds) in its largest whole unit."""
    ns = _to_ns_duration(d)
    if ns < 1_000:
        return f"{ns}ns"
    if ns < 1_000_000:
        return f"{ns // 1_000}µs"
    if ns < 1_000_000_000:
        return f"{ns // 1_000_000}ms"
    return f"{ns // 1_000_000_000}s"