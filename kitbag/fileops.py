"""Cancellable file copies and moves, and signal handlers.

A *ctx* argument is a :class:`threading.Event` that signals cancellation
once it is set.
"""

from __future__ import annotations

import os
import signal
import stat
import threading
from concurrent.futures import CancelledError
from typing import Any, BinaryIO, Callable, Iterator

__all__ = [
    "CopyFileFunc",
    "move_file",
    "copy_file",
    "local_copy_file",
    "is_term_signal",
    "term_signal_handler",
    "logger_signal_handler",
]

CopyFileFunc = Callable[[Any, str, os.stat_result, BinaryIO], Any]

_CHUNK_SIZE = 32 * 1024

_TERM_SIGNALS = frozenset(
    sig
    for sig in (
        getattr(signal, name, None)
        for name in ("SIGABRT", "SIGKILL", "SIGINT", "SIGQUIT", "SIGTERM")
    )
    if sig is not None
)


def _check(ctx: threading.Event | None) -> None:
    if ctx is not None and ctx.is_set():
        raise CancelledError("context canceled")


def move_file(ctx: threading.Event | None, dst: str, src: str, f: CopyFileFunc) -> None:
    """Copy ``src`` to ``dst`` with ``f``, then remove ``src``."""
    copy_file(ctx, dst, src, f)
    if os.path.isdir(src) and not os.path.islink(src):
        os.rmdir(src)
    else:
        os.remove(src)


def _walk(root: str) -> Iterator[str]:
    """Yield every path below ``root`` depth first, in lexical order."""
    for name in sorted(os.listdir(root)):
        path = os.path.join(root, name)
        yield path
        if os.path.isdir(path) and not os.path.islink(path):
            yield from _walk(path)


def copy_file(ctx: threading.Event | None, dst: str, src: str, f: CopyFileFunc) -> None:
    """Copy the file or directory ``src`` to ``dst``, each file through ``f``."""
    _check(ctx)
    src_stat = os.stat(src)

    if stat.S_ISDIR(src_stat.st_mode):
        src = os.path.normpath(src)
        for path in _walk(src):
            relative = path[len(src):].lstrip(os.sep)
            copy_file(ctx, os.path.join(dst, relative), path, f)
        return

    with open(src, "rb") as src_file:
        f(ctx, dst, src_stat, src_file)


def local_copy_file(
    ctx: threading.Event | None,
    dst: str,
    src_stat: os.stat_result,
    src_file: BinaryIO,
) -> None:
    """Copy an open file to a local path, creating parent directories."""
    _check(ctx)
    parent = os.path.dirname(dst)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(dst, "wb") as dst_file:
        os.chmod(dst, stat.S_IMODE(src_stat.st_mode))
        while True:
            _check(ctx)
            chunk = src_file.read(_CHUNK_SIZE)
            if not chunk:
                break
            dst_file.write(chunk)


def is_term_signal(s: Any) -> bool:
    """Return whether ``s`` asks the process to terminate."""
    return s in _TERM_SIGNALS


def term_signal_handler(f: Callable[[], Any]) -> Callable[[Any], None]:
    """Return a handler calling ``f`` only on a terminating signal."""

    def handle(s: Any) -> None:
        if is_term_signal(s):
            f()

    return handle


def logger_signal_handler(logger: Any, *args: Any) -> Callable[[Any], None]:
    """Return a handler logging received signals, except those in ``args``."""
    ignored = set(args)

    def handle(s: Any) -> None:
        if s in ignored:
            return
        logger.debugf("received signal %s", s)

    return handle