"""Copying files to a remote host through SSH sessions running scp."""

from __future__ import annotations

import os
import stat
import threading
from concurrent.futures import CancelledError
from typing import Any, BinaryIO, Callable, Protocol

__all__ = ["SSHSession", "SSHSessionFunc", "ssh_copy_file_func"]

_CHUNK_SIZE = 32 * 1024


class SSHSession(Protocol):
    """The part of an SSH session needed to copy files."""

    def run(self, cmd: str) -> None:
        """Run ``cmd`` remotely and wait for it to finish."""

    def start(self, cmd: str) -> None:
        """Start ``cmd`` remotely without waiting for it."""

    def stdin_pipe(self) -> Any:
        """Return a writable binary stream connected to the remote stdin."""

    def wait(self) -> None:
        """Wait for the started command to finish."""


# Returns a session and something to release it: an object with close(),
# a callable, or None.
SSHSessionFunc = Callable[[], "tuple[SSHSession, Any]"]


def _check(ctx: threading.Event | None) -> None:
    if ctx is not None and ctx.is_set():
        raise CancelledError("context canceled")


def _release(closer: Any) -> None:
    if closer is None:
        return
    close = getattr(closer, "close", None)
    if callable(close):
        close()
    elif callable(closer):
        closer()


def ssh_copy_file_func(
    fn: SSHSessionFunc,
) -> Callable[[Any, str, os.stat_result, BinaryIO], None]:
    """Return a copy function sending files with scp over sessions made by ``fn``."""

    def copy(
        ctx: threading.Event | None,
        dst: str,
        src_stat: os.stat_result,
        src_file: BinaryIO,
    ) -> None:
        _check(ctx)
        parent = os.path.normpath(os.path.dirname(dst) or ".")
        escaped = parent.replace(" ", "\\ ")

        session, closer = fn()
        try:
            session.run("mkdir -p " + escaped)
        finally:
            _release(closer)

        session, closer = fn()
        try:
            stdin = session.stdin_pipe()
            closed = False
            try:
                session.start("scp -qt " + escaped)
                perm = stat.S_IMODE(src_stat.st_mode) & 0o777
                header = f"C{perm:04o} {src_stat.st_size} {os.path.basename(dst)}\n"
                stdin.write(header.encode())
                while True:
                    _check(ctx)
                    chunk = src_file.read(_CHUNK_SIZE)
                    if not chunk:
                        break
                    stdin.write(chunk)
                stdin.write(b"\x00")
                closed = True
                stdin.close()
            finally:
                if not closed:
                    stdin.close()
            session.wait()
        finally:
            _release(closer)

    return copy