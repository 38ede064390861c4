"""Logger levels and an adapter that turns partial loggers into complete ones."""

from __future__ import annotations

import enum
from typing import Any, Callable, Optional

__all__ = [
    "LoggerLevel",
    "CompleteLogger",
    "logger_level_from_string",
    "adapt_std_logger",
    "adapt_test_logger",
]


class LoggerLevel(enum.IntEnum):
    """Severity of a log message."""

    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3
    FATAL = 4

    def __str__(self) -> str:
        return self.name.lower()

    def marshal_text(self) -> bytes:
        """Return the textual form of the level as bytes."""
        return str(self).encode()

    @classmethod
    def unmarshal_text(cls, b: bytes | str) -> "LoggerLevel":
        """Build a level from its textual form; unknown text yields INFO."""
        if isinstance(b, (bytes, bytearray)):
            b = b.decode()
        return logger_level_from_string(b)


_LEVELS_BY_NAME = {
    "debug": LoggerLevel.DEBUG,
    "error": LoggerLevel.ERROR,
    "fatal": LoggerLevel.FATAL,
    "warn": LoggerLevel.WARN,
}


def logger_level_from_string(s: str) -> LoggerLevel:
    """Return the level named by ``s``, defaulting to INFO."""
    return _LEVELS_BY_NAME.get(s, LoggerLevel.INFO)


_METHOD_BY_LEVEL = {
    LoggerLevel.DEBUG: "debug",
    LoggerLevel.ERROR: "error",
    LoggerLevel.FATAL: "fatal",
    LoggerLevel.WARN: "warn",
}


def _method_for(level: Any) -> str:
    return _METHOD_BY_LEVEL.get(level, "info")


def _sprint(args: tuple[Any, ...]) -> str:
    """Join operands, adding a space between two that are both non-strings."""
    parts: list[str] = []
    previous: Any = None
    for index, arg in enumerate(args):
        if index > 0 and not isinstance(arg, str) and not isinstance(previous, str):
            parts.append(" ")
        parts.append(str(arg))
        previous = arg
    return "".join(parts)


class CompleteLogger:
    """A logger offering every severity, context and write method.

    Everything funnels into ``print``/``printf``, which hand the formatted
    message to ``output`` when one is given and discard it otherwise.
    Adapted loggers replace some of these methods per instance.
    """

    def __init__(self, output: Optional[Callable[[str], Any]] = None) -> None:
        self._output = output

    def print(self, *args: Any) -> None:
        if self._output is not None:
            self._output(_sprint(args))

    def printf(self, format: str, *args: Any) -> None:
        if self._output is not None:
            self._output(format % args if args else format)

    def debug(self, *args: Any) -> None:
        self.print(*args)

    def debugf(self, format: str, *args: Any) -> None:
        self.printf(format, *args)

    def debug_c(self, ctx: Any, *args: Any) -> None:
        self.debug(*args)

    def debug_cf(self, ctx: Any, format: str, *args: Any) -> None:
        self.debugf(format, *args)

    def error(self, *args: Any) -> None:
        self.print(*args)

    def errorf(self, format: str, *args: Any) -> None:
        self.printf(format, *args)

    def error_c(self, ctx: Any, *args: Any) -> None:
        self.error(*args)

    def error_cf(self, ctx: Any, format: str, *args: Any) -> None:
        self.errorf(format, *args)

    def fatal(self, *args: Any) -> None:
        self.print(*args)

    def fatalf(self, format: str, *args: Any) -> None:
        self.printf(format, *args)

    def fatal_c(self, ctx: Any, *args: Any) -> None:
        self.fatal(*args)

    def fatal_cf(self, ctx: Any, format: str, *args: Any) -> None:
        self.fatalf(format, *args)

    def info(self, *args: Any) -> None:
        self.print(*args)

    def infof(self, format: str, *args: Any) -> None:
        self.printf(format, *args)

    def info_c(self, ctx: Any, *args: Any) -> None:
        self.info(*args)

    def info_cf(self, ctx: Any, format: str, *args: Any) -> None:
        self.infof(format, *args)

    def warn(self, *args: Any) -> None:
        self.print(*args)

    def warnf(self, format: str, *args: Any) -> None:
        self.printf(format, *args)

    def warn_c(self, ctx: Any, *args: Any) -> None:
        self.warn(*args)

    def warn_cf(self, ctx: Any, format: str, *args: Any) -> None:
        self.warnf(format, *args)

    def write(self, level: Any, *args: Any) -> None:
        getattr(self, _method_for(level))(*args)

    def writef(self, level: Any, format: str, *args: Any) -> None:
        getattr(self, _method_for(level) + "f")(format, *args)

    def write_c(self, ctx: Any, level: Any, *args: Any) -> None:
        getattr(self, _method_for(level) + "_c")(ctx, *args)

    def write_cf(self, ctx: Any, level: Any, format: str, *args: Any) -> None:
        getattr(self, _method_for(level) + "_cf")(ctx, format, *args)


_STD_METHODS = ("fatal", "fatalf", "print", "printf")
_SEVERITY_METHODS = (
    "debug", "debugf", "error", "errorf", "info", "infof", "warn", "warnf",
)
_SEVERITY_CTX_METHODS = (
    "debug_c", "debug_cf", "error_c", "error_cf", "fatal_c",
    "fatal_cf", "info_c", "info_cf", "warn_c", "warn_cf",
)
_WRITE_METHODS = ("write", "writef")
_WRITE_CTX_METHODS = ("write_c", "write_cf")
_COMPLETE_METHODS = (
    _STD_METHODS + _SEVERITY_METHODS + _SEVERITY_CTX_METHODS
    + _WRITE_METHODS + _WRITE_CTX_METHODS
)
_TEST_METHODS = ("error", "errorf", "fatal", "fatalf", "log", "logf")


def _has_all(obj: Any, names: tuple[str, ...]) -> bool:
    return all(callable(getattr(obj, name, None)) for name in names)


def _is_complete(obj: Any) -> bool:
    return isinstance(obj, CompleteLogger) or _has_all(obj, _COMPLETE_METHODS)


def adapt_std_logger(i: Any) -> Any:
    """Wrap a logger with fatal/print methods so it offers every method.

    A logger that already offers every method is returned unchanged.
    """
    if i is not None and _is_complete(i):
        return i
    logger = CompleteLogger()
    if i is None:
        return logger
    groups = [
        _STD_METHODS,
        _SEVERITY_METHODS,
        _SEVERITY_CTX_METHODS,
        _WRITE_METHODS,
        _WRITE_CTX_METHODS,
    ]
    for index, names in enumerate(groups):
        if index == 0 or _has_all(i, names):
            for name in names:
                setattr(logger, name, getattr(i, name))
    return logger


def adapt_test_logger(i: Any) -> Any:
    """Wrap a test logger (error/fatal/log methods) so it offers every method."""
    if i is not None and _is_complete(i):
        return i
    logger = CompleteLogger()
    if i is None:
        return logger
    logger.error = i.error
    logger.errorf = i.errorf
    logger.fatal = i.fatal
    logger.fatalf = i.fatalf
    logger.print = i.log
    logger.printf = i.logf
    for name in ("debug", "info", "warn"):
        setattr(logger, name, i.log)
        setattr(logger, name + "f", i.logf)
    return logger