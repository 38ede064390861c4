"""Translations loaded from JSON files, with language negotiation for WSGI apps.

A *ctx* argument is a mapping such as a WSGI environ; the middleware stores
the negotiated language in it.
"""

from __future__ import annotations

import json
import os
import threading
from collections.abc import Mapping
from typing import Any, Callable, Iterable

__all__ = ["LANGUAGE_CONTEXT_KEY", "Translator"]

LANGUAGE_CONTEXT_KEY = "kitbag.translator.language"


def _language_from_context(ctx: Any) -> str:
    if not isinstance(ctx, Mapping):
        return ""
    value = ctx.get(LANGUAGE_CONTEXT_KEY)
    return value if isinstance(value, str) else ""


class Translator:
    """Looks up translated strings by language and dotted key."""

    def __init__(
        self, default_language: str = "", valid_languages: Iterable[str] = ()
    ) -> None:
        self._default_language = default_language
        self._lock = threading.Lock()
        self._translations: dict[str, str] = {}
        self._valid_languages: set[str] = set(valid_languages)

    def parse_dir(self, dir_path: str = "") -> None:
        """Load every ``.json`` file below ``dir_path`` (default: working directory).

        Keys from files in sub-directories are prefixed with their path.
        """
        if not dir_path:
            dir_path = os.getcwd()
        dir_path = os.path.normpath(dir_path)
        if not os.path.exists(dir_path):
            raise FileNotFoundError(f"no such directory: {dir_path}")

        def on_walk_error(error: OSError) -> None:
            message = (
                f"walking {dir_path} has an input error for path "
                f"{error.filename}: {error.strerror}"
            )
            raise OSError(error.errno, message, error.filename) from error

        for root, dirnames, filenames in os.walk(dir_path, onerror=on_walk_error):
            dirnames.sort()
            for name in sorted(filenames):
                if os.path.splitext(name)[1] != ".json":
                    continue
                self.parse_file(dir_path, os.path.join(root, name))

    def parse_file(self, dir_path: str, path: str) -> None:
        """Load the translations of one JSON file found below ``dir_path``."""
        with self._lock:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"{path} does not hold a JSON object")

            language = os.path.splitext(os.path.basename(path))[0]
            self._valid_languages.add(language)

            prefix = language
            parent = os.path.dirname(path)
            if parent != dir_path:
                relative = parent.removeprefix(dir_path)
                parts = [p for p in relative.split(os.sep) if p]
                prefix += "." + ".".join(parts)

            self._parse(data, prefix)

    def _parse(self, data: dict[str, Any], prefix: str) -> None:
        for key, value in data.items():
            full = f"{prefix}.{key}"
            if isinstance(value, str):
                self._translations[full] = value
            elif isinstance(value, dict):
                self._parse(value, full)

    def http_middleware(self, app: Callable) -> Callable:
        """Wrap a WSGI app so the Accept-Language header picks the language."""

        def wrapped(environ: dict, start_response: Callable) -> Any:
            header = environ.get("HTTP_ACCEPT_LANGUAGE", "")
            if header:
                environ[LANGUAGE_CONTEXT_KEY] = self.parse_accept_language(header)
            return app(environ, start_response)

        return wrapped

    def parse_accept_language(self, header: str) -> str:
        """Return the valid language with the highest weight in ``header``, or ""."""
        by_weight: dict[float, list[str]] = {}
        for chunk in header.strip().split(","):
            chunk = chunk.strip()
            if not chunk:
                continue
            parts = chunk.split(";")
            weight = 1.0
            if len(parts) > 1:
                param = parts[1].strip()
                if param.startswith("q="):
                    try:
                        weight = float(param[2:])
                    except ValueError:
                        weight = 1.0
            by_weight.setdefault(weight, []).append(parts[0].strip())

        for weight in sorted(by_weight, reverse=True):
            for language in by_weight[weight]:
                if language in self._valid_languages:
                    return language
        return ""

    def _language(self, language: str) -> str:
        return language or self._default_language

    def language_ctx(self, ctx: Any) -> str:
        """Return the language stored in ``ctx``, or the default language."""
        return self._language(_language_from_context(ctx))

    def translate(self, language: str, key: str) -> str:
        """Translate ``key``, falling back to the default language, then to the full key."""
        with self._lock:
            k1 = f"{self._language(language)}.{key}"
            if k1 in self._translations:
                return self._translations[k1]
            k2 = f"{self._default_language}.{key}"
            if k2 in self._translations:
                return self._translations[k2]
            return k1

    def translatef(self, language: str, key: str, *args: Any) -> str:
        """Translate ``key`` and fill its %-placeholders with ``args``."""
        template = self.translate(language, key)
        return template % args if args else template

    def translate_ctx(self, ctx: Any, key: str) -> str:
        """Same as :meth:`translate_c`."""
        return self.translate_c(ctx, key)

    def translate_c(self, ctx: Any, key: str) -> str:
        """Translate ``key`` into the language stored in ``ctx``."""
        return self.translate(_language_from_context(ctx), key)

    def translate_cf(self, ctx: Any, key: str, *args: Any) -> str:
        """Translate ``key`` into the language stored in ``ctx`` and format it."""
        return self.translatef(_language_from_context(ctx), key, *args)