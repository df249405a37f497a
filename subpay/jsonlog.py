"""Structured JSON-lines logger."""

from __future__ import annotations

import enum
import json
import threading
import traceback
from datetime import datetime, timezone
from typing import Mapping, TextIO


class Level(enum.IntEnum):
    """Severity of a log entry; entries below a logger's minimum are dropped."""

    INFO = 0
    ERROR = 1
    FATAL = 2
    OFF = 3

    @property
    def label(self) -> str:
        return {Level.INFO: "INFO", Level.ERROR: "ERROR", Level.FATAL: "FATAL"}.get(self, "")

    def __str__(self) -> str:
        return self.label


_HTML_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def _encode(entry: dict) -> str:
    text = json.dumps(entry, ensure_ascii=False, separators=(",", ":"))
    return "".join(_HTML_ESCAPES.get(ch, ch) for ch in text)


class Logger:
    """Writes one JSON object per line to a text stream."""

    def __init__(self, out: TextIO, min_level: Level = Level.INFO) -> None:
        self.out = out
        self.min_level = Level(min_level)
        self._lock = threading.Lock()

    def print_info(self, message: str, properties: Mapping[str, str] | None = None) -> int:
        return self._print(Level.INFO, message, properties)

    def print_error(self, err: BaseException | str, properties: Mapping[str, str] | None = None) -> int:
        return self._print(Level.ERROR, str(err), properties)

    def print_fatal(self, err: BaseException | str, properties: Mapping[str, str] | None = None) -> None:
        """Log at FATAL level and terminate with exit status 1."""
        self._print(Level.FATAL, str(err), properties)
        raise SystemExit(1)

    def write(self, message: bytes | str) -> int:
        """Log raw text at ERROR level with no properties."""
        if isinstance(message, (bytes, bytearray)):
            message = bytes(message).decode("utf-8", errors="replace")
        return self._print(Level.ERROR, message, None)

    def _print(self, level: Level, message: str, properties: Mapping[str, str] | None) -> int:
        if level < self.min_level:
            return 0

        entry: dict = {
            "level": level.label,
            "time": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "message": message,
        }
        if properties:
            entry["properties"] = {key: properties[key] for key in sorted(properties)}
        if level >= Level.ERROR:
            entry["trace"] = "".join(traceback.format_stack())

        try:
            line = _encode(entry)
        except (TypeError, ValueError) as exc:
            line = f"{Level.ERROR.label}: unable to marshal log message: {exc}"

        line += "\n"
        with self._lock:
            self.out.write(line)
        return len(line)