"""Collects field validation errors."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Validator:
    """Accumulates the first error message reported for each key."""

    errors: dict[str, str] = field(default_factory=dict)

    def valid(self) -> bool:
        return not self.errors

    def add_error(self, key: str, message: str) -> None:
        self.errors.setdefault(key, message)

    def check(self, ok: bool, key: str, message: str) -> None:
        if not ok:
            self.add_error(key, message)