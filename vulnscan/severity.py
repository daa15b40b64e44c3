"""Severity definitions for scanner findings."""

from __future__ import annotations

from enum import Enum


class Severity(str, Enum):
    """Enumerate the supported severity levels for findings."""

    CRITICAL = "critical"
    WARN = "warn"
    INFO = "info"

    @property
    def rank(self) -> int:
        """Return an integer ranking used for thresholds and ordering."""

        ordering = {
            Severity.CRITICAL: 2,
            Severity.WARN: 1,
            Severity.INFO: 0,
        }
        return ordering[self]

    def at_least(self, threshold: "Severity") -> bool:
        return self.rank >= threshold.rank

    @classmethod
    def parse(cls, value: object) -> "Severity":
        """Resolve ``value`` case-insensitively, accepting ``warning`` for ``warn``."""

        text = str(value).strip().lower()
        if text == "warning":
            text = "warn"
        return cls(text)
