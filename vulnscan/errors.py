"""Exception taxonomy for the scanner.

Errors confined to one file or one rule are recovered by the orchestrator and
surface as :class:`~vulnscan.result.ScanError` entries; the others abort the
run before any file is processed.
"""

from __future__ import annotations

from typing import Optional


class VulnscanError(Exception):
    """Base class for all scanner errors."""


class ConfigError(VulnscanError, ValueError):
    """Invalid configuration or command-line input."""


class RuleLoadError(VulnscanError):
    """A rule definition could not be loaded.

    Raised for a single malformed rule (which the registry skips) and for a
    registry that ends up with no usable rule at all (which is fatal).
    """

    def __init__(self, message: str, rule_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.rule_id = rule_id


class FileReadError(VulnscanError):
    """A source file could not be read or decoded."""

    kind = "read"

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class PatternTimeoutError(VulnscanError):
    """Matching a file ran past its time budget."""

    kind = "timeout"

    def __init__(self, path: str, rule_id: Optional[str], timeout: float) -> None:
        target = f" while applying {rule_id}" if rule_id else ""
        super().__init__(f"{path}: matching exceeded {timeout:g}s{target}")
        self.path = path
        self.rule_id = rule_id
        self.timeout = timeout


class PatternError(VulnscanError):
    """A detector raised while being applied to a file."""

    kind = "pattern"

    def __init__(self, path: str, rule_id: str, reason: str) -> None:
        super().__init__(f"{path}: rule {rule_id} failed: {reason}")
        self.path = path
        self.rule_id = rule_id
        self.reason = reason
