"""Detector kinds that back a rule's pattern.

Each kind is a class registered in :data:`DETECTOR_KINDS` under the name used
by the ``kind`` key of a rule's ``detector`` mapping. Adding a kind means adding
a class here; the matcher engine never branches on it.
"""

from __future__ import annotations

import ast
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple, Type

import regex

from vulnscan.source import SourceUnit

EVIDENCE_LIMIT = 200

REGEX_FLAGS = {
    "ignorecase": regex.IGNORECASE,
    "multiline": regex.MULTILINE,
    "dotall": regex.DOTALL,
    "verbose": regex.VERBOSE,
}


@dataclass(frozen=True)
class Span:
    """Line range of a single detector hit."""

    start_line: int
    end_line: int
    evidence: str


class Detector(Protocol):
    """Protocol implemented by all detector kinds."""

    kind: str

    def find(self, unit: SourceUnit, deadline: Optional[float] = None) -> List[Span]:
        """Return every hit in ``unit``.

        Raises ``TimeoutError`` once ``deadline`` (a ``time.monotonic`` value)
        has passed.
        """


def _remaining(deadline: Optional[float]) -> Optional[float]:
    if deadline is None:
        return None
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        raise TimeoutError("detector deadline exceeded")
    return remaining


def _evidence(text: str) -> str:
    return text.strip()[:EVIDENCE_LIMIT]


class RegexDetector:
    """Match a regular expression against the whole file text.

    ``unless`` suppresses a hit when it matches the full lines covered by
    that hit.
    """

    kind = "regex"

    def __init__(self, pattern: str, flags: Tuple[str, ...] = (), unless: Optional[str] = None) -> None:
        self.pattern = pattern
        self.flags = flags
        self.unless = unless
        compiled_flags = 0
        for name in flags:
            try:
                compiled_flags |= REGEX_FLAGS[name]
            except KeyError:
                raise ValueError(f"unknown regex flag {name!r}") from None
        try:
            self._compiled = regex.compile(pattern, compiled_flags)
            self._unless = regex.compile(unless, compiled_flags) if unless else None
        except regex.error as exc:
            raise ValueError(f"invalid pattern: {exc}") from exc

    @classmethod
    def from_spec(cls, spec: Mapping[str, Any]) -> "RegexDetector":
        pattern = spec.get("pattern")
        if not isinstance(pattern, str) or not pattern:
            raise ValueError("regex detector requires a non-empty 'pattern'")
        flags = spec.get("flags") or ()
        if isinstance(flags, str):
            flags = (flags,)
        unless = spec.get("unless")
        if unless is not None and not isinstance(unless, str):
            raise ValueError("'unless' must be a string")
        return cls(pattern, tuple(str(flag).lower() for flag in flags), unless)

    def find(self, unit: SourceUnit, deadline: Optional[float] = None) -> List[Span]:
        spans: List[Span] = []
        matches = self._compiled.finditer(unit.text, concurrent=True, timeout=_remaining(deadline))
        for match in matches:
            start_line = unit.line_of(match.start())
            end_line = unit.line_of(max(match.start(), match.end() - 1))
            if self._unless is not None:
                begin, end = unit.line_bounds(start_line, end_line)
                window = unit.text[begin:end]
                if self._unless.search(window, concurrent=True, timeout=_remaining(deadline)):
                    continue
            spans.append(Span(start_line, end_line, _evidence(unit.line_text(start_line))))
            _remaining(deadline)
        return spans


class PythonCallDetector:
    """Match calls to named callables in Python source by AST shape.

    ``missing`` restricts hits to calls lacking that keyword argument, and
    ``keywords`` to calls passing any of the given constant keyword values.
    """

    kind = "python-call"

    def __init__(
        self,
        callees: Tuple[str, ...],
        missing: Optional[str] = None,
        keywords: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.callees = frozenset(callees)
        self.missing = missing
        self.keywords = dict(keywords or {})

    @classmethod
    def from_spec(cls, spec: Mapping[str, Any]) -> "PythonCallDetector":
        callees = spec.get("callees")
        if isinstance(callees, str):
            callees = [callees]
        if not isinstance(callees, list) or not callees:
            raise ValueError("python-call detector requires a non-empty 'callees' list")
        missing = spec.get("missing")
        if missing is not None and not isinstance(missing, str):
            raise ValueError("'missing' must be a keyword name")
        keywords = spec.get("keywords") or {}
        if not isinstance(keywords, dict):
            raise ValueError("'keywords' must be a mapping of keyword to constant value")
        return cls(tuple(str(name) for name in callees), missing, keywords)

    def find(self, unit: SourceUnit, deadline: Optional[float] = None) -> List[Span]:
        _remaining(deadline)
        tree = unit.parse_python()
        spans: List[Span] = []
        for node in ast.walk(tree):
            if not isinstance(node, ast.Call):
                continue
            _remaining(deadline)
            if _dotted_name(node.func) not in self.callees:
                continue
            if not self._keywords_match(node):
                continue
            end_line = getattr(node, "end_lineno", None) or node.lineno
            spans.append(Span(node.lineno, end_line, _evidence(unit.line_text(node.lineno))))
        spans.sort(key=lambda span: (span.start_line, span.end_line))
        return spans

    def _keywords_match(self, node: ast.Call) -> bool:
        passed = {keyword.arg: keyword.value for keyword in node.keywords if keyword.arg}
        if self.missing is not None and self.missing in passed:
            return False
        if not self.keywords:
            return True
        for name, expected in self.keywords.items():
            value = passed.get(name)
            if isinstance(value, ast.Constant) and value.value == expected:
                return True
        return False


def _dotted_name(func: ast.AST) -> Optional[str]:
    parts: List[str] = []
    while isinstance(func, ast.Attribute):
        parts.append(func.attr)
        func = func.value
    if not isinstance(func, ast.Name):
        return None
    parts.append(func.id)
    return ".".join(reversed(parts))


DETECTOR_KINDS: Dict[str, Type[Any]] = {
    RegexDetector.kind: RegexDetector,
    PythonCallDetector.kind: PythonCallDetector,
}


def build_detector(spec: object) -> Detector:
    """Compile a detector from its mapping form, raising ``ValueError`` if invalid."""

    if isinstance(spec, str):
        spec = {"kind": RegexDetector.kind, "pattern": spec}
    if not isinstance(spec, Mapping):
        raise ValueError("detector must be a mapping or a pattern string")
    kind = str(spec.get("kind", RegexDetector.kind))
    try:
        detector_cls = DETECTOR_KINDS[kind]
    except KeyError:
        raise ValueError(f"unknown detector kind {kind!r}") from None
    return detector_cls.from_spec(spec)
