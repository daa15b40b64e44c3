"""Matcher engine: apply rules to a single source unit.

Every rule application yields a :class:`MatchOutcome` instead of raising, so
the orchestrator can isolate a failing rule or a slow file without losing the
rest of the scan.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from .errors import PatternError, PatternTimeoutError
from .result import Finding
from .rules import Rule
from .source import SourceUnit

logger = logging.getLogger(__name__)


class MatchStatus(str, Enum):
    MATCHED = "matched"
    NO_MATCH = "no-match"
    ERROR = "error"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class MatchOutcome:
    """Result of applying one rule to one unit."""

    rule: Rule
    status: MatchStatus
    findings: Tuple[Finding, ...] = ()
    error: Optional[PatternError | PatternTimeoutError] = None


@dataclass
class UnitMatch:
    """All outcomes for one unit, in rule order."""

    unit: SourceUnit
    outcomes: List[MatchOutcome] = field(default_factory=list)

    @property
    def findings(self) -> List[Finding]:
        collected = [finding for outcome in self.outcomes for finding in outcome.findings]
        return sort_findings(collected, [outcome.rule for outcome in self.outcomes])

    @property
    def errors(self) -> List[PatternError | PatternTimeoutError]:
        return [outcome.error for outcome in self.outcomes if outcome.error is not None]

    @property
    def timed_out(self) -> bool:
        return any(outcome.status is MatchStatus.TIMEOUT for outcome in self.outcomes)


def apply_rule(unit: SourceUnit, rule: Rule, deadline: Optional[float] = None, timeout: float = 0.0) -> MatchOutcome:
    """Apply ``rule`` to ``unit`` and capture the result as an outcome."""

    try:
        spans = rule.detector.find(unit, deadline)
    except TimeoutError:
        logger.warning("Rule %s timed out on %s", rule.id, unit.path)
        return MatchOutcome(rule, MatchStatus.TIMEOUT, error=PatternTimeoutError(unit.path, rule.id, timeout))
    except (SyntaxError, ValueError) as exc:
        logger.warning("Rule %s failed on %s: %s", rule.id, unit.path, exc)
        return MatchOutcome(rule, MatchStatus.ERROR, error=PatternError(unit.path, rule.id, str(exc)))
    except Exception as exc:
        logger.warning("Rule %s raised on %s", rule.id, unit.path, exc_info=True)
        reason = f"{type(exc).__name__}: {exc}"
        return MatchOutcome(rule, MatchStatus.ERROR, error=PatternError(unit.path, rule.id, reason))

    if not spans:
        return MatchOutcome(rule, MatchStatus.NO_MATCH)
    findings = tuple(
        Finding(
            rule_id=rule.id,
            category=rule.category,
            path=unit.path,
            start_line=span.start_line,
            end_line=span.end_line,
            severity=rule.severity,
            message=rule.description,
            remediation=rule.remediation,
            evidence=span.evidence,
        )
        for span in spans
    )
    return MatchOutcome(rule, MatchStatus.MATCHED, findings)


def evaluate(
    unit: SourceUnit,
    rules: Sequence[Rule],
    timeout: Optional[float] = None,
    started: Optional[float] = None,
) -> UnitMatch:
    """Apply ``rules`` in order within a ``timeout`` budget; stop at the first timeout.

    The budget is shared by all rules for the unit and counts from
    ``started`` (a ``time.monotonic`` value, default now). Findings from rules
    completed before a timeout are kept. A failure shared by several rules,
    such as a Python file that does not parse, is reported once.
    """

    deadline = None
    if timeout is not None:
        deadline = (time.monotonic() if started is None else started) + timeout
    result = UnitMatch(unit)
    reported = set()
    for rule in rules:
        outcome = apply_rule(unit, rule, deadline, timeout or 0.0)
        if isinstance(outcome.error, PatternError):
            if outcome.error.reason in reported:
                outcome = replace(outcome, error=None)
            else:
                reported.add(outcome.error.reason)
        result.outcomes.append(outcome)
        if outcome.status is MatchStatus.TIMEOUT:
            break
    return result


def match(unit: SourceUnit, rules: Sequence[Rule]) -> List[Finding]:
    """Return the findings of ``rules`` on ``unit`` in line, then rule order."""

    return evaluate(unit, rules).findings


def sort_findings(findings: Sequence[Finding], rules: Sequence[Rule]) -> List[Finding]:
    """Order findings by file, line, then rule registration order."""

    order = {rule.id: idx for idx, rule in enumerate(rules)}
    return sorted(
        findings,
        key=lambda finding: (finding.path, finding.start_line, order.get(finding.rule_id, len(order)), finding.end_line),
    )
