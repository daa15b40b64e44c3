"""Core result data structures for the scanner."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import FileReadError, PatternError, PatternTimeoutError
from .rules import Category
from .severity import Severity

SEVERITY_ORDER: Sequence[Severity] = (
    Severity.CRITICAL,
    Severity.WARN,
    Severity.INFO,
)


@dataclass(frozen=True)
class Finding:
    """Capture a single rule match against a source file."""

    rule_id: str
    category: Category
    path: str
    start_line: int
    end_line: int
    severity: Severity
    message: str
    remediation: str
    evidence: str = ""

    @property
    def dedup_key(self) -> Tuple[str, int, str]:
        return (self.path, self.start_line, self.rule_id)

    def to_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["category"] = self.category.value
        data["severity"] = self.severity.value
        return data


@dataclass(frozen=True)
class ScanError:
    """A per-file or per-rule error recovered during the scan."""

    kind: str
    path: str
    message: str
    rule_id: Optional[str] = None

    @classmethod
    def from_exception(cls, exc: FileReadError | PatternTimeoutError | PatternError) -> "ScanError":
        return cls(
            kind=exc.kind,
            path=exc.path,
            message=str(exc),
            rule_id=getattr(exc, "rule_id", None),
        )

    def to_dict(self) -> Dict[str, Optional[str]]:
        return asdict(self)


@dataclass
class Summary:
    """Aggregate finding counts by severity."""

    critical: int = 0
    warn: int = 0
    info: int = 0

    def increment(self, severity: Severity) -> None:
        setattr(self, severity.value, getattr(self, severity.value) + 1)

    def to_dict(self) -> Dict[str, int]:
        data = asdict(self)
        data["total"] = self.total
        return data

    def as_rows(self) -> List[Tuple[str, int]]:
        """Return severity/count pairs ordered for reporting."""

        return [(severity.value, getattr(self, severity.value)) for severity in SEVERITY_ORDER]

    @property
    def total(self) -> int:
        return sum(getattr(self, severity.value) for severity in SEVERITY_ORDER)


@dataclass
class ScanReport:
    """Bundle the ordered findings, recovered errors and summary of one scan."""

    root: str = ""
    summary: Summary = field(default_factory=Summary)
    findings: List[Finding] = field(default_factory=list)
    errors: List[ScanError] = field(default_factory=list)
    files_scanned: int = 0
    rules_loaded: int = 0
    complete: bool = True

    def add_finding(self, finding: Finding) -> None:
        self.summary.increment(finding.severity)
        self.findings.append(finding)

    def add_error(self, error: ScanError) -> None:
        self.errors.append(error)

    def by_category(self) -> Dict[Category, List[Finding]]:
        """Group findings by category, in category declaration order."""

        grouped: Dict[Category, List[Finding]] = {}
        for category in Category:
            items = [finding for finding in self.findings if finding.category is category]
            if items:
                grouped[category] = items
        return grouped

    def findings_at_or_above(self, threshold: Severity) -> List[Finding]:
        return [finding for finding in self.findings if finding.severity.at_least(threshold)]

    def exit_code(self, threshold: Severity = Severity.INFO) -> int:
        return 1 if self.findings_at_or_above(threshold) else 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "root": self.root,
            "complete": self.complete,
            "files_scanned": self.files_scanned,
            "rules_loaded": self.rules_loaded,
            "summary": self.summary.to_dict(),
            "categories": {category.value: len(items) for category, items in self.by_category().items()},
            "findings": [finding.to_dict() for finding in self.findings],
            "errors": [error.to_dict() for error in self.errors],
        }

    def top_findings(self, limit: int = 5) -> List[Finding]:
        """Return findings ordered by severity ranking."""

        severity_rank = {severity: idx for idx, severity in enumerate(SEVERITY_ORDER)}
        ordered = sorted(
            self.findings,
            key=lambda finding: (severity_rank[finding.severity], finding.path, finding.start_line),
        )
        return ordered[:limit]
