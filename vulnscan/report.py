"""Render scan reports as console text, JSON or SARIF."""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional

from . import __version__
from .result import ScanReport
from .rules.registry import RuleRegistry
from .severity import Severity

SARIF_SCHEMA = "https://raw.githubusercontent.com/oasis-tcs/sarif-spec/master/Schemata/sarif-schema-2.1.0.json"
SARIF_LEVELS = {
    Severity.CRITICAL: "error",
    Severity.WARN: "warning",
    Severity.INFO: "note",
}


def format_summary_table(report: ScanReport, max_findings: int = 5) -> str:
    """Create a human-readable summary table for console output."""

    lines: List[str] = []
    lines.append("Scan Summary")
    lines.append("=" * 40)
    header = f"{'Severity':<10} | {'Count':>5}"
    lines.append(header)
    lines.append("-" * len(header))
    for severity, count in report.summary.as_rows():
        lines.append(f"{severity:<10} | {count:>5}")
    lines.append("-" * len(header))
    lines.append(f"Files     : {report.files_scanned}")
    lines.append(f"Rules     : {report.rules_loaded}")
    lines.append(f"Findings  : {report.summary.total}")
    lines.append(f"Errors    : {len(report.errors)}")
    if not report.complete:
        lines.append("Status    : INCOMPLETE (scan canceled)")

    findings = report.top_findings(max_findings)
    if findings:
        lines.append("")
        lines.append("Top Findings")
        lines.append("-" * 40)
        for finding in findings:
            lines.append(f"[{finding.severity.value}] {finding.rule_id} {finding.message}")
            lines.append(f"  Location: {finding.path}:{finding.start_line}")
    return "\n".join(lines)


def format_text(report: ScanReport, registry: Optional[RuleRegistry] = None) -> str:
    """Summary table followed by every finding, grouped by category."""

    lines = [format_summary_table(report)]
    for category, findings in report.by_category().items():
        lines.append("")
        title = f"{category.title} ({len(findings)})"
        lines.append(title)
        lines.append("=" * len(title))
        for finding in findings:
            location = f"{finding.path}:{finding.start_line}"
            if finding.end_line != finding.start_line:
                location += f"-{finding.end_line}"
            lines.append(f"[{finding.severity.value}] {finding.rule_id} {location}")
            lines.append(f"  {finding.message}")
            if finding.evidence:
                lines.append(f"  > {finding.evidence}")
            lines.append(f"  Fix: {finding.remediation}")

    if report.errors:
        lines.append("")
        lines.append("Errors")
        lines.append("=" * 6)
        for error in report.errors:
            lines.append(f"[{error.kind}] {error.message}")
    return "\n".join(lines)


def format_json(report: ScanReport, registry: Optional[RuleRegistry] = None) -> str:
    """Report object: ``findings`` plus ``errors``, ``summary`` and ``complete``."""

    return json.dumps(report.to_dict(), indent=2)


def format_sarif(report: ScanReport, registry: Optional[RuleRegistry] = None) -> str:
    """SARIF 2.1.0 log with one rule descriptor per triggered rule."""

    sarif = {
        "$schema": SARIF_SCHEMA,
        "version": "2.1.0",
        "runs": [
            {
                "tool": {
                    "driver": {
                        "name": "vulnscan",
                        "version": __version__,
                        "rules": _sarif_rules(report, registry),
                    }
                },
                "results": _sarif_results(report),
                "invocations": [
                    {
                        "executionSuccessful": report.complete,
                        "toolExecutionNotifications": [
                            {"level": "warning", "message": {"text": error.message}} for error in report.errors
                        ],
                    }
                ],
            }
        ],
    }
    return json.dumps(sarif, indent=2)


def _sarif_rules(report: ScanReport, registry: Optional[RuleRegistry]) -> List[Dict[str, Any]]:
    descriptors: Dict[str, Dict[str, Any]] = {}
    for finding in report.findings:
        if finding.rule_id in descriptors:
            continue
        rule = registry.get(finding.rule_id) if registry is not None else None
        descriptor: Dict[str, Any] = {
            "id": finding.rule_id,
            "shortDescription": {"text": finding.message},
            "help": {"text": finding.remediation},
            "defaultConfiguration": {"level": SARIF_LEVELS[finding.severity]},
            "properties": {"tags": ["security", finding.category.value]},
        }
        if rule is not None:
            if rule.title:
                descriptor["name"] = rule.title
            if rule.references:
                descriptor["properties"]["tags"].extend(rule.references)
        descriptors[finding.rule_id] = descriptor
    return list(descriptors.values())


def _sarif_results(report: ScanReport) -> List[Dict[str, Any]]:
    results = []
    for finding in report.findings:
        results.append(
            {
                "ruleId": finding.rule_id,
                "level": SARIF_LEVELS[finding.severity],
                "message": {"text": finding.message},
                "locations": [
                    {
                        "physicalLocation": {
                            "artifactLocation": {"uri": finding.path, "uriBaseId": "SRCROOT"},
                            "region": {
                                "startLine": finding.start_line,
                                "endLine": finding.end_line,
                                "snippet": {"text": finding.evidence},
                            },
                        }
                    }
                ],
            }
        )
    return results


FORMATTERS: Dict[str, Callable[..., str]] = {
    "text": format_text,
    "json": format_json,
    "sarif": format_sarif,
}


def format_report(report: ScanReport, style: str, registry: Optional[RuleRegistry] = None) -> str:
    """Render ``report`` in ``style``; raises ``ValueError`` for an unknown style."""

    try:
        formatter = FORMATTERS[style]
    except KeyError:
        raise ValueError(f"Unknown report style {style!r}; expected one of: {', '.join(FORMATTERS)}") from None
    return formatter(report, registry)
