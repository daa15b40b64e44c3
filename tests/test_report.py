import json

import pytest

from vulnscan.report import format_report, format_summary_table
from vulnscan.result import Finding, ScanError, ScanReport
from vulnscan.rules import Category
from vulnscan.severity import Severity


def build_report():
    report = ScanReport(root="src", files_scanned=2, rules_loaded=3)
    report.add_finding(
        Finding(
            rule_id="SESS001",
            category=Category.SESSION,
            path="app.js",
            start_line=4,
            end_line=4,
            severity=Severity.WARN,
            message="Cookie without HttpOnly",
            remediation="Pass httpOnly: true.",
            evidence="res.cookie('sid', id)",
        )
    )
    report.add_finding(
        Finding(
            rule_id="INJ001",
            category=Category.INJECTION,
            path="app.js",
            start_line=9,
            end_line=10,
            severity=Severity.CRITICAL,
            message="SQL built by string concatenation",
            remediation="Use parameterized queries.",
        )
    )
    report.add_error(ScanError(kind="read", path="b.js", message="b.js: Permission denied"))
    return report


def test_summary_table_counts():
    table = format_summary_table(build_report())

    assert "Scan Summary" in table
    assert "critical   |     1" in table
    assert "Errors    : 1" in table
    assert "INCOMPLETE" not in table


def test_text_report_groups_by_category_in_declaration_order():
    text = format_report(build_report(), "text")

    injection = text.index("Injection (1)")
    session = text.index("Session Management (1)")
    assert injection < session
    assert "app.js:9-10" in text
    assert "Fix: Use parameterized queries." in text
    assert "[read] b.js: Permission denied" in text


def test_json_report_round_trips_summary():
    data = json.loads(format_report(build_report(), "json"))

    assert data["summary"] == {"critical": 1, "warn": 1, "info": 0, "total": 2}
    assert data["categories"] == {"injection": 1, "session": 1}
    assert data["findings"][0]["rule_id"] == "SESS001"
    assert data["findings"][1]["severity"] == "critical"
    assert data["errors"][0]["kind"] == "read"
    assert data["complete"] is True


def test_sarif_report(builtin_registry):
    data = json.loads(format_report(build_report(), "sarif", builtin_registry))

    run = data["runs"][0]
    assert data["version"] == "2.1.0"
    assert [rule["id"] for rule in run["tool"]["driver"]["rules"]] == ["SESS001", "INJ001"]
    assert "CWE-89" in run["tool"]["driver"]["rules"][1]["properties"]["tags"]
    assert [result["level"] for result in run["results"]] == ["warning", "error"]
    region = run["results"][1]["locations"][0]["physicalLocation"]["region"]
    assert (region["startLine"], region["endLine"]) == (9, 10)


def test_incomplete_report_is_flagged():
    report = build_report()
    report.complete = False

    assert "INCOMPLETE" in format_summary_table(report)
    assert json.loads(format_report(report, "json"))["complete"] is False


def test_unknown_style_is_rejected():
    with pytest.raises(ValueError, match="Unknown report style"):
        format_report(build_report(), "xml")


def test_exit_code_threshold():
    report = build_report()

    assert report.exit_code() == 1
    assert report.exit_code(Severity.CRITICAL) == 1
    assert ScanReport().exit_code() == 0
