import threading
import time

import pytest

import vulnscan.scan as scan_module
from vulnscan.config import ScanConfig
from vulnscan.errors import ConfigError, RuleLoadError
from vulnscan.rules import Category, Rule
from vulnscan.rules.detectors import RegexDetector, _remaining
from vulnscan.rules.registry import RuleRegistry
from vulnscan.scan import scan
from vulnscan.severity import Severity


class BusyDetector:
    """Spins until the deadline, like a pathological pattern would."""

    kind = "busy"

    def find(self, unit, deadline=None):
        while True:
            _remaining(deadline)
            time.sleep(0.005)


def make_rule(rule_id, detector, languages=("javascript",)):
    return Rule(
        id=rule_id,
        category=Category.INJECTION,
        description=f"{rule_id} description",
        detector=detector,
        severity=Severity.CRITICAL,
        remediation="Fix it.",
        languages=frozenset(languages),
    )


def write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_scan_vulnerable_fixtures(builtin_registry, fixtures_dir):
    report = scan(fixtures_dir / "vulnerable", registry=builtin_registry)

    hits = {(finding.path, finding.rule_id) for finding in report.findings}
    assert ("app.js", "INJ001") in hits
    assert ("app.js", "INJ004") in hits
    assert ("app.js", "SESS001") in hits
    assert ("handler.py", "DESER001") in hits
    assert ("handler.py", "DESER002") in hits
    assert ("handler.py", "INJ007") in hits
    assert ("handler.py", "CONF004") in hits
    assert ("greet.c", "MEM002") in hits
    assert ("greet.c", "MEM004") in hits
    assert ("profile.php", "INJ001") in hits
    assert report.files_scanned == 4
    assert report.errors == []
    assert report.complete
    assert report.summary.total == len(report.findings)


def test_scan_safe_fixtures_is_clean(builtin_registry, fixtures_dir):
    report = scan(fixtures_dir / "safe", registry=builtin_registry)

    assert report.findings == []
    assert report.files_scanned == 3
    assert report.exit_code() == 0


def test_findings_ordered_by_file_line_and_rule(builtin_registry, fixtures_dir):
    report = scan(fixtures_dir / "vulnerable", registry=builtin_registry)

    keys = [
        (finding.path, finding.start_line, builtin_registry.position(finding.rule_id))
        for finding in report.findings
    ]
    assert keys == sorted(keys)


def test_scan_is_deterministic_across_worker_counts(builtin_registry, fixtures_dir):
    root = fixtures_dir / "vulnerable"

    serial = scan(root, ScanConfig(workers=1), registry=builtin_registry)
    parallel = scan(root, ScanConfig(workers=8), registry=builtin_registry)

    assert serial.to_dict() == parallel.to_dict()


def test_duplicate_hits_on_one_line_are_collapsed(tmp_path):
    write(tmp_path / "a.js", "danger(); danger();\ndanger();\n")
    registry = RuleRegistry([make_rule("R1", RegexDetector(r"danger\("))])

    report = scan(tmp_path, registry=registry)

    assert [(finding.start_line, finding.rule_id) for finding in report.findings] == [(1, "R1"), (2, "R1")]


def test_unreadable_file_is_recorded_and_scan_continues(tmp_path, monkeypatch):
    write(tmp_path / "a.js", "danger();\n")
    write(tmp_path / "b.js", "danger();\n")
    write(tmp_path / "c.js", "danger();\n")
    registry = RuleRegistry([make_rule("R1", RegexDetector(r"danger\("))])
    real_read = scan_module.read_text_file

    def fake_read(path):
        if path.name == "b.js":
            raise PermissionError(13, "Permission denied")
        return real_read(path)

    monkeypatch.setattr(scan_module, "read_text_file", fake_read)

    report = scan(tmp_path, registry=registry)

    assert [error.kind for error in report.errors] == ["read"]
    assert report.errors[0].path == "b.js"
    assert "Permission denied" in report.errors[0].message
    assert [finding.path for finding in report.findings] == ["a.js", "c.js"]
    assert report.files_scanned == 3


def test_undecodable_file_is_a_read_error(tmp_path):
    (tmp_path / "latin.js").write_bytes(b"var s = '\xff\xfe';\n")
    registry = RuleRegistry([make_rule("R1", RegexDetector("var"))])

    report = scan(tmp_path, registry=registry)

    assert report.findings == []
    assert report.errors[0].kind == "read"
    assert report.errors[0].path == "latin.js"


def test_timeout_aborts_file_within_budget(tmp_path):
    write(tmp_path / "slow.js", "danger();\n")
    write(tmp_path / "fast.py", "danger()\n")
    registry = RuleRegistry(
        [
            make_rule("BUSY", BusyDetector()),
            make_rule("R1", RegexDetector(r"danger\("), languages=("javascript", "python")),
        ]
    )
    timeout = 0.3

    started = time.monotonic()
    report = scan(tmp_path, ScanConfig(timeout=timeout), registry=registry)
    elapsed = time.monotonic() - started

    assert elapsed < timeout + 2.0
    assert [(error.kind, error.path, error.rule_id) for error in report.errors] == [("timeout", "slow.js", "BUSY")]
    assert [finding.path for finding in report.findings] == ["fast.py"]


def test_cancelled_scan_returns_incomplete_report(tmp_path):
    write(tmp_path / "a.js", "danger();\n")
    registry = RuleRegistry([make_rule("R1", RegexDetector(r"danger\("))])
    cancel = threading.Event()
    cancel.set()

    report = scan(tmp_path, registry=registry, cancel_event=cancel)

    assert not report.complete
    assert report.files_scanned == 0
    assert report.findings == []


def test_empty_registry_touches_no_file(tmp_path, monkeypatch):
    write(tmp_path / "a.js", "danger();\n")

    def fail_read(path):
        raise AssertionError(f"unexpected read of {path}")

    monkeypatch.setattr(scan_module, "read_text_file", fail_read)

    with pytest.raises(RuleLoadError):
        scan(tmp_path, registry=RuleRegistry([]))


def test_missing_root_is_a_config_error(tmp_path, builtin_registry):
    with pytest.raises(ConfigError):
        scan(tmp_path / "nowhere", registry=builtin_registry)


def test_excludes_language_filter_and_size_limit(tmp_path):
    write(tmp_path / "src" / "a.js", "danger();\n")
    write(tmp_path / "src" / "b.py", "danger()\n")
    write(tmp_path / "node_modules" / "lib.js", "danger();\n")
    write(tmp_path / "vendor" / "big.js", "danger();\n" + "x" * 200)
    write(tmp_path / "notes.txt", "danger();\n")
    registry = RuleRegistry([make_rule("R1", RegexDetector(r"danger\("), languages=("*",))])

    report = scan(tmp_path, ScanConfig(max_file_size_bytes=100), registry=registry)
    assert [finding.path for finding in report.findings] == ["src/a.js", "src/b.py"]

    report = scan(tmp_path, ScanConfig(languages=("python",)), registry=registry)
    assert [finding.path for finding in report.findings] == ["src/b.py"]

    report = scan(tmp_path, ScanConfig(exclude=("src",)), registry=registry)
    assert [finding.path for finding in report.findings] == ["node_modules/lib.js", "vendor/big.js"]


def test_single_file_root(tmp_path):
    target = write(tmp_path / "one.js", "danger();\n")
    registry = RuleRegistry([make_rule("R1", RegexDetector(r"danger\("))])

    report = scan(target, registry=registry)

    assert [finding.path for finding in report.findings] == ["one.js"]


def test_backtracking_pattern_is_cut_off_at_the_budget(tmp_path):
    write(tmp_path / "input.js", "a" * 34 + "!")
    registry = RuleRegistry([make_rule("SLOWRX", RegexDetector(r"(a|aa)+$"))])
    timeout = 0.5

    started = time.monotonic()
    report = scan(tmp_path, ScanConfig(timeout=timeout), registry=registry)
    elapsed = time.monotonic() - started

    assert elapsed < timeout + 1.5
    assert [(error.kind, error.rule_id) for error in report.errors] == [("timeout", "SLOWRX")]
    assert report.findings == []


def test_large_python_file_respects_the_budget(tmp_path, builtin_registry):
    lines = [f"value_{index} = compute(a, b, c)[{index}]\n" for index in range(20000)]
    write(tmp_path / "big.py", "".join(lines))
    timeout = 0.5

    started = time.monotonic()
    report = scan(tmp_path, ScanConfig(timeout=timeout), registry=builtin_registry)
    elapsed = time.monotonic() - started

    assert elapsed < timeout + 2.0
    assert len(report.errors) <= 1
    assert all(error.kind == "timeout" for error in report.errors)


def test_broken_python_file_records_one_parse_error(tmp_path, builtin_registry):
    write(tmp_path / "broken.py", "import pickle\n\ndef load(:\n    return pickle.loads(data)\n")

    report = scan(tmp_path, registry=builtin_registry)

    assert [(error.kind, error.path) for error in report.errors] == [("pattern", "broken.py")]
    assert report.files_scanned == 1


def test_failing_detector_does_not_abort_the_scan(tmp_path):
    write(tmp_path / "a.js", "danger();\n")
    write(tmp_path / "b.js", "danger();\n")

    class FailingDetector:
        kind = "failing"

        def find(self, unit, deadline=None):
            if unit.path == "a.js":
                raise IndexError("list index out of range")
            return []

    registry = RuleRegistry([make_rule("FAIL", FailingDetector()), make_rule("R1", RegexDetector(r"danger\("))])

    report = scan(tmp_path, registry=registry)

    assert report.complete
    assert [(error.kind, error.path) for error in report.errors] == [("pattern", "a.js")]
    assert [finding.path for finding in report.findings] == ["a.js", "b.js"]
