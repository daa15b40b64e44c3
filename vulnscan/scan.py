"""Scan orchestrator: walk a source tree and aggregate findings."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .config import ScanConfig
from .engine import evaluate
from .errors import ConfigError, FileReadError, PatternTimeoutError, RuleLoadError
from .languages import detect_language
from .result import Finding, ScanError, ScanReport
from .rules.registry import RuleRegistry, builtin_rule_sources, load_rule_files
from .source import SourceUnit
from .utils import iter_code_files, read_text_file

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanTarget:
    path: Path
    relative: str
    language: str


@dataclass
class FileResult:
    findings: List[Finding] = field(default_factory=list)
    errors: List[ScanError] = field(default_factory=list)


def build_registry(config: ScanConfig) -> RuleRegistry:
    """Load the built-in catalogue and any extra rule files named by ``config``."""

    sources = builtin_rule_sources() if config.builtin_rules else []
    sources.extend(load_rule_files(config.rule_paths))
    registry = RuleRegistry.load(sources)
    if registry.skipped_count:
        logger.warning("Skipped %d malformed rule(s)", registry.skipped_count)
    return registry


def scan(
    root_path: str | Path,
    config: Optional[ScanConfig] = None,
    registry: Optional[RuleRegistry] = None,
    cancel_event: Optional[threading.Event] = None,
) -> ScanReport:
    """Scan ``root_path`` and return the aggregated report.

    Raises :class:`ConfigError` for a missing root and :class:`RuleLoadError`
    for an empty registry, in both cases before any file is read.
    """

    config = config or ScanConfig()
    root = Path(root_path)
    if not root.exists():
        raise ConfigError(f"Scan path does not exist: {root}")
    if registry is None:
        registry = build_registry(config)
    if len(registry) == 0:
        raise RuleLoadError("rule registry is empty")
    return Scanner(registry, config).run(root, cancel_event)


class Scanner:
    """Apply a registry to every eligible file under a root.

    The scanner owns all cross-file state for a run; the engine and the
    registry below it keep none.
    """

    def __init__(self, registry: RuleRegistry, config: ScanConfig) -> None:
        self.registry = registry
        self.config = config

    def run(self, root: Path, cancel_event: Optional[threading.Event] = None) -> ScanReport:
        targets = self.collect_targets(root)
        logger.info("Scanning %d file(s) under %s with %d rule(s)", len(targets), root, len(self.registry))

        results: Dict[int, Optional[FileResult]] = {}
        with ThreadPoolExecutor(max_workers=self.config.workers) as executor:
            futures = {
                executor.submit(self._scan_file, target, cancel_event): index
                for index, target in enumerate(targets)
            }
            for future in as_completed(futures):
                results[futures[future]] = future.result()

        report = ScanReport(root=str(root), rules_loaded=len(self.registry))
        self._aggregate(report, [results[index] for index in range(len(targets))])
        if not report.complete:
            logger.warning("Scan canceled after %d of %d file(s)", report.files_scanned, len(targets))
        return report

    # ------------------------------------------------------------------
    # Target discovery
    # ------------------------------------------------------------------
    def collect_targets(self, root: Path) -> List[ScanTarget]:
        if root.is_file():
            candidates: List[Tuple[Path, str]] = [(root, root.name)]
        else:
            candidates = [
                (path, path.relative_to(root).as_posix())
                for path in iter_code_files(root, exclude=self.config.exclude)
            ]

        targets: List[ScanTarget] = []
        for path, relative in candidates:
            language = detect_language(path)
            if language is None:
                continue
            if self.config.languages and language not in self.config.languages:
                continue
            try:
                size = path.stat().st_size
            except OSError:
                size = 0
            if size > self.config.max_file_size_bytes:
                logger.info("Skipping %s: %d bytes exceeds the size limit", relative, size)
                continue
            targets.append(ScanTarget(path, relative, language))
        targets.sort(key=lambda target: target.relative)
        return targets

    # ------------------------------------------------------------------
    # Per-file work
    # ------------------------------------------------------------------
    def _scan_file(self, target: ScanTarget, cancel_event: Optional[threading.Event]) -> Optional[FileResult]:
        if cancel_event is not None and cancel_event.is_set():
            return None

        result = FileResult()
        started = time.monotonic()
        try:
            text = read_text_file(target.path)
        except UnicodeDecodeError:
            logger.warning("Cannot decode %s as UTF-8", target.relative)
            result.errors.append(ScanError.from_exception(FileReadError(target.relative, "not valid UTF-8 text")))
            return result
        except OSError as exc:
            reason = exc.strerror or str(exc)
            logger.warning("Cannot read %s: %s", target.relative, reason)
            result.errors.append(ScanError.from_exception(FileReadError(target.relative, reason)))
            return result

        timeout = self.config.timeout
        if time.monotonic() - started > timeout:
            result.errors.append(ScanError.from_exception(PatternTimeoutError(target.relative, None, timeout)))
            return result

        unit = SourceUnit(target.relative, target.language, text)
        matched = evaluate(unit, self.registry.lookup(target.language), timeout=timeout, started=started)
        result.findings.extend(matched.findings)
        result.errors.extend(ScanError.from_exception(error) for error in matched.errors)
        logger.debug("%s: %d finding(s), %d error(s)", target.relative, len(result.findings), len(result.errors))
        return result

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------
    def _aggregate(self, report: ScanReport, results: List[Optional[FileResult]]) -> None:
        unique: Dict[Tuple[str, int, str], Finding] = {}
        for file_result in results:
            if file_result is None:
                report.complete = False
                continue
            report.files_scanned += 1
            for finding in file_result.findings:
                unique.setdefault(finding.dedup_key, finding)
            for error in file_result.errors:
                report.add_error(error)

        ordered = sorted(
            unique.values(),
            key=lambda finding: (finding.path, finding.start_line, self.registry.position(finding.rule_id)),
        )
        for finding in ordered:
            report.add_finding(finding)
