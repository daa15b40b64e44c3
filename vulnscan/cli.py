"""Command-line entry point for the vulnscan scanner."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List

from . import __version__
from .config import DEFAULT_CONFIG_FILENAME, ScanConfig, load_config, parse_severity, split_csv
from .errors import ConfigError, RuleLoadError
from .report import FORMATTERS, format_report, format_summary_table
from .rules.registry import RuleRegistry
from .scan import build_registry, scan

EXIT_CLEAN = 0
EXIT_FINDINGS = 1
EXIT_FATAL = 2

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vulnscan",
        description="Static scanner for insecure coding anti-patterns",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging on stderr.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan_parser = subparsers.add_parser("scan", help="Scan a file or directory")
    scan_parser.add_argument("path", help="File or directory to scan.")
    scan_parser.add_argument(
        "--lang",
        default=None,
        help="Only scan files of these languages (comma-separated, e.g. python,javascript).",
    )
    scan_parser.add_argument(
        "--format",
        choices=sorted(FORMATTERS),
        default="text",
        help=(
            "Report format (defaults to text). json writes one report object holding "
            "findings, errors, summary and a complete flag rather than a bare findings array."
        ),
    )
    scan_parser.add_argument(
        "--exclude",
        default=None,
        help="Comma-separated globs to skip, matched against paths and path components.",
    )
    scan_parser.add_argument("--workers", type=int, default=None, help="Number of worker threads.")
    scan_parser.add_argument("--timeout", type=float, default=None, help="Per-file time budget in seconds.")
    scan_parser.add_argument(
        "--fail-on",
        default=None,
        help="Lowest severity that makes the scan exit with 1 (info, warn or critical).",
    )
    scan_parser.add_argument(
        "--config",
        default=None,
        help=f"YAML config file (defaults to {DEFAULT_CONFIG_FILENAME} in the scanned directory).",
    )
    scan_parser.add_argument(
        "--rules",
        dest="rule_paths",
        action="append",
        default=[],
        help="Additional YAML rule file (repeatable).",
    )
    scan_parser.add_argument(
        "--no-builtin-rules",
        action="store_true",
        help="Use only the rule files given with --rules.",
    )
    scan_parser.add_argument(
        "--out",
        "--output",
        dest="output_path",
        default=None,
        help="Write the report to this path instead of stdout.",
    )

    rules_parser = subparsers.add_parser("rules", help="List the loaded rules")
    rules_parser.add_argument("--lang", default=None, help="Only list rules applicable to this language.")
    rules_parser.add_argument("--format", choices=["json", "text"], default="text")
    rules_parser.add_argument("--rules", dest="rule_paths", action="append", default=[])
    rules_parser.add_argument("--no-builtin-rules", action="store_true")
    return parser


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def resolve_config(args: argparse.Namespace) -> ScanConfig:
    config_path = args.config
    if config_path is None:
        candidate = Path(args.path) / DEFAULT_CONFIG_FILENAME
        if candidate.is_file():
            config_path = candidate
    config = load_config(config_path)

    languages = split_csv(args.lang)
    return config.with_overrides(
        languages=tuple(item.lower() for item in languages) if languages is not None else None,
        exclude=_merge(config.exclude, split_csv(args.exclude)),
        workers=args.workers,
        timeout=args.timeout,
        fail_on=parse_severity(args.fail_on) if args.fail_on is not None else None,
        rule_paths=_merge(config.rule_paths, tuple(args.rule_paths)) if args.rule_paths else None,
        builtin_rules=False if args.no_builtin_rules else None,
    )


def run_scan_command(args: argparse.Namespace) -> int:
    config = resolve_config(args)
    registry = build_registry(config)
    report = scan(args.path, config, registry=registry)
    rendered = format_report(report, args.format, registry)

    if args.output_path:
        output_file = Path(args.output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)
        output_file.write_text(rendered + "\n", encoding="utf-8")
        print(format_summary_table(report))
        print(f"\nReport written to {args.output_path}")
    else:
        print(rendered)
    return EXIT_FINDINGS if report.exit_code(config.fail_on) else EXIT_CLEAN


def run_rules_command(args: argparse.Namespace) -> int:
    config = ScanConfig().with_overrides(
        rule_paths=tuple(args.rule_paths) or None,
        builtin_rules=False if args.no_builtin_rules else None,
    )
    registry: RuleRegistry = build_registry(config)
    rules = registry.lookup(args.lang.lower()) if args.lang else tuple(registry)

    if args.format == "json":
        print(json.dumps([rule.to_dict() for rule in rules], indent=2))
        return EXIT_CLEAN
    for rule in rules:
        languages = ",".join(sorted(rule.languages))
        print(f"{rule.id:<10} {rule.severity.value:<8} {rule.category.value:<17} {languages:<28} {rule.title or rule.description}")
    return EXIT_CLEAN


def main(argv: List[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        if args.command == "scan":
            return run_scan_command(args)
        return run_rules_command(args)
    except (ConfigError, RuleLoadError) as exc:
        logger.debug("Fatal error", exc_info=True)
        print(f"vulnscan: error: {exc}", file=sys.stderr)
        return EXIT_FATAL


def _merge(base: tuple, extra: tuple | None) -> tuple | None:
    if not extra:
        return None
    return tuple(dict.fromkeys(base + extra))


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
