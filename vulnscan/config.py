"""Scan configuration loaded from YAML and overridden from the command line."""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .errors import ConfigError
from .languages import known_languages
from .severity import Severity
from .utils import read_yaml_file

DEFAULT_EXCLUDES: Tuple[str, ...] = (
    ".git",
    "node_modules",
    "__pycache__",
    ".venv",
    "venv",
    "dist",
    "build",
)
DEFAULT_WORKERS = 4
DEFAULT_TIMEOUT = 5.0
DEFAULT_MAX_FILE_SIZE = 1_000_000
DEFAULT_CONFIG_FILENAME = ".vulnscan.yaml"


@dataclass(frozen=True)
class ScanConfig:
    exclude: Tuple[str, ...] = DEFAULT_EXCLUDES
    languages: Tuple[str, ...] = ()
    workers: int = DEFAULT_WORKERS
    timeout: float = DEFAULT_TIMEOUT
    fail_on: Severity = Severity.INFO
    max_file_size_bytes: int = DEFAULT_MAX_FILE_SIZE
    rule_paths: Tuple[str, ...] = ()
    builtin_rules: bool = True

    def __post_init__(self) -> None:
        if self.workers < 1:
            raise ConfigError("workers must be at least 1")
        if self.timeout <= 0:
            raise ConfigError("timeout must be a positive number of seconds")
        if self.max_file_size_bytes < 1:
            raise ConfigError("max_file_size_bytes must be positive")
        unknown = sorted(set(self.languages) - set(known_languages()))
        if unknown:
            raise ConfigError(f"Unknown language(s): {', '.join(unknown)}")
        if not self.builtin_rules and not self.rule_paths:
            raise ConfigError("No rule sources: built-in rules disabled and no rule files given")

    def with_overrides(self, **overrides: Any) -> "ScanConfig":
        """Return a copy with every non-``None`` override applied."""

        values = {key: value for key, value in overrides.items() if value is not None}
        if not values:
            return self
        return replace(self, **values)


def load_config(path: str | Path | None) -> ScanConfig:
    """Load a YAML config file; ``None`` returns the defaults.

    The file holds a ``scan`` mapping whose keys mirror :class:`ScanConfig`.
    """

    if path is None:
        return ScanConfig()
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")
    try:
        raw = read_yaml_file(config_path)
    except ValueError as exc:
        raise ConfigError(f"Cannot parse config {config_path}: {exc}") from exc

    if raw is None:
        return ScanConfig()
    if not isinstance(raw, dict):
        raise ConfigError("Config must be a mapping")
    scan_raw = raw.get("scan", {})
    if not isinstance(scan_raw, dict):
        raise ConfigError("'scan' must be a mapping")
    return config_from_mapping(scan_raw, base_dir=config_path.parent)


def config_from_mapping(scan_raw: Dict[str, Any], base_dir: Optional[Path] = None) -> ScanConfig:
    known = set(ScanConfig.__dataclass_fields__)
    unknown = sorted(set(scan_raw) - known)
    if unknown:
        raise ConfigError(f"Unknown scan setting(s): {', '.join(unknown)}")

    values: Dict[str, Any] = {}
    if "exclude" in scan_raw:
        values["exclude"] = tuple(_ensure_string_list(scan_raw["exclude"], "exclude"))
    if "languages" in scan_raw:
        values["languages"] = tuple(item.lower() for item in _ensure_string_list(scan_raw["languages"], "languages"))
    if "rule_paths" in scan_raw:
        paths = _ensure_string_list(scan_raw["rule_paths"], "rule_paths")
        if base_dir is not None:
            paths = [str(base_dir / item) for item in paths]
        values["rule_paths"] = tuple(paths)
    if "workers" in scan_raw:
        values["workers"] = _coerce(int, scan_raw["workers"], "workers")
    if "timeout" in scan_raw:
        values["timeout"] = _coerce(float, scan_raw["timeout"], "timeout")
    if "max_file_size_bytes" in scan_raw:
        values["max_file_size_bytes"] = _coerce(int, scan_raw["max_file_size_bytes"], "max_file_size_bytes")
    if "fail_on" in scan_raw:
        values["fail_on"] = parse_severity(scan_raw["fail_on"])
    if "builtin_rules" in scan_raw:
        values["builtin_rules"] = bool(scan_raw["builtin_rules"])
    return ScanConfig(**values)


def parse_severity(value: object) -> Severity:
    try:
        return Severity.parse(value)
    except ValueError:
        choices = ", ".join(severity.value for severity in Severity)
        raise ConfigError(f"Unknown severity {value!r}; expected one of: {choices}") from None


def split_csv(value: Optional[str]) -> Optional[Tuple[str, ...]]:
    """Split a comma-separated CLI value, keeping ``None`` as "not given"."""

    if value is None:
        return None
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _coerce(kind: type, value: object, name: str) -> Any:
    if isinstance(value, bool):
        raise ConfigError(f"'{name}' must be a number")
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise ConfigError(f"'{name}' must be a number") from None


def _ensure_string_list(value: object, name: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ConfigError(f"'{name}' must be a list of strings")
    return [str(item) for item in value]
