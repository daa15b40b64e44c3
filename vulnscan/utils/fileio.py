"""Basic file IO helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


def parse_yaml_text(text: str) -> Any:
    """Parse YAML text, raising ``ValueError`` on malformed input."""

    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ValueError(str(exc)) from exc


def read_yaml_file(path: Path) -> Any:
    """Return the parsed YAML if the file exists, otherwise ``None``."""

    if not path.exists():
        return None
    with path.open("r", encoding="utf-8") as handle:
        return parse_yaml_text(handle.read())


def read_text_file(path: Path) -> str:
    """Return the file contents as strict UTF-8 text.

    Raises ``OSError`` when the file cannot be read and ``UnicodeDecodeError``
    when it is not valid UTF-8.
    """

    with path.open("r", encoding="utf-8", newline="") as handle:
        return handle.read()
