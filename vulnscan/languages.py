"""Extension-based language detection."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

LANGUAGE_EXTENSIONS: Dict[str, tuple[str, ...]] = {
    "javascript": (".js", ".jsx", ".mjs", ".cjs"),
    "typescript": (".ts", ".tsx", ".mts", ".cts"),
    "java": (".java",),
    "php": (".php", ".phtml"),
    "python": (".py", ".pyw"),
    "c": (".c", ".h"),
    "cpp": (".cc", ".cpp", ".cxx", ".hpp", ".hh"),
}

EXTENSION_LANGUAGES: Dict[str, str] = {
    extension: language
    for language, extensions in LANGUAGE_EXTENSIONS.items()
    for extension in extensions
}


def detect_language(path: Path) -> Optional[str]:
    """Return the language tag for ``path``, or ``None`` for unsupported files."""

    return EXTENSION_LANGUAGES.get(path.suffix.lower())


def known_languages() -> tuple[str, ...]:
    return tuple(LANGUAGE_EXTENSIONS)
