"""Source tree helper utilities."""

from __future__ import annotations

from fnmatch import fnmatch
from pathlib import Path
from typing import Generator, Iterable


def is_excluded(relative: Path, patterns: Iterable[str]) -> bool:
    """Return True when ``relative`` or any of its components matches a glob."""

    posix = relative.as_posix()
    for pattern in patterns:
        if fnmatch(posix, pattern):
            return True
        if any(fnmatch(part, pattern) for part in relative.parts):
            return True
    return False


def iter_code_files(root: Path, exclude: Iterable[str] = ()) -> Generator[Path, None, None]:
    """Yield files beneath ``root`` in sorted order, skipping excluded paths.

    Excluded directories are pruned rather than walked.
    """

    patterns = tuple(exclude)
    pending = [root]
    while pending:
        directory = pending.pop()
        try:
            entries = sorted(directory.iterdir(), key=lambda entry: entry.name)
        except OSError:
            continue
        subdirs = []
        for entry in entries:
            if is_excluded(entry.relative_to(root), patterns):
                continue
            if entry.is_dir() and not entry.is_symlink():
                subdirs.append(entry)
            elif entry.is_file():
                yield entry
        pending.extend(reversed(subdirs))
