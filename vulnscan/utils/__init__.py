"""Utility helpers for the scanner."""

from .code import is_excluded, iter_code_files
from .fileio import parse_yaml_text, read_text_file, read_yaml_file

__all__ = [
    "is_excluded",
    "iter_code_files",
    "parse_yaml_text",
    "read_text_file",
    "read_yaml_file",
]
