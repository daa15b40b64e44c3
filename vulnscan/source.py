"""In-memory representation of one scanned file."""

from __future__ import annotations

import ast
from bisect import bisect_right
from dataclasses import dataclass
from functools import cached_property
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class SourceUnit:
    """A single file's text plus its detected language tag."""

    path: str
    language: str
    text: str

    @cached_property
    def line_starts(self) -> List[int]:
        starts = [0]
        index = self.text.find("\n")
        while index != -1:
            starts.append(index + 1)
            index = self.text.find("\n", index + 1)
        return starts

    def line_of(self, offset: int) -> int:
        """Return the 1-based line number containing ``offset``."""

        return bisect_right(self.line_starts, offset)

    def line_bounds(self, first: int, last: int) -> tuple[int, int]:
        """Return the text offsets spanning lines ``first`` through ``last``."""

        starts = self.line_starts
        begin = starts[first - 1]
        end = starts[last] - 1 if last < len(starts) else len(self.text)
        return begin, end

    def line_text(self, line: int) -> str:
        begin, end = self.line_bounds(line, line)
        return self.text[begin:end]

    @cached_property
    def _python_parse(self) -> Tuple[Optional[ast.AST], Optional[Exception]]:
        try:
            return ast.parse(self.text, filename=self.path), None
        except (SyntaxError, ValueError) as exc:
            return None, exc

    def parse_python(self) -> ast.AST:
        """Parse the unit as Python once, re-raising the same error on invalid source."""

        tree, error = self._python_parse
        if error is not None:
            raise error
        return tree
