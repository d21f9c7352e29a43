"""
goerrcheck/program.py
═════════════════════

Program Units as handed over by the loader.

A :class:`Package` is one type-checked Go package: an ordered list of
:class:`ParsedFile` objects, each pairing a typed syntax tree with its
:class:`SourceFile`.  The source file translates byte offsets into
``file:line:column`` positions and renders the offending line of a
diagnostic.

Packages are built once and never mutated while a check runs, so the
checker can visit them from several threads at once.
"""

from __future__ import annotations

import bisect
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from goerrcheck import ast as A

__all__ = [
    "Position",
    "SourceFile",
    "ParsedFile",
    "Package",
    "Program",
    "GENERATED_HEADER",
]

# Header that marks machine-generated Go source (see ``go help generate``).
GENERATED_HEADER = re.compile(r"^// Code generated .* DO NOT EDIT\.$")


@dataclass(frozen=True, order=True)
class Position:
    """A resolved source position; columns count bytes, starting at 1."""
    filename: str = ""
    line: int = 0
    column: int = 0
    offset: int = -1

    @property
    def is_valid(self) -> bool:
        return self.line > 0

    def __str__(self) -> str:
        if not self.is_valid:
            return self.filename or "-"
        if self.column:
            return f"{self.filename}:{self.line}:{self.column}"
        return f"{self.filename}:{self.line}"


class SourceFile:
    """
    Source text of one file plus a byte-offset → line/column translator.

    Offsets are byte offsets into the UTF-8 encoding of the text, which
    is what the front end records.
    """

    def __init__(self, name: str, text: str) -> None:
        self.name = name
        self.data = text.encode("utf-8")
        starts = [0]
        for i, b in enumerate(self.data):
            if b == 0x0A:
                starts.append(i + 1)
        self._line_starts = starts

    @classmethod
    def from_lines(cls, name: str, lines: Sequence[str]) -> SourceFile:
        return cls(name, "\n".join(lines) + "\n")

    @property
    def text(self) -> str:
        return self.data.decode("utf-8", errors="replace")

    @property
    def line_count(self) -> int:
        n = len(self._line_starts)
        if self.data.endswith(b"\n"):
            n -= 1
        return n

    def position(self, offset: int) -> Position:
        """Translate a byte *offset* into a :class:`Position`."""
        if offset < 0 or offset > len(self.data):
            return Position(self.name)
        line = bisect.bisect_right(self._line_starts, offset)
        column = offset - self._line_starts[line - 1] + 1
        return Position(self.name, line, column, offset)

    def line_text(self, line: int) -> str:
        """Text of 1-based *line* with surrounding whitespace stripped."""
        if line < 1 or line > len(self._line_starts):
            return "??"
        start = self._line_starts[line - 1]
        end = (
            self._line_starts[line] - 1
            if line < len(self._line_starts)
            else len(self.data)
        )
        return self.data[start:end].decode("utf-8", errors="replace").strip()

    def lines_before(self, offset: int) -> List[str]:
        """Raw lines that start before *offset* (used for header scanning)."""
        head = self.data[:max(offset, 0)].decode("utf-8", errors="replace")
        return head.splitlines()

    def __repr__(self) -> str:
        return f"SourceFile({self.name!r}, {len(self.data)} bytes)"


@dataclass
class ParsedFile:
    """A typed syntax tree paired with the source it was parsed from."""
    name: str
    tree: A.File
    source: SourceFile
    build_tags: Tuple[str, ...] = ()

    @property
    def is_test(self) -> bool:
        return self.name.endswith("_test.go")

    @property
    def is_generated(self) -> bool:
        """True if a ``Code generated ... DO NOT EDIT.`` line precedes the
        package clause."""
        for line in self.source.lines_before(self.tree.package_pos):
            if GENERATED_HEADER.match(line.strip()):
                return True
        return False


@dataclass
class Package:
    """One Program Unit."""
    path: str
    name: str
    files: List[ParsedFile] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    is_test_variant: bool = False

    @property
    def id(self) -> str:
        """Package path, marked like ``go list`` marks test variants."""
        if self.is_test_variant:
            return f"{self.path} [{self.path}.test]"
        return self.path

    def file(self, name: str) -> Optional[ParsedFile]:
        for f in self.files:
            if f.name == name:
                return f
        return None


@dataclass
class Program:
    """The ordered set of Program Units returned by the loader."""
    packages: List[Package] = field(default_factory=list)
    mod: Optional[str] = None

    def package(self, path: str) -> Optional[Package]:
        for pkg in self.packages:
            if pkg.path == path:
                return pkg
        return None

    def __len__(self) -> int:
        return len(self.packages)
