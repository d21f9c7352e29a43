"""
goerrcheck/diagnostics.py
═════════════════════════

Diagnostic model and the aggregator that merges per-package results.

Packages are checked concurrently; each worker hands its diagnostics to
:class:`RunResults` by value, where a lock guards the merge.  The final
view is deduplicated (the same file can belong to several packages, for
instance a package and its test variant) and sorted by
``(file, line, column, line text)`` so output is stable across runs.
"""

from __future__ import annotations

import json
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Tuple

from goerrcheck.program import Position

__all__ = [
    "DiagnosticKind",
    "Diagnostic",
    "Outcome",
    "RunResults",
]


class DiagnosticKind(Enum):
    """What was left unchecked."""
    UNCHECKED_CALL = "uncheckedCall"
    UNCHECKED_BLANK = "uncheckedBlank"
    UNCHECKED_ASSERT = "uncheckedAssert"

    @property
    def message(self) -> str:
        return _MESSAGES[self]


_MESSAGES = {
    DiagnosticKind.UNCHECKED_CALL: "error return value not checked",
    DiagnosticKind.UNCHECKED_BLANK: "error assigned to blank identifier",
    DiagnosticKind.UNCHECKED_ASSERT: "type assertion result not checked",
}


@dataclass(frozen=True)
class Diagnostic:
    """
    A single unchecked error.

    Attributes
    ----------
    position      : where it was found (call lparen, ``_``, or assertion)
    line          : the source line, whitespace-stripped
    kind          : DiagnosticKind
    func_name     : fully qualified callee, e.g. ``(*os.File).Close``
    selector_name : ``x.f`` for calls of that shape
    """
    position: Position
    line: str
    kind: DiagnosticKind
    func_name: str = ""
    selector_name: str = ""

    @property
    def key(self) -> Tuple[str, int, int, str, str]:
        """Identity used for deduplication."""
        p = self.position
        return (p.filename, p.line, p.column, self.kind.value, self.line)

    @property
    def sort_key(self) -> Tuple[str, int, int, str]:
        p = self.position
        return (p.filename, p.line, p.column, self.line)

    def to_json(self) -> Dict[str, Any]:
        return {
            "file": self.position.filename,
            "line": self.position.line,
            "column": self.position.column,
            "kind": self.kind.value,
            "message": self.kind.message,
            "source": self.line,
            "func": self.func_name,
            "selector": self.selector_name,
        }

    def to_json_str(self) -> str:
        return json.dumps(self.to_json())

    def __str__(self) -> str:
        return f"{self.position}\t{self.line}"


class Outcome(Enum):
    """What the run amounts to; the CLI maps it onto an exit status."""
    CLEAN = 0
    FINDINGS = 1
    FATAL = 2

    @property
    def exit_code(self) -> int:
        return self.value


@dataclass
class RunResults:
    """
    Aggregate results from checking a set of packages.

    Attributes
    ----------
    diagnostics_by_package : raw diagnostics, as reported per package
    stats                  : timing per package (``<pkg>_elapsed_ms``)
    package_names          : packages that were checked, in completion order
    skipped                : packages skipped as having no source files
    """
    diagnostics_by_package: Dict[str, List[Diagnostic]] = field(
        default_factory=lambda: defaultdict(list)
    )
    stats: Dict[str, float] = field(default_factory=dict)
    package_names: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    def add(
        self,
        package: str,
        diagnostics: Iterable[Diagnostic],
        elapsed_ms: float = 0.0,
    ) -> None:
        """Merge one package's diagnostics.  Safe to call from any thread."""
        batch = list(diagnostics)
        with self._lock:
            self.diagnostics_by_package[package].extend(batch)
            if package not in self.package_names:
                self.package_names.append(package)
            key = f"{package}_elapsed_ms"
            self.stats[key] = self.stats.get(key, 0.0) + elapsed_ms

    def mark_skipped(self, package: str) -> None:
        with self._lock:
            self.skipped.append(package)

    @property
    def diagnostics(self) -> List[Diagnostic]:
        """Deduplicated diagnostics in deterministic order."""
        with self._lock:
            merged = [
                d for diags in self.diagnostics_by_package.values()
                for d in diags
            ]
        unique: Dict[Tuple[str, int, int, str, str], Diagnostic] = {}
        for d in merged:
            unique.setdefault(d.key, d)
        return sorted(unique.values(), key=lambda d: (d.sort_key, d.kind.value))

    @property
    def total_count(self) -> int:
        return len(self.diagnostics)

    @property
    def has_diagnostics(self) -> bool:
        with self._lock:
            return any(self.diagnostics_by_package.values())

    @property
    def outcome(self) -> Outcome:
        return Outcome.FINDINGS if self.has_diagnostics else Outcome.CLEAN

    def by_kind(self, kind: DiagnosticKind) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.kind == kind]

    def by_file(self, filename: str) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.position.filename == filename]

    def to_json_lines(self) -> str:
        return "\n".join(d.to_json_str() for d in self.diagnostics)

    def summary(self) -> str:
        """Human-readable summary."""
        diags = self.diagnostics
        lines = [
            f"Checked {len(self.package_names)} packages: "
            f"{len(diags)} unchecked errors",
        ]
        for kind in DiagnosticKind:
            count = sum(1 for d in diags if d.kind == kind)
            if count:
                lines.append(f"  {kind.message}: {count}")
        for name in self.skipped:
            lines.append(f"  {name}: skipped (no go source files)")
        return "\n".join(lines)
