"""
goerrcheck/checker.py
═════════════════════

The unchecked-error checker and the runner that applies it to every
loaded package.

Architecture
────────────

  ┌──────────────────────────────────────────────────────────┐
  │                    CheckerRunner                         │
  │   one task per package  (ThreadPoolExecutor, fan-out)    │
  │  ┌────────────────────────────────────────────────────┐  │
  │  │            UncheckedErrorChecker                   │  │
  │  │   _UncheckedVisitor: statement shapes → sites      │  │
  │  │      │             │                 │             │  │
  │  │  classify      ExclusionIndex   embedded walker    │  │
  │  └──────────────────────┬─────────────────────────────┘  │
  │                         │  diagnostics by value          │
  │  ┌──────────────────────▼─────────────────────────────┐  │
  │  │   RunResults  (lock-guarded merge, dedup, sort)    │  │
  │  └────────────────────────────────────────────────────┘  │
  └──────────────────────────────────────────────────────────┘

Each Checker follows a four-phase lifecycle:

  1. **configure()**       : read modes from the context
  2. **collect_evidence()**: walk every file, gather unchecked sites
  3. **diagnose()**        : resolve positions and render source lines
  4. **report()**          : return the package's Diagnostics

Checking a package cannot fail: a sub-expression the visitor cannot
analyse is simply not flagged.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import ClassVar, List, Optional, Sequence, Set

from goerrcheck import ast as A
from goerrcheck.classify import (
    call_returns_error,
    callee,
    errors_by_result,
    is_recover,
    selector_name,
)
from goerrcheck.diagnostics import Diagnostic, DiagnosticKind, RunResults
from goerrcheck.exclusions import ExclusionIndex, Exclusions
from goerrcheck.program import Package, ParsedFile, Program
from goerrcheck.visitor import WalkingVisitor

__all__ = [
    "Checker",
    "CheckerContext",
    "UncheckedErrorChecker",
    "CheckerRunner",
    "check_package",
]

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════
#  PART 1: CHECKER FRAMEWORK
# ═════════════════════════════════════════════════════════════════════════

@dataclass
class CheckerContext:
    """Everything a checker needs to analyse one package."""
    package: Package
    index: ExclusionIndex
    exclusions: Exclusions = field(default_factory=Exclusions)

    @property
    def blank(self) -> bool:
        return self.exclusions.blank_assignments

    @property
    def asserts(self) -> bool:
        return self.exclusions.type_assertions

    def files(self) -> List[ParsedFile]:
        """Files to analyse, honouring the generated-file exclusion."""
        selected = []
        for f in self.package.files:
            if not self.exclusions.generated_files and f.is_generated:
                logger.debug("skipping generated file %s", f.name)
                continue
            selected.append(f)
        return selected


class Checker(ABC):
    """Base class for a package checker."""

    name: ClassVar[str] = "base"
    description: ClassVar[str] = ""

    def __init__(self) -> None:
        self._diagnostics: List[Diagnostic] = []

    def configure(self, ctx: CheckerContext) -> None:
        """Phase 1: read thresholds and modes from the context."""
        pass

    @abstractmethod
    def collect_evidence(self, ctx: CheckerContext) -> None:
        """Phase 2: gather suspicious sites."""

    @abstractmethod
    def diagnose(self, ctx: CheckerContext) -> None:
        """Phase 3: turn sites into diagnostics."""

    def report(self, ctx: CheckerContext) -> List[Diagnostic]:
        """Phase 4: return the diagnostics found."""
        return list(self._diagnostics)

    def run(self, ctx: CheckerContext) -> List[Diagnostic]:
        self.configure(ctx)
        self.collect_evidence(ctx)
        self.diagnose(ctx)
        return self.report(ctx)


# ═════════════════════════════════════════════════════════════════════════
#  PART 2: STATEMENT VISITOR
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class _Site:
    """An unchecked error found in a file, before position resolution."""
    kind: DiagnosticKind
    offset: int
    call: Optional[A.CallExpr] = None


class _UncheckedVisitor(WalkingVisitor):
    """
    Walks one file and records unchecked sites.

    Nodes arrive pre-order, so an assignment is seen before the type
    assertions on its right-hand side.  Nested calls (inside function
    literals, arguments, conditions) are each examined on their own.
    """

    def __init__(self, index: ExclusionIndex, blank: bool, asserts: bool) -> None:
        self.index = index
        self.blank = blank
        self.asserts = asserts
        self.sites: List[_Site] = []
        # Type assertions whose result is checked by a comma-ok binding.
        self._comma_ok: Set[int] = set()

    # ── helpers ──────────────────────────────────────────────────────

    def _add(self, kind: DiagnosticKind, offset: int,
             call: Optional[A.CallExpr] = None) -> None:
        self.sites.append(_Site(kind, offset, call))

    def _check_call(self, call: A.CallExpr) -> None:
        if call_returns_error(call) and not self.index.is_excluded(call):
            self._add(DiagnosticKind.UNCHECKED_CALL, call.lparen, call)

    def _check_single_rhs(self, lhs: Sequence[A.Expr], rhs: A.Expr) -> None:
        if isinstance(rhs, A.CallExpr):
            if not self.blank or self.index.is_excluded(rhs):
                return
            slots = errors_by_result(rhs)
            recover = is_recover(rhs)
            for i, target in enumerate(lhs):
                if not A.is_blank(target):
                    continue
                if recover or (i < len(slots) and slots[i]):
                    self._add(DiagnosticKind.UNCHECKED_BLANK, target.pos, rhs)
        elif isinstance(rhs, A.TypeAssertExpr):
            if rhs.is_type_switch or len(lhs) < 2:
                return
            self._comma_ok.add(id(rhs))
            if self.asserts and self.blank and A.is_blank(lhs[1]):
                self._add(DiagnosticKind.UNCHECKED_ASSERT, lhs[1].pos)

    def _check_pairs(self, lhs: Sequence[A.Expr], rhs: Sequence[A.Expr]) -> None:
        # A call on the right of a multi-value assignment yields one value.
        for target, value in zip(lhs, rhs):
            if not A.is_blank(target):
                continue
            if isinstance(value, A.CallExpr):
                if (
                    self.blank
                    and call_returns_error(value)
                    and not self.index.is_excluded(value)
                ):
                    self._add(DiagnosticKind.UNCHECKED_BLANK, target.pos, value)
            elif isinstance(value, A.TypeAssertExpr):
                if not value.is_type_switch and self.asserts and self.blank:
                    self._add(DiagnosticKind.UNCHECKED_ASSERT, target.pos)

    def _check_assignment(self, lhs: Sequence[A.Expr], rhs: Sequence[A.Expr]) -> None:
        if len(rhs) == 1:
            self._check_single_rhs(lhs, rhs[0])
        elif len(lhs) == len(rhs):
            self._check_pairs(lhs, rhs)

    # ── statement shapes ─────────────────────────────────────────────

    def visit_expr_stmt(self, node: A.ExprStmt) -> None:
        if isinstance(node.x, A.CallExpr):
            self._check_call(node.x)

    def visit_go_stmt(self, node: A.GoStmt) -> None:
        self._check_call(node.call)

    def visit_defer_stmt(self, node: A.DeferStmt) -> None:
        self._check_call(node.call)

    def visit_assign_stmt(self, node: A.AssignStmt) -> None:
        self._check_assignment(node.lhs, node.rhs)

    def visit_value_spec(self, node: A.ValueSpec) -> None:
        if node.values:
            self._check_assignment(node.names, node.values)

    def visit_type_assert_expr(self, node: A.TypeAssertExpr) -> None:
        if (
            self.asserts
            and not node.is_type_switch
            and id(node) not in self._comma_ok
        ):
            self._add(DiagnosticKind.UNCHECKED_ASSERT, node.pos)


# ═════════════════════════════════════════════════════════════════════════
#  PART 3: UNCHECKED ERROR CHECKER
# ═════════════════════════════════════════════════════════════════════════

class UncheckedErrorChecker(Checker):
    """
    Reports calls whose ``error`` results are dropped.

    Detects:
      - bare call statements, ``go`` and ``defer`` calls returning errors
      - errors assigned to ``_`` (when blank checking is enabled)
      - type assertions without a comma-ok check (when assertion
        checking is enabled)
    """

    name = "unchecked-error"
    description = "Detects unchecked error return values"

    def __init__(self) -> None:
        super().__init__()
        self._sites: List[tuple] = []
        self._blank = False
        self._asserts = False

    def configure(self, ctx: CheckerContext) -> None:
        self._blank = ctx.blank
        self._asserts = ctx.asserts

    def collect_evidence(self, ctx: CheckerContext) -> None:
        for parsed in ctx.files():
            visitor = _UncheckedVisitor(ctx.index, self._blank, self._asserts)
            visitor.scan(parsed.tree)
            self._sites.extend((parsed, site) for site in visitor.sites)

    def diagnose(self, ctx: CheckerContext) -> None:
        for parsed, site in self._sites:
            position = parsed.source.position(site.offset)
            func_name = ""
            sel_name = ""
            if site.call is not None:
                fn = callee(site.call)
                if fn is not None:
                    func_name = fn.full_name()
                sel_name = selector_name(site.call)
            self._diagnostics.append(Diagnostic(
                position=position,
                line=parsed.source.line_text(position.line),
                kind=site.kind,
                func_name=func_name,
                selector_name=sel_name,
            ))


def check_package(
    package: Package,
    exclusions: Optional[Exclusions] = None,
    index: Optional[ExclusionIndex] = None,
) -> List[Diagnostic]:
    """Check a single package and return its diagnostics, unsorted."""
    exclusions = exclusions or Exclusions()
    if index is None:
        index = ExclusionIndex.from_exclusions(exclusions)
    ctx = CheckerContext(package=package, index=index, exclusions=exclusions)
    return UncheckedErrorChecker().run(ctx)


# ═════════════════════════════════════════════════════════════════════════
#  PART 4: CHECKER RUNNER
# ═════════════════════════════════════════════════════════════════════════

class CheckerRunner:
    """
    Checks every package of a :class:`Program` concurrently.

    Usage
    -----
    >>> runner = CheckerRunner(Exclusions(blank_assignments=True))
    >>> results = runner.run(program)          # doctest: +SKIP
    >>> for diag in results.diagnostics:       # doctest: +SKIP
    ...     print(diag)

    Parameters for constructor
    ─────────────────────────
    exclusions : Exclusions, the modes and suppression rules
    jobs       : worker threads (None = executor default)
    """

    def __init__(
        self,
        exclusions: Optional[Exclusions] = None,
        jobs: Optional[int] = None,
    ) -> None:
        self.exclusions = exclusions or Exclusions()
        self.index = ExclusionIndex.from_exclusions(self.exclusions)
        self.jobs = jobs

    def _check_one(self, package: Package) -> tuple:
        t0 = time.monotonic()
        diags = check_package(package, self.exclusions, self.index)
        elapsed_ms = (time.monotonic() - t0) * 1000.0
        logger.debug(
            "checked %s: %d unchecked errors (%.1fms)",
            package.id, len(diags), elapsed_ms,
        )
        return diags, elapsed_ms

    def run(self, program: Program) -> RunResults:
        """Check all packages of *program* and merge the results."""
        results = RunResults()
        packages = [p for p in program.packages if p.files]
        for p in program.packages:
            if not p.files:
                results.mark_skipped(p.id)

        if not packages:
            return results

        with ThreadPoolExecutor(max_workers=self.jobs) as pool:
            futures = {pool.submit(self._check_one, p): p for p in packages}
            for future in as_completed(futures):
                package = futures[future]
                diags, elapsed_ms = future.result()
                results.add(package.id, diags, elapsed_ms)

        logger.info(
            "checked %d packages, %d unchecked errors",
            len(packages), results.total_count,
        )
        return results
