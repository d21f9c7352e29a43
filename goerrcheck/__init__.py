"""
goerrcheck: Unchecked Error Detection for Go Programs
======================================================

Finds calls whose ``error`` results are silently dropped in type-checked
Go code: bare call statements, ``go`` and ``defer`` calls, errors
assigned to ``_``, and type assertions without a comma-ok check.

The Go front end (parser and type checker) runs out of process and
writes a typed S-expression dump; this package loads the dump, checks
every selected package concurrently and reports each unchecked error
with its position and source line.

Core modules
------------
types
    Static type model: named types, interfaces, selections, ``error``.
ast
    Typed Go syntax tree.
program
    Program Units: packages, files, byte-offset → line/column positions.
classify
    Per-result error classification of call expressions.
embedded
    Resolution of interface methods promoted through embedding.
exclusions
    Suppression rules: regexes, exact symbols, the built-in table.
checker
    The statement visitor and the concurrent package runner.
diagnostics
    Diagnostic records and the thread-safe result aggregator.
loader
    Reader for the front end's typed dump.

Quick start
-----------
>>> from goerrcheck import CheckerRunner, Exclusions, LoadConfig, load_program
>>> program = load_program("build/errcheck.sexp", LoadConfig())   # doctest: +SKIP
>>> results = CheckerRunner(Exclusions(blank_assignments=True)).run(program)  # doctest: +SKIP
>>> for diag in results.diagnostics:                               # doctest: +SKIP
...     print(diag)
"""

from __future__ import annotations

import importlib
import logging
import sys
from typing import TYPE_CHECKING, List

# ---------------------------------------------------------------------------
# Package metadata
# ---------------------------------------------------------------------------

__version__ = "0.1.0"
__license__ = "MIT"
__all__: List[str] = []          # populated incrementally below

_log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Internal registry: module name → names re-exported at package level
# ---------------------------------------------------------------------------

_CORE_MODULES = {
    "errors": [
        "ErrcheckError",
        "LoadError",
        "DumpSyntaxError",
        "ModuleModeError",
        "NoSourceFilesError",
        "ExcludeFileError",
        "InvalidPatternError",
    ],
    "types": [
        "GoType",
        "GoObject",
        "Selection",
        "ERROR_TYPE",
        "is_error_type",
        "type_string",
    ],
    "program": [
        "Position",
        "SourceFile",
        "ParsedFile",
        "Package",
        "Program",
    ],
    "classify": [
        "errors_by_result",
        "call_returns_error",
    ],
    "embedded": [
        "walk_through_embedded_interfaces",
    ],
    "exclusions": [
        "DEFAULT_EXCLUDED_SYMBOLS",
        "Exclusions",
        "ExclusionIndex",
        "read_excludes",
    ],
    "diagnostics": [
        "Diagnostic",
        "DiagnosticKind",
        "Outcome",
        "RunResults",
    ],
    "checker": [
        "CheckerRunner",
        "UncheckedErrorChecker",
        "check_package",
    ],
    "loader": [
        "LoadConfig",
        "DumpLoader",
        "load_program",
    ],
}


def _import_names(module_rel_name: str, names: List[str]) -> None:
    """Import *names* from a submodule and bind them in the package namespace."""
    fq_name = f"{__name__}.{module_rel_name}"
    try:
        mod = importlib.import_module(fq_name)
    except ImportError as exc:
        raise ImportError(
            f"goerrcheck: required submodule '{module_rel_name}' "
            f"failed to import: {exc}"
        ) from exc

    current_module = sys.modules[__name__]
    for name in names:
        obj = getattr(mod, name, None)
        if obj is None:
            _log.warning("goerrcheck.%s does not define %s", module_rel_name, name)
            continue
        setattr(current_module, name, obj)
        __all__.append(name)

    if module_rel_name not in __all__:
        __all__.append(module_rel_name)


for _mod, _names in _CORE_MODULES.items():
    _import_names(_mod, _names)


# ---------------------------------------------------------------------------
# Static re-exports for type checkers
# ---------------------------------------------------------------------------

if TYPE_CHECKING:
    from goerrcheck.checker import CheckerRunner, UncheckedErrorChecker, check_package
    from goerrcheck.diagnostics import Diagnostic, DiagnosticKind, Outcome, RunResults
    from goerrcheck.exclusions import (
        DEFAULT_EXCLUDED_SYMBOLS,
        ExclusionIndex,
        Exclusions,
        read_excludes,
    )
    from goerrcheck.loader import DumpLoader, LoadConfig, load_program
    from goerrcheck.program import Package, Program


__all__ += ["__version__"]
