"""
goerrcheck/exclusions.py
════════════════════════

Suppression rules for unchecked-error diagnostics.

Rules come from four sources and are consulted in this order; the first
that matches excludes the call:

  1. an unqualified name regex (``--ignore 'Close|Write'``), applied to
     the callee's bare name whatever package declares it;
  2. a package-qualified name regex (``--ignore 'fmt:.*'`` or
     ``--ignorepkg fmt``), keyed by the callee's package path with any
     ``/vendor/`` prefix removed;
  3. an exact qualified symbol from an exclusion file
     (``fmt.Fprintf``, ``(*bytes.Buffer).Write``, ``(hash.Hash).Write``),
     optionally narrowed by the first argument's type
     (``fmt.Fprintf(*bytes.Buffer)``, ``fmt.Fprintln(os.Stderr)``);
  4. the built-in table of standard-library calls documented never to
     fail, unless defaults are disabled.

Only resolved callees (functions, methods, builtins) can be excluded.

Exclusion file format
─────────────────────

One symbol per line; blank lines and ``//`` comments are skipped::

    // errors we never care about
    (os.File).Close
    io.Copy(*bytes.Buffer)
    encoding/json.Marshal

The compiled :class:`ExclusionIndex` is read-only after construction
and may be shared freely between worker threads.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Optional, Pattern, Union

from goerrcheck import ast as A
from goerrcheck.classify import argument_type_name, callee, callee_ident
from goerrcheck.embedded import walk_through_embedded_interfaces
from goerrcheck.errors import ExcludeFileError, InvalidPatternError
from goerrcheck.types import type_string

__all__ = [
    "DEFAULT_EXCLUDED_SYMBOLS",
    "Exclusions",
    "ExclusionIndex",
    "read_excludes",
    "non_vendored_pkg_path",
    "strip_vendor",
]

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDED_SYMBOLS: FrozenSet[str] = frozenset({
    # bytes
    "(*bytes.Buffer).Write",
    "(*bytes.Buffer).WriteByte",
    "(*bytes.Buffer).WriteRune",
    "(*bytes.Buffer).WriteString",

    # fmt
    "fmt.Print",
    "fmt.Printf",
    "fmt.Println",
    "fmt.Fprint(*bytes.Buffer)",
    "fmt.Fprintf(*bytes.Buffer)",
    "fmt.Fprintln(*bytes.Buffer)",
    "fmt.Fprint(*strings.Builder)",
    "fmt.Fprintf(*strings.Builder)",
    "fmt.Fprintln(*strings.Builder)",
    "fmt.Fprint(os.Stderr)",
    "fmt.Fprintf(os.Stderr)",
    "fmt.Fprintln(os.Stderr)",

    # io
    "(*io.PipeReader).CloseWithError",
    "(*io.PipeWriter).CloseWithError",

    # math/rand
    "math/rand.Read",
    "(*math/rand.Rand).Read",

    # strings
    "(*strings.Builder).Write",
    "(*strings.Builder).WriteByte",
    "(*strings.Builder).WriteRune",
    "(*strings.Builder).WriteString",

    # hash
    "(hash.Hash).Write",

    # hash/maphash
    "(*hash/maphash.Hash).Write",
    "(*hash/maphash.Hash).WriteByte",
    "(*hash/maphash.Hash).WriteString",
})

_VENDOR_PREFIX = re.compile(r"(?<![\w.\-~])(?:[\w.\-~]+/)*vendor/")


def non_vendored_pkg_path(path: str) -> str:
    """Strip everything up to and including the last ``vendor/`` element.

    >>> non_vendored_pkg_path("github.com/x/vendor/github.com/y/log")
    'github.com/y/log'
    """
    i = path.rfind("/vendor/")
    if i >= 0:
        return path[i + len("/vendor/"):]
    if path.startswith("vendor/"):
        return path[len("vendor/"):]
    return path


def strip_vendor(symbol: str) -> str:
    """Remove vendor prefixes from every package path inside *symbol*."""
    return _VENDOR_PREFIX.sub("", symbol)


@dataclass
class Exclusions:
    """
    User-facing exclusion configuration.

    Attributes
    ----------
    packages                   : package paths whose calls are all excluded
    symbol_regexps_by_package  : package path → regex on the bare name;
                                 key ``""`` applies to every package
    symbols                    : exact qualified symbols, optionally
                                 narrowed as ``name(argtype)``
    test_files                 : analyse ``_test.go`` files
    generated_files            : analyse generated files
    blank_assignments          : report errors assigned to ``_``
    type_assertions            : report unchecked type assertions
    disable_default_exclusions : do not consult the built-in table
    """
    packages: List[str] = field(default_factory=list)
    symbol_regexps_by_package: Dict[str, Union[str, Pattern[str]]] = field(
        default_factory=dict
    )
    symbols: List[str] = field(default_factory=list)
    test_files: bool = True
    generated_files: bool = True
    blank_assignments: bool = False
    type_assertions: bool = False
    disable_default_exclusions: bool = False


def _compile(key: str, pattern: Union[str, Pattern[str]]) -> Pattern[str]:
    if not isinstance(pattern, str):
        return pattern
    try:
        return re.compile(pattern)
    except re.error as exc:
        where = f"package {key}" if key else "unqualified"
        raise InvalidPatternError(
            f"invalid {where} ignore pattern {pattern!r}: {exc}", cause=exc,
        ) from exc


class ExclusionIndex:
    """
    Compiled, read-only view of an :class:`Exclusions` configuration.

    Usage
    -----
    >>> index = ExclusionIndex.from_exclusions(Exclusions(packages=["fmt"]))
    >>> index.is_excluded(call)   # doctest: +SKIP
    """

    def __init__(
        self,
        regexps: Optional[Dict[str, Pattern[str]]] = None,
        symbols: Iterable[str] = (),
        use_defaults: bool = True,
    ) -> None:
        self._unqualified: Optional[Pattern[str]] = None
        self._by_package: Dict[str, Pattern[str]] = {}
        for key, rx in (regexps or {}).items():
            if key == "":
                self._unqualified = rx
            else:
                self._by_package[non_vendored_pkg_path(key)] = rx
        self._symbols: FrozenSet[str] = frozenset(
            strip_vendor(s.strip()) for s in symbols if s.strip()
        )
        self._defaults: FrozenSet[str] = (
            DEFAULT_EXCLUDED_SYMBOLS if use_defaults else frozenset()
        )

    @classmethod
    def from_exclusions(cls, exclusions: Exclusions) -> ExclusionIndex:
        regexps: Dict[str, Pattern[str]] = {
            key: _compile(key, pattern)
            for key, pattern in exclusions.symbol_regexps_by_package.items()
        }
        for pkg in exclusions.packages:
            regexps[pkg] = re.compile(".*")
        return cls(
            regexps=regexps,
            symbols=exclusions.symbols,
            use_defaults=not exclusions.disable_default_exclusions,
        )

    @property
    def symbols(self) -> FrozenSet[str]:
        return self._symbols

    # ── Queries ──────────────────────────────────────────────────────

    def is_excluded(self, call: A.CallExpr) -> bool:
        """Decide whether diagnostics for *call* are suppressed."""
        fn = callee(call)
        if fn is None:
            return False
        ident = callee_ident(call)
        name = ident.name if ident is not None else fn.name

        # 1. unqualified regex
        if self._unqualified is not None and self._unqualified.search(name):
            return True

        # 2. package-qualified regex
        if fn.pkg:
            rx = self._by_package.get(non_vendored_pkg_path(fn.pkg))
            if rx is not None and rx.search(name):
                return True

        # 3 and 4. exact symbols, then the built-in table
        names = self.names_for_exclude_check(call)
        if not names:
            return False
        arg0 = argument_type_name(call.args[0]) if call.args else None
        if self._match_symbols(self._symbols, names, arg0):
            return True
        return self._match_symbols(self._defaults, names, arg0)

    @staticmethod
    def _match_symbols(
        table: FrozenSet[str],
        names: List[str],
        arg0: Optional[str],
    ) -> bool:
        if not table:
            return False
        for name in names:
            if name in table:
                return True
            if arg0 and f"{name}({arg0})" in table:
                return True
        return False

    @staticmethod
    def names_for_exclude_check(call: A.CallExpr) -> List[str]:
        """
        Qualified names under which *call* may be excluded.

        Method calls through an interface yield one name per type in the
        selection chain, e.g. ``(hash.Hash).Write`` and
        ``(io.Writer).Write``; everything else yields the callee's full
        name.
        """
        fn = callee(call)
        if fn is None or fn.name == "":
            return []
        fun = call.fun
        if isinstance(fun, A.SelectorExpr) and fun.selection is not None:
            chain = walk_through_embedded_interfaces(fun.selection)
            if chain is not None:
                return [
                    strip_vendor(f"({type_string(t)}).{fn.name}")
                    for t in chain
                ]
        return [strip_vendor(fn.full_name())]

    def __repr__(self) -> str:
        return (
            f"ExclusionIndex(packages={sorted(self._by_package)}, "
            f"symbols={len(self._symbols)}, defaults={bool(self._defaults)})"
        )


def read_excludes(path: Union[str, Path]) -> List[str]:
    """
    Read an exclusion file.

    Returns the stripped lines in file order, skipping blank lines and
    ``//`` comments.  Raises :class:`ExcludeFileError` if the file cannot
    be read.
    """
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise ExcludeFileError(
            f"could not read exclude file {p}: {exc.strerror or exc}",
            cause=exc,
        ) from exc

    excludes: List[str] = []
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("//"):
            continue
        excludes.append(line)
    logger.debug("read %d exclusions from %s", len(excludes), p)
    return excludes
