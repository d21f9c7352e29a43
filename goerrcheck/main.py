#!/usr/bin/env python3
"""goerrcheck/main.py: CLI entry-point for goerrcheck.

Usage examples
--------------
    # Check every package of a typed dump
    goerrcheck build/errcheck.sexp

    # Only some packages, also checking blank assignments and assertions
    goerrcheck --blank --asserts build/errcheck.sexp example.com/m/...

    # Suppress extra symbols listed in a file, skip tests
    goerrcheck --exclude errcheck_excludes.txt --ignoretests build/errcheck.sexp

Each unchecked error is printed to stdout as::

    path/to/file.go:12:10<TAB>f.Close()

Exit codes
----------
    0   No unchecked errors.
    1   One or more unchecked errors were reported.
    2   The program could not be loaded or configured.

The module doubles as ``python -m goerrcheck`` via the companion
``goerrcheck/__main__.py`` which simply calls :func:`main`.
"""

from __future__ import annotations

import argparse
import logging
import os
import re
import sys
import textwrap
from typing import Dict, List, Optional, Sequence, TextIO

from goerrcheck import __version__
from goerrcheck.checker import CheckerRunner
from goerrcheck.diagnostics import Diagnostic, Outcome
from goerrcheck.errors import ErrcheckError
from goerrcheck.exclusions import Exclusions, read_excludes
from goerrcheck.loader import LoadConfig, load_program

_log = logging.getLogger("goerrcheck")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = Outcome.CLEAN.exit_code
EXIT_UNCHECKED: int = Outcome.FINDINGS.exit_code
EXIT_FATAL: int = Outcome.FATAL.exit_code

_TAG_SEPARATORS = re.compile(r"[,\s]+")


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``goerrcheck`` logger.

    0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("goerrcheck")
    root.setLevel(level)
    root.handlers[:] = [handler]


def parse_ignore(spec: str) -> Dict[str, str]:
    """Parse an ``--ignore`` value into a package → regex map.

    >>> parse_ignore("fmt:.*,encoding/binary:.*")
    {'fmt': '.*', 'encoding/binary': '.*'}
    >>> parse_ignore("[rR]ead|[wW]rite")
    {'': '[rR]ead|[wW]rite'}
    """
    result: Dict[str, str] = {}
    if not spec:
        return result
    for item in spec.split(","):
        if not item:
            continue
        pkg, sep, rx = item.partition(":")
        if sep:
            result[pkg] = rx
        else:
            result[""] = item
    return result


def split_tags(spec: str) -> List[str]:
    """Split a ``--tags`` value on commas and/or whitespace.

    >>> split_tags("foo,bar  !baz")
    ['foo', 'bar', '!baz']
    """
    return [t for t in _TAG_SEPARATORS.split(spec) if t]


def _split_list(spec: str) -> List[str]:
    return [item for item in spec.split(",") if item]


def _format(diag: Diagnostic, abspath: bool, verbose: bool) -> str:
    """Render one diagnostic as ``file:line:col<TAB>source``."""
    pos = diag.position
    filename = pos.filename
    if abspath:
        filename = os.path.abspath(filename)
    elif os.path.isabs(filename):
        try:
            filename = os.path.relpath(filename)
        except ValueError:
            # different drive on Windows
            pass
    text = f"{filename}:{pos.line}:{pos.column}\t{diag.line}"
    if verbose and diag.func_name:
        text += f"\t{diag.func_name}"
    return text


def _emit(diagnostics: Sequence[Diagnostic], args: argparse.Namespace,
          stream: TextIO) -> None:
    for diag in diagnostics:
        stream.write(_format(diag, args.abspath, args.verbose > 0) + "\n")


# ===========================================================================
# Argument parser
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="goerrcheck",
        description=(
            "goerrcheck: report Go calls whose error results are ignored.\n\n"
            "Reads the typed dump written by the Go front end and prints\n"
            "every unchecked error with its position and source line."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              goerrcheck build/errcheck.sexp
              goerrcheck --blank --asserts build/errcheck.sexp ./...
              goerrcheck --exclude excludes.txt --ignoretests build/errcheck.sexp
        """),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug); also print callee names.",
    )
    parser.add_argument("dump", metavar="DUMP", help="Typed dump to check.")
    parser.add_argument(
        "packages", metavar="PACKAGE", nargs="*",
        help="Package patterns (default: ./...).",
    )

    checks = parser.add_argument_group("checks")
    checks.add_argument(
        "--blank", action="store_true",
        help="Report errors assigned to the blank identifier.",
    )
    checks.add_argument(
        "--asserts", action="store_true",
        help="Report type assertions whose ok result is not checked.",
    )

    excl = parser.add_argument_group("exclusions")
    excl.add_argument(
        "--exclude", metavar="FILE", default=None,
        help="File with extra symbols to exclude, one per line.",
    )
    excl.add_argument(
        "--excludeonly", action="store_true",
        help="Use only --exclude symbols; disable the built-in table.",
    )
    excl.add_argument(
        "--ignore", metavar="SPEC", default="",
        help="[deprecated] Comma-separated pkg:regex pairs, or a bare regex.",
    )
    excl.add_argument(
        "--ignorepkg", metavar="LIST", default="",
        help="[deprecated] Comma-separated package paths to ignore.",
    )
    excl.add_argument(
        "--ignoretests", action="store_true",
        help="Do not check _test.go files.",
    )
    excl.add_argument(
        "--ignoregenerated", action="store_true",
        help="Do not check generated files.",
    )

    load = parser.add_argument_group("loading")
    load.add_argument(
        "--tags", metavar="TAGS", default="",
        help="Build tags, separated by commas or spaces.",
    )
    load.add_argument(
        "--mod", metavar="MODE", default=None,
        help="Require the dump to have been loaded with this module mode.",
    )
    load.add_argument(
        "-j", "--jobs", type=int, default=None, metavar="N",
        help="Number of packages checked in parallel.",
    )

    out = parser.add_argument_group("output")
    out.add_argument(
        "--abspath", action="store_true",
        help="Print absolute paths to files.",
    )
    return parser


def _exclusions_from_args(args: argparse.Namespace) -> Exclusions:
    exclusions = Exclusions(
        test_files=not args.ignoretests,
        generated_files=not args.ignoregenerated,
        blank_assignments=args.blank,
        type_assertions=args.asserts,
        disable_default_exclusions=args.excludeonly,
    )
    if args.ignore:
        _log.warning("--ignore is deprecated; use --exclude instead")
        exclusions.symbol_regexps_by_package.update(parse_ignore(args.ignore))
    if args.ignorepkg:
        _log.warning("--ignorepkg is deprecated; use --exclude instead")
        exclusions.packages.extend(_split_list(args.ignorepkg))
    if args.exclude:
        exclusions.symbols.extend(read_excludes(args.exclude))
    return exclusions


def _run(args: argparse.Namespace) -> int:
    exclusions = _exclusions_from_args(args)
    config = LoadConfig(
        patterns=args.packages or ["./..."],
        tags=split_tags(args.tags),
        mod=args.mod,
        tests=exclusions.test_files,
    )
    program = load_program(args.dump, config)

    results = CheckerRunner(exclusions, jobs=args.jobs).run(program)
    _emit(results.diagnostics, args, sys.stdout)
    _log.info(results.summary())
    return results.outcome.exit_code


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the goerrcheck CLI and return its exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    try:
        return _run(args)
    except ErrcheckError as exc:
        if exc.fatal:
            _log.error("%s", exc.describe())
            return EXIT_FATAL
        _log.warning("%s", exc.describe())
        return EXIT_OK
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130
    except Exception as exc:
        _log.error("Unhandled exception: %s", exc, exc_info=True)
        return EXIT_FATAL


if __name__ == "__main__":
    raise SystemExit(main())
