"""goerrcheck/errors.py – Error taxonomy for the goerrcheck tool.

Every failure the tool can surface to its caller is an
:class:`ErrcheckError`.  Each carries a structured :class:`ErrorCode` so
that the CLI (and tests) can tell a fatal load failure from an
informational "nothing to analyse" condition without string matching.

Error codes follow the pattern ``ERRCHECK-NNNN``:

  - 1000-1999: program loading (dump syntax, type-check failures, module mode)
  - 2000-2999: exclusion configuration (exclude files, ``--ignore`` regexes)
  - 9000-9999: internal errors

Only the loader and the configuration layer raise.  Visiting a loaded
package cannot fail; unanalysable expressions are simply not flagged.
"""

from __future__ import annotations

from enum import Enum, unique
from typing import Optional

__all__ = [
    "ErrorPhase",
    "ErrorCode",
    "ErrcheckErrorCodes",
    "ErrcheckError",
    "LoadError",
    "DumpSyntaxError",
    "ModuleModeError",
    "NoSourceFilesError",
    "ExcludeFileError",
    "InvalidPatternError",
]


@unique
class ErrorPhase(Enum):
    """Phase of a run in which the error occurred."""

    LOAD = "load"
    CONFIG = "config"
    CHECK = "check"
    INTERNAL = "internal"


class ErrorCode:
    """
    Structured error code.

    Codes compare equal to each other by number and to their string form,
    so ``exc.code == "ERRCHECK-1001"`` works in tests.
    """

    __slots__ = ("prefix", "number", "phase", "fatal")

    def __init__(
        self,
        prefix: str,
        number: int,
        phase: ErrorPhase,
        fatal: bool = True,
    ) -> None:
        self.prefix = prefix
        self.number = number
        self.phase = phase
        self.fatal = fatal

    @property
    def code(self) -> str:
        """Get the full error code string."""
        return f"{self.prefix}-{self.number:04d}"

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"ErrorCode({self.code!r}, {self.phase.name})"

    def __hash__(self) -> int:
        return hash((self.prefix, self.number))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ErrorCode):
            return self.prefix == other.prefix and self.number == other.number
        if isinstance(other, str):
            return self.code == other
        return False


class ErrcheckErrorCodes:
    """Predefined error codes."""

    # LOAD (1000-1999)
    LOAD_FAILED = ErrorCode("ERRCHECK", 1000, ErrorPhase.LOAD)
    DUMP_SYNTAX = ErrorCode("ERRCHECK", 1001, ErrorPhase.LOAD)
    TYPE_CHECK_FAILED = ErrorCode("ERRCHECK", 1002, ErrorPhase.LOAD)
    MODULE_MODE_MISMATCH = ErrorCode("ERRCHECK", 1003, ErrorPhase.LOAD)
    NO_SOURCE_FILES = ErrorCode("ERRCHECK", 1004, ErrorPhase.LOAD, fatal=False)

    # CONFIG (2000-2999)
    EXCLUDE_FILE = ErrorCode("ERRCHECK", 2000, ErrorPhase.CONFIG)
    INVALID_PATTERN = ErrorCode("ERRCHECK", 2001, ErrorPhase.CONFIG)

    # INTERNAL (9000-9999)
    INTERNAL_ERROR = ErrorCode("ERRCHECK", 9000, ErrorPhase.INTERNAL)


class ErrcheckError(Exception):
    """
    Base exception for all goerrcheck errors.

    ``str(exc)`` is the bare message so that load failures can be
    surfaced verbatim; :meth:`describe` adds the code and hint.
    """

    default_code: ErrorCode = ErrcheckErrorCodes.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        *,
        cause: Optional[BaseException] = None,
        hint: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.cause = cause
        self.hint = hint

    @property
    def fatal(self) -> bool:
        return self.code.fatal

    def describe(self) -> str:
        text = f"[{self.code}] {self.message}"
        if self.hint:
            text += f" (hint: {self.hint})"
        return text

    def __str__(self) -> str:
        return self.message


# ───────────────────────────────────────────────────────────────────────────────
# LOAD ERRORS
# ───────────────────────────────────────────────────────────────────────────────

class LoadError(ErrcheckError):
    """The program could not be loaded; fatal to the whole run."""

    default_code = ErrcheckErrorCodes.LOAD_FAILED


class DumpSyntaxError(LoadError):
    """A typed dump is not well-formed."""

    default_code = ErrcheckErrorCodes.DUMP_SYNTAX

    def __init__(
        self,
        message: str,
        *,
        filename: str = "",
        cause: Optional[BaseException] = None,
    ) -> None:
        if filename:
            message = f"{filename}: {message}"
        super().__init__(message, cause=cause)
        self.filename = filename


class ModuleModeError(LoadError):
    """The dump was produced under a different module resolution mode."""

    default_code = ErrcheckErrorCodes.MODULE_MODE_MISMATCH

    def __init__(self, requested: str, actual: str) -> None:
        super().__init__(
            f"dump was loaded with -mod={actual or '(default)'}, "
            f"but -mod={requested} was requested",
            hint="regenerate the dump with the requested module mode",
        )
        self.requested = requested
        self.actual = actual


class NoSourceFilesError(ErrcheckError):
    """A selected package has no analysable source files.  Informational."""

    default_code = ErrcheckErrorCodes.NO_SOURCE_FILES

    def __init__(self, package_path: str) -> None:
        super().__init__(f"package {package_path} contains no go source files")
        self.package_path = package_path


# ───────────────────────────────────────────────────────────────────────────────
# CONFIGURATION ERRORS
# ───────────────────────────────────────────────────────────────────────────────

class ExcludeFileError(ErrcheckError):
    """An exclusion file could not be read."""

    default_code = ErrcheckErrorCodes.EXCLUDE_FILE


class InvalidPatternError(ErrcheckError):
    """A regular expression given in ``--ignore`` does not compile."""

    default_code = ErrcheckErrorCodes.INVALID_PATTERN
