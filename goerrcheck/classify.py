"""goerrcheck/classify.py – Call result classification.

Answers, for a call expression, which of its result positions hold the
predeclared ``error`` type, and resolves the call's target.

Classification never fails: a call whose type is missing or cannot be
interpreted classifies as ``[False]``, i.e. "does not return an error".
Under-reporting beats false positives built on guessed types.
"""

from __future__ import annotations

from typing import List, Optional

from goerrcheck import ast as A
from goerrcheck.types import (
    GoObject,
    ObjectKind,
    TypeKind,
    is_error_type,
    type_string,
)

__all__ = [
    "errors_by_result",
    "call_returns_error",
    "is_recover",
    "callee_ident",
    "callee",
    "argument_type_name",
    "selector_name",
]

# Sentinel arguments recognised by name instead of by type.
_STD_STREAMS = frozenset({"Stdout", "Stderr"})


def errors_by_result(call: A.CallExpr) -> List[bool]:
    """
    Result Classification of *call*.

    Returns a list with one entry per result; entry ``i`` is true iff
    result ``i`` has static type ``error``.  A non-tuple result type
    yields a one-element list.
    """
    t = call.type
    if t is None:
        return [False]
    if t.kind == TypeKind.NAMED:
        return [is_error_type(t)]
    if t.kind == TypeKind.TUPLE:
        return [is_error_type(elem) for elem in t.children]
    return [False]


def is_recover(call: A.CallExpr) -> bool:
    """True if *call* invokes the builtin ``recover``.

    ``recover()`` has result type ``interface{}`` and so cannot be
    classified structurally; callers treat it as returning an error.
    """
    fun = call.fun
    if isinstance(fun, A.Ident) and fun.obj is not None:
        return fun.obj.kind == ObjectKind.BUILTIN and fun.name == "recover"
    return False


def call_returns_error(call: A.CallExpr) -> bool:
    if is_recover(call):
        return True
    return any(errors_by_result(call))


def callee_ident(call: A.CallExpr) -> Optional[A.Ident]:
    """Identifier naming the called function: ``f()`` or ``x.y.f()``.

    Calls through index, slice or call expressions have none.
    """
    fun = call.fun
    if isinstance(fun, A.Ident):
        return fun
    if isinstance(fun, A.SelectorExpr):
        return fun.sel
    return None


def callee(call: A.CallExpr) -> Optional[GoObject]:
    """
    Callable Reference for *call*: the func or builtin object it invokes.

    Returns ``None`` when the target is unresolved, including calls of
    function-typed variables, fields and conversions.
    """
    ident = callee_ident(call)
    if ident is None or ident.obj is None:
        return None
    if ident.obj.kind in (ObjectKind.FUNC, ObjectKind.BUILTIN):
        return ident.obj
    return None


def argument_type_name(expr: A.Expr) -> Optional[str]:
    """
    Name used to narrow an exclusion by a call's first argument.

    ``os.Stdout`` and ``os.Stderr`` are recognised by identity; any other
    argument is named by its static type string (``*bytes.Buffer``).
    """
    if isinstance(expr, A.SelectorExpr):
        obj = expr.sel.obj
        if (
            obj is not None
            and obj.kind == ObjectKind.VAR
            and obj.pkg == "os"
            and obj.name in _STD_STREAMS
        ):
            return "os." + obj.name
    t = getattr(expr, "type", None)
    if t is None:
        return None
    return type_string(t)


def selector_name(call: A.CallExpr) -> str:
    """``x.f`` for a call of the form ``x.f(...)``, else ``""``."""
    fun = call.fun
    if isinstance(fun, A.SelectorExpr) and isinstance(fun.x, A.Ident):
        return f"{fun.x.name}.{fun.sel.name}"
    return ""
