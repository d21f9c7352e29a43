"""goerrcheck/loader.py – Typed dump → Program loader.

The Go front end (parser plus type checker) runs out of process and
writes everything the checker needs as one S-expression document.  This
module reads it with ``sexpdata.loads`` (nested Python lists,
:class:`sexpdata.Symbol`, strings, ints) and builds the typed syntax
tree of :mod:`goerrcheck.ast` together with the :class:`Program` units
of :mod:`goerrcheck.program`.

Design principles
-----------------
* **Head-symbol dispatch** – every list ``(tag ...)`` is dispatched on
  ``tag`` to a dedicated ``_read_<tag>`` helper registered in a table.
* **Fail-fast** – a form of the wrong shape raises
  :class:`~goerrcheck.errors.DumpSyntaxError`; nothing is silently
  dropped.
* **One type cache per load** – ``(named PKG NAME)`` always yields the
  same :class:`GoType` object within a load session, so identity checks
  (``error``, interface embedding) work across packages.

Public API
----------
``load_program(path, config) -> Program``
    Read a dump file, validate it and select packages and files.

``DumpLoader(config).loads(text, filename=...)``
    The same, from a string (used by the tests).

Dump syntax
-----------
Strings are double-quoted; positions are byte offsets into the file's
source; tokens and operators are strings::

    (program
      (mod "vendor")?
      (typedef PKG NAME UNDERLYING (methods FUNC...)?)...
      (package PATH NAME (test)? (errors "msg"...)?
        (file NAME (build-tags TERM...)?
              (source "line"...) | (source-path PATH)
              DECL...)...))

    ;; types
    (basic N)  (named PKG NAME)  (pointer T)  (slice T)  (array N T)
    (map K V)  (chan T)  (tuple T...)  (invalid)
    (struct (field NAME T)... (embedded NAME T)...)
    (interface (method NAME SIG)... (embed T)...)
    (signature (params T...) (results T...) (variadic)?)

    ;; objects
    (func PKG NAME RECV?)  (builtin NAME)  (var PKG NAME T?)
    (const PKG NAME)  (typename PKG NAME)  (pkgname PATH)  (nilvalue)

    ;; expressions; (obj O) and (type T) are optional trailing forms
    (ident NAME POS (obj O)? (type T)?)
    (lit KIND VALUE POS)
    (composite LBRACE (elts E...))
    (func-lit POS BLOCK)
    (paren LPAREN E)
    (selector E IDENT (selection KIND RECV (index I...))?)
    (index E LBRACK E...)
    (slice E LBRACK (low E)? (high E)? (max E)?)
    (assert E LPAREN (asserted T)?)          ; no asserted = x.(type)
    (call FUN LPAREN RPAREN ARG... (ellipsis POS)?)
    (star POS E)  (unary OP POS E)  (binary OP POS E E)
    (kv E E)  (type-expr POS T)

    ;; statements
    (expr-stmt E)  (go POS CALL)  (defer POS CALL)  (return POS E...)
    (assign TOK POS (lhs E...) (rhs E...))
    (block POS S...)  (empty POS)  (labeled NAME POS S)
    (send POS E E)  (incdec TOK POS E)  (branch TOK POS LABEL?)
    (if POS (init S)? (cond E) (body BLOCK) (else S)?)
    (for POS (init S)? (cond E)? (post S)? (body BLOCK))
    (range POS TOK (key E)? (value E)? (x E) (body BLOCK))
    (switch POS (init S)? (tag E)? (body BLOCK))
    (type-switch POS (init S)? (assign S) (body BLOCK))
    (select POS (body BLOCK))
    (case POS (list E...)? S...)             ; no list = default
    (comm POS (on S)? S...)
    (decl-stmt GENDECL)

    ;; declarations
    (func-decl NAME POS (recv T)? (body BLOCK)?)
    (gen-decl TOK POS (value-spec (names IDENT...) (values E...)? (type T)?)...)

The selection KIND is one of ``field-val``, ``method-val`` or
``method-expr``.  Within a typedef, interface methods take the named
type as receiver; methods of an anonymous interface take the interface
itself.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import sexpdata
from sexpdata import Symbol

from goerrcheck import ast as A
from goerrcheck.errors import (
    DumpSyntaxError,
    ErrcheckErrorCodes,
    LoadError,
    ModuleModeError,
    NoSourceFilesError,
)
from goerrcheck.program import Package, ParsedFile, Program, SourceFile
from goerrcheck.types import (
    ERROR_TYPE,
    Field,
    GoObject,
    GoType,
    ObjectKind,
    Selection,
    SelectionKind,
)

__all__ = [
    "LoadConfig",
    "TypeCache",
    "DumpLoader",
    "load_program",
    "match_pattern",
    "build_tags_satisfied",
]

logger = logging.getLogger(__name__)

Sexp = Any  # Union[list, Symbol, str, int]


class _ShapeError(ValueError):
    """A form has the wrong shape; reported as DumpSyntaxError."""


# ═══════════════════════════════════════════════════════════════════════
#  Configuration
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class LoadConfig:
    """
    What to load.

    Attributes
    ----------
    patterns : package selectors (``./...``, ``prefix/...``, exact path)
    tags     : requested build tags
    mod      : required module mode; ``None`` accepts whatever the dump used
    tests    : keep ``_test.go`` files and test package variants
    """
    patterns: Sequence[str] = ("./...",)
    tags: Sequence[str] = ()
    mod: Optional[str] = None
    tests: bool = True


# ═══════════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════════

def _sym_name(s: Sexp) -> str:
    if isinstance(s, Symbol):
        return str(s)
    raise _ShapeError(f"expected symbol, got {type(s).__name__}: {s!r}")


def _expect_list(s: Sexp, *, min_len: int = 0, tag: Optional[str] = None) -> list:
    """Assert that *s* is a list, optionally with a minimum length and head tag."""
    if not isinstance(s, list):
        raise _ShapeError(
            f"expected list{f' ({tag} ...)' if tag else ''}, "
            f"got {type(s).__name__}: {s!r}"
        )
    if tag is not None and (not s or _head(s) != tag):
        actual = _head(s) if s and isinstance(s[0], Symbol) else "<empty>"
        raise _ShapeError(f"expected ({tag} ...), got ({actual} ...)")
    if len(s) < min_len:
        raise _ShapeError(
            f"({_head(s) if s else ''} ...) too short: expected at least "
            f"{min_len} elements, got {len(s)}"
        )
    return s


def _head(s: list) -> str:
    if not s:
        raise _ShapeError("unexpected empty list")
    return _sym_name(s[0])


def _as_str(s: Sexp) -> str:
    """Accept a string literal or a symbol."""
    if isinstance(s, Symbol):
        return str(s)
    if isinstance(s, str):
        return s
    raise _ShapeError(f"expected string, got {type(s).__name__}: {s!r}")


def _as_int(s: Sexp) -> int:
    if isinstance(s, int) and not isinstance(s, bool):
        return s
    raise _ShapeError(f"expected integer, got {type(s).__name__}: {s!r}")


def _split(items: Iterable[Sexp], keys: Iterable[str]) -> Tuple[list, Dict[str, list]]:
    """Separate keyed option forms ``(key ...)`` from positional items."""
    keyset = set(keys)
    positional: list = []
    options: Dict[str, list] = {}
    for item in items:
        if isinstance(item, list) and item and isinstance(item[0], Symbol) \
                and str(item[0]) in keyset:
            name = str(item[0])
            if name in options:
                raise _ShapeError(f"duplicate ({name} ...) option")
            options[name] = item[1:]
            continue
        positional.append(item)
    return positional, options


def _single(option: Optional[list], what: str) -> Optional[Sexp]:
    if option is None:
        return None
    if len(option) != 1:
        raise _ShapeError(f"({what} ...) takes exactly one element")
    return option[0]


def _pkg(s: Sexp) -> Optional[str]:
    return _as_str(s) or None


def _register(table: dict, tag: str):
    """Decorator: register a reader function under *tag* in *table*."""
    def deco(fn):
        table[tag] = fn
        return fn
    return deco


_TYPE_DISPATCH: Dict[str, Callable[..., GoType]] = {}
_OBJ_DISPATCH: Dict[str, Callable[..., GoObject]] = {}
_EXPR_DISPATCH: Dict[str, Callable[..., A.Expr]] = {}
_STMT_DISPATCH: Dict[str, Callable[..., A.Stmt]] = {}
# Forms whose operand at a fixed index starts the expression; their
# readers take that operand already read.
_CHAIN_DISPATCH: Dict[str, Tuple[int, Callable[..., A.Expr]]] = {}


def _chain(tag: str, at: int):
    """Decorator: register a left-anchored expression reader."""
    def deco(fn):
        _CHAIN_DISPATCH[tag] = (at, fn)
        return fn
    return deco


# ═══════════════════════════════════════════════════════════════════════
#  Type cache
# ═══════════════════════════════════════════════════════════════════════

class TypeCache:
    """
    Canonical named types of one load session.

    The predeclared ``error`` type is always :data:`ERROR_TYPE`, so the
    identity check in :func:`goerrcheck.types.is_error_type` holds for
    every call result read from any package of the dump.
    """

    def __init__(self) -> None:
        self._named: Dict[Tuple[Optional[str], str], GoType] = {
            (None, "error"): ERROR_TYPE,
        }

    def named(self, pkg: Optional[str], name: str) -> GoType:
        key = (pkg or None, name)
        t = self._named.get(key)
        if t is None:
            t = GoType.named(pkg, name)
            self._named[key] = t
        return t

    def undefined(self) -> List[GoType]:
        """Named types referenced but never given an underlying type."""
        return [
            t for t in self._named.values()
            if t is not ERROR_TYPE and t.underlying_type is None
        ]

    def __len__(self) -> int:
        return len(self._named)


class _Session:
    """State shared by the readers while one dump is read."""

    def __init__(self, cache: TypeCache, base_dir: Path) -> None:
        self.cache = cache
        self.base_dir = base_dir


# ═══════════════════════════════════════════════════════════════════════
#  Types
# ═══════════════════════════════════════════════════════════════════════

def _read_type(sess: _Session, s: Sexp, owner: Optional[GoType] = None) -> GoType:
    lst = _expect_list(s, min_len=1)
    tag = _head(lst)
    reader = _TYPE_DISPATCH.get(tag)
    if reader is None:
        raise _ShapeError(f"unknown type form: ({tag} ...)")
    return reader(sess, lst, owner)


@_register(_TYPE_DISPATCH, "basic")
def _read_basic(sess: _Session, s: list, owner) -> GoType:
    _expect_list(s, min_len=2)
    return GoType.basic(_as_str(s[1]))


@_register(_TYPE_DISPATCH, "named")
def _read_named(sess: _Session, s: list, owner) -> GoType:
    _expect_list(s, min_len=3)
    return sess.cache.named(_pkg(s[1]), _as_str(s[2]))


@_register(_TYPE_DISPATCH, "pointer")
def _read_pointer(sess: _Session, s: list, owner) -> GoType:
    _expect_list(s, min_len=2)
    return GoType.pointer(_read_type(sess, s[1]))


@_register(_TYPE_DISPATCH, "slice")
def _read_slice_type(sess: _Session, s: list, owner) -> GoType:
    _expect_list(s, min_len=2)
    return GoType.slice(_read_type(sess, s[1]))


@_register(_TYPE_DISPATCH, "array")
def _read_array(sess: _Session, s: list, owner) -> GoType:
    _expect_list(s, min_len=3)
    return GoType.array(_read_type(sess, s[2]), _as_int(s[1]))


@_register(_TYPE_DISPATCH, "map")
def _read_map(sess: _Session, s: list, owner) -> GoType:
    _expect_list(s, min_len=3)
    return GoType.map_of(_read_type(sess, s[1]), _read_type(sess, s[2]))


@_register(_TYPE_DISPATCH, "chan")
def _read_chan(sess: _Session, s: list, owner) -> GoType:
    _expect_list(s, min_len=2)
    return GoType.chan(_read_type(sess, s[1]))


@_register(_TYPE_DISPATCH, "tuple")
def _read_tuple(sess: _Session, s: list, owner) -> GoType:
    return GoType.tuple_of(*(_read_type(sess, t) for t in s[1:]))


@_register(_TYPE_DISPATCH, "invalid")
def _read_invalid(sess: _Session, s: list, owner) -> GoType:
    return GoType.invalid()


@_register(_TYPE_DISPATCH, "struct")
def _read_struct(sess: _Session, s: list, owner) -> GoType:
    fields: List[Field] = []
    for item in s[1:]:
        form = _expect_list(item, min_len=3)
        tag = _head(form)
        if tag not in ("field", "embedded"):
            raise _ShapeError(f"unknown struct member: ({tag} ...)")
        fields.append(Field(
            name=_as_str(form[1]),
            type=_read_type(sess, form[2]),
            embedded=(tag == "embedded"),
        ))
    return GoType.struct(fields)


@_register(_TYPE_DISPATCH, "interface")
def _read_interface(sess: _Session, s: list, owner) -> GoType:
    iface = GoType.interface()
    recv = owner if owner is not None else iface
    pkg = owner.pkg if owner is not None else None
    for item in s[1:]:
        form = _expect_list(item, min_len=2)
        tag = _head(form)
        if tag == "method":
            _expect_list(form, min_len=3)
            iface.methods.append(GoObject(
                ObjectKind.FUNC, _as_str(form[1]), pkg=pkg,
                type=_read_type(sess, form[2]), recv=recv,
            ))
        elif tag == "embed":
            iface.embeddeds.append(_read_type(sess, form[1]))
        else:
            raise _ShapeError(f"unknown interface member: ({tag} ...)")
    return iface


@_register(_TYPE_DISPATCH, "signature")
def _read_signature(sess: _Session, s: list, owner) -> GoType:
    _, opts = _split(s[1:], ("params", "results", "variadic"))
    return GoType.signature(
        params=[_read_type(sess, t) for t in opts.get("params", [])],
        results=[_read_type(sess, t) for t in opts.get("results", [])],
        variadic="variadic" in opts,
    )


def _read_typedef(sess: _Session, s: list) -> GoType:
    """``(typedef PKG NAME UNDERLYING (methods FUNC...)?)``."""
    _expect_list(s, min_len=4, tag="typedef")
    named = sess.cache.named(_pkg(s[1]), _as_str(s[2]))
    if named is ERROR_TYPE:
        raise _ShapeError("the predeclared error type cannot be redefined")
    if named.underlying_type is not None:
        raise _ShapeError(f"duplicate typedef for {named}")
    named.underlying_type = _read_type(sess, s[3], owner=named)
    for item in s[4:]:
        # Concrete method sets are not needed for analysis; the shape is
        # still validated.
        form = _expect_list(item, tag="methods")
        for fn in form[1:]:
            _read_obj(sess, fn)
    return named


# ═══════════════════════════════════════════════════════════════════════
#  Objects
# ═══════════════════════════════════════════════════════════════════════

def _read_obj(sess: _Session, s: Sexp) -> GoObject:
    lst = _expect_list(s, min_len=1)
    tag = _head(lst)
    reader = _OBJ_DISPATCH.get(tag)
    if reader is None:
        raise _ShapeError(f"unknown object form: ({tag} ...)")
    return reader(sess, lst)


@_register(_OBJ_DISPATCH, "func")
def _read_func_obj(sess: _Session, s: list) -> GoObject:
    _expect_list(s, min_len=3)
    recv = _read_type(sess, s[3]) if len(s) > 3 else None
    return GoObject(ObjectKind.FUNC, _as_str(s[2]), pkg=_pkg(s[1]), recv=recv)


@_register(_OBJ_DISPATCH, "builtin")
def _read_builtin_obj(sess: _Session, s: list) -> GoObject:
    _expect_list(s, min_len=2)
    return GoObject(ObjectKind.BUILTIN, _as_str(s[1]))


@_register(_OBJ_DISPATCH, "var")
def _read_var_obj(sess: _Session, s: list) -> GoObject:
    _expect_list(s, min_len=3)
    t = _read_type(sess, s[3]) if len(s) > 3 else None
    return GoObject(ObjectKind.VAR, _as_str(s[2]), pkg=_pkg(s[1]), type=t)


@_register(_OBJ_DISPATCH, "const")
def _read_const_obj(sess: _Session, s: list) -> GoObject:
    _expect_list(s, min_len=3)
    return GoObject(ObjectKind.CONST, _as_str(s[2]), pkg=_pkg(s[1]))


@_register(_OBJ_DISPATCH, "typename")
def _read_typename_obj(sess: _Session, s: list) -> GoObject:
    _expect_list(s, min_len=3)
    return GoObject(ObjectKind.TYPENAME, _as_str(s[2]), pkg=_pkg(s[1]))


@_register(_OBJ_DISPATCH, "pkgname")
def _read_pkgname_obj(sess: _Session, s: list) -> GoObject:
    _expect_list(s, min_len=2)
    path = _as_str(s[1])
    return GoObject(ObjectKind.PKGNAME, path.rsplit("/", 1)[-1], pkg=path)


@_register(_OBJ_DISPATCH, "nilvalue")
def _read_nil_obj(sess: _Session, s: list) -> GoObject:
    return GoObject(ObjectKind.NIL, "nil")


# ═══════════════════════════════════════════════════════════════════════
#  Expressions
# ═══════════════════════════════════════════════════════════════════════

def _read_expr(sess: _Session, s: Sexp) -> A.Expr:
    """Read an expression form.

    Left-anchored forms (``a + b + c``, ``x.f().g``, ``m[k][j]``) nest
    along their first operand.  That spine is descended with a loop and
    the nodes are built back up from the innermost operand, so long
    chains in generated code do not exhaust the interpreter stack.
    """
    spine: List[list] = []
    lst = _expect_list(s, min_len=1)
    tag = _head(lst)
    while tag in _CHAIN_DISPATCH:
        at, _ = _CHAIN_DISPATCH[tag]
        spine.append(_expect_list(lst, min_len=at + 1))
        lst = _expect_list(lst[at], min_len=1)
        tag = _head(lst)

    reader = _EXPR_DISPATCH.get(tag)
    if reader is None:
        raise _ShapeError(f"unknown expression form: ({tag} ...)")
    expr = reader(sess, lst)
    for form in reversed(spine):
        _, chain_reader = _CHAIN_DISPATCH[_head(form)]
        expr = chain_reader(sess, form, expr)
    return expr


def _read_exprs(sess: _Session, items: Iterable[Sexp]) -> Tuple[A.Expr, ...]:
    return tuple(_read_expr(sess, e) for e in items)


def _opt_type(sess: _Session, opts: Dict[str, list]) -> Optional[GoType]:
    t = _single(opts.get("type"), "type")
    return _read_type(sess, t) if t is not None else None


def _opt_expr(sess: _Session, opts: Dict[str, list], key: str) -> Optional[A.Expr]:
    e = _single(opts.get(key), key)
    return _read_expr(sess, e) if e is not None else None


@_register(_EXPR_DISPATCH, "ident")
def _read_ident(sess: _Session, s: list) -> A.Ident:
    _expect_list(s, min_len=3)
    _, opts = _split(s[3:], ("obj", "type"))
    obj = _single(opts.get("obj"), "obj")
    return A.Ident(
        name=_as_str(s[1]),
        pos=_as_int(s[2]),
        obj=_read_obj(sess, obj) if obj is not None else None,
        type=_opt_type(sess, opts),
    )


@_register(_EXPR_DISPATCH, "lit")
def _read_lit(sess: _Session, s: list) -> A.BasicLit:
    _expect_list(s, min_len=4)
    _, opts = _split(s[4:], ("type",))
    return A.BasicLit(
        lit_kind=_as_str(s[1]), value=_as_str(s[2]), pos=_as_int(s[3]),
        type=_opt_type(sess, opts),
    )


@_register(_EXPR_DISPATCH, "composite")
def _read_composite(sess: _Session, s: list) -> A.CompositeLit:
    _expect_list(s, min_len=2)
    _, opts = _split(s[2:], ("elts", "type"))
    return A.CompositeLit(
        elts=_read_exprs(sess, opts.get("elts", [])),
        lbrace=_as_int(s[1]),
        type=_opt_type(sess, opts),
    )


@_register(_EXPR_DISPATCH, "func-lit")
def _read_func_lit(sess: _Session, s: list) -> A.FuncLit:
    _expect_list(s, min_len=3)
    _, opts = _split(s[3:], ("type",))
    return A.FuncLit(
        body=_read_block(sess, s[2]), pos=_as_int(s[1]),
        type=_opt_type(sess, opts),
    )


@_register(_EXPR_DISPATCH, "paren")
def _read_paren(sess: _Session, s: list) -> A.ParenExpr:
    _expect_list(s, min_len=3)
    _, opts = _split(s[3:], ("type",))
    return A.ParenExpr(
        x=_read_expr(sess, s[2]), lparen=_as_int(s[1]),
        type=_opt_type(sess, opts),
    )


_SELECTION_KINDS = {
    "field-val": SelectionKind.FIELD_VAL,
    "method-val": SelectionKind.METHOD_VAL,
    "method-expr": SelectionKind.METHOD_EXPR,
}


@_chain("selector", 1)
def _read_selector(sess: _Session, s: list, x: A.Expr) -> A.SelectorExpr:
    _expect_list(s, min_len=3)
    sel = _read_expr(sess, s[2])
    if not isinstance(sel, A.Ident):
        raise _ShapeError("selector name must be an (ident ...)")
    _, opts = _split(s[3:], ("selection", "type"))

    selection: Optional[Selection] = None
    raw = opts.get("selection")
    if raw is not None:
        if len(raw) < 2:
            raise _ShapeError("(selection KIND RECV (index I...)) expected")
        kind_name = _as_str(raw[0])
        kind = _SELECTION_KINDS.get(kind_name)
        if kind is None:
            raise _ShapeError(f"unknown selection kind {kind_name!r}")
        index: Tuple[int, ...] = ()
        if len(raw) > 2:
            index = tuple(_as_int(i) for i in _expect_list(raw[2], tag="index")[1:])
        if sel.obj is None:
            raise _ShapeError(f"selection of {sel.name!r} has no (obj ...)")
        selection = Selection(kind, _read_type(sess, raw[1]), sel.obj, index)

    return A.SelectorExpr(
        x=x, sel=sel, selection=selection, type=_opt_type(sess, opts),
    )


@_chain("index", 1)
def _read_index(sess: _Session, s: list, x: A.Expr) -> A.IndexExpr:
    _expect_list(s, min_len=4)
    rest, opts = _split(s[3:], ("type",))
    return A.IndexExpr(
        x=x, indices=_read_exprs(sess, rest),
        lbrack=_as_int(s[2]), type=_opt_type(sess, opts),
    )


@_chain("slice", 1)
def _read_slice_expr(sess: _Session, s: list, x: A.Expr) -> A.SliceExpr:
    _expect_list(s, min_len=3)
    _, opts = _split(s[3:], ("low", "high", "max", "type"))
    return A.SliceExpr(
        x=x, lbrack=_as_int(s[2]),
        low=_opt_expr(sess, opts, "low"),
        high=_opt_expr(sess, opts, "high"),
        max=_opt_expr(sess, opts, "max"),
        type=_opt_type(sess, opts),
    )


@_chain("assert", 1)
def _read_assert(sess: _Session, s: list, x: A.Expr) -> A.TypeAssertExpr:
    _expect_list(s, min_len=3)
    _, opts = _split(s[3:], ("asserted", "type"))
    asserted = _single(opts.get("asserted"), "asserted")
    return A.TypeAssertExpr(
        x=x, lparen=_as_int(s[2]),
        asserted=_read_type(sess, asserted) if asserted is not None else None,
        type=_opt_type(sess, opts),
    )


@_chain("call", 1)
def _read_call(sess: _Session, s: list, fun: A.Expr) -> A.CallExpr:
    _expect_list(s, min_len=4)
    args, opts = _split(s[4:], ("type", "ellipsis"))
    ellipsis = _single(opts.get("ellipsis"), "ellipsis")
    return A.CallExpr(
        fun=fun,
        args=_read_exprs(sess, args),
        lparen=_as_int(s[2]),
        rparen=_as_int(s[3]),
        type=_opt_type(sess, opts),
        ellipsis=_as_int(ellipsis) if ellipsis is not None else -1,
    )


@_register(_EXPR_DISPATCH, "star")
def _read_star(sess: _Session, s: list) -> A.StarExpr:
    _expect_list(s, min_len=3)
    _, opts = _split(s[3:], ("type",))
    return A.StarExpr(
        x=_read_expr(sess, s[2]), pos=_as_int(s[1]), type=_opt_type(sess, opts),
    )


@_register(_EXPR_DISPATCH, "unary")
def _read_unary(sess: _Session, s: list) -> A.UnaryExpr:
    _expect_list(s, min_len=4)
    _, opts = _split(s[4:], ("type",))
    return A.UnaryExpr(
        op=_as_str(s[1]), x=_read_expr(sess, s[3]), pos=_as_int(s[2]),
        type=_opt_type(sess, opts),
    )


@_chain("binary", 3)
def _read_binary(sess: _Session, s: list, x: A.Expr) -> A.BinaryExpr:
    _expect_list(s, min_len=5)
    _, opts = _split(s[5:], ("type",))
    return A.BinaryExpr(
        op=_as_str(s[1]), op_pos=_as_int(s[2]),
        x=x, y=_read_expr(sess, s[4]),
        type=_opt_type(sess, opts),
    )


@_register(_EXPR_DISPATCH, "kv")
def _read_kv(sess: _Session, s: list) -> A.KeyValueExpr:
    _expect_list(s, min_len=3)
    return A.KeyValueExpr(key=_read_expr(sess, s[1]), value=_read_expr(sess, s[2]))


@_register(_EXPR_DISPATCH, "type-expr")
def _read_type_expr(sess: _Session, s: list) -> A.TypeExpr:
    _expect_list(s, min_len=3)
    return A.TypeExpr(type=_read_type(sess, s[2]), pos=_as_int(s[1]))


# ═══════════════════════════════════════════════════════════════════════
#  Statements
# ═══════════════════════════════════════════════════════════════════════

def _read_stmt(sess: _Session, s: Sexp) -> A.Stmt:
    lst = _expect_list(s, min_len=1)
    tag = _head(lst)
    reader = _STMT_DISPATCH.get(tag)
    if reader is None:
        raise _ShapeError(f"unknown statement form: ({tag} ...)")
    return reader(sess, lst)


def _read_stmts(sess: _Session, items: Iterable[Sexp]) -> Tuple[A.Stmt, ...]:
    return tuple(_read_stmt(sess, st) for st in items)


def _opt_stmt(sess: _Session, opts: Dict[str, list], key: str) -> Optional[A.Stmt]:
    st = _single(opts.get(key), key)
    return _read_stmt(sess, st) if st is not None else None


def _required(opts: Dict[str, list], key: str, where: str) -> Sexp:
    value = _single(opts.get(key), key)
    if value is None:
        raise _ShapeError(f"({where} ...) requires ({key} ...)")
    return value


def _read_block(sess: _Session, s: Sexp) -> A.BlockStmt:
    lst = _expect_list(s, min_len=2, tag="block")
    return A.BlockStmt(stmts=_read_stmts(sess, lst[2:]), lbrace=_as_int(lst[1]))


def _read_call_only(sess: _Session, s: Sexp, where: str) -> A.CallExpr:
    call = _read_expr(sess, s)
    if not isinstance(call, A.CallExpr):
        raise _ShapeError(f"({where} ...) requires a (call ...)")
    return call


@_register(_STMT_DISPATCH, "block")
def _read_block_stmt(sess: _Session, s: list) -> A.BlockStmt:
    return _read_block(sess, s)


@_register(_STMT_DISPATCH, "expr-stmt")
def _read_expr_stmt(sess: _Session, s: list) -> A.ExprStmt:
    _expect_list(s, min_len=2)
    return A.ExprStmt(x=_read_expr(sess, s[1]))


@_register(_STMT_DISPATCH, "go")
def _read_go(sess: _Session, s: list) -> A.GoStmt:
    _expect_list(s, min_len=3)
    return A.GoStmt(call=_read_call_only(sess, s[2], "go"), pos=_as_int(s[1]))


@_register(_STMT_DISPATCH, "defer")
def _read_defer(sess: _Session, s: list) -> A.DeferStmt:
    _expect_list(s, min_len=3)
    return A.DeferStmt(call=_read_call_only(sess, s[2], "defer"), pos=_as_int(s[1]))


@_register(_STMT_DISPATCH, "return")
def _read_return(sess: _Session, s: list) -> A.ReturnStmt:
    _expect_list(s, min_len=2)
    return A.ReturnStmt(results=_read_exprs(sess, s[2:]), pos=_as_int(s[1]))


@_register(_STMT_DISPATCH, "assign")
def _read_assign(sess: _Session, s: list) -> A.AssignStmt:
    _expect_list(s, min_len=5)
    lhs = _expect_list(s[3], tag="lhs")
    rhs = _expect_list(s[4], tag="rhs")
    return A.AssignStmt(
        lhs=_read_exprs(sess, lhs[1:]),
        tok=_as_str(s[1]),
        tok_pos=_as_int(s[2]),
        rhs=_read_exprs(sess, rhs[1:]),
    )


@_register(_STMT_DISPATCH, "empty")
def _read_empty(sess: _Session, s: list) -> A.EmptyStmt:
    _expect_list(s, min_len=2)
    return A.EmptyStmt(pos=_as_int(s[1]))


@_register(_STMT_DISPATCH, "labeled")
def _read_labeled(sess: _Session, s: list) -> A.LabeledStmt:
    _expect_list(s, min_len=4)
    label = A.Ident(name=_as_str(s[1]), pos=_as_int(s[2]))
    return A.LabeledStmt(label=label, stmt=_read_stmt(sess, s[3]))


@_register(_STMT_DISPATCH, "send")
def _read_send(sess: _Session, s: list) -> A.SendStmt:
    _expect_list(s, min_len=4)
    return A.SendStmt(
        chan=_read_expr(sess, s[2]), value=_read_expr(sess, s[3]),
        arrow=_as_int(s[1]),
    )


@_register(_STMT_DISPATCH, "incdec")
def _read_incdec(sess: _Session, s: list) -> A.IncDecStmt:
    _expect_list(s, min_len=4)
    return A.IncDecStmt(x=_read_expr(sess, s[3]), tok=_as_str(s[1]), tok_pos=_as_int(s[2]))


@_register(_STMT_DISPATCH, "branch")
def _read_branch(sess: _Session, s: list) -> A.BranchStmt:
    _expect_list(s, min_len=3)
    label = None
    if len(s) > 3:
        label = A.Ident(name=_as_str(s[3]), pos=_as_int(s[2]))
    return A.BranchStmt(tok=_as_str(s[1]), pos=_as_int(s[2]), label=label)


@_register(_STMT_DISPATCH, "if")
def _read_if(sess: _Session, s: list) -> A.IfStmt:
    _expect_list(s, min_len=2)
    _, opts = _split(s[2:], ("init", "cond", "body", "else"))
    return A.IfStmt(
        cond=_read_expr(sess, _required(opts, "cond", "if")),
        body=_read_block(sess, _required(opts, "body", "if")),
        pos=_as_int(s[1]),
        init=_opt_stmt(sess, opts, "init"),
        else_=_opt_stmt(sess, opts, "else"),
    )


@_register(_STMT_DISPATCH, "for")
def _read_for(sess: _Session, s: list) -> A.ForStmt:
    _expect_list(s, min_len=2)
    _, opts = _split(s[2:], ("init", "cond", "post", "body"))
    return A.ForStmt(
        body=_read_block(sess, _required(opts, "body", "for")),
        pos=_as_int(s[1]),
        init=_opt_stmt(sess, opts, "init"),
        cond=_opt_expr(sess, opts, "cond"),
        post=_opt_stmt(sess, opts, "post"),
    )


@_register(_STMT_DISPATCH, "range")
def _read_range(sess: _Session, s: list) -> A.RangeStmt:
    _expect_list(s, min_len=3)
    _, opts = _split(s[3:], ("key", "value", "x", "body"))
    return A.RangeStmt(
        x=_read_expr(sess, _required(opts, "x", "range")),
        body=_read_block(sess, _required(opts, "body", "range")),
        pos=_as_int(s[1]),
        key=_opt_expr(sess, opts, "key"),
        value=_opt_expr(sess, opts, "value"),
        tok=_as_str(s[2]),
    )


@_register(_STMT_DISPATCH, "switch")
def _read_switch(sess: _Session, s: list) -> A.SwitchStmt:
    _expect_list(s, min_len=2)
    _, opts = _split(s[2:], ("init", "tag", "body"))
    return A.SwitchStmt(
        body=_read_block(sess, _required(opts, "body", "switch")),
        pos=_as_int(s[1]),
        init=_opt_stmt(sess, opts, "init"),
        tag=_opt_expr(sess, opts, "tag"),
    )


@_register(_STMT_DISPATCH, "type-switch")
def _read_type_switch(sess: _Session, s: list) -> A.TypeSwitchStmt:
    _expect_list(s, min_len=2)
    _, opts = _split(s[2:], ("init", "assign", "body"))
    return A.TypeSwitchStmt(
        assign=_read_stmt(sess, _required(opts, "assign", "type-switch")),
        body=_read_block(sess, _required(opts, "body", "type-switch")),
        pos=_as_int(s[1]),
        init=_opt_stmt(sess, opts, "init"),
    )


@_register(_STMT_DISPATCH, "select")
def _read_select(sess: _Session, s: list) -> A.SelectStmt:
    _expect_list(s, min_len=2)
    _, opts = _split(s[2:], ("body",))
    return A.SelectStmt(
        body=_read_block(sess, _required(opts, "body", "select")),
        pos=_as_int(s[1]),
    )


@_register(_STMT_DISPATCH, "case")
def _read_case(sess: _Session, s: list) -> A.CaseClause:
    _expect_list(s, min_len=2)
    body, opts = _split(s[2:], ("list",))
    exprs = _read_exprs(sess, opts["list"]) if "list" in opts else None
    return A.CaseClause(exprs=exprs, body=_read_stmts(sess, body), pos=_as_int(s[1]))


@_register(_STMT_DISPATCH, "comm")
def _read_comm(sess: _Session, s: list) -> A.CommClause:
    _expect_list(s, min_len=2)
    body, opts = _split(s[2:], ("on",))
    return A.CommClause(
        comm=_opt_stmt(sess, opts, "on"),
        body=_read_stmts(sess, body),
        pos=_as_int(s[1]),
    )


@_register(_STMT_DISPATCH, "decl-stmt")
def _read_decl_stmt(sess: _Session, s: list) -> A.DeclStmt:
    _expect_list(s, min_len=2)
    return A.DeclStmt(decl=_read_gen_decl(sess, s[1]))


# ═══════════════════════════════════════════════════════════════════════
#  Declarations and files
# ═══════════════════════════════════════════════════════════════════════

def _read_value_spec(sess: _Session, s: Sexp) -> A.ValueSpec:
    lst = _expect_list(s, tag="value-spec")
    _, opts = _split(lst[1:], ("names", "values", "type"))
    names = _read_exprs(sess, opts.get("names", []))
    if not names or not all(isinstance(n, A.Ident) for n in names):
        raise _ShapeError("(value-spec ...) requires (names IDENT...)")
    return A.ValueSpec(
        names=names,
        values=_read_exprs(sess, opts.get("values", [])),
        type=_opt_type(sess, opts),
    )


def _read_gen_decl(sess: _Session, s: Sexp) -> A.GenDecl:
    lst = _expect_list(s, min_len=3, tag="gen-decl")
    return A.GenDecl(
        tok=_as_str(lst[1]),
        specs=tuple(_read_value_spec(sess, spec) for spec in lst[3:]),
        pos=_as_int(lst[2]),
    )


def _read_func_decl(sess: _Session, s: list) -> A.FuncDecl:
    _expect_list(s, min_len=3)
    _, opts = _split(s[3:], ("recv", "body"))
    recv = _single(opts.get("recv"), "recv")
    body = _single(opts.get("body"), "body")
    return A.FuncDecl(
        name=A.Ident(name=_as_str(s[1]), pos=_as_int(s[2])),
        pos=_as_int(s[2]),
        body=_read_block(sess, body) if body is not None else None,
        recv=_read_type(sess, recv) if recv is not None else None,
    )


def _read_decl(sess: _Session, s: Sexp) -> A.Node:
    lst = _expect_list(s, min_len=1)
    tag = _head(lst)
    if tag == "func-decl":
        return _read_func_decl(sess, lst)
    if tag == "gen-decl":
        return _read_gen_decl(sess, lst)
    raise _ShapeError(f"unknown declaration form: ({tag} ...)")


_PACKAGE_CLAUSE = re.compile(rb"(?m)^package\s")


def _read_source(sess: _Session, name: str, opts: Dict[str, list]) -> SourceFile:
    if "source" in opts:
        return SourceFile.from_lines(name, [_as_str(line) for line in opts["source"]])
    rel = _single(opts.get("source-path"), "source-path")
    if rel is None:
        raise _ShapeError(f"(file {name!r} ...) has neither (source) nor (source-path)")
    path = sess.base_dir / _as_str(rel)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise LoadError(f"could not read source {path}: {exc.strerror or exc}",
                        cause=exc) from exc
    return SourceFile(name, text)


def _read_file(sess: _Session, s: Sexp, package_name: str) -> ParsedFile:
    lst = _expect_list(s, min_len=2, tag="file")
    name = _as_str(lst[1])
    decls, opts = _split(lst[2:], ("build-tags", "source", "source-path"))
    source = _read_source(sess, name, opts)
    m = _PACKAGE_CLAUSE.search(source.data)
    tree = A.File(
        package_name=package_name,
        package_pos=m.start() if m else 0,
        decls=tuple(_read_decl(sess, d) for d in decls),
    )
    tags = tuple(_as_str(t) for t in opts.get("build-tags", []))
    return ParsedFile(name=name, tree=tree, source=source, build_tags=tags)


def _read_package(sess: _Session, s: Sexp) -> Package:
    lst = _expect_list(s, min_len=3, tag="package")
    path = _as_str(lst[1])
    name = _as_str(lst[2])
    files, opts = _split(lst[3:], ("test", "errors"))
    return Package(
        path=path,
        name=name,
        files=[_read_file(sess, f, name) for f in files],
        errors=[_as_str(e) for e in opts.get("errors", [])],
        is_test_variant="test" in opts,
    )


def _read_program(sess: _Session, raw: Sexp) -> Program:
    lst = _expect_list(raw, tag="program")
    mod: Optional[str] = None
    packages: List[Package] = []
    for item in lst[1:]:
        form = _expect_list(item, min_len=1)
        tag = _head(form)
        if tag == "mod":
            _expect_list(form, min_len=2)
            mod = _as_str(form[1])
        elif tag == "typedef":
            _read_typedef(sess, form)
        elif tag == "package":
            packages.append(_read_package(sess, form))
        else:
            raise _ShapeError(f"unknown top-level form: ({tag} ...)")
    for t in sess.cache.undefined():
        logger.debug("named type %s has no typedef", t)
    return Program(packages=packages, mod=mod)


# ═══════════════════════════════════════════════════════════════════════
#  Package and file selection
# ═══════════════════════════════════════════════════════════════════════

def match_pattern(pattern: str, path: str) -> bool:
    """
    Does package *path* match the selector *pattern*?

    >>> match_pattern("./...", "example.com/m/sub")
    True
    >>> match_pattern("net/...", "net/http")
    True
    >>> match_pattern("net/...", "network")
    False
    """
    if pattern in ("...", "./..."):
        return True
    relative = pattern.startswith("./")
    if relative:
        pattern = pattern[2:]
    if pattern.endswith("/..."):
        base = pattern[:-len("/...")]
        if path == base or path.startswith(base + "/"):
            return True
        return relative and f"/{base}/" in f"/{path}/"
    if relative:
        return path == pattern or path.endswith("/" + pattern)
    return path == pattern


def build_tags_satisfied(terms: Sequence[str], tags: Sequence[str]) -> bool:
    """True if every build-tag term holds for the requested *tags*."""
    requested = set(tags)
    for term in terms:
        if term.startswith("!"):
            if term[1:] in requested:
                return False
        elif term not in requested:
            return False
    return True


class DumpLoader:
    """
    Reads a typed dump and applies a :class:`LoadConfig`.

    Usage
    -----
    >>> loader = DumpLoader(LoadConfig(patterns=["./..."], tests=False))
    >>> program = loader.load("build/errcheck.sexp")     # doctest: +SKIP
    """

    def __init__(self, config: Optional[LoadConfig] = None) -> None:
        self.config = config or LoadConfig()

    def load(self, path: Union[str, Path]) -> Program:
        p = Path(path)
        try:
            text = p.read_text(encoding="utf-8")
        except OSError as exc:
            raise LoadError(f"could not read dump {p}: {exc.strerror or exc}",
                            cause=exc) from exc
        return self.loads(text, filename=str(p), base_dir=p.parent)

    def loads(
        self,
        text: str,
        *,
        filename: str = "<string>",
        base_dir: Union[str, Path, None] = None,
    ) -> Program:
        # Keep nil/t as plain symbols.
        try:
            raw = sexpdata.loads(text, nil=None, true=None, false=None)
        except Exception as exc:
            raise DumpSyntaxError(
                f"S-expression syntax error: {exc}", filename=filename, cause=exc,
            ) from exc

        sess = _Session(TypeCache(), Path(base_dir) if base_dir else Path.cwd())
        try:
            program = _read_program(sess, raw)
        except _ShapeError as exc:
            raise DumpSyntaxError(str(exc), filename=filename, cause=exc) from exc
        except RecursionError as exc:
            # Right-nested operands and nested blocks are still read recursively.
            raise DumpSyntaxError(
                "forms nested too deeply to read", filename=filename, cause=exc,
            ) from exc

        logger.debug(
            "read %d packages, %d named types from %s",
            len(program), len(sess.cache), filename,
        )
        return self.select(program)

    # ── selection ────────────────────────────────────────────────────

    def select(self, program: Program) -> Program:
        """Apply module mode, package patterns, tags and the test filter."""
        cfg = self.config
        actual = program.mod or ""
        if cfg.mod is not None and cfg.mod != actual:
            raise ModuleModeError(cfg.mod, actual)

        matched = {pattern: False for pattern in cfg.patterns}
        selected: List[Package] = []
        for pkg in program.packages:
            if pkg.path == "unsafe":
                continue
            hits = [pat for pat in cfg.patterns if match_pattern(pat, pkg.path)]
            if not hits:
                continue
            for pat in hits:
                matched[pat] = True
            if pkg.is_test_variant and not cfg.tests:
                continue
            if pkg.errors:
                raise LoadError(
                    f"package {pkg.path} has errors: " + "; ".join(pkg.errors),
                    ErrcheckErrorCodes.TYPE_CHECK_FAILED,
                )
            try:
                pkg.files = self._select_files(pkg)
            except NoSourceFilesError as exc:
                logger.warning("%s", exc)
                pkg.files = []
            selected.append(pkg)

        for pattern, hit in matched.items():
            if not hit:
                logger.warning("pattern %s matched no packages", pattern)

        logger.info("loaded %d packages", len(selected))
        return Program(packages=selected, mod=program.mod)

    def _select_files(self, pkg: Package) -> List[ParsedFile]:
        files = []
        for f in pkg.files:
            if f.is_test and not self.config.tests:
                continue
            if not build_tags_satisfied(f.build_tags, self.config.tags):
                logger.debug("%s: excluded by build tags %s", f.name, f.build_tags)
                continue
            files.append(f)
        if not files:
            raise NoSourceFilesError(pkg.path)
        return files


def load_program(path: Union[str, Path], config: Optional[LoadConfig] = None) -> Program:
    """Read the dump at *path* and return the selected packages."""
    return DumpLoader(config).load(path)
