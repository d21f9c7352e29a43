# tests/builders.py
"""
Helpers for building typed syntax trees by hand.

Positions in the tree are byte offsets into a real source text, so
diagnostics resolve to the same line/column a front end would report.
:class:`GoSource` finds those offsets by searching the text.
"""

import re
import textwrap
from typing import Optional, Sequence

from goerrcheck import ast as A
from goerrcheck.program import Package, ParsedFile, SourceFile
from goerrcheck.types import (
    ERROR_TYPE,
    GoObject,
    GoType,
    ObjectKind,
    Selection,
    SelectionKind,
)

STRING = GoType.basic("string")
INT = GoType.basic("int")
BYTES = GoType.slice(GoType.basic("byte"))
EMPTY_INTERFACE = GoType.interface()


def results(*types: GoType) -> GoType:
    """Result type of a call: a bare type for one result, else a tuple."""
    if len(types) == 1:
        return types[0]
    return GoType.tuple_of(*types)


def func(pkg: Optional[str], name: str, recv: Optional[GoType] = None) -> GoObject:
    return GoObject(ObjectKind.FUNC, name, pkg=pkg, recv=recv)


def builtin(name: str) -> GoObject:
    return GoObject(ObjectKind.BUILTIN, name)


def pkgname(path: str) -> GoObject:
    return GoObject(ObjectKind.PKGNAME, path.rsplit("/", 1)[-1], pkg=path)


def var(pkg: Optional[str], name: str, type: Optional[GoType] = None) -> GoObject:
    return GoObject(ObjectKind.VAR, name, pkg=pkg, type=type)


def named_interface(pkg: str, name: str, methods: Sequence[str] = (),
                    embeds: Sequence[GoType] = ()) -> GoType:
    """A defined interface type whose methods take it as receiver."""
    t = GoType.named(pkg, name)
    iface = GoType.interface(embeddeds=list(embeds))
    for m in methods:
        iface.methods.append(GoObject(
            ObjectKind.FUNC, m, pkg=pkg,
            type=GoType.signature([BYTES], [INT, ERROR_TYPE]), recv=t,
        ))
    t.underlying_type = iface
    return t


class GoSource:
    """Go source text plus offset lookup for building trees against it."""

    def __init__(self, text: str, name: str = "main.go") -> None:
        self.text = textwrap.dedent(text).lstrip("\n")
        self.name = name
        self.source = SourceFile(name, self.text)

    def at(self, needle: str, nth: int = 0) -> int:
        """Byte offset of the *nth* occurrence of *needle*."""
        data = self.source.data
        target = needle.encode("utf-8")
        idx = -1
        for _ in range(nth + 1):
            idx = data.find(target, idx + 1)
            if idx < 0:
                raise ValueError(f"{needle!r} occurrence {nth} not in source")
        return idx

    def blank(self, nth: int = 0) -> A.Ident:
        """The *nth* ``_`` of the source, as an identifier."""
        return A.Ident("_", self.at("_", nth))

    def ident(self, name: str, nth: int = 0, obj: Optional[GoObject] = None,
              type: Optional[GoType] = None) -> A.Ident:
        """The *nth* standalone occurrence of identifier *name*."""
        pattern = re.compile(rb"(?<![\w.])" + re.escape(name.encode("utf-8")) + rb"(?!\w)")
        matches = list(pattern.finditer(self.source.data))
        if nth >= len(matches):
            raise ValueError(f"identifier {name!r} occurrence {nth} not in source")
        return A.Ident(name, matches[nth].start(), obj=obj, type=type)

    def call(self, name: str, result: Optional[GoType], nth: int = 0,
             obj: Optional[GoObject] = None,
             args: Sequence[A.Expr] = ()) -> A.CallExpr:
        """``name(...)`` as a call of an unqualified function.

        *nth* counts occurrences of ``name(`` in the source, skipping the
        function's own declaration.
        """
        start = self._call_start(name, nth)
        if obj is None:
            obj = func("main", name)
        fun = A.Ident(name, start, obj=obj)
        lparen = start + len(name)
        return A.CallExpr(fun, tuple(args), lparen,
                          self._rparen(lparen), type=result)

    def selector_call(self, x: str, sel: str, result: Optional[GoType],
                      nth: int = 0, x_obj: Optional[GoObject] = None,
                      x_type: Optional[GoType] = None,
                      obj: Optional[GoObject] = None,
                      selection: Optional[Selection] = None,
                      args: Sequence[A.Expr] = ()) -> A.CallExpr:
        """``x.sel(...)``; *nth* counts occurrences of ``x.sel(``."""
        start = self.at(f"{x}.{sel}(", nth)
        xi = A.Ident(x, start, obj=x_obj, type=x_type)
        si = A.Ident(sel, start + len(x) + 1, obj=obj)
        lparen = start + len(x) + 1 + len(sel)
        return A.CallExpr(
            A.SelectorExpr(xi, si, selection=selection),
            tuple(args), lparen, self._rparen(lparen), type=result,
        )

    def pkg_call(self, path: str, name: str, result: Optional[GoType],
                 nth: int = 0, args: Sequence[A.Expr] = ()) -> A.CallExpr:
        """``pkg.Name(...)`` for a package-level function of *path*."""
        short = path.rsplit("/", 1)[-1]
        return self.selector_call(
            short, name, result, nth=nth, x_obj=pkgname(path),
            obj=func(path, name), args=args,
        )

    def method_call(self, x: str, sel: str, recv: GoType, method: GoObject,
                    result: Optional[GoType], nth: int = 0,
                    index: Sequence[int] = (0,)) -> A.CallExpr:
        """``x.sel(...)`` resolved as a method value on *recv*."""
        selection = Selection(SelectionKind.METHOD_VAL, recv, method, tuple(index))
        return self.selector_call(
            x, sel, result, nth=nth, x_obj=var("main", x, recv), x_type=recv,
            obj=method, selection=selection,
        )

    def assert_expr(self, x: str, asserted: Optional[GoType], nth: int = 0) -> A.TypeAssertExpr:
        """``x.(T)``; *asserted* ``None`` gives the ``x.(type)`` of a switch."""
        start = self.at(f"{x}.(", nth)
        return A.TypeAssertExpr(
            A.Ident(x, start, obj=var("main", x, EMPTY_INTERFACE)),
            start + len(x) + 1, asserted=asserted, type=asserted,
        )

    def _call_start(self, name: str, nth: int) -> int:
        data = self.source.data
        target = (name + "(").encode("utf-8")
        seen = -1
        idx = -1
        while True:
            idx = data.find(target, idx + 1)
            if idx < 0:
                raise ValueError(f"call {name}() occurrence {nth} not in source")
            if data[max(idx - 5, 0):idx] == b"func ":
                continue
            if idx > 0 and (chr(data[idx - 1]).isalnum() or data[idx - 1] in b"_."):
                continue
            seen += 1
            if seen == nth:
                return idx

    def _rparen(self, lparen: int) -> int:
        depth = 0
        data = self.source.data
        for i in range(lparen, len(data)):
            if data[i] == ord("("):
                depth += 1
            elif data[i] == ord(")"):
                depth -= 1
                if depth == 0:
                    return i
        return lparen

    # ── wrapping ─────────────────────────────────────────────────────

    def func_decl(self, name: str, *stmts: A.Stmt) -> A.FuncDecl:
        pos = self.at(f"func {name}(") + len("func ")
        body = A.BlockStmt(tuple(stmts), self.source.data.find(b"{", pos))
        return A.FuncDecl(A.Ident(name, pos), pos, body=body)

    def parsed(self, *decls: A.Node, package: str = "main") -> ParsedFile:
        package_pos = self.at(f"package {package}")
        tree = A.File(package, package_pos, tuple(decls))
        return ParsedFile(self.name, tree, self.source)

    def package(self, *decls: A.Node, path: str = "example.com/m",
                name: str = "main") -> Package:
        return Package(path, name, files=[self.parsed(*decls, package=name)])


def expr_stmt(x: A.Expr) -> A.ExprStmt:
    return A.ExprStmt(x)


def assign(lhs: Sequence[A.Expr], rhs: Sequence[A.Expr], tok: str = "=") -> A.AssignStmt:
    return A.AssignStmt(tuple(lhs), tok, lhs[0].pos if lhs else 0, tuple(rhs))


def var_spec(names: Sequence[A.Ident], values: Sequence[A.Expr]) -> A.DeclStmt:
    spec = A.ValueSpec(tuple(names), tuple(values))
    return A.DeclStmt(A.GenDecl("var", (spec,), names[0].pos))


def go(call: A.CallExpr) -> A.GoStmt:
    return A.GoStmt(call, call.pos)


def defer(call: A.CallExpr) -> A.DeferStmt:
    return A.DeferStmt(call, call.pos)


def func_lit(*stmts: A.Stmt, pos: int = 0) -> A.FuncLit:
    return A.FuncLit(A.BlockStmt(tuple(stmts), pos), pos)
