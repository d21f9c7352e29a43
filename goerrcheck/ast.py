"""goerrcheck/ast.py – Typed Go syntax tree.

The loader turns a front end's typed dump into these nodes; the checker
walks them.  The tree mirrors the shapes of ``go/ast`` that matter for
unchecked-error analysis, annotated with the type-checker's answers
(``type`` on expressions, ``obj`` on identifiers, ``selection`` on
selector expressions).

Design invariants
-----------------
* The node set is closed: every concrete node class carries a
  ``kind: ClassVar[NodeKind]`` tag, and traversal dispatches on that tag
  (see :mod:`goerrcheck.visitor`) rather than on open-ended
  ``isinstance`` chains.
* Every node is a frozen dataclass; children are tuples.
* Positions are byte offsets into the file's source text.  Nodes store
  the anchor tokens ``go/ast`` stores (``lparen`` of a call, the name
  position of an identifier); the start position ``pos`` of composite
  expressions is derived from their leftmost operand.
* ``children()`` yields child nodes in source order, skipping ``None``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import ClassVar, Iterator, Optional, Tuple

from goerrcheck.types import GoObject, GoType, Selection

__all__ = [
    "NodeKind",
    "Node",
    "Expr",
    "Stmt",
    # expressions
    "Ident",
    "BasicLit",
    "CompositeLit",
    "FuncLit",
    "ParenExpr",
    "SelectorExpr",
    "IndexExpr",
    "SliceExpr",
    "TypeAssertExpr",
    "CallExpr",
    "StarExpr",
    "UnaryExpr",
    "BinaryExpr",
    "KeyValueExpr",
    "TypeExpr",
    # statements
    "DeclStmt",
    "EmptyStmt",
    "LabeledStmt",
    "ExprStmt",
    "SendStmt",
    "IncDecStmt",
    "AssignStmt",
    "GoStmt",
    "DeferStmt",
    "ReturnStmt",
    "BranchStmt",
    "BlockStmt",
    "IfStmt",
    "CaseClause",
    "SwitchStmt",
    "TypeSwitchStmt",
    "CommClause",
    "SelectStmt",
    "ForStmt",
    "RangeStmt",
    # declarations
    "ValueSpec",
    "GenDecl",
    "FuncDecl",
    "File",
    "is_blank",
]


class NodeKind(Enum):
    """Closed set of syntax node shapes."""
    # expressions
    IDENT = auto()
    BASIC_LIT = auto()
    COMPOSITE_LIT = auto()
    FUNC_LIT = auto()
    PAREN_EXPR = auto()
    SELECTOR_EXPR = auto()
    INDEX_EXPR = auto()
    SLICE_EXPR = auto()
    TYPE_ASSERT_EXPR = auto()
    CALL_EXPR = auto()
    STAR_EXPR = auto()
    UNARY_EXPR = auto()
    BINARY_EXPR = auto()
    KEY_VALUE_EXPR = auto()
    TYPE_EXPR = auto()
    # statements
    DECL_STMT = auto()
    EMPTY_STMT = auto()
    LABELED_STMT = auto()
    EXPR_STMT = auto()
    SEND_STMT = auto()
    INC_DEC_STMT = auto()
    ASSIGN_STMT = auto()
    GO_STMT = auto()
    DEFER_STMT = auto()
    RETURN_STMT = auto()
    BRANCH_STMT = auto()
    BLOCK_STMT = auto()
    IF_STMT = auto()
    CASE_CLAUSE = auto()
    SWITCH_STMT = auto()
    TYPE_SWITCH_STMT = auto()
    COMM_CLAUSE = auto()
    SELECT_STMT = auto()
    FOR_STMT = auto()
    RANGE_STMT = auto()
    # declarations
    VALUE_SPEC = auto()
    GEN_DECL = auto()
    FUNC_DECL = auto()
    FILE = auto()


class Node:
    """Base of all syntax nodes."""

    __slots__ = ()
    kind: ClassVar[NodeKind]

    def children(self) -> Iterator[Node]:
        return iter(())


class Expr(Node):
    __slots__ = ()


class Stmt(Node):
    __slots__ = ()


def _nodes(*items) -> Iterator[Node]:
    """Flatten optional nodes and tuples of nodes, skipping ``None``."""
    for item in items:
        if item is None:
            continue
        if isinstance(item, tuple):
            yield from (n for n in item if n is not None)
        else:
            yield item


# Left operand that fixes the start position of each left-anchored
# expression shape.
_LEADING = {
    NodeKind.SELECTOR_EXPR: "x",
    NodeKind.INDEX_EXPR: "x",
    NodeKind.SLICE_EXPR: "x",
    NodeKind.TYPE_ASSERT_EXPR: "x",
    NodeKind.CALL_EXPR: "fun",
    NodeKind.BINARY_EXPR: "x",
    NodeKind.KEY_VALUE_EXPR: "key",
}


def _start(expr: Expr) -> int:
    """Start offset of *expr*, following left operands iteratively."""
    field = _LEADING.get(expr.kind)
    while field is not None:
        expr = getattr(expr, field)
        field = _LEADING.get(expr.kind)
    return expr.pos


# ════════════════════════════════════════════════════════════════════════
# Expressions
# ════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Ident(Expr):
    kind: ClassVar[NodeKind] = NodeKind.IDENT
    name: str
    pos: int
    obj: Optional[GoObject] = None
    type: Optional[GoType] = None


@dataclass(frozen=True, slots=True)
class BasicLit(Expr):
    kind: ClassVar[NodeKind] = NodeKind.BASIC_LIT
    lit_kind: str
    value: str
    pos: int
    type: Optional[GoType] = None


@dataclass(frozen=True, slots=True)
class CompositeLit(Expr):
    kind: ClassVar[NodeKind] = NodeKind.COMPOSITE_LIT
    elts: Tuple[Expr, ...]
    lbrace: int
    type: Optional[GoType] = None

    @property
    def pos(self) -> int:
        return self.lbrace

    def children(self) -> Iterator[Node]:
        return _nodes(self.elts)


@dataclass(frozen=True, slots=True)
class FuncLit(Expr):
    kind: ClassVar[NodeKind] = NodeKind.FUNC_LIT
    body: BlockStmt
    pos: int
    type: Optional[GoType] = None

    def children(self) -> Iterator[Node]:
        return _nodes(self.body)


@dataclass(frozen=True, slots=True)
class ParenExpr(Expr):
    kind: ClassVar[NodeKind] = NodeKind.PAREN_EXPR
    x: Expr
    lparen: int
    type: Optional[GoType] = None

    @property
    def pos(self) -> int:
        return self.lparen

    def children(self) -> Iterator[Node]:
        return _nodes(self.x)


@dataclass(frozen=True, slots=True)
class SelectorExpr(Expr):
    """``x.sel``.  ``selection`` is absent for package-qualified identifiers."""
    kind: ClassVar[NodeKind] = NodeKind.SELECTOR_EXPR
    x: Expr
    sel: Ident
    selection: Optional[Selection] = None
    type: Optional[GoType] = None

    @property
    def pos(self) -> int:
        return _start(self.x)

    def children(self) -> Iterator[Node]:
        return _nodes(self.x, self.sel)


@dataclass(frozen=True, slots=True)
class IndexExpr(Expr):
    kind: ClassVar[NodeKind] = NodeKind.INDEX_EXPR
    x: Expr
    indices: Tuple[Expr, ...]
    lbrack: int
    type: Optional[GoType] = None

    @property
    def pos(self) -> int:
        return _start(self.x)

    def children(self) -> Iterator[Node]:
        return _nodes(self.x, self.indices)


@dataclass(frozen=True, slots=True)
class SliceExpr(Expr):
    kind: ClassVar[NodeKind] = NodeKind.SLICE_EXPR
    x: Expr
    lbrack: int
    low: Optional[Expr] = None
    high: Optional[Expr] = None
    max: Optional[Expr] = None
    type: Optional[GoType] = None

    @property
    def pos(self) -> int:
        return _start(self.x)

    def children(self) -> Iterator[Node]:
        return _nodes(self.x, self.low, self.high, self.max)


@dataclass(frozen=True, slots=True)
class TypeAssertExpr(Expr):
    """``x.(T)``; ``asserted`` is ``None`` for the ``x.(type)`` of a type switch."""
    kind: ClassVar[NodeKind] = NodeKind.TYPE_ASSERT_EXPR
    x: Expr
    lparen: int
    asserted: Optional[GoType] = None
    type: Optional[GoType] = None

    @property
    def pos(self) -> int:
        return _start(self.x)

    @property
    def is_type_switch(self) -> bool:
        return self.asserted is None

    def children(self) -> Iterator[Node]:
        return _nodes(self.x)


@dataclass(frozen=True, slots=True)
class CallExpr(Expr):
    """``fun(args)``.  ``type`` is the result type: a single type or a tuple."""
    kind: ClassVar[NodeKind] = NodeKind.CALL_EXPR
    fun: Expr
    args: Tuple[Expr, ...]
    lparen: int
    rparen: int
    type: Optional[GoType] = None
    ellipsis: int = -1

    @property
    def pos(self) -> int:
        return _start(self.fun)

    def children(self) -> Iterator[Node]:
        return _nodes(self.fun, self.args)


@dataclass(frozen=True, slots=True)
class StarExpr(Expr):
    kind: ClassVar[NodeKind] = NodeKind.STAR_EXPR
    x: Expr
    pos: int
    type: Optional[GoType] = None

    def children(self) -> Iterator[Node]:
        return _nodes(self.x)


@dataclass(frozen=True, slots=True)
class UnaryExpr(Expr):
    kind: ClassVar[NodeKind] = NodeKind.UNARY_EXPR
    op: str
    x: Expr
    pos: int
    type: Optional[GoType] = None

    def children(self) -> Iterator[Node]:
        return _nodes(self.x)


@dataclass(frozen=True, slots=True)
class BinaryExpr(Expr):
    kind: ClassVar[NodeKind] = NodeKind.BINARY_EXPR
    op: str
    x: Expr
    y: Expr
    op_pos: int
    type: Optional[GoType] = None

    @property
    def pos(self) -> int:
        return _start(self.x)

    def children(self) -> Iterator[Node]:
        return _nodes(self.x, self.y)


@dataclass(frozen=True, slots=True)
class KeyValueExpr(Expr):
    kind: ClassVar[NodeKind] = NodeKind.KEY_VALUE_EXPR
    key: Expr
    value: Expr

    @property
    def pos(self) -> int:
        return _start(self.key)

    def children(self) -> Iterator[Node]:
        return _nodes(self.key, self.value)


@dataclass(frozen=True, slots=True)
class TypeExpr(Expr):
    """A type written in expression position (conversions, ``make``, literals)."""
    kind: ClassVar[NodeKind] = NodeKind.TYPE_EXPR
    type: GoType
    pos: int


# ════════════════════════════════════════════════════════════════════════
# Statements
# ════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class DeclStmt(Stmt):
    kind: ClassVar[NodeKind] = NodeKind.DECL_STMT
    decl: GenDecl

    @property
    def pos(self) -> int:
        return self.decl.pos

    def children(self) -> Iterator[Node]:
        return _nodes(self.decl)


@dataclass(frozen=True, slots=True)
class EmptyStmt(Stmt):
    kind: ClassVar[NodeKind] = NodeKind.EMPTY_STMT
    pos: int


@dataclass(frozen=True, slots=True)
class LabeledStmt(Stmt):
    kind: ClassVar[NodeKind] = NodeKind.LABELED_STMT
    label: Ident
    stmt: Stmt

    @property
    def pos(self) -> int:
        return self.label.pos

    def children(self) -> Iterator[Node]:
        return _nodes(self.label, self.stmt)


@dataclass(frozen=True, slots=True)
class ExprStmt(Stmt):
    """An expression evaluated for its side effects only."""
    kind: ClassVar[NodeKind] = NodeKind.EXPR_STMT
    x: Expr

    @property
    def pos(self) -> int:
        return _start(self.x)

    def children(self) -> Iterator[Node]:
        return _nodes(self.x)


@dataclass(frozen=True, slots=True)
class SendStmt(Stmt):
    kind: ClassVar[NodeKind] = NodeKind.SEND_STMT
    chan: Expr
    value: Expr
    arrow: int

    @property
    def pos(self) -> int:
        return _start(self.chan)

    def children(self) -> Iterator[Node]:
        return _nodes(self.chan, self.value)


@dataclass(frozen=True, slots=True)
class IncDecStmt(Stmt):
    kind: ClassVar[NodeKind] = NodeKind.INC_DEC_STMT
    x: Expr
    tok: str
    tok_pos: int

    @property
    def pos(self) -> int:
        return _start(self.x)

    def children(self) -> Iterator[Node]:
        return _nodes(self.x)


@dataclass(frozen=True, slots=True)
class AssignStmt(Stmt):
    """``lhs tok rhs`` where ``tok`` is ``=``, ``:=`` or an op-assign."""
    kind: ClassVar[NodeKind] = NodeKind.ASSIGN_STMT
    lhs: Tuple[Expr, ...]
    tok: str
    tok_pos: int
    rhs: Tuple[Expr, ...]

    @property
    def pos(self) -> int:
        return _start(self.lhs[0]) if self.lhs else self.tok_pos

    def children(self) -> Iterator[Node]:
        return _nodes(self.lhs, self.rhs)


@dataclass(frozen=True, slots=True)
class GoStmt(Stmt):
    kind: ClassVar[NodeKind] = NodeKind.GO_STMT
    call: CallExpr
    pos: int

    def children(self) -> Iterator[Node]:
        return _nodes(self.call)


@dataclass(frozen=True, slots=True)
class DeferStmt(Stmt):
    kind: ClassVar[NodeKind] = NodeKind.DEFER_STMT
    call: CallExpr
    pos: int

    def children(self) -> Iterator[Node]:
        return _nodes(self.call)


@dataclass(frozen=True, slots=True)
class ReturnStmt(Stmt):
    kind: ClassVar[NodeKind] = NodeKind.RETURN_STMT
    results: Tuple[Expr, ...]
    pos: int

    def children(self) -> Iterator[Node]:
        return _nodes(self.results)


@dataclass(frozen=True, slots=True)
class BranchStmt(Stmt):
    """``break``, ``continue``, ``goto`` or ``fallthrough``."""
    kind: ClassVar[NodeKind] = NodeKind.BRANCH_STMT
    tok: str
    pos: int
    label: Optional[Ident] = None

    def children(self) -> Iterator[Node]:
        return _nodes(self.label)


@dataclass(frozen=True, slots=True)
class BlockStmt(Stmt):
    kind: ClassVar[NodeKind] = NodeKind.BLOCK_STMT
    stmts: Tuple[Stmt, ...]
    lbrace: int

    @property
    def pos(self) -> int:
        return self.lbrace

    def children(self) -> Iterator[Node]:
        return _nodes(self.stmts)


@dataclass(frozen=True, slots=True)
class IfStmt(Stmt):
    kind: ClassVar[NodeKind] = NodeKind.IF_STMT
    cond: Expr
    body: BlockStmt
    pos: int
    init: Optional[Stmt] = None
    else_: Optional[Stmt] = None

    def children(self) -> Iterator[Node]:
        return _nodes(self.init, self.cond, self.body, self.else_)


@dataclass(frozen=True, slots=True)
class CaseClause(Stmt):
    """A ``case`` of a switch; ``exprs`` is ``None`` for ``default``."""
    kind: ClassVar[NodeKind] = NodeKind.CASE_CLAUSE
    exprs: Optional[Tuple[Expr, ...]]
    body: Tuple[Stmt, ...]
    pos: int

    def children(self) -> Iterator[Node]:
        return _nodes(self.exprs, self.body)


@dataclass(frozen=True, slots=True)
class SwitchStmt(Stmt):
    kind: ClassVar[NodeKind] = NodeKind.SWITCH_STMT
    body: BlockStmt
    pos: int
    init: Optional[Stmt] = None
    tag: Optional[Expr] = None

    def children(self) -> Iterator[Node]:
        return _nodes(self.init, self.tag, self.body)


@dataclass(frozen=True, slots=True)
class TypeSwitchStmt(Stmt):
    """``switch [init;] assign { ... }`` where ``assign`` holds ``x.(type)``."""
    kind: ClassVar[NodeKind] = NodeKind.TYPE_SWITCH_STMT
    assign: Stmt
    body: BlockStmt
    pos: int
    init: Optional[Stmt] = None

    def children(self) -> Iterator[Node]:
        return _nodes(self.init, self.assign, self.body)


@dataclass(frozen=True, slots=True)
class CommClause(Stmt):
    """A ``case`` of a select; ``comm`` is ``None`` for ``default``."""
    kind: ClassVar[NodeKind] = NodeKind.COMM_CLAUSE
    comm: Optional[Stmt]
    body: Tuple[Stmt, ...]
    pos: int

    def children(self) -> Iterator[Node]:
        return _nodes(self.comm, self.body)


@dataclass(frozen=True, slots=True)
class SelectStmt(Stmt):
    kind: ClassVar[NodeKind] = NodeKind.SELECT_STMT
    body: BlockStmt
    pos: int

    def children(self) -> Iterator[Node]:
        return _nodes(self.body)


@dataclass(frozen=True, slots=True)
class ForStmt(Stmt):
    kind: ClassVar[NodeKind] = NodeKind.FOR_STMT
    body: BlockStmt
    pos: int
    init: Optional[Stmt] = None
    cond: Optional[Expr] = None
    post: Optional[Stmt] = None

    def children(self) -> Iterator[Node]:
        return _nodes(self.init, self.cond, self.post, self.body)


@dataclass(frozen=True, slots=True)
class RangeStmt(Stmt):
    kind: ClassVar[NodeKind] = NodeKind.RANGE_STMT
    x: Expr
    body: BlockStmt
    pos: int
    key: Optional[Expr] = None
    value: Optional[Expr] = None
    tok: str = ""

    def children(self) -> Iterator[Node]:
        return _nodes(self.key, self.value, self.x, self.body)


# ════════════════════════════════════════════════════════════════════════
# Declarations
# ════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ValueSpec(Node):
    """``names [type] = values`` inside a ``var`` or ``const`` declaration."""
    kind: ClassVar[NodeKind] = NodeKind.VALUE_SPEC
    names: Tuple[Ident, ...]
    values: Tuple[Expr, ...] = ()
    type: Optional[GoType] = None

    @property
    def pos(self) -> int:
        return self.names[0].pos

    def children(self) -> Iterator[Node]:
        return _nodes(self.names, self.values)


@dataclass(frozen=True, slots=True)
class GenDecl(Node):
    kind: ClassVar[NodeKind] = NodeKind.GEN_DECL
    tok: str
    specs: Tuple[ValueSpec, ...]
    pos: int

    def children(self) -> Iterator[Node]:
        return _nodes(self.specs)


@dataclass(frozen=True, slots=True)
class FuncDecl(Node):
    kind: ClassVar[NodeKind] = NodeKind.FUNC_DECL
    name: Ident
    pos: int
    body: Optional[BlockStmt] = None
    recv: Optional[GoType] = None

    def children(self) -> Iterator[Node]:
        return _nodes(self.name, self.body)


@dataclass(frozen=True, slots=True)
class File(Node):
    """One source file: the package clause and top-level declarations."""
    kind: ClassVar[NodeKind] = NodeKind.FILE
    package_name: str
    package_pos: int
    decls: Tuple[Node, ...] = ()

    @property
    def pos(self) -> int:
        return self.package_pos

    def children(self) -> Iterator[Node]:
        return _nodes(self.decls)


def is_blank(expr: Optional[Node]) -> bool:
    """True for the blank identifier ``_``."""
    return isinstance(expr, Ident) and expr.name == "_"
