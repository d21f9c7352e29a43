# tests/test_ast.py
"""
Tests for the syntax tree and its traversal.
"""

from goerrcheck import ast as A
from goerrcheck.types import ERROR_TYPE, INVALID_TYPE
from goerrcheck.visitor import NodeVisitor, WalkingVisitor, walk

from tests.builders import GoSource, assign, expr_stmt, func_lit, results

SRC = GoSource("""
    package main

    func main() {
    \tx, _ := f()
    \tdefer func() {
    \t\tg()
    \t}()
    }
""")


def _tree():
    f = SRC.call("f", results(INVALID_TYPE, ERROR_TYPE))
    g = SRC.call("g", ERROR_TYPE)
    lit = func_lit(expr_stmt(g), pos=SRC.at("func() {"))
    close = SRC.at("}()") + 1
    deferred = A.CallExpr(lit, (), close, close + 1)
    stmts = (
        assign([SRC.ident("x"), SRC.blank()], [f], tok=":="),
        A.DeferStmt(deferred, SRC.at("defer")),
    )
    return SRC.parsed(SRC.func_decl("main", *stmts))


class TestWalk:

    def test_preorder(self):
        kinds = [n.kind for n in walk(_tree().tree)]
        assert kinds[:4] == [
            A.NodeKind.FILE,
            A.NodeKind.FUNC_DECL,
            A.NodeKind.IDENT,
            A.NodeKind.BLOCK_STMT,
        ]
        assert kinds.count(A.NodeKind.CALL_EXPR) == 3
        assert A.NodeKind.FUNC_LIT in kinds

    def test_calls_in_source_order(self):
        names = [n.fun.name for n in walk(_tree().tree)
                 if isinstance(n, A.CallExpr) and isinstance(n.fun, A.Ident)]
        assert names == ["f", "g"]

    def test_leaf_has_no_children(self):
        assert list(A.Ident("x", 0).children()) == []


class TestVisitors:

    def test_dispatch_by_kind(self):
        seen = []

        class Calls(WalkingVisitor):
            def visit_call_expr(self, node):
                seen.append(node.lparen)

        Calls().scan(_tree().tree)
        assert len(seen) == 3

    def test_every_node_visited_once(self):
        seen = []

        class All(WalkingVisitor):
            def generic_visit(self, node):
                seen.append(node)

        tree = _tree().tree
        All().scan(tree)
        assert seen == list(walk(tree))

    def test_plain_visitor_does_not_descend(self):
        assert NodeVisitor().visit(_tree().tree) is None

    def test_deep_nesting(self):
        depth = 5000
        expr = A.Ident("s", 0)
        for i in range(depth):
            expr = A.BinaryExpr("+", expr, A.BasicLit("STRING", "a", i + 2), i + 1)

        class Literals(WalkingVisitor):
            count = 0

            def visit_basic_lit(self, node):
                self.count += 1

        visitor = Literals()
        visitor.scan(A.ExprStmt(expr))
        assert visitor.count == depth
        assert expr.pos == 0
        assert sum(1 for _ in walk(expr)) == 2 * depth + 1


class TestHelpers:

    def test_is_blank(self):
        assert A.is_blank(A.Ident("_", 0))
        assert not A.is_blank(A.Ident("x", 0))
        assert not A.is_blank(None)

    def test_positions(self):
        stmt = _tree().tree.decls[0].body.stmts[0]
        assert stmt.pos == SRC.at("x, _")
        assert stmt.rhs[0].pos == SRC.at("f()")
