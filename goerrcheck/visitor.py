#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
goerrcheck/visitor.py
=====================

Traversal infrastructure for the typed Go syntax tree.

Provides:
- ``NodeVisitor``: dispatches on ``node.kind`` through a fixed table
- ``WalkingVisitor``: dispatches every node of a subtree, iteratively
- ``walk``: generator over all nodes of a subtree, in source order
"""

from __future__ import annotations

from typing import Any, Dict, Iterator

from goerrcheck import ast as A

__all__ = [
    "NodeVisitor",
    "WalkingVisitor",
    "walk",
]

# NodeKind.CALL_EXPR → "visit_call_expr", and so on.
_METHOD_NAMES: Dict[A.NodeKind, str] = {
    kind: f"visit_{kind.name.lower()}" for kind in A.NodeKind
}


class NodeVisitor:
    """Base class for syntax tree visitors.

    ``visit`` looks up ``visit_<kind>`` for the node's kind and falls
    back to ``generic_visit``, which does nothing.  Subclasses override
    the methods for the shapes they care about.
    """

    def visit(self, node: A.Node) -> Any:
        method = getattr(self, _METHOD_NAMES[node.kind], None)
        if method is None:
            return self.generic_visit(node)
        return method(node)

    def generic_visit(self, node: A.Node) -> Any:
        return None


class WalkingVisitor(NodeVisitor):
    """Visitor that sees every node of a subtree once, in source order.

    ``scan`` drives the traversal from :func:`walk`, so ``visit_X``
    handlers examine their own node only and never call
    ``generic_visit`` to descend.  Nesting depth is limited by memory,
    not by the interpreter stack.
    """

    def scan(self, node: A.Node) -> None:
        for current in walk(node):
            self.visit(current)


def walk(node: A.Node) -> Iterator[A.Node]:
    """Yield *node* and all its descendants, pre-order."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        children = list(current.children())
        stack.extend(reversed(children))
