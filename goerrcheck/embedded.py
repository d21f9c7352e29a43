"""goerrcheck/embedded.py – Resolve promoted interface methods.

Exclusion entries are often written against a wrapper interface, e.g.
``(hash.Hash).Write``, while the type checker attributes the method to
the interface that actually declares it (``io.Writer``).  Given the
selection ``x.f`` this module reconstructs the chain of types from the
receiver to the declaring interface, so that any type along that chain
can match an exclusion entry.

The interface part of the walk is an explicit frontier search over the
embedding graph: every step moves strictly down the graph and a visited
set rejects revisits, so the walk terminates even on an ill-formed dump.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, List, Optional, Tuple

from goerrcheck.types import (
    GoType,
    ObjectKind,
    Selection,
    TypeKind,
    deref,
    unname,
)

__all__ = ["walk_through_embedded_interfaces"]

logger = logging.getLogger(__name__)


def _struct_fields_path(selection: Selection) -> Optional[List[GoType]]:
    """Receiver type followed by each embedded field type on the index path."""
    current = selection.recv
    chain = [current]
    for field_index in selection.index[:-1]:
        struct = unname(deref(current))
        if struct.kind != TypeKind.STRUCT:
            logger.debug(
                "selection index walks through non-struct %s", current,
            )
            return None
        if not 0 <= field_index < len(struct.fields):
            return None
        current = struct.fields[field_index].type
        chain.append(current)
    return chain


def walk_through_embedded_interfaces(
    selection: Selection,
) -> Optional[List[GoType]]:
    """
    Return the Selection Chain for a method selection, or ``None``.

    The chain starts at the receiver's static type, follows the struct
    fields named by ``selection.index`` and then the interface embedding
    graph down to the interface that *explicitly* declares the method.

    ``None`` means "not applicable":

    - the selected object is not a function,
    - the receiver type is invalid,
    - the selection ends at a concrete (non-interface) method, or
    - no embedded interface supplies the method.
    """
    fn = selection.obj
    if fn.kind != ObjectKind.FUNC:
        return None
    if selection.recv.kind == TypeKind.INVALID:
        return None

    chain = _struct_fields_path(selection)
    if chain is None:
        return None

    start = chain[-1]
    if unname(start).kind != TypeKind.INTERFACE:
        return None

    # Frontier entries carry the chain suffix that leads to them.
    frontier: Deque[Tuple[GoType, Tuple[GoType, ...]]] = deque([(start, ())])
    visited = set()
    while frontier:
        current, suffix = frontier.popleft()
        iface = unname(current)
        if id(iface) in visited:
            continue
        visited.add(id(iface))

        if current.explicitly_declares(fn):
            return chain + list(suffix)

        # Descend into the first embedded interface whose full method
        # set supplies the method.
        for embedded in iface.embeddeds:
            if unname(embedded).kind != TypeKind.INTERFACE:
                continue
            if embedded.declares(fn):
                frontier.append((embedded, suffix + (embedded,)))
                break

    logger.debug("no interface in %s declares %s", start, fn.name)
    return None
