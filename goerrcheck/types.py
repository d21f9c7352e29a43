"""
goerrcheck/types.py
═══════════════════

Static type model for type-checked Go programs.

The external front end resolves every expression to a type and every
identifier to an object; this module is the Python-side representation
of that information.  It is deliberately small: just enough of the Go
type system to

  * classify call results against the predeclared ``error`` type,
  * walk struct promotion and interface embedding, and
  * render types the way ``go/types`` prints them, so exclusion entries
    such as ``(*bytes.Buffer).Write`` or ``(hash.Hash).Write`` can be
    matched textually.

Type term algebra
─────────────────

    τ ::= basic(name)
        | named(pkg, name) → underlying τ
        | pointer(τ) | slice(τ) | array(n, τ) | map(τ, τ) | chan(τ)
        | tuple(τ, ...)
        | struct(field, ...)
        | interface(method, ..., embedded τ, ...)
        | signature(params, results)
        | invalid

Named types are created once per (package, name) by the loader's
per-session cache and filled in afterwards, so recursive types work.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Iterator, List, Optional, Tuple

__all__ = [
    "TypeKind",
    "Field",
    "GoType",
    "ObjectKind",
    "GoObject",
    "SelectionKind",
    "Selection",
    "ERROR_TYPE",
    "INVALID_TYPE",
    "is_error_type",
    "deref",
    "unname",
    "type_string",
]


class TypeKind(Enum):
    """Discriminant for the type term algebra."""
    BASIC = auto()
    NAMED = auto()
    POINTER = auto()
    SLICE = auto()
    ARRAY = auto()
    MAP = auto()
    CHAN = auto()
    TUPLE = auto()
    STRUCT = auto()
    INTERFACE = auto()
    SIGNATURE = auto()
    INVALID = auto()


@dataclass(eq=False)
class Field:
    """A struct field.  Embedded fields are promoted."""
    name: str
    type: GoType
    embedded: bool = False


@dataclass(eq=False)
class GoType:
    """
    A node in the type term algebra.

    For compound types the children encode structure:
      - POINTER / SLICE / CHAN: children[0] = element type
      - ARRAY:     children[0] = element type; length = n
      - MAP:       children = [key, value]
      - TUPLE:     children = element types
      - SIGNATURE: params / results
      - STRUCT:    fields (declaration order)
      - INTERFACE: methods (explicit only) and embeddeds (declaration order)
      - NAMED:     pkg / name; underlying is set by the loader

    Identity matters: two ``NAMED`` types are the same type iff they are
    the same object.
    """

    kind: TypeKind
    children: List[GoType] = field(default_factory=list)

    # ── Kind-specific attributes ─────────────────────────────────────
    name: str = ""                                   # BASIC / NAMED
    pkg: Optional[str] = None                        # NAMED (None = universe)
    length: int = -1                                 # ARRAY
    fields: List[Field] = field(default_factory=list)            # STRUCT
    methods: List[GoObject] = field(default_factory=list)        # INTERFACE
    embeddeds: List[GoType] = field(default_factory=list)        # INTERFACE
    params: List[GoType] = field(default_factory=list)           # SIGNATURE
    results: List[GoType] = field(default_factory=list)          # SIGNATURE
    variadic: bool = False                                       # SIGNATURE
    underlying_type: Optional[GoType] = None                     # NAMED

    # ── Factory methods ──────────────────────────────────────────────

    @classmethod
    def basic(cls, name: str) -> GoType:
        return cls(kind=TypeKind.BASIC, name=name)

    @classmethod
    def named(
        cls,
        pkg: Optional[str],
        name: str,
        underlying: Optional[GoType] = None,
    ) -> GoType:
        return cls(
            kind=TypeKind.NAMED, pkg=pkg or None, name=name,
            underlying_type=underlying,
        )

    @classmethod
    def pointer(cls, elem: GoType) -> GoType:
        return cls(kind=TypeKind.POINTER, children=[elem])

    @classmethod
    def slice(cls, elem: GoType) -> GoType:
        return cls(kind=TypeKind.SLICE, children=[elem])

    @classmethod
    def array(cls, elem: GoType, length: int) -> GoType:
        return cls(kind=TypeKind.ARRAY, children=[elem], length=length)

    @classmethod
    def map_of(cls, key: GoType, value: GoType) -> GoType:
        return cls(kind=TypeKind.MAP, children=[key, value])

    @classmethod
    def chan(cls, elem: GoType) -> GoType:
        return cls(kind=TypeKind.CHAN, children=[elem])

    @classmethod
    def tuple_of(cls, *elems: GoType) -> GoType:
        return cls(kind=TypeKind.TUPLE, children=list(elems))

    @classmethod
    def struct(cls, fields: Optional[List[Field]] = None) -> GoType:
        return cls(kind=TypeKind.STRUCT, fields=list(fields or []))

    @classmethod
    def interface(
        cls,
        methods: Optional[List[GoObject]] = None,
        embeddeds: Optional[List[GoType]] = None,
    ) -> GoType:
        return cls(
            kind=TypeKind.INTERFACE,
            methods=list(methods or []),
            embeddeds=list(embeddeds or []),
        )

    @classmethod
    def signature(
        cls,
        params: Optional[List[GoType]] = None,
        results: Optional[List[GoType]] = None,
        variadic: bool = False,
    ) -> GoType:
        return cls(
            kind=TypeKind.SIGNATURE,
            params=list(params or []),
            results=list(results or []),
            variadic=variadic,
        )

    @classmethod
    def invalid(cls) -> GoType:
        return cls(kind=TypeKind.INVALID)

    # ── Queries ──────────────────────────────────────────────────────

    @property
    def is_named(self) -> bool:
        return self.kind == TypeKind.NAMED

    @property
    def is_interface(self) -> bool:
        return unname(self).kind == TypeKind.INTERFACE

    @property
    def elem(self) -> Optional[GoType]:
        if self.kind in (TypeKind.POINTER, TypeKind.SLICE,
                         TypeKind.ARRAY, TypeKind.CHAN):
            return self.children[0]
        return None

    def underlying(self) -> GoType:
        """Underlying type; follows NAMED links, never returns a NAMED."""
        t = self
        seen = 0
        while t.kind == TypeKind.NAMED:
            if t.underlying_type is None:
                return INVALID_TYPE
            t = t.underlying_type
            seen += 1
            if seen > 64:  # ill-formed dump: named cycle
                return INVALID_TYPE
        return t

    # ── Interface method sets ────────────────────────────────────────

    def explicit_methods(self) -> List[GoObject]:
        """Methods declared directly in this interface literal."""
        iface = unname(self)
        if iface.kind != TypeKind.INTERFACE:
            return []
        return list(iface.methods)

    def all_methods(self) -> List[GoObject]:
        """Full method set: explicit plus those of embedded interfaces."""
        out: List[GoObject] = []
        ids = set()
        for m in self._iter_method_set(set()):
            if m.id not in ids:
                ids.add(m.id)
                out.append(m)
        return out

    def _iter_method_set(self, visiting: set) -> Iterator[GoObject]:
        iface = unname(self)
        if iface.kind != TypeKind.INTERFACE or id(iface) in visiting:
            return
        visiting.add(id(iface))
        yield from iface.methods
        for emb in iface.embeddeds:
            yield from emb._iter_method_set(visiting)

    def explicitly_declares(self, method: GoObject) -> bool:
        return any(m.id == method.id for m in self.explicit_methods())

    def declares(self, method: GoObject) -> bool:
        return any(m.id == method.id for m in self.all_methods())

    def __str__(self) -> str:
        return type_string(self)

    def __repr__(self) -> str:
        return f"GoType({self.kind.name}, {type_string(self)!r})"


# ═════════════════════════════════════════════════════════════════════════
#  OBJECTS
# ═════════════════════════════════════════════════════════════════════════

class ObjectKind(Enum):
    """What an identifier resolves to."""
    FUNC = auto()
    BUILTIN = auto()
    VAR = auto()
    CONST = auto()
    TYPENAME = auto()
    PKGNAME = auto()
    NIL = auto()


@dataclass(eq=False)
class GoObject:
    """
    A resolved object.

    For ``FUNC`` objects ``recv`` is set on methods: the declared
    receiver type for concrete methods, or the interface that declares
    the method for interface methods.  For ``PKGNAME`` objects ``pkg``
    is the imported package path.
    """
    kind: ObjectKind
    name: str
    pkg: Optional[str] = None
    type: Optional[GoType] = None
    recv: Optional[GoType] = None

    @property
    def is_method(self) -> bool:
        return self.kind == ObjectKind.FUNC and self.recv is not None

    @property
    def exported(self) -> bool:
        return bool(self.name) and self.name[0].isupper()

    @property
    def id(self) -> str:
        """Method identity: unexported names are package-qualified."""
        if self.exported or not self.pkg:
            return self.name
        return f"{self.pkg}.{self.name}"

    def full_name(self) -> str:
        """
        Fully qualified name, as ``go/types`` ``Func.FullName`` renders it.

        >>> GoObject(ObjectKind.FUNC, "Printf", pkg="fmt").full_name()
        'fmt.Printf'
        """
        if self.recv is not None:
            return f"({type_string(self.recv)}).{self.name}"
        if self.pkg:
            return f"{self.pkg}.{self.name}"
        return self.name

    def __repr__(self) -> str:
        return f"GoObject({self.kind.name}, {self.full_name()!r})"


# ═════════════════════════════════════════════════════════════════════════
#  SELECTIONS
# ═════════════════════════════════════════════════════════════════════════

class SelectionKind(Enum):
    FIELD_VAL = auto()
    METHOD_VAL = auto()
    METHOD_EXPR = auto()


@dataclass(frozen=True)
class Selection:
    """
    Resolution of a selector expression ``x.f``.

    ``index`` is the path through embedded fields: every entry but the
    last selects an embedded struct field, the last selects ``f`` itself.
    """
    kind: SelectionKind
    recv: GoType
    obj: GoObject
    index: Tuple[int, ...] = ()


# ═════════════════════════════════════════════════════════════════════════
#  HELPERS
# ═════════════════════════════════════════════════════════════════════════

INVALID_TYPE = GoType.invalid()

# Predeclared ``error``: interface{ Error() string }, no package.
ERROR_TYPE = GoType.named(None, "error")
ERROR_TYPE.underlying_type = GoType.interface(
    methods=[GoObject(
        ObjectKind.FUNC, "Error",
        type=GoType.signature(results=[GoType.basic("string")]),
        recv=ERROR_TYPE,
    )],
)


def is_error_type(t: Optional[GoType]) -> bool:
    """True iff *t* is the predeclared ``error`` type (identity check).

    A defined type qualifies only if it has no declaring package and is
    named ``error``; types that merely implement ``Error() string`` do
    not.
    """
    return (
        t is not None
        and t.kind == TypeKind.NAMED
        and t.pkg is None
        and t.name == "error"
    )


def deref(t: GoType) -> GoType:
    """Strip one level of pointer indirection."""
    if t.kind == TypeKind.POINTER:
        return t.children[0]
    return t


def unname(t: GoType) -> GoType:
    """Replace a NAMED type by its underlying type."""
    if t.kind == TypeKind.NAMED:
        return t.underlying()
    return t


def _signature_string(t: GoType) -> str:
    params = ", ".join(type_string(p) for p in t.params)
    if t.variadic and t.params:
        last = t.params[-1]
        elem = last.elem if last.kind == TypeKind.SLICE else last
        head = [type_string(p) for p in t.params[:-1]]
        params = ", ".join(head + ["..." + type_string(elem)])
    text = f"({params})"
    if len(t.results) == 1:
        text += " " + type_string(t.results[0])
    elif t.results:
        text += " (" + ", ".join(type_string(r) for r in t.results) + ")"
    return text


def type_string(t: Optional[GoType]) -> str:
    """Render *t* with package-path qualification, like ``types.TypeString``."""
    if t is None:
        return "<nil>"
    k = t.kind
    if k == TypeKind.BASIC:
        return t.name
    if k == TypeKind.NAMED:
        return f"{t.pkg}.{t.name}" if t.pkg else t.name
    if k == TypeKind.POINTER:
        return "*" + type_string(t.children[0])
    if k == TypeKind.SLICE:
        return "[]" + type_string(t.children[0])
    if k == TypeKind.ARRAY:
        return f"[{t.length}]" + type_string(t.children[0])
    if k == TypeKind.MAP:
        return f"map[{type_string(t.children[0])}]{type_string(t.children[1])}"
    if k == TypeKind.CHAN:
        return "chan " + type_string(t.children[0])
    if k == TypeKind.TUPLE:
        return "(" + ", ".join(type_string(c) for c in t.children) + ")"
    if k == TypeKind.SIGNATURE:
        return "func" + _signature_string(t)
    if k == TypeKind.STRUCT:
        parts = []
        for f in t.fields:
            if f.embedded:
                parts.append(type_string(f.type))
            else:
                parts.append(f"{f.name} {type_string(f.type)}")
        return "struct{" + "; ".join(parts) + "}"
    if k == TypeKind.INTERFACE:
        parts = []
        for m in t.methods:
            sig = m.type if m.type is not None else GoType.signature()
            parts.append(m.name + _signature_string(sig))
        parts.extend(type_string(e) for e in t.embeddeds)
        return "interface{" + "; ".join(parts) + "}"
    return "invalid type"
