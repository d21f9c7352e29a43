# tests/test_embedded.py
"""
Tests for resolving interface methods promoted through embedding.
"""

from goerrcheck.embedded import walk_through_embedded_interfaces
from goerrcheck.types import (
    Field,
    GoObject,
    GoType,
    ObjectKind,
    Selection,
    SelectionKind,
    type_string,
)

from tests.builders import named_interface


def _method(iface: GoType, name: str) -> GoObject:
    for m in iface.all_methods():
        if m.name == name:
            return m
    raise AssertionError(f"{iface} has no method {name}")


def _select(recv: GoType, method: GoObject, index=(0,)) -> Selection:
    return Selection(SelectionKind.METHOD_VAL, recv, method, tuple(index))


def _names(chain):
    return [type_string(t) for t in chain]


class TestInterfaceChains:

    def setup_method(self):
        self.writer = named_interface("io", "Writer", ["Write"])
        self.hash = named_interface("hash", "Hash", ["Sum"], embeds=[self.writer])
        self.write = _method(self.writer, "Write")

    def test_method_declared_directly(self):
        chain = walk_through_embedded_interfaces(_select(self.writer, self.write))
        assert _names(chain) == ["io.Writer"]

    def test_promoted_through_embedded_interface(self):
        chain = walk_through_embedded_interfaces(_select(self.hash, self.write))
        assert _names(chain) == ["hash.Hash", "io.Writer"]

    def test_multi_level_embedding(self):
        a = named_interface("p", "A", ["X"])
        b = named_interface("p", "B", embeds=[a])
        c = named_interface("p", "C", embeds=[b])
        x = _method(a, "X")
        chain = walk_through_embedded_interfaces(_select(c, x))
        assert _names(chain) == ["p.C", "p.B", "p.A"]

    def test_embedded_anonymous_interface(self):
        anon = GoType.interface()
        x = GoObject(ObjectKind.FUNC, "X", pkg="main",
                     type=GoType.signature(), recv=anon)
        anon.methods.append(x)
        a = GoType.named("main", "A", GoType.interface(embeddeds=[anon]))
        chain = walk_through_embedded_interfaces(_select(a, x))
        assert _names(chain) == ["main.A", "interface{X()}"]

    def test_first_declaring_embedding_wins(self):
        other = named_interface("p", "Other", ["Write"])
        both = named_interface("p", "Both", embeds=[self.writer, other])
        chain = walk_through_embedded_interfaces(_select(both, self.write))
        assert _names(chain) == ["p.Both", "io.Writer"]

    def test_cyclic_embedding_terminates(self):
        loop = GoType.named("p", "Loop")
        loop.underlying_type = GoType.interface(embeddeds=[loop])
        stray = GoObject(ObjectKind.FUNC, "Missing", pkg="p",
                         type=GoType.signature(), recv=loop)
        assert walk_through_embedded_interfaces(_select(loop, stray)) is None


class TestStructPaths:

    def setup_method(self):
        self.writer = named_interface("io", "Writer", ["Write"])
        self.hash = named_interface("hash", "Hash", ["Sum"], embeds=[self.writer])
        self.write = _method(self.writer, "Write")

    def test_struct_field_then_interface(self):
        t = GoType.named("main", "T", GoType.struct([
            Field("Hash", self.hash, embedded=True),
        ]))
        sel = _select(GoType.pointer(t), self.write, index=(0, 0))
        chain = walk_through_embedded_interfaces(sel)
        assert _names(chain) == ["*main.T", "hash.Hash", "io.Writer"]

    def test_concrete_method_not_applicable(self):
        t = GoType.named("main", "T", GoType.struct())
        close = GoObject(ObjectKind.FUNC, "Close", pkg="main", recv=t)
        assert walk_through_embedded_interfaces(_select(t, close)) is None

    def test_field_selection_not_applicable(self):
        t = GoType.named("main", "T", GoType.struct([Field("n", GoType.basic("int"))]))
        field = GoObject(ObjectKind.VAR, "n", pkg="main")
        sel = Selection(SelectionKind.FIELD_VAL, t, field, (0,))
        assert walk_through_embedded_interfaces(sel) is None

    def test_invalid_receiver_not_applicable(self):
        sel = _select(GoType.invalid(), self.write)
        assert walk_through_embedded_interfaces(sel) is None

    def test_index_through_non_struct(self):
        sel = _select(self.hash, self.write, index=(0, 0))
        assert walk_through_embedded_interfaces(sel) is None
