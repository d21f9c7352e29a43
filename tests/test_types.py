# tests/test_types.py
"""
Tests for the Go type model: rendering, error identity and method sets.
"""

import pytest

from goerrcheck.types import (
    ERROR_TYPE,
    Field,
    GoObject,
    GoType,
    ObjectKind,
    TypeKind,
    deref,
    is_error_type,
    type_string,
    unname,
)

from tests.builders import BYTES, INT, STRING, named_interface


class TestTypeString:

    @pytest.mark.parametrize("t, expected", [
        (INT, "int"),
        (ERROR_TYPE, "error"),
        (GoType.pointer(GoType.named("bytes", "Buffer")), "*bytes.Buffer"),
        (GoType.named("math/rand", "Rand"), "math/rand.Rand"),
        (BYTES, "[]byte"),
        (GoType.array(INT, 4), "[4]int"),
        (GoType.map_of(STRING, INT), "map[string]int"),
        (GoType.chan(INT), "chan int"),
        (GoType.tuple_of(INT, ERROR_TYPE), "(int, error)"),
        (GoType.signature([BYTES], [INT, ERROR_TYPE]), "func([]byte) (int, error)"),
        (GoType.signature([STRING, GoType.slice(INT)], [ERROR_TYPE], variadic=True),
         "func(string, ...int) error"),
        (GoType.struct([Field("n", INT), Field("Buffer", GoType.named("bytes", "Buffer"),
                                                embedded=True)]),
         "struct{n int; bytes.Buffer}"),
        (GoType.interface(), "interface{}"),
        (GoType.invalid(), "invalid type"),
        (None, "<nil>"),
    ])
    def test_rendering(self, t, expected):
        assert type_string(t) == expected

    def test_interface_with_methods_and_embeddings(self):
        writer = named_interface("io", "Writer", ["Write"])
        closer = GoObject(ObjectKind.FUNC, "Close", pkg="io",
                          type=GoType.signature(results=[ERROR_TYPE]))
        iface = GoType.interface(methods=[closer], embeddeds=[writer])
        assert type_string(iface) == "interface{Close() error; io.Writer}"


class TestErrorIdentity:

    def test_predeclared_error(self):
        assert is_error_type(ERROR_TYPE)

    def test_error_in_a_package_is_not_error(self):
        own = GoType.named("example.com/m", "error", ERROR_TYPE.underlying())
        assert not is_error_type(own)

    def test_implementing_error_is_not_enough(self):
        custom = GoType.named("os", "PathError", GoType.struct())
        assert not is_error_type(custom)
        assert not is_error_type(GoType.pointer(custom))

    def test_underlying_interface_is_not_error(self):
        assert not is_error_type(ERROR_TYPE.underlying())

    def test_none(self):
        assert not is_error_type(None)


class TestObjects:

    def test_full_name_of_function(self):
        assert GoObject(ObjectKind.FUNC, "Remove", pkg="os").full_name() == "os.Remove"

    def test_full_name_of_method(self):
        file_t = GoType.pointer(GoType.named("os", "File"))
        close = GoObject(ObjectKind.FUNC, "Close", pkg="os", recv=file_t)
        assert close.full_name() == "(*os.File).Close"
        assert close.is_method

    def test_full_name_of_builtin(self):
        assert GoObject(ObjectKind.BUILTIN, "recover").full_name() == "recover"

    def test_method_id(self):
        assert GoObject(ObjectKind.FUNC, "Write", pkg="io").id == "Write"
        assert GoObject(ObjectKind.FUNC, "write", pkg="io").id == "io.write"


class TestMethodSets:

    def test_all_methods_includes_embedded(self):
        writer = named_interface("io", "Writer", ["Write"])
        hash_t = named_interface("hash", "Hash", ["Sum", "Reset"], embeds=[writer])
        assert [m.name for m in hash_t.explicit_methods()] == ["Sum", "Reset"]
        assert [m.name for m in hash_t.all_methods()] == ["Sum", "Reset", "Write"]

    def test_duplicate_methods_collapse(self):
        a = named_interface("p", "A", ["Write"])
        b = named_interface("p", "B", ["Write"])
        both = GoType.named("p", "Both", GoType.interface(embeddeds=[a, b]))
        assert [m.name for m in both.all_methods()] == ["Write"]

    def test_cyclic_embedding(self):
        loop = GoType.named("p", "Loop")
        loop.underlying_type = GoType.interface(embeddeds=[loop])
        assert loop.all_methods() == []

    def test_non_interface_has_no_methods(self):
        assert GoType.struct().all_methods() == []


class TestHelpers:

    def test_deref(self):
        t = GoType.named("os", "File")
        assert deref(GoType.pointer(t)) is t
        assert deref(t) is t

    def test_unname(self):
        s = GoType.struct()
        assert unname(GoType.named("main", "T", s)) is s
        assert unname(s) is s

    def test_unfilled_named_type_is_invalid(self):
        assert unname(GoType.named("main", "T")).kind == TypeKind.INVALID

    def test_is_interface_through_name(self):
        assert ERROR_TYPE.is_interface
        assert not GoType.named("main", "T", GoType.struct()).is_interface
