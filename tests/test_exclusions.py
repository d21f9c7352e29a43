# tests/test_exclusions.py
"""
Tests for exclusion rules: regexes, exact symbols, argument-type
discriminators, the built-in table, vendoring and exclusion files.
"""

import os
import re

import pytest

from goerrcheck import ast as A
from goerrcheck.errors import ExcludeFileError, InvalidPatternError
from goerrcheck.exclusions import (
    DEFAULT_EXCLUDED_SYMBOLS,
    ExclusionIndex,
    Exclusions,
    non_vendored_pkg_path,
    read_excludes,
    strip_vendor,
)
from goerrcheck.types import ERROR_TYPE, GoObject, GoType, ObjectKind

from tests.builders import (
    INT,
    GoSource,
    builtin,
    named_interface,
    pkgname,
    results,
    var,
)

TESTDATA = os.path.join(os.path.dirname(__file__), "testdata")

SRC = GoSource("""
    package main

    func main() {
    \tos.Remove("x")
    \tfmt.Fprintf(os.Stderr, "oops")
    \tfmt.Fprintf(&buf, "ok")
    \tfmt.Fprintf(w, "maybe")
    \th.Write(data)
    \tjson.Marshal(v)
    \tclose(ch)
    }
""")


def _index(**options) -> ExclusionIndex:
    return ExclusionIndex.from_exclusions(Exclusions(**options))


def _remove():
    return SRC.pkg_call("os", "Remove", ERROR_TYPE)


def _fprintf(nth: int, arg: A.Expr):
    return SRC.pkg_call("fmt", "Fprintf", results(INT, ERROR_TYPE), nth=nth, args=[arg])


def _stderr():
    start = SRC.at("os.Stderr")
    return A.SelectorExpr(
        A.Ident("os", start, obj=pkgname("os")),
        A.Ident("Stderr", start + 3, obj=var("os", "Stderr")),
    )


def _typed_arg(name: str, nth: int, type: GoType) -> A.Ident:
    return SRC.ident(name, nth, obj=var("main", name, type), type=type)


class TestRegexRules:

    def test_unqualified_regex_matches_any_package(self):
        index = _index(symbol_regexps_by_package={"": "^Rem"})
        assert index.is_excluded(_remove())

    def test_unqualified_regex_is_a_search(self):
        index = _index(symbol_regexps_by_package={"": "move"})
        assert index.is_excluded(_remove())

    def test_package_regex_needs_matching_package(self):
        assert _index(symbol_regexps_by_package={"os": ".*"}).is_excluded(_remove())
        assert not _index(symbol_regexps_by_package={"io": ".*"}).is_excluded(_remove())

    def test_package_regex_on_name(self):
        index = _index(symbol_regexps_by_package={"os": "^Chmod$"})
        assert not index.is_excluded(_remove())

    def test_ignorepkg(self):
        assert _index(packages=["os"]).is_excluded(_remove())

    def test_vendored_key(self):
        index = _index(symbol_regexps_by_package={"example.com/m/vendor/os": ".*"})
        assert index.is_excluded(_remove())

    def test_precompiled_pattern_accepted(self):
        index = _index(symbol_regexps_by_package={"": re.compile("Remove")})
        assert index.is_excluded(_remove())

    def test_invalid_regex(self):
        with pytest.raises(InvalidPatternError) as info:
            _index(symbol_regexps_by_package={"os": "[a-"})
        assert info.value.code == "ERRCHECK-2001"


class TestSymbolRules:

    def test_exact_symbol(self):
        assert _index(symbols=["os.Remove"]).is_excluded(_remove())

    def test_symbol_for_other_function(self):
        assert not _index(symbols=["os.RemoveAll"]).is_excluded(_remove())

    def test_vendored_symbol(self):
        index = _index(symbols=["github.com/x/vendor/os.Remove"])
        assert index.is_excluded(_remove())

    def test_method_symbol(self):
        buffer = GoType.pointer(GoType.named("bytes", "Buffer", GoType.struct()))
        method = GoObject(ObjectKind.FUNC, "Write", pkg="bytes", recv=buffer)
        call = SRC.method_call("h", "Write", buffer, method, results(INT, ERROR_TYPE))
        assert ExclusionIndex.names_for_exclude_check(call) == ["(*bytes.Buffer).Write"]
        assert _index(symbols=["(*bytes.Buffer).Write"],
                      disable_default_exclusions=True).is_excluded(call)

    def test_embedded_interface_names(self):
        writer = named_interface("io", "Writer", ["Write"])
        hash_t = named_interface("hash", "Hash", ["Sum"], embeds=[writer])
        write = writer.explicit_methods()[0]
        call = SRC.method_call("h", "Write", hash_t, write, results(INT, ERROR_TYPE))
        assert ExclusionIndex.names_for_exclude_check(call) == [
            "(hash.Hash).Write",
            "(io.Writer).Write",
        ]
        # the built-in table lists (hash.Hash).Write
        assert _index().is_excluded(call)
        assert _index(symbols=["(io.Writer).Write"],
                      disable_default_exclusions=True).is_excluded(call)
        assert not _index(disable_default_exclusions=True).is_excluded(call)

    def test_unrelated_interface_rule(self):
        inner = named_interface("example.com/p", "B", ["Write"])
        wrapper = named_interface("example.com/p", "A", embeds=[inner])
        unrelated = named_interface("example.com/p", "C", ["Write"])
        write = inner.explicit_methods()[0]
        call = SRC.method_call("h", "Write", wrapper, write, results(INT, ERROR_TYPE))
        assert unrelated.explicit_methods()[0].full_name() == "(example.com/p.C).Write"
        assert ExclusionIndex.names_for_exclude_check(call) == [
            "(example.com/p.A).Write",
            "(example.com/p.B).Write",
        ]
        assert not _index(symbols=["(example.com/p.C).Write"],
                          disable_default_exclusions=True).is_excluded(call)
        assert _index(symbols=["(example.com/p.B).Write"],
                      disable_default_exclusions=True).is_excluded(call)

    def test_builtin_callee(self):
        call = SRC.call("close", None, obj=builtin("close"))
        assert ExclusionIndex.names_for_exclude_check(call) == ["close"]
        assert _index(symbols=["close"]).is_excluded(call)

    def test_unresolved_callee_never_excluded(self):
        fn = var("main", "Remove", GoType.signature(results=[ERROR_TYPE]))
        call = SRC.selector_call("os", "Remove", ERROR_TYPE, obj=fn)
        index = _index(symbol_regexps_by_package={"": ".*"}, symbols=["os.Remove"])
        assert not index.is_excluded(call)
        assert ExclusionIndex.names_for_exclude_check(call) == []

    def test_symbols_are_stripped(self):
        index = _index(symbols=["  os.Remove  ", "", "   "])
        assert index.symbols == frozenset({"os.Remove"})


class TestArgumentDiscriminators:

    def test_stderr_excluded_by_default(self):
        assert _index().is_excluded(_fprintf(0, _stderr()))

    def test_buffer_excluded_by_default(self):
        buffer = GoType.pointer(GoType.named("bytes", "Buffer", GoType.struct()))
        assert _index().is_excluded(_fprintf(1, _typed_arg("buf", 0, buffer)))

    def test_other_writer_not_excluded(self):
        writer = named_interface("io", "Writer", ["Write"])
        assert not _index().is_excluded(_fprintf(2, _typed_arg("w", 0, writer)))

    def test_user_discriminator(self):
        writer = named_interface("io", "Writer", ["Write"])
        index = _index(symbols=["fmt.Fprintf(io.Writer)"])
        assert index.is_excluded(_fprintf(2, _typed_arg("w", 0, writer)))

    def test_stderr_from_other_package_is_not_os(self):
        start = SRC.at("os.Stderr")
        fake = A.SelectorExpr(
            A.Ident("os", start, obj=pkgname("example.com/fakeos")),
            A.Ident("Stderr", start + 3, obj=var("example.com/fakeos", "Stderr")),
        )
        assert not _index().is_excluded(_fprintf(0, fake))


class TestDefaultTable:

    def test_table_contents(self):
        assert "fmt.Printf" in DEFAULT_EXCLUDED_SYMBOLS
        assert "(hash.Hash).Write" in DEFAULT_EXCLUDED_SYMBOLS
        assert "fmt.Fprintln(os.Stderr)" in DEFAULT_EXCLUDED_SYMBOLS
        assert "os.Remove" not in DEFAULT_EXCLUDED_SYMBOLS

    def test_defaults_can_be_disabled(self):
        assert not _index(disable_default_exclusions=True).is_excluded(
            _fprintf(0, _stderr()))

    def test_non_matching_package_rule_falls_through(self):
        index = _index(symbol_regexps_by_package={"os": "^Chmod$"},
                       symbols=["os.Remove"])
        assert index.is_excluded(_remove())


class TestVendoring:

    @pytest.mark.parametrize("path, expected", [
        ("github.com/x/vendor/github.com/y/log", "github.com/y/log"),
        ("vendor/fmt", "fmt"),
        ("a/vendor/b/vendor/c", "c"),
        ("github.com/x/vendors/y", "github.com/x/vendors/y"),
        ("fmt", "fmt"),
    ])
    def test_non_vendored_pkg_path(self, path, expected):
        assert non_vendored_pkg_path(path) == expected

    def test_strip_vendor_in_symbols(self):
        assert strip_vendor("(*github.com/x/vendor/github.com/y.T).Close") == \
            "(*github.com/y.T).Close"
        assert strip_vendor("github.com/x/vendor/fmt.Fprintf(*github.com/x/vendor/bytes.Buffer)") == \
            "fmt.Fprintf(*bytes.Buffer)"


class TestReadExcludes:

    def test_reads_symbols_skipping_comments(self):
        excludes = read_excludes(os.path.join(TESTDATA, "excludes.txt"))
        assert excludes == ["hello()", "world()", "(*bytes.Buffer).Write"]

    def test_empty_file(self):
        assert read_excludes(os.path.join(TESTDATA, "empty_excludes.txt")) == []

    def test_missing_file(self):
        with pytest.raises(ExcludeFileError) as info:
            read_excludes(os.path.join(TESTDATA, "no_such_file.txt"))
        assert info.value.code == "ERRCHECK-2000"
        assert info.value.fatal
