# tests/test_main.py
"""
Tests for the command-line interface.
"""

import os

import pytest

from goerrcheck.main import (
    EXIT_FATAL,
    EXIT_OK,
    EXIT_UNCHECKED,
    main,
    parse_ignore,
    split_tags,
)

SAMPLE = os.path.join(os.path.dirname(__file__), "testdata", "sample.sexp")


def _run(capsys, *args):
    code = main([*args, SAMPLE])
    out = capsys.readouterr().out
    return code, [line.split("\t") for line in out.splitlines()]


class TestParseFlags:

    @pytest.mark.parametrize("spec, expected", [
        ("", {}),
        ("fmt:.*", {"fmt": ".*"}),
        ("fmt:.*,encoding/binary:.*", {"fmt": ".*", "encoding/binary": ".*"}),
        ("[rR]ead|[wW]rite", {"": "[rR]ead|[wW]rite"}),
        ("fmt:.*,,os:Remove", {"fmt": ".*", "os": "Remove"}),
    ])
    def test_parse_ignore(self, spec, expected):
        assert parse_ignore(spec) == expected

    @pytest.mark.parametrize("spec, expected", [
        ("", []),
        ("foo", ["foo"]),
        ("foo bar", ["foo", "bar"]),
        ("foo,bar", ["foo", "bar"]),
        ("foo, bar", ["foo", "bar"]),
        ("  foo  bar  ", ["foo", "bar"]),
        ("foo,bar !baz", ["foo", "bar", "!baz"]),
    ])
    def test_split_tags(self, spec, expected):
        assert split_tags(spec) == expected


class TestExitCodes:

    def test_findings(self, capsys):
        code, lines = _run(capsys)
        assert code == EXIT_UNCHECKED
        assert lines == [
            ["gen.go:6:11", 'os.Remove("g")'],
            ["main.go:6:11", 'os.Remove("x")'],
            ["main_test.go:4:11", 'os.Remove("y")'],
        ]

    def test_clean(self, capsys):
        code, lines = _run(capsys, "--ignorepkg", "os")
        assert code == EXIT_OK
        assert lines == []

    def test_blank_then_package_pattern(self, capsys):
        code, lines = _run(capsys, "--blank")
        assert ["util.go:4:5", "_ = os.Chdir(dir)"] in lines
        code = main([SAMPLE, "example.com/m/util"])
        assert code == EXIT_OK

    def test_load_failure(self, capsys):
        assert main([os.path.join(os.path.dirname(SAMPLE), "missing.sexp")]) == EXIT_FATAL
        assert "could not read dump" in capsys.readouterr().err

    def test_module_mode_mismatch(self, capsys):
        code, lines = _run(capsys, "--mod", "vendor")
        assert code == EXIT_FATAL
        assert lines == []

    def test_bad_ignore_regex(self, capsys):
        code, _ = _run(capsys, "--ignore", "os:[")
        assert code == EXIT_FATAL

    def test_missing_exclude_file(self, capsys, tmp_path):
        code, _ = _run(capsys, "--exclude", str(tmp_path / "none.txt"))
        assert code == EXIT_FATAL


class TestOptions:

    def test_ignoretests(self, capsys):
        _, lines = _run(capsys, "--ignoretests")
        assert [ln[0] for ln in lines] == ["gen.go:6:11", "main.go:6:11"]

    def test_ignoregenerated(self, capsys):
        _, lines = _run(capsys, "--ignoregenerated")
        assert [ln[0] for ln in lines] == ["main.go:6:11", "main_test.go:4:11"]

    def test_tags(self, capsys):
        _, lines = _run(capsys, "--tags", "linux")
        assert ["linux.go:4:11", 'os.Remove("z")'] in lines

    def test_exclude_file(self, capsys, tmp_path):
        excludes = tmp_path / "excludes.txt"
        excludes.write_text("// remove is fine\nos.Remove\n", encoding="utf-8")
        code, lines = _run(capsys, "--exclude", str(excludes))
        assert code == EXIT_OK
        assert lines == []

    def test_ignore_regex(self, capsys):
        code, _ = _run(capsys, "--ignore", "os:Rem.*")
        assert code == EXIT_OK

    def test_deprecated_flags_warn(self, capsys):
        main(["--ignorepkg", "os", SAMPLE])
        assert "--ignorepkg is deprecated" in capsys.readouterr().err

    def test_abspath(self, capsys):
        _, lines = _run(capsys, "--abspath")
        assert lines[0][0] == os.path.abspath("gen.go") + ":6:11"

    def test_verbose_prints_callee(self, capsys):
        _, lines = _run(capsys, "-v")
        assert lines[0] == ["gen.go:6:11", 'os.Remove("g")', "os.Remove"]

    def test_jobs(self, capsys):
        code, lines = _run(capsys, "-j", "1")
        assert code == EXIT_UNCHECKED
        assert len(lines) == 3

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as info:
            main(["--version"])
        assert info.value.code == 0
        assert capsys.readouterr().out.startswith("goerrcheck ")
