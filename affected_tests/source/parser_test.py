"""Unit tests for the source parser and index."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from affected_tests.source.parser import (
    SourceIndex,
    iter_source_files,
    module_name_for,
    parse_source,
)

SOURCE = textwrap.dedent('''
    import unittest
    from .base import Base as B
    from pkg import helpers

    def helper(x: int, y) -> int:
        """Doc."""
        return compute(x) + helpers.other(y)

    class Outer(B):
        def method(self, a: dict[str, int], *args, key: str = "", **kw):
            return self.helper()

        @staticmethod
        def static(a, b: int):
            pass

        class Inner:
            async def run(self):
                await go()
''')


def _write(root: Path, rel: str, text: str) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text))
    return path


@pytest.fixture
def project(tmp_path):
    _write(tmp_path, "pkg/__init__.py", "")
    _write(tmp_path, "pkg/core.py", """
        class Calc:
            def add(self, a: int, b: int):
                return a + b

        def total(xs):
            return sum(xs)
    """)
    _write(tmp_path, "tests/test_core.py", """
        from unittest import TestCase

        from pkg.core import Calc

        class TestCalc:
            def test_add(self):
                assert Calc().add(1, 2) == 3

        class CalcCase(TestCase):
            def test_total(self):
                pass
    """)
    _write(tmp_path, "broken.py", "def oops(:\n")
    _write(tmp_path, ".venv/lib/site.py", "def hidden():\n    pass\n")
    return tmp_path


class TestParseSource:
    """Tests for parse_source."""

    def test_methods_and_owners(self):
        """Functions, methods and nested class methods are all collected."""
        parsed = parse_source(SOURCE, "pkg.mod", Path("pkg/mod.py"))
        owners = {(m.class_name, m.name) for m in parsed.methods}
        assert owners == {
            (None, "helper"),
            ("Outer", "method"),
            ("Outer", "static"),
            ("Outer.Inner", "run"),
        }

    def test_parameter_types(self):
        """self is dropped, staticmethods keep their first argument."""
        parsed = parse_source(SOURCE, "pkg.mod", Path("pkg/mod.py"))
        by_name = {m.name: m for m in parsed.methods}
        assert by_name["helper"].parameter_types == ("int", "Any")
        assert by_name["method"].parameter_types == ("dict[str, int]", "*Any", "str", "**Any")
        assert by_name["static"].parameter_types == ("Any", "int")
        assert by_name["run"].parameter_types == ()

    def test_signature(self):
        """The signature uses the qualified owner."""
        parsed = parse_source(SOURCE, "pkg.mod", Path("pkg/mod.py"))
        by_name = {m.name: m for m in parsed.methods}
        assert by_name["helper"].signature == "pkg.mod.helper(int,Any)"
        assert by_name["run"].signature == "pkg.mod.Outer.Inner.run()"

    def test_calls(self):
        """Called names include plain and attribute calls."""
        parsed = parse_source(SOURCE, "pkg.mod", Path("pkg/mod.py"))
        by_name = {m.name: m for m in parsed.methods}
        assert by_name["helper"].calls == frozenset({"compute", "other"})
        assert by_name["method"].calls == frozenset({"helper"})

    def test_classes_and_imports(self):
        """Class bases and relative imports are recorded."""
        parsed = parse_source(SOURCE, "pkg.mod", Path("pkg/mod.py"))
        classes = {c.name: c for c in parsed.classes}
        assert classes["Outer"].bases == ("B",)
        assert "Outer.Inner" in classes
        assert parsed.imports["B"] == "pkg.base.Base"
        assert parsed.imports["helpers"] == "pkg.helpers"
        assert parsed.imports["unittest"] == "unittest"

    def test_digest_ignores_docstring(self):
        """Editing only the docstring does not change the body digest."""
        before = parse_source('def f():\n    """One."""\n    return 1\n', "m", Path("m.py"))
        after = parse_source('def f():\n    """Two."""\n    return 1\n', "m", Path("m.py"))
        changed = parse_source('def f():\n    """One."""\n    return 2\n', "m", Path("m.py"))
        assert before.methods[0].body_digest == after.methods[0].body_digest
        assert before.methods[0].body_digest != changed.methods[0].body_digest

    def test_syntax_error_raises(self):
        """Unparseable source raises SyntaxError."""
        with pytest.raises(SyntaxError):
            parse_source("def broken(:\n", "m", Path("m.py"))


class TestModuleNames:
    """Tests for module_name_for and file discovery."""

    def test_module_name(self):
        """Paths map to dotted names; packages drop __init__."""
        root = Path("/r")
        assert module_name_for(root / "pkg" / "sub" / "mod.py", root) == "pkg.sub.mod"
        assert module_name_for(root / "pkg" / "__init__.py", root) == "pkg"

    def test_excluded_directories_are_pruned(self, project):
        """Files under excluded directories are not yielded."""
        files = {p.relative_to(project).as_posix() for p in iter_source_files(project, [".venv/*"])}
        assert "pkg/core.py" in files
        assert ".venv/lib/site.py" not in files


class TestSourceIndex:
    """Tests for the project-wide index."""

    def test_build_skips_unparseable_files(self, project):
        """A file with a syntax error is skipped, the rest is indexed."""
        index = SourceIndex.build(project, [".venv/*"])
        assert "broken" not in index.modules
        assert "pkg.core" in index.modules

    def test_callers_of(self, project):
        """The reverse call index finds the calling test."""
        index = SourceIndex.build(project, [".venv/*"])
        callers = {m.name for m in index.callers_of("add")}
        assert callers == {"test_add"}

    def test_find_method_ignores_whitespace(self):
        """Signature lookup compares parameter types without whitespace."""
        index = SourceIndex(Path("/r"))
        index.add(parse_source(
            "class C:\n    def m(self, a: dict[str, int]):\n        pass\n", "pkg.mod", Path("/r/pkg/mod.py"),
        ))
        assert index.find_method("pkg.mod.C.m(dict[str,int])") is not None
        assert index.find_method("pkg.mod.C.m(int)") is None

    def test_resolve_imported_class(self, project):
        """Imported project classes resolve, external ones do not."""
        index = SourceIndex.build(project, [".venv/*"])
        resolved = index.resolve_class("Calc", "tests.test_core")
        assert resolved is not None
        assert resolved.qualified_name == "pkg.core.Calc"
        assert index.resolve_class("TestCase", "tests.test_core") is None
        assert index.qualified_base("TestCase", "tests.test_core") == "unittest.TestCase"

    def test_class_of(self, project):
        """class_of returns the declaring class of a method."""
        index = SourceIndex.build(project, [".venv/*"])
        test_add = next(m for m in index.methods if m.name == "test_add")
        owner = index.class_of(test_add)
        assert owner is not None
        assert owner.qualified_name == "tests.test_core.TestCalc"
