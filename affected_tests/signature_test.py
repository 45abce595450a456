"""Unit tests for the signature module."""

from __future__ import annotations

from affected_tests.signature import (
    extract_class_name,
    extract_method_name,
    extract_parameter_types,
    format_signature,
    normalize_type,
    parameters_match,
)


class TestFormatSignature:
    """Tests for building signatures."""

    def test_basic(self):
        """Owner, name and types are joined canonically."""
        assert format_signature("pkg.mod.Cls", "run", ["int", "str"]) == "pkg.mod.Cls.run(int,str)"

    def test_no_parameters(self):
        """An empty parameter list gives empty parentheses."""
        assert format_signature("pkg.mod", "helper", []) == "pkg.mod.helper()"


class TestExtractors:
    """Tests for taking signatures apart."""

    def test_round_trip_with_nested_generic(self):
        """A generic type with an inner comma stays one parameter."""
        sig = format_signature("com.x.C", "m", ["Map<String,Integer>", "int"])
        assert extract_class_name(sig) == "com.x.C"
        assert extract_method_name(sig) == "m"
        assert extract_parameter_types(sig) == ["Map<String,Integer>", "int"]

    def test_round_trip_with_python_subscript(self):
        """Subscripted annotations keep their commas."""
        sig = format_signature("pkg.mod.C", "m", ["dict[str, int]", "tuple[int, ...]"])
        assert extract_parameter_types(sig) == ["dict[str, int]", "tuple[int, ...]"]

    def test_closing_before_opening_is_empty(self):
        """A ')' before the first '(' yields no parameters."""
        assert extract_parameter_types("foo)bar(") == []

    def test_missing_parens_is_empty(self):
        """No parentheses at all yields no parameters."""
        assert extract_parameter_types("pkg.Cls.m") == []
        assert extract_parameter_types("pkg.Cls.m(int") == []

    def test_blank_parameters(self):
        """Whitespace-only parameter text yields an empty list."""
        assert extract_parameter_types("pkg.C.m(  )") == []

    def test_items_are_trimmed(self):
        """Whitespace around each parameter is dropped."""
        assert extract_parameter_types("a.B.m( int , str )") == ["int", "str"]

    def test_method_name_passthrough(self):
        """Malformed inputs are returned unchanged."""
        assert extract_method_name("") == ""
        assert extract_method_name("no_parens") == "no_parens"
        assert extract_method_name("nodot()") == "nodot()"

    def test_class_name_without_dot(self):
        """An owner-less signature has an empty class name."""
        assert extract_class_name("m(int)") == ""
        assert extract_class_name("") == ""


class TestParameterMatching:
    """Tests for whitespace-insensitive type comparison."""

    def test_normalize(self):
        """All whitespace is removed."""
        assert normalize_type(" List< String > ") == "List<String>"

    def test_match_ignores_whitespace(self):
        """Types equal after normalisation match."""
        assert parameters_match(["dict[str, int]"], ["dict[str,int]"])

    def test_length_mismatch(self):
        """Different arity never matches."""
        assert not parameters_match(["int"], ["int", "str"])

    def test_type_mismatch(self):
        """Different types do not match."""
        assert not parameters_match(["int"], ["str"])
