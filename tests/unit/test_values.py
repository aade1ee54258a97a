"""Tests for literal value lowering."""

from __future__ import annotations

import pytest

from nb2pb import ast
from nb2pb.errors import InvariantViolation
from nb2pb.lowering import ValueLowerer, WrapType


def _lower(value: ast.Value):
    return ValueLowerer().lower_value(value)


class TestStrings:
    def test_plain_string_is_single_quoted(self):
        result = _lower(ast.StringValue(value="hello"))
        assert result.text == "'hello'"
        assert result.wrap_type == WrapType.UNKNOWN

    def test_quote_and_backslash_are_escaped(self):
        result = _lower(ast.StringValue(value="it's a \\ path"))
        assert result.text == r"'it\'s a \\ path'"

    def test_control_characters_are_escaped(self):
        result = _lower(ast.StringValue(value="a\nb\rc\td"))
        assert result.text == r"'a\nb\rc\td'"

    def test_numeric_looking_string_stays_a_string(self):
        assert _lower(ast.StringValue(value="2")).text == "'2'"


class TestNumbers:
    def test_integral_float_has_no_fraction(self):
        result = _lower(ast.NumberValue(value=5.0))
        assert result.text == "5"
        assert result.wrap_type == WrapType.UNKNOWN

    def test_fractional_number(self):
        assert _lower(ast.NumberValue(value=2.5)).text == "2.5"

    def test_negative_number(self):
        assert _lower(ast.NumberValue(value=-3)).text == "-3"

    def test_non_finite_numbers(self):
        assert _lower(ast.NumberValue(value=float("inf"))).text == "math.inf"
        assert _lower(ast.NumberValue(value=float("-inf"))).text == "-math.inf"
        assert _lower(ast.NumberValue(value=float("nan"))).text == "math.nan"


class TestBoolsAndConstants:
    def test_bools_are_wrapped(self):
        assert _lower(ast.BoolValue(value=True)).text == "True"
        assert _lower(ast.BoolValue(value=False)).text == "False"
        assert _lower(ast.BoolValue(value=True)).wrap_type == WrapType.WRAPPED

    def test_constants(self):
        assert _lower(ast.ConstantValue(value=ast.Constant.PI)).text == "math.pi"
        assert _lower(ast.ConstantValue(value=ast.Constant.E)).text == "math.e"


class TestLists:
    def test_list_of_mixed_values(self):
        value = ast.ListValue(values=[ast.NumberValue(value=1), ast.StringValue(value="a")])
        result = _lower(value)
        assert result.text == "[1, 'a']"
        assert result.wrap_type == WrapType.UNKNOWN

    def test_nested_lists(self):
        value = ast.ListValue(values=[ast.ListValue(values=[]), ast.BoolValue(value=False)])
        assert _lower(value).text == "[[], False]"


class TestUnloweredValues:
    @pytest.mark.parametrize(
        "value",
        [
            ast.ImageValue(content=b"\x89PNG"),
            ast.AudioValue(content=b"RIFF"),
            ast.RefValue(ref_id=3),
        ],
    )
    def test_raises_invariant_violation(self, value):
        with pytest.raises(InvariantViolation):
            _lower(value)
