"""Unit tests for the value model."""

from __future__ import annotations

import logging

import pytest

from tfengine.exceptions import ConfigurationError, TypeConversionError
from tfengine.values import (
    ANY_TYPE,
    STRING_TYPE,
    TypeSpec,
    ValueType,
    coerce,
    equals,
    from_python,
    iter_set,
    parse_type,
    to_bool,
    to_number,
    to_string,
    to_whole_number,
    type_of,
)


class TestTypeOf:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, ValueType.NULL),
            (True, ValueType.BOOL),
            (0, ValueType.NUMBER),
            (1.5, ValueType.NUMBER),
            ("x", ValueType.STRING),
            ([1], ValueType.LIST),
            (frozenset({"a"}), ValueType.SET),
            ({"a": 1}, ValueType.MAP),
        ],
    )
    def test_tags(self, value, expected) -> None:
        assert type_of(value) == expected

    def test_unsupported_python_type(self) -> None:
        with pytest.raises(TypeConversionError):
            type_of(object())


class TestFromPython:
    def test_normalises_containers(self) -> None:
        value = from_python({"a": (1, 2), 3: {"x", "y"}})
        assert value == {"a": [1, 2], "3": frozenset({"x", "y"})}

    def test_rejects_non_finite_numbers(self) -> None:
        with pytest.raises(TypeConversionError):
            from_python(float("nan"))

    def test_rejects_collections_inside_sets(self) -> None:
        with pytest.raises(TypeConversionError):
            from_python({("a", "b")})

    def test_mixed_set_elements_become_strings(self) -> None:
        assert from_python({1, "a"}) == frozenset({"1", "a"})


class TestConversions:
    def test_to_string_renders_integral_numbers_without_fraction(self) -> None:
        assert to_string(3.0) == "3"
        assert to_string(1.5) == "1.5"
        assert to_string(42) == "42"

    def test_to_string_bools(self) -> None:
        assert to_string(True) == "true"
        assert to_string(False) == "false"

    @pytest.mark.parametrize("value", [None, [], {}, frozenset()])
    def test_to_string_rejects_null_and_collections(self, value) -> None:
        with pytest.raises(TypeConversionError):
            to_string(value)

    def test_to_number(self) -> None:
        assert to_number("42") == 42
        assert to_number(" 4.5 ") == 4.5
        with pytest.raises(TypeConversionError):
            to_number("abc")
        with pytest.raises(TypeConversionError):
            to_number(True)

    def test_to_bool(self) -> None:
        assert to_bool("true") is True
        assert to_bool(False) is False
        with pytest.raises(TypeConversionError):
            to_bool("yes")
        with pytest.raises(TypeConversionError):
            to_bool(1)

    def test_to_whole_number(self) -> None:
        assert to_whole_number(2.0) == 2
        assert to_whole_number("7") == 7
        with pytest.raises(TypeConversionError, match="whole number"):
            to_whole_number(2.5, "count")

    def test_messages_leave_out_the_value(self) -> None:
        for convert in (to_number, to_bool):
            with pytest.raises(TypeConversionError) as excinfo:
                convert("hunter2")
            assert "hunter2" not in str(excinfo.value)
        with pytest.raises(TypeConversionError) as excinfo:
            to_whole_number(13.37, "count")
        assert "13.37" not in str(excinfo.value)

    def test_type_conversion_error_is_a_type_error(self) -> None:
        with pytest.raises(TypeError):
            to_number([1])


class TestParseType:
    def test_primitives_and_collections(self) -> None:
        assert parse_type("string") == STRING_TYPE
        assert parse_type(None) == ANY_TYPE
        assert parse_type("list") == TypeSpec(ValueType.LIST, ANY_TYPE)
        assert parse_type("map(list(string))") == TypeSpec(
            ValueType.MAP, TypeSpec(ValueType.LIST, STRING_TYPE)
        )

    def test_str_round_trip(self) -> None:
        assert str(parse_type("set(number)")) == "set(number)"

    def test_structural_types_degrade_with_warning(self, caplog) -> None:
        with caplog.at_level(logging.WARNING):
            spec = parse_type("object({ name = string })")
        assert spec == TypeSpec(ValueType.MAP, ANY_TYPE)
        assert "checked as map(any)" in caplog.text

    @pytest.mark.parametrize("text", ["strng", "string(number)", "null", "list("])
    def test_invalid_constraints(self, text) -> None:
        with pytest.raises(ConfigurationError):
            parse_type(text)


class TestCoerce:
    def test_null_satisfies_every_type(self) -> None:
        assert coerce(None, "number") is None

    def test_list_to_set_removes_duplicates(self) -> None:
        assert coerce(["a", "b", "a"], "set(string)") == frozenset({"a", "b"})

    def test_mixed_tags_in_set_stay_distinct(self) -> None:
        assert coerce([1, True], "set") == frozenset({"1", "true"})
        assert len(coerce([1, True, "1"], "set(any)")) == 2
        assert coerce([1, 2.5], "set") == frozenset({1, 2.5})

    def test_element_conversion(self) -> None:
        assert coerce([1, True], "list(string)") == ["1", "true"]
        assert coerce({"a": "1"}, "map(number)") == {"a": 1}

    def test_set_to_list_is_sorted(self) -> None:
        assert coerce(frozenset({"b", "a"}), "list(string)") == ["a", "b"]

    @pytest.mark.parametrize(
        "value, spec",
        [([1], "map(any)"), ("x", "number"), ({"a": 1}, "string"), ("1", "list")],
    )
    def test_incompatible_values(self, value, spec) -> None:
        with pytest.raises(TypeConversionError):
            coerce(value, spec)


class TestEquality:
    def test_different_tags_are_never_equal(self) -> None:
        assert equals(True, 1) is False
        assert equals("1", 1) is False
        assert equals({"a": 1}, {"a": True}) is False

    def test_same_tag(self) -> None:
        assert equals(1, 1.0)
        assert equals([1, "a"], [1, "a"])
        assert equals(frozenset({"a", "b"}), frozenset({"b", "a"}))
        assert not equals([1, 2], [1])

    def test_set_iteration_order(self) -> None:
        assert iter_set(frozenset({"b", 2, True, "a"})) == [True, 2, "a", "b"]
