"""Unit tests for for-expressions."""

from __future__ import annotations

import pytest

from tfengine.ast import (
    BinaryOp,
    ForExpr,
    FunctionCall,
    ListExpr,
    Literal,
    Reference,
    TemplateString,
)
from tfengine.bindings import BindingKind
from tfengine.comprehension import eval_for_expr, iterate_collection
from tfengine.context import EvaluationContext
from tfengine.exceptions import DuplicateKeyError, TypeConversionError

NAMES = ["neo", "trinity", "morpheus"]
ROLES = {"neo": "hero", "trinity": "love interest", "morpheus": "mentor"}


@pytest.fixture
def matrix(ctx: EvaluationContext) -> EvaluationContext:
    ctx.bindings.define("var.names", BindingKind.VARIABLE, list(NAMES))
    ctx.bindings.define("var.roles", BindingKind.VARIABLE, dict(ROLES))
    return ctx


class TestIterateCollection:
    def test_list_map_and_set(self) -> None:
        assert list(iterate_collection(["a", "b"])) == [(0, "a"), (1, "b")]
        assert list(iterate_collection({"b": 2, "a": 1})) == [("a", 1), ("b", 2)]
        assert list(iterate_collection(frozenset({"y", "x"}))) == [
            ("x", "x"),
            ("y", "y"),
        ]

    def test_scalar_is_rejected(self) -> None:
        with pytest.raises(TypeConversionError, match="cannot iterate"):
            list(iterate_collection("abc"))


class TestListForm:
    def test_filter_and_transform(self, matrix) -> None:
        expr = ForExpr(
            collection=Reference("var.names"),
            value_var="name",
            value_expr=FunctionCall("upper", [Reference("name")]),
            condition=BinaryOp(
                "<", FunctionCall("length", [Reference("name")]), Literal(5)
            ),
        )
        assert eval_for_expr(expr, matrix) == ["NEO"]

    def test_identity_preserves_order(self, matrix) -> None:
        expr = ForExpr(Reference("var.names"), "name", Reference("name"))
        assert eval_for_expr(expr, matrix) == NAMES

    def test_index_variable_over_list(self, matrix) -> None:
        expr = ForExpr(
            collection=Reference("var.names"),
            key_var="i",
            value_var="name",
            value_expr=TemplateString((Reference("i"), ":", Reference("name"))),
        )
        assert eval_for_expr(expr, matrix) == ["0:neo", "1:trinity", "2:morpheus"]

    def test_single_variable_over_map_binds_values(self, matrix) -> None:
        expr = ForExpr(Reference("var.roles"), "role", Reference("role"))
        # sorted by key: morpheus, neo, trinity
        assert eval_for_expr(expr, matrix) == ["mentor", "hero", "love interest"]

    def test_condition_must_be_bool(self, matrix) -> None:
        expr = ForExpr(
            Reference("var.names"), "name", Reference("name"), condition=Literal("maybe")
        )
        with pytest.raises(TypeConversionError, match="condition must be a bool"):
            eval_for_expr(expr, matrix)

    def test_loop_variable_does_not_leak(self, matrix) -> None:
        expr = ForExpr(Reference("var.names"), "name", Reference("name"))
        eval_for_expr(expr, matrix)
        assert "name" not in matrix.scope


class TestMapForm:
    def test_upper_case_keys_and_values(self, matrix) -> None:
        expr = ForExpr(
            collection=Reference("var.roles"),
            key_var="name",
            value_var="role",
            key_expr=FunctionCall("upper", [Reference("name")]),
            value_expr=FunctionCall("upper", [Reference("role")]),
        )
        assert eval_for_expr(expr, matrix) == {
            "NEO": "HERO",
            "TRINITY": "LOVE INTEREST",
            "MORPHEUS": "MENTOR",
        }

    def test_identity_round_trip(self, matrix) -> None:
        expr = ForExpr(
            collection=Reference("var.roles"),
            key_var="k",
            value_var="v",
            key_expr=Reference("k"),
            value_expr=Reference("v"),
        )
        assert eval_for_expr(expr, matrix) == ROLES

    def test_duplicate_keys_raise(self, matrix) -> None:
        expr = ForExpr(
            collection=Reference("var.names"),
            value_var="name",
            key_expr=FunctionCall("length", [Reference("name")]),
            value_expr=Reference("name"),
        )
        # "neo" has 3 letters, "trinity" 7 and "morpheus" 8: no collision yet
        assert eval_for_expr(expr, matrix) == {
            "3": "neo",
            "7": "trinity",
            "8": "morpheus",
        }

        colliding = ForExpr(
            collection=ListExpr(["neo", "tank", "dozer", "link"]),
            value_var="name",
            key_expr=FunctionCall("length", [Reference("name")]),
            value_expr=Reference("name"),
        )
        with pytest.raises(DuplicateKeyError, match="'4'"):
            eval_for_expr(colliding, matrix)

    def test_grouping_mode_collects_values(self, matrix) -> None:
        expr = ForExpr(
            collection=ListExpr(["neo", "tank", "dozer", "link"]),
            value_var="name",
            key_expr=FunctionCall("length", [Reference("name")]),
            value_expr=Reference("name"),
            grouping=True,
        )
        assert eval_for_expr(expr, matrix) == {
            "3": ["neo"],
            "4": ["tank", "link"],
            "5": ["dozer"],
        }

    def test_keys_must_be_strings(self, matrix) -> None:
        expr = ForExpr(
            collection=Reference("var.names"),
            value_var="name",
            key_expr=ListExpr([Reference("name")]),
            value_expr=Reference("name"),
        )
        with pytest.raises(TypeConversionError, match="key must be a string"):
            eval_for_expr(expr, matrix)
