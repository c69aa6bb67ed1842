"""Unit tests for the resource expander."""

from __future__ import annotations

import pytest

from tfengine.ast import (
    FunctionCall,
    Index,
    ListExpr,
    Literal,
    MapExpr,
    Reference,
    TemplateString,
)
from tfengine.bindings import BindingKind
from tfengine.config import DynamicBlock, ResourceBlock
from tfengine.context import EvaluationContext
from tfengine.exceptions import (
    ExpansionError,
    InvalidCountError,
    UnresolvedReferenceError,
)
from tfengine.expander import ResourceExpander, expand_resource

USER_NAMES = ["neo", "trinity", "morpheus"]


@pytest.fixture
def expander() -> ResourceExpander:
    return ResourceExpander()


@pytest.fixture
def users_ctx(ctx: EvaluationContext) -> EvaluationContext:
    ctx.bindings.define("var.user_names", BindingKind.VARIABLE, list(USER_NAMES))
    ctx.bindings.define(
        "var.custom_tags",
        BindingKind.VARIABLE,
        {"Owner": "ops", "Env": "prod"},
    )
    return ctx


def user_block(**fields) -> ResourceBlock:
    fields.setdefault("attributes", {})
    return ResourceBlock(resource_type="aws_iam_user", name="example", **fields)


class TestCount:
    def test_instances_keyed_by_index(self, expander, users_ctx) -> None:
        block = user_block(
            count=FunctionCall("length", [Reference("var.user_names")]),
            attributes={
                "name": Index(Reference("var.user_names"), Reference("count.index"))
            },
        )
        instances = expander.expand(block, users_ctx)

        assert [inst.key for inst in instances] == [0, 1, 2]
        assert [inst.attributes["name"] for inst in instances] == USER_NAMES
        assert instances[1].address == "aws_iam_user.example[1]"
        assert ResourceExpander.collection_value(block, instances) == [
            {"name": name} for name in USER_NAMES
        ]

    def test_zero_count(self, expander, users_ctx) -> None:
        block = user_block(count=0, attributes={"name": Reference("var.missing")})
        instances = expander.expand(block, users_ctx)
        assert instances == []
        assert ResourceExpander.collection_value(block, instances) == []

    @pytest.mark.parametrize("count", [-1, 1.5, "two", True, None, [1]])
    def test_invalid_count(self, expander, users_ctx, count) -> None:
        block = user_block(count=Literal(count))
        with pytest.raises(InvalidCountError) as excinfo:
            expander.expand(block, users_ctx)
        assert excinfo.value.address == "aws_iam_user.example"

    def test_numeric_string_count(self, expander, users_ctx) -> None:
        assert len(expander.expand(user_block(count="2"), users_ctx)) == 2


class TestForEach:
    def test_set_of_strings(self, expander, users_ctx) -> None:
        block = user_block(
            for_each=FunctionCall("toset", [Reference("var.user_names")]),
            attributes={"name": Reference("each.value")},
        )
        instances = expander.expand(block, users_ctx)

        assert len(instances) == 3
        assert {inst.key for inst in instances} == set(USER_NAMES)
        for inst in instances:
            assert inst.attributes["name"] == inst.key
        # deterministic: sorted by key
        assert [inst.key for inst in instances] == sorted(USER_NAMES)
        assert instances[0].address == 'aws_iam_user.example["morpheus"]'

    def test_map(self, expander, users_ctx) -> None:
        block = user_block(
            for_each=Reference("var.custom_tags"),
            attributes={
                "tag": TemplateString(
                    (Reference("each.key"), "=", Reference("each.value"))
                )
            },
        )
        instances = expander.expand(block, users_ctx)
        assert [inst.attributes["tag"] for inst in instances] == [
            "Env=prod",
            "Owner=ops",
        ]
        assert ResourceExpander.collection_value(block, instances) == {
            "Env": {"tag": "Env=prod"},
            "Owner": {"tag": "Owner=ops"},
        }

    def test_list_is_rejected(self, expander, users_ctx) -> None:
        block = user_block(for_each=Reference("var.user_names"))
        with pytest.raises(ExpansionError, match="toset"):
            expander.expand(block, users_ctx)

    def test_null_is_rejected(self, expander, users_ctx) -> None:
        with pytest.raises(ExpansionError):
            expander.expand(user_block(for_each=Literal(None)), users_ctx)

    def test_mixed_set_elements_are_unified(self, expander, users_ctx) -> None:
        block = user_block(
            for_each=FunctionCall("toset", [Literal([1, True, "1"])]),
            attributes={"value": Reference("each.value")},
        )
        instances = expander.expand(block, users_ctx)
        assert [(inst.key, inst.attributes["value"]) for inst in instances] == [
            ("1", "1"),
            ("true", "true"),
        ]

    def test_number_elements_become_string_keys(self, expander, users_ctx) -> None:
        block = user_block(
            for_each=Literal(frozenset({2, 10})),
            attributes={"port": Reference("each.value")},
        )
        instances = expander.expand(block, users_ctx)
        assert [(inst.key, inst.attributes["port"]) for inst in instances] == [
            ("10", 10),
            ("2", 2),
        ]


class TestSingleton:
    def test_no_meta_arguments(self, expander, users_ctx) -> None:
        block = user_block(attributes={"name": Literal("neo")})
        instances = expander.expand(block, users_ctx)
        assert len(instances) == 1
        assert instances[0].key is None
        assert instances[0].address == "aws_iam_user.example"
        assert ResourceExpander.collection_value(block, instances) == {"name": "neo"}

    def test_ambiguous_meta_arguments(self, expander, users_ctx) -> None:
        block = user_block(count=1, for_each=Reference("var.custom_tags"))
        with pytest.raises(ExpansionError):
            expander.expand(block, users_ctx)


class TestDynamicBlocks:
    def test_tags_from_map(self, expander, users_ctx) -> None:
        block = ResourceBlock(
            resource_type="aws_autoscaling_group",
            name="example",
            attributes={
                "tag": ListExpr(
                    [MapExpr({"key": "Name", "value": "asg", "propagate": True})]
                )
            },
            dynamic=[
                DynamicBlock(
                    name="tag",
                    for_each=Reference("var.custom_tags"),
                    content={
                        "key": Reference("tag.key"),
                        "value": Reference("tag.value"),
                        "propagate": True,
                    },
                )
            ],
        )
        (instance,) = expander.expand(block, users_ctx)
        assert instance.attributes["tag"] == [
            {"key": "Name", "value": "asg", "propagate": True},
            {"key": "Env", "value": "prod", "propagate": True},
            {"key": "Owner", "value": "ops", "propagate": True},
        ]

    def test_custom_iterator_and_nesting(self, expander, users_ctx) -> None:
        block = user_block(
            dynamic=[
                DynamicBlock(
                    name="group",
                    iterator="g",
                    for_each=Literal({"admins": ["neo"], "ops": ["tank", "dozer"]}),
                    content={"name": Reference("g.key")},
                    dynamic=[
                        DynamicBlock(
                            name="member",
                            for_each=Reference("g.value"),
                            content={
                                "id": TemplateString(
                                    (Reference("g.key"), "/", Reference("member.value"))
                                )
                            },
                        )
                    ],
                )
            ]
        )
        (instance,) = expander.expand(block, users_ctx)
        assert instance.attributes["group"] == [
            {"name": "admins", "member": [{"id": "admins/neo"}]},
            {
                "name": "ops",
                "member": [{"id": "ops/tank"}, {"id": "ops/dozer"}],
            },
        ]

    def test_iterator_is_scoped_to_content(self, expander, users_ctx) -> None:
        block = user_block(
            attributes={"leak": Reference("tag.value")},
            dynamic=[DynamicBlock(name="tag", for_each=Literal(["a"]))],
        )
        with pytest.raises(UnresolvedReferenceError):
            expander.expand(block, users_ctx)

    def test_dynamic_over_scalar(self, expander, users_ctx) -> None:
        block = user_block(dynamic=[DynamicBlock(name="tag", for_each=Literal("x"))])
        with pytest.raises(ExpansionError, match="dynamic block 'tag'"):
            expander.expand(block, users_ctx)


def test_expand_resource_uses_last_declaration(users_ctx) -> None:
    first = user_block(count=3)
    second = user_block(for_each=FunctionCall("toset", [Reference("var.user_names")]))
    instances = expand_resource([first, second], "aws_iam_user.example", users_ctx)
    assert sorted(inst.key for inst in instances) == sorted(USER_NAMES)
