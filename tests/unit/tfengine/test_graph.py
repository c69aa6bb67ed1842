"""Unit tests for the dependency graph."""

from __future__ import annotations

import pytest

from tfengine.ast import Conditional, ForExpr, Literal, Reference, Splat
from tfengine.config import Configuration
from tfengine.exceptions import ConfigurationError, CyclicDependencyError
from tfengine.graph import DependencyGraph, dependency_address


class TestDependencyAddress:
    @pytest.mark.parametrize(
        "parts, expected",
        [
            (("var", "names"), "var.names"),
            (("local", "tags", "Env"), "local.tags"),
            (("data", "aws_kms_secrets", "creds", "plaintext"), "data.aws_kms_secrets.creds"),
            (("aws_iam_user", "example", "arn"), "aws_iam_user.example"),
            (("each", "value"), None),
            (("count", "index"), None),
            (("path", "module"), None),
            (("var",), None),
            (("data", "aws_kms_secrets"), None),
        ],
    )
    def test_mapping(self, parts, expected) -> None:
        assert dependency_address(parts) == expected


class TestDependencyGraph:
    def test_order_follows_references(self) -> None:
        config = Configuration()
        config.add_output("arns", Splat(Reference("aws_iam_user.example"), ("arn",)))
        config.add_resource(
            "aws_iam_user",
            "example",
            for_each=Reference("local.names"),
            attributes={"name": Reference("each.value")},
        )
        config.add_local("names", Reference("var.user_names"))
        config.add_variable("user_names", type="set(string)")

        order = DependencyGraph.build(config.blocks()).topological_order()
        assert order == [
            "var.user_names",
            "local.names",
            "aws_iam_user.example",
            "output.arns",
        ]

    def test_ties_are_broken_by_address(self) -> None:
        config = Configuration()
        for name in ("c", "a", "b"):
            config.add_local(name, 1)
        order = DependencyGraph.build(config.blocks()).topological_order()
        assert order == ["local.a", "local.b", "local.c"]

    def test_loop_variables_add_no_edges(self) -> None:
        config = Configuration()
        config.add_local(
            "upper",
            ForExpr(Reference("var.names"), "local", Reference("local")),
        )
        config.add_variable("names")
        graph = DependencyGraph.build(config.blocks())
        assert graph.dependencies_of("local.upper") == {"var.names"}

    def test_undeclared_references_add_no_edges(self) -> None:
        config = Configuration()
        config.add_output(
            "maybe",
            Conditional(
                Literal(False), Reference("aws_iam_user.undeclared"), Literal(None)
            ),
        )
        graph = DependencyGraph.build(config.blocks())
        assert graph.dependencies_of("output.maybe") == set()

    def test_explicit_depends_on(self) -> None:
        config = Configuration()
        config.add_resource("aws_iam_user", "a")
        config.add_resource("aws_iam_user", "b", depends_on=["aws_iam_user.a"])
        graph = DependencyGraph.build(config.blocks())
        assert graph.dependencies_of("aws_iam_user.b") == {"aws_iam_user.a"}
        assert graph.edge_count() == 1

    def test_depends_on_undeclared(self) -> None:
        config = Configuration()
        config.add_output("x", 1, depends_on=["aws_iam_user.ghost"])
        with pytest.raises(ConfigurationError, match="aws_iam_user.ghost"):
            DependencyGraph.build(config.blocks())

    def test_cycle(self) -> None:
        config = Configuration()
        config.add_local("a", Reference("local.b"))
        config.add_local("b", Reference("local.c"))
        config.add_local("c", Reference("local.a"))
        config.add_local("d", Reference("local.a"))
        config.add_variable("free")

        graph = DependencyGraph.build(config.blocks())
        with pytest.raises(CyclicDependencyError) as excinfo:
            graph.topological_order()

        cycle = excinfo.value.cycle
        assert cycle[0] == cycle[-1]
        assert set(cycle) == {"local.a", "local.b", "local.c"}
        assert "var.free" not in str(excinfo.value)

    def test_self_reference_is_a_cycle(self) -> None:
        config = Configuration()
        config.add_local("loop", Reference("local.loop"))
        with pytest.raises(CyclicDependencyError):
            DependencyGraph.build(config.blocks()).topological_order()
