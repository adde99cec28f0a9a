from __future__ import annotations

"""
Unit tests for execution order grouping.
"""

from dataclasses import replace
from typing import List, Sequence

import pytest

from tgatlantis.core.pipeline.stages.ordering import (
    assign_execution_groups,
    build_project_edges,
    find_cycle,
)
from tgatlantis.domain.errors import CycleError
from tgatlantis.domain.graph_models import ProjectNode
from tgatlantis.domain.locals_models import ResolvedLocals


def _project(name: str, deps: Sequence[str] = ()) -> ProjectNode:
    config_path = f"/repo/{name}/terragrunt.hcl"
    return ProjectNode(
        dir=name,
        config_path=config_path,
        locals=ResolvedLocals(),
        dependencies=tuple(sorted({config_path, *(f"/repo/{d}/terragrunt.hcl" for d in deps)})),
        when_modified=("*.hcl", "*.tf*"),
    )


def _groups(projects: List[ProjectNode]) -> dict:
    return {p.dir: p.execution_order_group for p in projects}


def test_edges_ignore_self_and_unknown_targets() -> None:
    projects = [_project("app", ["db", "external"]), _project("db")]

    edges = build_project_edges(projects)

    assert edges == {
        "/repo/app/terragrunt.hcl": ["/repo/db/terragrunt.hcl"],
        "/repo/db/terragrunt.hcl": [],
    }


def test_layers_follow_longest_path() -> None:
    """TC-01: A project runs one group after its latest dependency."""
    projects = [
        _project("vpc"),
        _project("db", ["vpc"]),
        _project("app", ["vpc", "db"]),
        _project("dns"),
    ]

    out = assign_execution_groups(projects)

    assert _groups(out) == {"vpc": 0, "db": 1, "app": 2, "dns": 0}
    assert all(p.depends_on is None for p in out)
    assert [p.dir for p in out] == ["vpc", "db", "app", "dns"]


def test_depends_on_lists_direct_predecessors() -> None:
    """TC-02: depends_on carries identifiers of direct dependencies only."""
    projects = [_project("vpc"), _project("db", ["vpc"]), _project("app", ["db"])]

    out = assign_execution_groups(projects, depends_on=True, groups=False)

    assert {p.dir: p.depends_on for p in out} == {"vpc": (), "db": ("vpc",), "app": ("db",)}
    assert all(p.execution_order_group is None for p in out)


def test_depends_on_uses_project_names() -> None:
    vpc = _project("vpc")
    app = _project("app", ["vpc"])
    named = [
        replace(vpc, name="net"),
        app,
    ]

    out = assign_execution_groups(named, depends_on=True)

    assert out[1].depends_on == ("net",)


def test_three_node_cycle_raises() -> None:
    """TC-03: A cycle aborts ordering and names its members."""
    projects = [_project("a", ["b"]), _project("b", ["c"]), _project("c", ["a"])]

    with pytest.raises(CycleError) as exc:
        assign_execution_groups(projects)

    cycle = exc.value.cycle
    assert cycle[0] == cycle[-1]
    assert set(cycle) == {"a", "b", "c"}
    assert len(cycle) == 4


def test_find_cycle_on_acyclic_graph() -> None:
    edges = {"a": ["b"], "b": ["c"], "c": []}
    assert find_cycle(edges) == []


def test_long_chain_does_not_recurse() -> None:
    count = 5000
    projects = [_project("p0")] + [_project(f"p{i}", [f"p{i - 1}"]) for i in range(1, count)]

    out = assign_execution_groups(projects)

    assert out[-1].execution_order_group == count - 1
