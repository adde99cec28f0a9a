from __future__ import annotations

"""
Execution Order Grouping Stage.

Derives a dependency-respecting execution order from the project list.
A project depends on another when its dependency set contains the other
project's config file. Projects with no such dependency form group 0; every
other project sits one group after its latest dependency.
"""

import logging
from typing import Dict, List, Sequence, Set

from tgatlantis.domain.errors import CycleError
from tgatlantis.domain.graph_models import ProjectNode

logger = logging.getLogger(__name__)

_WHITE, _GREY, _BLACK = 0, 1, 2


# -----------------------------------------------------------------------------
# PUBLIC API
# -----------------------------------------------------------------------------

def build_project_edges(projects: Sequence[ProjectNode]) -> Dict[str, List[str]]:
    """
    Map each project's config path to the config paths it depends on.

    Self-references are ignored. Adjacency lists are sorted.
    """
    known = {p.config_path for p in projects}
    edges: Dict[str, List[str]] = {}
    for project in projects:
        targets: Set[str] = {
            dep for dep in project.dependencies
            if dep in known and dep != project.config_path
        }
        edges[project.config_path] = sorted(targets)
    return edges


def find_cycle(edges: Dict[str, List[str]]) -> List[str]:
    """
    Return one dependency cycle (first node repeated at the end), or [].

    Iterative three-colour depth-first search; never recurses.
    """
    colour = {node: _WHITE for node in edges}
    for start in sorted(edges):
        if colour[start] != _WHITE:
            continue
        path: List[str] = [start]
        iterators = [iter(edges[start])]
        colour[start] = _GREY
        while iterators:
            child = next(iterators[-1], None)
            if child is None:
                colour[path.pop()] = _BLACK
                iterators.pop()
                continue
            if colour.get(child, _BLACK) == _GREY:
                return path[path.index(child):] + [child]
            if colour.get(child) == _WHITE:
                colour[child] = _GREY
                path.append(child)
                iterators.append(iter(edges[child]))
    return []


def assign_execution_groups(
        projects: Sequence[ProjectNode],
        depends_on: bool = False,
        groups: bool = True,
) -> List[ProjectNode]:
    """
    Annotate projects with execution order metadata.

    Args:
        projects: Resolved projects.
        depends_on: Emit the identifiers of each project's direct predecessors.
        groups: Emit the execution group index.

    Returns:
        List[ProjectNode]: New nodes, in the input order.

    Raises:
        CycleError: The dependency graph between projects is cyclic.
    """
    edges = build_project_edges(projects)
    cycle = find_cycle(edges)
    if cycle:
        by_path = {p.config_path: p for p in projects}
        raise CycleError([by_path[c].identifier for c in cycle])

    levels = _longest_path_levels(edges)
    identifiers = {p.config_path: p.identifier for p in projects}

    out: List[ProjectNode] = []
    for project in projects:
        predecessors = tuple(sorted(identifiers[d] for d in edges[project.config_path]))
        out.append(project.with_ordering(
            execution_order_group=levels[project.config_path] if groups else None,
            depends_on=predecessors if depends_on else None,
        ))

    if groups:
        logger.debug(f"Execution order computed: {max(levels.values(), default=-1) + 1} group(s)")
    return out


# -----------------------------------------------------------------------------
# PRIVATE HELPERS
# -----------------------------------------------------------------------------

def _longest_path_levels(edges: Dict[str, List[str]]) -> Dict[str, int]:
    """Level of every node in an acyclic graph (post-order, iterative)."""
    levels: Dict[str, int] = {}
    for start in sorted(edges):
        if start in levels:
            continue
        stack = [(start, False)]
        while stack:
            node, expanded = stack.pop()
            if node in levels:
                continue
            if expanded:
                deps = edges[node]
                levels[node] = 1 + max(levels[d] for d in deps) if deps else 0
                continue
            stack.append((node, True))
            stack.extend((d, False) for d in edges[node] if d not in levels)
    return levels
