from __future__ import annotations

"""
Locals Domain Model.

Typed view over the Atlantis-related locals a configuration file declares,
and the pure merge used to fold them along an include chain.
"""

from dataclasses import dataclass, field
from functools import reduce
from typing import Iterable, List, Optional, Tuple


@dataclass(frozen=True)
class ResolvedLocals:
    """
    Atlantis settings declared in a file's locals block.

    Attributes:
        workflow: Atlantis workflow name.
        terraform_version: Terraform/OpenTofu version pin.
        autoplan: Whether autoplan is enabled for the project.
        skip: Whether the project is excluded from the output.
        apply_requirements: Apply requirements; None when not declared.
        extra_dependencies: Additional trigger paths, in declaration order.
        marked_project: Explicit project marker (atlantis_project).
    """
    workflow: Optional[str] = None
    terraform_version: Optional[str] = None
    autoplan: Optional[bool] = None
    skip: Optional[bool] = None
    apply_requirements: Optional[Tuple[str, ...]] = None
    extra_dependencies: Tuple[str, ...] = field(default_factory=tuple)
    marked_project: Optional[bool] = None


def dedupe(items: Iterable[str]) -> List[str]:
    """Remove duplicates while preserving first-seen order."""
    seen = set()
    out: List[str] = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


def merge_resolved_locals(parent: ResolvedLocals, child: ResolvedLocals) -> ResolvedLocals:
    """
    Merge a child's locals over its parent's.

    Scalars come from the child when set, apply requirements are replaced
    wholesale when the child declares them, and extra dependencies are
    concatenated parent-first without duplicates. Neither input is mutated.

    Args:
        parent: Locals of the including (ancestor) file.
        child: Locals of the included-into (descendant) file.

    Returns:
        ResolvedLocals: A new merged instance.
    """
    return ResolvedLocals(
        workflow=child.workflow if child.workflow is not None else parent.workflow,
        terraform_version=(
            child.terraform_version if child.terraform_version is not None
            else parent.terraform_version
        ),
        autoplan=child.autoplan if child.autoplan is not None else parent.autoplan,
        skip=child.skip if child.skip is not None else parent.skip,
        apply_requirements=(
            child.apply_requirements if child.apply_requirements is not None
            else parent.apply_requirements
        ),
        extra_dependencies=tuple(dedupe(parent.extra_dependencies + child.extra_dependencies)),
        marked_project=(
            child.marked_project if child.marked_project is not None
            else parent.marked_project
        ),
    )


def fold_locals(chain: Iterable[ResolvedLocals]) -> ResolvedLocals:
    """Fold a root-to-leaf chain of locals into a single merged view."""
    return reduce(merge_resolved_locals, chain, ResolvedLocals())
