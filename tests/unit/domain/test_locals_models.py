from __future__ import annotations

"""
Unit tests for the ResolvedLocals merge.

Verifies:
1. Child-over-parent precedence for scalars.
2. Wholesale replacement of apply requirements.
3. Ordered, duplicate-free concatenation of extra dependencies.
4. Purity and associativity of the merge.
"""

from tgatlantis.domain.locals_models import (
    ResolvedLocals,
    dedupe,
    fold_locals,
    merge_resolved_locals,
)


def test_child_scalars_override_parent() -> None:
    """TC-01: Scalars set by the child win; unset ones fall back to the parent."""
    parent = ResolvedLocals(workflow="parent-wf", terraform_version="1.5.0", autoplan=True)
    child = ResolvedLocals(workflow="child-wf", skip=False)

    merged = merge_resolved_locals(parent, child)

    assert merged.workflow == "child-wf"
    assert merged.terraform_version == "1.5.0"
    assert merged.autoplan is True
    assert merged.skip is False


def test_child_false_is_not_treated_as_unset() -> None:
    """TC-02: An explicit False in the child overrides a parent True."""
    merged = merge_resolved_locals(ResolvedLocals(autoplan=True), ResolvedLocals(autoplan=False))
    assert merged.autoplan is False


def test_apply_requirements_are_replaced_wholesale() -> None:
    """TC-03: A declared child list replaces the parent list instead of merging."""
    parent = ResolvedLocals(apply_requirements=("approved", "mergeable"))

    assert merge_resolved_locals(parent, ResolvedLocals(apply_requirements=("undiverged",))) \
        .apply_requirements == ("undiverged",)
    assert merge_resolved_locals(parent, ResolvedLocals()).apply_requirements == ("approved", "mergeable")
    assert merge_resolved_locals(parent, ResolvedLocals(apply_requirements=())).apply_requirements == ()


def test_extra_dependencies_concatenate_without_duplicates() -> None:
    """TC-04: Parent entries come first; repeats keep their first position."""
    parent = ResolvedLocals(extra_dependencies=("a", "b"))
    child = ResolvedLocals(extra_dependencies=("b", "c", "a", "d"))

    assert merge_resolved_locals(parent, child).extra_dependencies == ("a", "b", "c", "d")


def test_merge_does_not_mutate_inputs() -> None:
    """TC-05: Inputs are left untouched."""
    parent = ResolvedLocals(workflow="p", extra_dependencies=("x",))
    child = ResolvedLocals(workflow="c", extra_dependencies=("y",))

    merge_resolved_locals(parent, child)

    assert parent == ResolvedLocals(workflow="p", extra_dependencies=("x",))
    assert child == ResolvedLocals(workflow="c", extra_dependencies=("y",))


def test_merge_is_associative() -> None:
    """TC-06: (a+b)+c == a+(b+c) for a three-level chain."""
    a = ResolvedLocals(workflow="a", apply_requirements=("approved",), extra_dependencies=("1", "2"))
    b = ResolvedLocals(terraform_version="1.6", extra_dependencies=("2", "3"), autoplan=True)
    c = ResolvedLocals(workflow="c", skip=False, extra_dependencies=("1", "4"), marked_project=True)

    left = merge_resolved_locals(merge_resolved_locals(a, b), c)
    right = merge_resolved_locals(a, merge_resolved_locals(b, c))

    assert left == right


def test_fold_matches_pairwise_merge() -> None:
    """TC-07: fold_locals folds root-to-leaf starting from empty locals."""
    chain = [
        ResolvedLocals(workflow="root"),
        ResolvedLocals(terraform_version="1.7"),
        ResolvedLocals(workflow="leaf"),
    ]
    folded = fold_locals(chain)

    assert folded.workflow == "leaf"
    assert folded.terraform_version == "1.7"
    assert fold_locals([]) == ResolvedLocals()


def test_dedupe_preserves_first_seen_order() -> None:
    assert dedupe(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]
