from __future__ import annotations

"""
Unit tests for include extraction and include chain resolution.
"""

from pathlib import Path
from typing import Callable, Dict

import pytest

from tgatlantis.core.analysis.includes import extract_include_references, resolve_include_chain
from tgatlantis.core.services.parse_cache import ParseCache
from tgatlantis.domain.errors import DependencyResolutionError, StructuralError


def test_unlabeled_include(write_tree: Callable[[Dict[str, str]], Path]) -> None:
    """TC-01: An unlabeled include resolves find_in_parent_folders()."""
    root = write_tree({
        "terragrunt.hcl": "locals {}",
        "app/terragrunt.hcl": """
            include {
              path = find_in_parent_folders()
            }
        """,
    })
    config = str(root / "app" / "terragrunt.hcl")
    doc = ParseCache().parse(config)

    refs = extract_include_references(doc, config)

    assert len(refs) == 1
    assert refs[0].label == ""
    assert refs[0].path == str(root / "terragrunt.hcl")


def test_labeled_includes_keep_declaration_order(write_tree: Callable[[Dict[str, str]], Path]) -> None:
    """TC-02: Multiple labeled includes are all returned with their labels."""
    root = write_tree({
        "root.hcl": "locals {}",
        "common/env.hcl": "locals {}",
        "app/terragrunt.hcl": """
            include "root" {
              path = find_in_parent_folders("root.hcl")
            }

            include "env" {
              path = "../common/env.hcl"
            }
        """,
    })
    config = str(root / "app" / "terragrunt.hcl")

    refs = extract_include_references(ParseCache().parse(config), config)

    assert [(r.label, r.path) for r in refs] == [
        ("root", str(root / "root.hcl")),
        ("env", str(root / "common" / "env.hcl")),
    ]


def test_two_unlabeled_includes_are_a_structural_error(write_tree: Callable[[Dict[str, str]], Path]) -> None:
    """TC-03: At most one unlabeled include per file."""
    root = write_tree({
        "a.hcl": "locals {}",
        "b.hcl": "locals {}",
        "app/terragrunt.hcl": """
            include {
              path = "../a.hcl"
            }

            include {
              path = "../b.hcl"
            }
        """,
    })
    config = str(root / "app" / "terragrunt.hcl")

    with pytest.raises(StructuralError) as exc:
        extract_include_references(ParseCache().parse(config), config)
    assert exc.value.path == config


def test_missing_include_target(write_tree: Callable[[Dict[str, str]], Path]) -> None:
    """TC-04: A missing target is reported against that target path."""
    root = write_tree({
        "app/terragrunt.hcl": """
            include {
              path = "../missing.hcl"
            }
        """,
    })
    config = str(root / "app" / "terragrunt.hcl")

    with pytest.raises(DependencyResolutionError) as exc:
        resolve_include_chain(config, ParseCache())
    assert exc.value.path == str(root / "missing.hcl")


def test_unparseable_include_target(write_tree: Callable[[Dict[str, str]], Path]) -> None:
    root = write_tree({
        "parent.hcl": "locals {\n  a = \n",
        "app/terragrunt.hcl": """
            include {
              path = "../parent.hcl"
            }
        """,
    })

    with pytest.raises(DependencyResolutionError) as exc:
        resolve_include_chain(str(root / "app" / "terragrunt.hcl"), ParseCache())
    assert exc.value.path == str(root / "parent.hcl")


def test_chain_is_root_first_and_cycle_safe(write_tree: Callable[[Dict[str, str]], Path]) -> None:
    """TC-05: Ancestors precede their children; a cyclic include terminates."""
    root = write_tree({
        "root.hcl": """
            include {
              path = "./app/mid.hcl"
            }
        """,
        "app/mid.hcl": """
            include {
              path = "../root.hcl"
            }
        """,
        "app/leaf/terragrunt.hcl": """
            include {
              path = "../mid.hcl"
            }
        """,
    })

    chain = resolve_include_chain(str(root / "app" / "leaf" / "terragrunt.hcl"), ParseCache())

    assert [r.path for r in chain] == [str(root / "root.hcl"), str(root / "app" / "mid.hcl")]
