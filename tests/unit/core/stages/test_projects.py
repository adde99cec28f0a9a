from __future__ import annotations

"""
Unit tests for project assembly.

Verifies:
1. Defaults versus locals overrides on a single project.
2. Trigger lists relative to the project directory.
3. Skip, parent and path filter rules.
4. Project-hcl grouping (children, external children, markers).
"""

import os
from pathlib import Path
from typing import Callable, Dict, Iterable

from tgatlantis.core.pipeline.stages.projects import (
    assemble_projects,
    build_project_node,
    build_triggers,
)
from tgatlantis.core.services.parse_cache import ParseCache
from tgatlantis.domain.config import GenerateConfig
from tgatlantis.domain.errors import DependencyResolutionError
from tgatlantis.domain.graph_models import DependencyCacheEntry
from tgatlantis.domain.locals_models import ResolvedLocals


def _entry(config_path: str, extra: Iterable[str] = (), **kwargs) -> DependencyCacheEntry:
    return DependencyCacheEntry(dependencies=tuple(sorted({config_path, *extra})), **kwargs)


def _module(root: Path, rel_dir: str) -> str:
    return str(root / rel_dir / "terragrunt.hcl")


# -----------------------------------------------------------------------------
# SINGLE PROJECT
# -----------------------------------------------------------------------------

def test_defaults_apply_without_locals(make_config: Callable[..., GenerateConfig], tmp_path: Path) -> None:
    """TC-01: Run defaults fill every setting the locals leave unset."""
    cfg = make_config(
        default_workflow="standard",
        default_terraform_version="v1.6.0",
        default_apply_requirements=["approved"],
        autoplan=True,
    )
    config_path = _module(tmp_path, "prod/app")

    node = build_project_node(cfg, config_path, [config_path], ResolvedLocals())

    assert node.dir == "prod/app"
    assert node.workflow == "standard"
    assert node.terraform_version == "v1.6.0"
    assert node.apply_requirements == ("approved",)
    assert node.autoplan is True
    assert node.name == "" and node.workspace == ""


def test_locals_override_defaults(make_config: Callable[..., GenerateConfig], tmp_path: Path) -> None:
    cfg = make_config(default_workflow="standard", default_apply_requirements=["approved"], autoplan=True)
    locals_ = ResolvedLocals(workflow="custom", autoplan=False, apply_requirements=())

    node = build_project_node(cfg, _module(tmp_path, "app"), [], locals_)

    assert node.workflow == "custom"
    assert node.autoplan is False
    assert node.apply_requirements == ()


def test_name_and_workspace_from_directory(make_config: Callable[..., GenerateConfig], tmp_path: Path) -> None:
    cfg = make_config(create_project_name=True, create_workspace=True)

    node = build_project_node(cfg, _module(tmp_path, "prod/eu/app"), [], ResolvedLocals())

    assert node.name == "prod_eu_app"
    assert node.workspace == "prod_eu_app"
    assert node.identifier == "prod_eu_app"


def test_triggers_are_relative_and_exclude_self(tmp_path: Path) -> None:
    """TC-02: when_modified holds the default globs plus relative dependencies."""
    project_dir = str(tmp_path / "live" / "app")
    config_path = os.path.join(project_dir, "terragrunt.hcl")
    deps = [
        config_path,
        str(tmp_path / "root.hcl"),
        os.path.join(str(tmp_path / "modules" / "vpc"), "*.tf*"),
    ]

    triggers = build_triggers(project_dir, config_path, deps)

    assert triggers == tuple(sorted(["*.hcl", "*.tf*", "../../root.hcl", "../../modules/vpc/*.tf*"]))


# -----------------------------------------------------------------------------
# ASSEMBLY RULES
# -----------------------------------------------------------------------------

def test_skip_parent_and_error_entries_are_dropped(
        make_config: Callable[..., GenerateConfig],
        tmp_path: Path,
) -> None:
    """TC-03: Skipped, parent and failed entries never become projects."""
    ok = _module(tmp_path, "ok")
    skipped = _module(tmp_path, "skipped")
    parent = str(tmp_path / "terragrunt.hcl")
    failed = _module(tmp_path, "failed")
    entries = {
        ok: _entry(ok),
        skipped: _entry(skipped, locals=ResolvedLocals(skip=True)),
        parent: DependencyCacheEntry(dependencies=(), is_parent=True),
        failed: DependencyCacheEntry(dependencies=None, error=DependencyResolutionError("x", failed)),
    }

    projects = assemble_projects(make_config(), entries, [], ParseCache(), {})

    assert [p.config_path for p in projects] == [ok]


def test_kept_parent_becomes_project(make_config: Callable[..., GenerateConfig], tmp_path: Path) -> None:
    parent = str(tmp_path / "terragrunt.hcl")
    entries = {parent: _entry(parent, is_parent=True)}

    projects = assemble_projects(make_config(ignore_parent_terragrunt=False), entries, [], ParseCache(), {})

    assert [p.dir for p in projects] == ["."]


def test_filters_select_projects(make_config: Callable[..., GenerateConfig], tmp_path: Path) -> None:
    paths = [_module(tmp_path, d) for d in ("prod/app", "prod/db", "staging/app")]
    entries = {p: _entry(p) for p in paths}

    projects = assemble_projects(make_config(filter_paths=["prod"]), entries, [], ParseCache(), {})

    assert sorted(p.dir for p in projects) == ["prod/app", "prod/db"]


# -----------------------------------------------------------------------------
# PROJECT-HCL MODE
# -----------------------------------------------------------------------------

def _hcl_layout(write_tree: Callable[[Dict[str, str]], Path], marker: bool = True) -> Path:
    marker_line = "  atlantis_project = true\n" if marker else ""
    return write_tree({
        "prod/env.hcl": "locals {\n" + marker_line + '  atlantis_workflow = "prod"\n}',
        "prod/app/terragrunt.hcl": "",
        "prod/db/terragrunt.hcl": "",
        "other/x/terragrunt.hcl": "",
    })


def _hcl_entries(root: Path) -> Dict[str, DependencyCacheEntry]:
    app, db, other = (_module(root, d) for d in ("prod/app", "prod/db", "other/x"))
    return {
        app: _entry(app, [str(root / "shared.yaml")]),
        db: _entry(db),
        other: _entry(other),
    }


def test_project_hcl_groups_modules(
        write_tree: Callable[[Dict[str, str]], Path],
        make_config: Callable[..., GenerateConfig],
) -> None:
    """TC-04: The directory of a project file becomes one project for its modules."""
    root = _hcl_layout(write_tree)
    cfg = make_config(project_hcl_files=["env.hcl"])

    projects = assemble_projects(cfg, _hcl_entries(root), [str(root / "prod" / "env.hcl")], ParseCache(), {})

    by_dir = {p.dir: p for p in projects}
    assert sorted(by_dir) == ["other/x", "prod"]
    group = by_dir["prod"]
    assert group.workflow == "prod"
    assert group.config_path == str(root / "prod" / "env.hcl")
    assert "app/terragrunt.hcl" in group.when_modified
    assert "db/terragrunt.hcl" in group.when_modified
    assert "../shared.yaml" in group.when_modified
    assert "env.hcl" not in group.when_modified


def test_project_hcl_children_and_external_flags(
        write_tree: Callable[[Dict[str, str]], Path],
        make_config: Callable[..., GenerateConfig],
) -> None:
    root = _hcl_layout(write_tree)
    hcl = [str(root / "prod" / "env.hcl")]

    with_children = assemble_projects(
        make_config(project_hcl_files=["env.hcl"], create_hcl_project_childs=True,
                    create_hcl_project_external_childs=False),
        _hcl_entries(root), hcl, ParseCache(), {},
    )

    assert sorted(p.dir for p in with_children) == ["prod", "prod/app", "prod/db"]


def test_project_markers_gate_project_files(
        write_tree: Callable[[Dict[str, str]], Path],
        make_config: Callable[..., GenerateConfig],
) -> None:
    """TC-05: With markers enabled an unmarked project file is not a project."""
    root = _hcl_layout(write_tree, marker=False)
    cfg = make_config(project_hcl_files=["env.hcl"], use_project_markers=True,
                      create_hcl_project_external_childs=False)

    projects = assemble_projects(cfg, _hcl_entries(root), [str(root / "prod" / "env.hcl")], ParseCache(), {})

    assert projects == []


def test_broken_project_file_is_reported(
        write_tree: Callable[[Dict[str, str]], Path],
        make_config: Callable[..., GenerateConfig],
) -> None:
    root = write_tree({"prod/env.hcl": "locals {\n  a = \n"})
    hcl_path = str(root / "prod" / "env.hcl")
    errors: Dict[str, Exception] = {}

    projects = assemble_projects(make_config(project_hcl_files=["env.hcl"]), {}, [hcl_path], ParseCache(), errors)

    assert projects == []
    assert list(errors) == [hcl_path]
