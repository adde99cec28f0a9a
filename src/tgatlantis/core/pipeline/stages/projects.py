from __future__ import annotations

"""
Project Assembly Stage.

Turns resolved dependency entries into Atlantis project records. Handles
per-project defaults (workflow, tool version, apply requirements, autoplan),
trigger lists, naming, and the project-hcl grouping mode where a directory
holding e.g. env.hcl becomes one project covering every module beneath it.
"""

import logging
import os
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from tgatlantis.core.analysis.locals_resolver import parse_locals
from tgatlantis.core.services.parse_cache import ParseCache
from tgatlantis.core.services.scanner import matches_filters
from tgatlantis.domain.config import GenerateConfig
from tgatlantis.domain.constants import DEFAULT_PROJECT_TRIGGERS
from tgatlantis.domain.errors import ProjectScopedError, TgAtlantisError
from tgatlantis.domain.graph_models import DependencyCacheEntry, ProjectNode
from tgatlantis.domain.locals_models import ResolvedLocals
from tgatlantis.infra.fs import is_external_path, relative_slash_path

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# PUBLIC API
# -----------------------------------------------------------------------------

def build_project_node(
        config: GenerateConfig,
        config_path: str,
        dependencies: Iterable[str],
        resolved: ResolvedLocals,
        project_dir: Optional[str] = None,
) -> ProjectNode:
    """
    Build one project record.

    Args:
        config: Run configuration (supplies defaults).
        config_path: Absolute path of the file the project comes from.
        dependencies: Absolute dependency paths.
        resolved: Merged locals of the project.
        project_dir: Absolute project directory (defaults to the file's).

    Returns:
        ProjectNode: The frozen project record.
    """
    project_dir = project_dir or os.path.dirname(config_path)
    rel_dir = relative_slash_path(project_dir, config.root)
    deps = tuple(sorted(set(dependencies)))

    apply_requirements = (
        resolved.apply_requirements if resolved.apply_requirements is not None
        else config.default_apply_requirements
    )
    name = rel_dir.replace("/", "_") if config.create_project_name else ""

    return ProjectNode(
        dir=rel_dir,
        config_path=config_path,
        locals=resolved,
        dependencies=deps,
        when_modified=build_triggers(project_dir, config_path, deps),
        workflow=resolved.workflow if resolved.workflow is not None else config.default_workflow,
        terraform_version=(
            resolved.terraform_version if resolved.terraform_version is not None
            else config.default_terraform_version
        ),
        autoplan=resolved.autoplan if resolved.autoplan is not None else config.autoplan,
        apply_requirements=tuple(apply_requirements),
        name=name,
        workspace=rel_dir.replace("/", "_") if config.create_workspace else "",
    )


def build_triggers(project_dir: str, config_path: str, dependencies: Iterable[str]) -> Tuple[str, ...]:
    """Default triggers plus every dependency relative to the project directory."""
    triggers = set(DEFAULT_PROJECT_TRIGGERS)
    for dep in dependencies:
        if dep == config_path:
            continue
        triggers.add(relative_slash_path(dep, project_dir))
    return tuple(sorted(triggers))


def assemble_projects(
        config: GenerateConfig,
        entries: Mapping[str, DependencyCacheEntry],
        project_hcl_paths: Iterable[str],
        parse_cache: ParseCache,
        errors: Dict[str, TgAtlantisError],
) -> List[ProjectNode]:
    """
    Create the project list from resolved entries.

    Args:
        config: Run configuration.
        entries: Successful resolutions keyed by config path.
        project_hcl_paths: Discovered project-hcl files.
        parse_cache: Parse cache (project-hcl locals).
        errors: Project-scoped error sink, keyed by config path.

    Returns:
        List[ProjectNode]: Projects after skip rules and path filters.
    """
    modules = _eligible_modules(config, entries)

    if config.project_hcl_files:
        projects = _assemble_project_hcl_mode(config, modules, project_hcl_paths, parse_cache, errors)
    else:
        projects = [
            build_project_node(config, path, entry.dependencies or (), entry.locals or ResolvedLocals())
            for path, entry in modules
        ]

    kept = [p for p in projects if matches_filters(p.config_path, config.filter_paths, config.root)]
    if len(kept) != len(projects):
        logger.debug(f"Path filters removed {len(projects) - len(kept)} project(s)")
    return kept


# -----------------------------------------------------------------------------
# PRIVATE HELPERS
# -----------------------------------------------------------------------------

def _eligible_modules(
        config: GenerateConfig,
        entries: Mapping[str, DependencyCacheEntry],
) -> List[Tuple[str, DependencyCacheEntry]]:
    out: List[Tuple[str, DependencyCacheEntry]] = []
    for path in sorted(entries):
        entry = entries[path]
        if entry.error is not None:
            continue
        if entry.is_parent and config.ignore_parent_terragrunt:
            continue
        if entry.locals is not None and entry.locals.skip:
            logger.debug(f"Skipping {path}: atlantis_skip is set")
            continue
        out.append((path, entry))
    return out


def _assemble_project_hcl_mode(
        config: GenerateConfig,
        modules: List[Tuple[str, DependencyCacheEntry]],
        project_hcl_paths: Iterable[str],
        parse_cache: ParseCache,
        errors: Dict[str, TgAtlantisError],
) -> List[ProjectNode]:
    groups: Dict[str, Tuple[str, ResolvedLocals]] = {}
    for hcl_path in sorted(project_hcl_paths):
        try:
            resolved = parse_locals(hcl_path, parse_cache, config.root)
        except ProjectScopedError as e:
            logger.warning(f"Project file {hcl_path} skipped: {e}")
            errors[hcl_path] = e
            continue
        if resolved.skip:
            continue
        if config.use_project_markers and not resolved.marked_project:
            logger.debug(f"{hcl_path} is not marked with atlantis_project; not a project")
            continue
        groups[os.path.dirname(hcl_path)] = (hcl_path, resolved)

    # Deepest directories first so nested project files claim their modules
    group_dirs = sorted(groups, key=lambda d: (-d.count(os.sep), d))
    members: Dict[str, List[str]] = {d: [] for d in group_dirs}

    projects: List[ProjectNode] = []
    for path, entry in modules:
        module_dir = os.path.dirname(path)
        owner = next((d for d in group_dirs if not is_external_path(module_dir, d)), None)
        deps = entry.dependencies or ()
        resolved = entry.locals or ResolvedLocals()

        if owner is not None:
            members[owner].extend(deps)
            if config.create_hcl_project_childs:
                projects.append(build_project_node(config, path, deps, resolved))
        elif config.create_hcl_project_external_childs:
            projects.append(build_project_node(config, path, deps, resolved))

    for group_dir in group_dirs:
        hcl_path, resolved = groups[group_dir]
        dependencies = set(members[group_dir])
        dependencies.add(hcl_path)
        projects.append(
            build_project_node(config, hcl_path, dependencies, resolved, project_dir=group_dir)
        )

    return projects
