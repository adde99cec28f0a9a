from __future__ import annotations

"""
Dependency Graph Domain Data Models.

Defines the records exchanged between the parse cache, the dependency graph
builder, the execution order grouper and the interface layer, together with
the factory functions used to build run results.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Tuple

from tgatlantis.domain.errors import ParseError, TgAtlantisError
from tgatlantis.domain.locals_models import ResolvedLocals

# -----------------------------------------------------------------------------
# PARSING & RESOLUTION RECORDS
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class ParsedFile:
    """
    Cached outcome of parsing one configuration file.

    Attributes:
        path: Absolute file path.
        mtime_ns: Modification time observed when parsing (None if missing).
        document: Parsed document, owned by the cache entry.
        error: Parse error, cached exactly like a successful parse.
    """
    path: str
    mtime_ns: Optional[int]
    document: Any = None
    error: Optional[ParseError] = None


@dataclass(frozen=True)
class IncludeReference:
    """An include block: label ('' when unlabeled) and its absolute target."""
    label: str
    path: str


@dataclass(frozen=True)
class ModuleCallSource:
    """Literal source of a module block and whether it points on disk."""
    source: str
    is_local: bool


@dataclass(frozen=True)
class DependencyCacheEntry:
    """
    Memoized dependency resolution for (config path, flag signature).

    Attributes:
        dependencies: Resolved dependency paths (None when the entry is an error).
        error: Project-scoped error raised during resolution.
        input_mtimes: Modification times of every file read to compute the entry.
        dependency_targets: Config files named by dependency blocks (cascade edges).
        is_parent: The file has no include and no terraform source.
        locals: Locals merged along the include chain.
    """
    dependencies: Optional[Tuple[str, ...]]
    error: Optional[TgAtlantisError] = None
    input_mtimes: Mapping[str, Optional[int]] = field(default_factory=dict)
    dependency_targets: Tuple[str, ...] = field(default_factory=tuple)
    is_parent: bool = False
    locals: Optional[ResolvedLocals] = None


# -----------------------------------------------------------------------------
# PROJECT MODEL
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class ProjectNode:
    """
    One Atlantis project produced by the engine.

    Attributes:
        dir: Project directory relative to the root (forward slashes).
        config_path: Absolute path of the file the project was built from.
        locals: Merged locals along the include chain.
        dependencies: Sorted, de-duplicated absolute dependency paths.
        when_modified: Sorted trigger globs relative to the project directory.
        workflow: Effective workflow name ('' for none).
        terraform_version: Effective tool version ('' for none).
        autoplan: Whether autoplan is enabled.
        apply_requirements: Effective apply requirements.
        name: Project name ('' when names are not generated).
        workspace: Workspace name ('' when workspaces are not generated).
        execution_order_group: Layer index (None when not computed).
        depends_on: Predecessor project identifiers (None when not computed).
    """
    dir: str
    config_path: str
    locals: ResolvedLocals
    dependencies: Tuple[str, ...]
    when_modified: Tuple[str, ...]
    workflow: str = ""
    terraform_version: str = ""
    autoplan: bool = False
    apply_requirements: Tuple[str, ...] = field(default_factory=tuple)
    name: str = ""
    workspace: str = ""
    execution_order_group: Optional[int] = None
    depends_on: Optional[Tuple[str, ...]] = None

    @property
    def identifier(self) -> str:
        """Name used to reference this project from others."""
        return self.name or self.dir

    def with_ordering(
            self,
            execution_order_group: Optional[int] = None,
            depends_on: Optional[Tuple[str, ...]] = None,
    ) -> "ProjectNode":
        """Return a copy carrying execution order metadata."""
        return replace(self, execution_order_group=execution_order_group, depends_on=depends_on)

    def to_dict(self) -> Dict[str, Any]:
        """Render the project in the Atlantis project layout."""
        out: Dict[str, Any] = {}
        if self.name:
            out["name"] = self.name
        out["dir"] = self.dir
        if self.workspace:
            out["workspace"] = self.workspace
        if self.workflow:
            out["workflow"] = self.workflow
        if self.terraform_version:
            out["terraform_version"] = self.terraform_version
        out["autoplan"] = {
            "enabled": self.autoplan,
            "when_modified": list(self.when_modified),
        }
        if self.apply_requirements:
            out["apply_requirements"] = list(self.apply_requirements)
        if self.execution_order_group is not None:
            out["execution_order_group"] = self.execution_order_group
        if self.depends_on is not None:
            out["depends_on"] = list(self.depends_on)
        return out


# -----------------------------------------------------------------------------
# RUN RESULT
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class GenerationResult:
    """
    Unified result of a generation run.

    Attributes:
        ok: False when a run-level failure aborted the batch.
        error: Run-level error message.
        root: Absolute root directory processed.
        projects: Resolved projects, sorted by directory.
        errors: Project-scoped errors keyed by config path.
        summary: Execution statistics.
    """
    ok: bool
    error: str
    root: str
    projects: List[ProjectNode] = field(default_factory=list)
    errors: Dict[str, TgAtlantisError] = field(default_factory=dict)
    summary: Dict[str, Any] = field(default_factory=dict)


def create_error_result(
        error: str,
        root: str,
        errors: Optional[Dict[str, TgAtlantisError]] = None,
        summary_extra: Optional[Dict[str, Any]] = None,
) -> GenerationResult:
    """
    Create a failed generation result.

    Args:
        error: Run-level error description.
        root: Root directory of the run.
        errors: Project-scoped errors collected before the failure.
        summary_extra: Additional metadata for the summary payload.

    Returns:
        GenerationResult: An immutable error result object.
    """
    return GenerationResult(
        ok=False,
        error=error,
        root=root,
        errors=dict(errors or {}),
        summary=summary_extra or {},
    )


def create_success_result(
        root: str,
        projects: List[ProjectNode],
        errors: Optional[Dict[str, TgAtlantisError]] = None,
        summary_extra: Optional[Dict[str, Any]] = None,
) -> GenerationResult:
    """
    Create a successful generation result.

    Args:
        root: Root directory of the run.
        projects: Final project list.
        errors: Project-scoped errors isolated during the run.
        summary_extra: Execution metrics.

    Returns:
        GenerationResult: An immutable success result object.
    """
    return GenerationResult(
        ok=True,
        error="",
        root=root,
        projects=sorted(projects, key=lambda p: (p.dir, p.config_path)),
        errors=dict(errors or {}),
        summary=summary_extra or {},
    )
