from __future__ import annotations

"""
Core generation pipeline.

Coordinates a full run:
1. Validates the configuration and the root directory.
2. Discovers candidate configuration files.
3. Resolves every project's dependencies on a bounded worker pool, sharing
   the parse and dependency caches across workers.
4. Assembles project records and applies path filters.
5. Derives execution order metadata when requested.
"""

import logging
import os
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from tgatlantis.core.pipeline.stages.dependencies import DependencyGraphBuilder
from tgatlantis.core.pipeline.stages.ordering import assign_execution_groups
from tgatlantis.core.pipeline.stages.projects import assemble_projects
from tgatlantis.core.pipeline.stages.validator import validate_config
from tgatlantis.core.pipeline.worker_pool import WorkerPool
from tgatlantis.core.services.dependency_cache import DependencyCache
from tgatlantis.core.services.parse_cache import ParseCache
from tgatlantis.core.services.scanner import is_project_hcl_file, yield_candidate_files
from tgatlantis.domain.config import GenerateConfig
from tgatlantis.domain.errors import CancellationError, ProjectScopedError, TgAtlantisError
from tgatlantis.domain.graph_models import (
    DependencyCacheEntry,
    GenerationResult,
    create_error_result,
    create_success_result,
)

logger = logging.getLogger(__name__)


@dataclass
class ResolutionCaches:
    """Caches shared by every worker of a run (and reusable across runs)."""
    parse_cache: ParseCache = field(default_factory=ParseCache)
    dependency_cache: DependencyCache = field(default_factory=DependencyCache)

    def attach_cancellation(self, event: threading.Event) -> None:
        self.parse_cache.attach_cancellation(event)
        self.dependency_cache.attach_cancellation(event)

    def reset(self) -> None:
        self.parse_cache.reset()
        self.dependency_cache.reset()


def run_generation(
        config: Union[GenerateConfig, Dict[str, Any], None],
        candidates: Optional[Sequence[str]] = None,
        cancellation_event: Optional[threading.Event] = None,
        caches: Optional[ResolutionCaches] = None,
) -> GenerationResult:
    """
    Execute the full dependency resolution pipeline.

    Args:
        config: A GenerateConfig, or a raw configuration dictionary that is
                validated first.
        candidates: Candidate config files; discovered under root when None.
        cancellation_event: Shutdown signal shared with the caller.
        caches: Caches to use; fresh ones are created when None.

    Returns:
        GenerationResult: Projects plus isolated project errors, or a failed
                          result for an invalid root.

    Raises:
        CancellationError: The run was cancelled; caches have been reset.
        CycleError: Ordering was requested and projects depend on each other
                    circularly.
        ProjectScopedError: A project failed and fail_on_project_error is set.
    """
    started = time.perf_counter()
    cfg = _coerce_config(config)
    caches = caches or ResolutionCaches()
    event = cancellation_event or threading.Event()
    caches.attach_cancellation(event)

    logger.info(f"Generation started for root: {cfg.root}")

    if not os.path.isdir(cfg.root):
        msg = f"Invalid root directory: {cfg.root}"
        logger.error(msg)
        return create_error_result(msg, cfg.root)

    # -------------------------------------------------------------------------
    # 1) Discovery
    # -------------------------------------------------------------------------
    if candidates is None:
        candidates = list(yield_candidate_files(cfg.root, cfg.project_hcl_files))
    candidates = sorted({os.path.normpath(os.path.abspath(c)) for c in candidates})

    project_hcl_paths = [c for c in candidates if is_project_hcl_file(c, cfg.project_hcl_files)]
    hcl_set = set(project_hcl_paths)
    config_paths = [c for c in candidates if c not in hcl_set]
    logger.debug(
        f"Discovered {len(config_paths)} config file(s) and "
        f"{len(project_hcl_paths)} project file(s)"
    )

    # -------------------------------------------------------------------------
    # 2) Parallel resolution
    # -------------------------------------------------------------------------
    builder = DependencyGraphBuilder(cfg, caches.parse_cache, caches.dependency_cache, event)
    pool: WorkerPool[str, Dict[str, Any]] = WorkerPool(cfg.worker_count, event)

    def _task(config_path: str) -> Dict[str, Any]:
        return _resolve_project_task(builder, config_path, cfg.fail_on_project_error)

    try:
        outcomes = pool.run(_task, config_paths)
    except CancellationError:
        logger.warning("Generation aborted by cancellation signal. Resetting caches.")
        caches.reset()
        raise
    except ProjectScopedError as e:
        logger.error(f"Generation aborted by project error: {e}")
        raise

    entries: Dict[str, DependencyCacheEntry] = {}
    errors: Dict[str, TgAtlantisError] = {}
    for config_path, outcome in outcomes:
        if outcome["ok"]:
            entries[config_path] = outcome["entry"]
        else:
            errors[config_path] = outcome["error"]

    # -------------------------------------------------------------------------
    # 3) Assembly & ordering
    # -------------------------------------------------------------------------
    projects = assemble_projects(cfg, entries, project_hcl_paths, caches.parse_cache, errors)

    if cfg.execution_order_groups or cfg.depends_on:
        projects = assign_execution_groups(
            projects, depends_on=cfg.depends_on, groups=cfg.execution_order_groups
        )

    elapsed = time.perf_counter() - started
    logger.info(
        f"Generation finalized. Projects: {len(projects)}. "
        f"Errors: {len(errors)}. Time: {elapsed:.2f}s"
    )

    return create_success_result(
        cfg.root,
        projects,
        errors=errors,
        summary_extra={
            "candidates": len(candidates),
            "projects": len(projects),
            "errors": len(errors),
            "parsed_files": caches.parse_cache.parse_count,
            "dependency_computations": caches.dependency_cache.computations,
            "workers": cfg.worker_count,
            "elapsed_seconds": round(elapsed, 3),
        },
    )


# -----------------------------------------------------------------------------
# PRIVATE HELPERS
# -----------------------------------------------------------------------------

def _coerce_config(config: Union[GenerateConfig, Dict[str, Any], None]) -> GenerateConfig:
    if isinstance(config, GenerateConfig):
        return config
    cfg, warnings = validate_config(config if config is not None else {}, strict=False)
    for warning in warnings:
        logger.warning(f"Configuration Warning: {warning}")
    return GenerateConfig.from_dict(cfg)


def _resolve_project_task(
        builder: DependencyGraphBuilder,
        config_path: str,
        fail_on_project_error: bool,
) -> Dict[str, Any]:
    """Resolve one project; project-scoped errors become result records."""
    entry = builder.resolve(config_path)
    if entry.error is None:
        return {"ok": True, "config_path": config_path, "entry": entry}

    if fail_on_project_error:
        raise entry.error
    logger.warning(f"Project {config_path} failed: {entry.error}")
    return {"ok": False, "config_path": config_path, "error": entry.error}
