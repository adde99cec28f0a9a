from __future__ import annotations

"""
Dependency Graph Builder.

Computes the set of files whose modification should trigger a re-plan of a
Terragrunt project: the include chain, dependency block targets, the local
terraform source and its nested local modules, local modules of the project
directory, var files passed through extra_arguments, and user-declared
extra dependencies.

Direct resolutions are memoized per (config path, flag signature) in the
DependencyCache. Cascade resolution walks dependency-block edges breadth
first and unions the cached direct sets of every config it reaches, so it
terminates on cyclic declarations and never waits on itself.
"""

import logging
import os
import threading
from collections import deque
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from tgatlantis.core.analysis.includes import resolve_include_chain
from tgatlantis.core.analysis.locals_resolver import parse_locals, read_document_locals
from tgatlantis.core.analysis.module_sources import (
    extract_local_module_globs,
    is_local_module_source,
    list_module_files,
)
from tgatlantis.core.parsing.expressions import EvaluationContext, ExpressionEvaluator
from tgatlantis.core.parsing.hcl_parser import HclDocument
from tgatlantis.core.services.dependency_cache import DependencyCache
from tgatlantis.core.services.parse_cache import ParseCache
from tgatlantis.domain.config import GenerateConfig
from tgatlantis.domain.constants import (
    DEFAULT_TERRAGRUNT_FILENAME,
    MODULE_TRIGGER_GLOBS,
    TERRAGRUNT_FILENAMES,
    VAR_FILE_FLAG_PREFIX,
)
from tgatlantis.domain.errors import CancellationError, DependencyResolutionError, ParseError
from tgatlantis.domain.graph_models import DependencyCacheEntry
from tgatlantis.infra.fs import get_mtime_ns, make_absolute

logger = logging.getLogger(__name__)

_DIRECT = "direct"


# ==============================================================================
# PUBLIC API
# ==============================================================================

def is_parent_config(document: HclDocument) -> bool:
    """A parent config declares neither an include nor a terraform source."""
    if document.raw_blocks("include"):
        return False
    return not any("source" in block for block in document.blocks("terraform"))


def resolve_dependency_target(path: str, base_dir: str) -> str:
    """
    Map a dependency declaration onto the config file it refers to.

    Directories resolve to the Terragrunt file inside them (the JSON variant
    when only that one exists).
    """
    target = make_absolute(path, base_dir)
    if os.path.isdir(target):
        for name in TERRAGRUNT_FILENAMES:
            candidate = os.path.join(target, name)
            if os.path.isfile(candidate):
                return candidate
        return os.path.join(target, DEFAULT_TERRAGRUNT_FILENAME)
    return target


class DependencyGraphBuilder:
    """
    Resolves project dependency sets through the shared caches.

    One builder is created per run; it is safe to call from every worker
    thread concurrently.
    """

    def __init__(
            self,
            config: GenerateConfig,
            parse_cache: ParseCache,
            dependency_cache: DependencyCache,
            cancellation_event: Optional[threading.Event] = None,
    ) -> None:
        self.config = config
        self._parse_cache = parse_cache
        self._dependency_cache = dependency_cache
        self._cancellation_event = cancellation_event
        self._signature = config.flag_signature()

    def build(self, config_path: str) -> Tuple[str, ...]:
        """
        Return the sorted dependency set of a project.

        Raises:
            ProjectScopedError: The (possibly cached) resolution failure.
            CancellationError: The run was cancelled.
        """
        entry = self.resolve(config_path)
        if entry.error is not None:
            raise entry.error
        return entry.dependencies or ()

    def resolve(self, config_path: str) -> DependencyCacheEntry:
        """
        Return the cache entry (result or error) for a project.

        Cascade mode folds in the direct sets of every config reachable
        through dependency blocks.
        """
        config_path = os.path.normpath(os.path.abspath(config_path))
        if not self.config.cascade_dependencies:
            return self.resolve_direct(config_path)
        return self._dependency_cache.get_or_compute(
            (config_path, self._signature),
            lambda: self._compute_cascade(config_path),
            self._cancellation_event,
            owner=config_path,
        )

    def resolve_direct(self, config_path: str) -> DependencyCacheEntry:
        """Return the cache entry of the non-transitive resolution."""
        config_path = os.path.normpath(os.path.abspath(config_path))
        return self._dependency_cache.get_or_compute(
            (config_path, _DIRECT, self._signature),
            lambda: self._compute_direct(config_path),
            self._cancellation_event,
            owner=config_path,
        )

    # --------------------------------------------------------------------------
    # CASCADE
    # --------------------------------------------------------------------------

    def _compute_cascade(self, config_path: str) -> DependencyCacheEntry:
        origin = self.resolve_direct(config_path)
        if origin.error is not None:
            raise origin.error

        dependencies: Set[str] = set(origin.dependencies or ())
        inputs: Dict[str, Optional[int]] = dict(origin.input_mtimes)
        visited = {config_path}
        pending = deque(origin.dependency_targets)

        while pending:
            target = pending.popleft()
            if target in visited:
                continue
            visited.add(target)
            self._check_cancelled()

            entry = self.resolve_direct(target)
            if entry.error is not None:
                raise DependencyResolutionError(
                    f"Dependency {target} of {config_path} cannot be resolved: {entry.error}",
                    getattr(entry.error, "path", "") or target,
                ) from entry.error

            dependencies.update(entry.dependencies or ())
            inputs.update(entry.input_mtimes)
            pending.extend(entry.dependency_targets)

        logger.debug(f"Cascade for {config_path} visited {len(visited)} configs")
        return DependencyCacheEntry(
            dependencies=tuple(sorted(dependencies)),
            input_mtimes=inputs,
            dependency_targets=origin.dependency_targets,
            is_parent=origin.is_parent,
            locals=origin.locals,
        )

    # --------------------------------------------------------------------------
    # DIRECT RESOLUTION
    # --------------------------------------------------------------------------

    def _compute_direct(self, config_path: str) -> DependencyCacheEntry:
        self._check_cancelled()
        root = self.config.root
        config_dir = os.path.dirname(config_path)
        inputs: Dict[str, Optional[int]] = {config_path: get_mtime_ns(config_path)}

        document = self._parse_cache.parse(config_path)
        if is_parent_config(document) and self.config.ignore_parent_terragrunt:
            logger.debug(f"{config_path} is a parent config; no dependencies resolved")
            return DependencyCacheEntry(dependencies=(), input_mtimes=inputs, is_parent=True)

        chain = resolve_include_chain(config_path, self._parse_cache, root)
        for ref in chain:
            inputs[ref.path] = get_mtime_ns(ref.path)

        merged_locals = parse_locals(config_path, self._parse_cache, root)

        # Ancestors first, the project's own file last
        layers: List[Tuple[HclDocument, Optional[str]]] = [
            (self._parse_cache.parse(ref.path), ref.path) for ref in chain
        ]
        layers.append((document, None))
        evaluators = [(doc, self._evaluator(doc, config_path, include)) for doc, include in layers]

        dependencies: Set[str] = {config_path}
        dependencies.update(ref.path for ref in chain)

        targets: Set[str] = set()
        if not self.config.ignore_dependency_blocks:
            for doc, evaluator in evaluators:
                for target in self._dependency_block_targets(doc, evaluator, config_path):
                    inputs[target] = get_mtime_ns(target)
                    targets.add(target)
        dependencies.update(targets)

        module_dirs = [config_dir]
        source_dir = self._terraform_source_dir(evaluators, config_dir)
        if source_dir is not None:
            dependencies.add(os.path.join(source_dir, MODULE_TRIGGER_GLOBS[0]))
            module_dirs.append(source_dir)

        for directory in module_dirs:
            globs = extract_local_module_globs(directory, self._parse_cache)
            dependencies.update(globs)
            for module_dir in {directory} | {os.path.dirname(g) for g in globs}:
                # A new or removed *.tf file changes the directory mtime
                inputs[module_dir] = get_mtime_ns(module_dir)
                for module_file in list_module_files(module_dir):
                    inputs[module_file] = get_mtime_ns(module_file)

        for doc, evaluator in evaluators:
            dependencies.update(_var_file_dependencies(doc, evaluator, config_dir))

        for extra in merged_locals.extra_dependencies:
            dependencies.add(make_absolute(extra, config_dir))

        return DependencyCacheEntry(
            dependencies=tuple(sorted(dependencies)),
            input_mtimes=inputs,
            dependency_targets=tuple(sorted(targets - {config_path})),
            is_parent=is_parent_config(document),
            locals=merged_locals,
        )

    def _dependency_block_targets(
            self,
            document: HclDocument,
            evaluator: ExpressionEvaluator,
            config_path: str,
    ) -> List[str]:
        raw_paths: List[Any] = []
        for _, body in document.labeled_blocks("dependency"):
            raw_paths.append(body.get("config_path"))
        for body in document.blocks("dependencies"):
            paths = body.get("paths")
            if isinstance(paths, str):
                paths = evaluator.evaluate_value(paths)
            if isinstance(paths, list):
                raw_paths.extend(paths)
            elif paths is not None:
                raw_paths.append(paths)

        config_dir = os.path.dirname(config_path)
        targets: List[str] = []
        for raw in raw_paths:
            path = evaluator.evaluate_string(raw)
            if not path:
                raise DependencyResolutionError(
                    f"Dependency in {document.path} has an unresolvable path: {raw!r}",
                    config_path,
                )
            target = resolve_dependency_target(path, config_dir)
            if not os.path.isfile(target):
                raise DependencyResolutionError(
                    f"Dependency {target} declared by {document.path} does not exist",
                    target,
                )
            try:
                self._parse_cache.parse(target)
            except ParseError as e:
                raise DependencyResolutionError(
                    f"Dependency {target} declared by {document.path} cannot be parsed: {e.detail}",
                    target,
                ) from e
            targets.append(target)
        return targets

    def _terraform_source_dir(
            self,
            evaluators: List[Tuple[HclDocument, ExpressionEvaluator]],
            config_dir: str,
    ) -> Optional[str]:
        """Local directory of the nearest terraform source (own file first)."""
        for document, evaluator in reversed(evaluators):
            for block in document.blocks("terraform"):
                if "source" not in block:
                    continue
                source = evaluator.evaluate_string(block["source"])
                if source is None:
                    logger.debug(f"Non-literal terraform source in {document.path}; ignored")
                    return None
                if not (is_local_module_source(source) or os.path.isabs(source)):
                    return None
                # The '//' marker separates the module root from a subdirectory
                return make_absolute(source.replace("//", "/"), config_dir)
        return None

    def _evaluator(
            self,
            document: HclDocument,
            config_path: str,
            include_path: Optional[str],
    ) -> ExpressionEvaluator:
        context = EvaluationContext(
            config_path=config_path, include_path=include_path, root=self.config.root
        )
        read_document_locals(document, context)
        return ExpressionEvaluator(context)

    def _check_cancelled(self) -> None:
        if self._cancellation_event is not None and self._cancellation_event.is_set():
            raise CancellationError()


# ==============================================================================
# PRIVATE HELPERS
# ==============================================================================

def _var_file_dependencies(
        document: HclDocument,
        evaluator: ExpressionEvaluator,
        config_dir: str,
) -> List[str]:
    """Collect var files referenced by extra_arguments blocks."""
    found: List[str] = []
    for terraform in document.blocks("terraform"):
        for _, body in _nested_labeled_blocks(terraform.get("extra_arguments")):
            candidates: List[Any] = []
            for key in ("required_var_files", "optional_var_files"):
                value = _safe_evaluate(evaluator, body.get(key))
                if isinstance(value, list):
                    candidates.extend(value)

            arguments = _safe_evaluate(evaluator, body.get("arguments"))
            if isinstance(arguments, list):
                for arg in arguments:
                    if isinstance(arg, str) and arg.startswith(VAR_FILE_FLAG_PREFIX):
                        candidates.append(arg[len(VAR_FILE_FLAG_PREFIX):])

            for candidate in candidates:
                if isinstance(candidate, str) and candidate:
                    found.append(make_absolute(candidate, config_dir))
    return found


def _nested_labeled_blocks(value: Any) -> Iterable[Tuple[str, Dict[str, Any]]]:
    """Iterate (label, body) pairs of a labeled block nested in another block."""
    raw_blocks = value if isinstance(value, list) else [value] if isinstance(value, dict) else []
    for raw in raw_blocks:
        if not isinstance(raw, dict):
            continue
        for label, body in raw.items():
            bodies = body if isinstance(body, list) else [body]
            for item in bodies:
                if isinstance(item, dict):
                    yield label, {k: v for k, v in item.items() if k != "__is_block__"}


def _safe_evaluate(evaluator: ExpressionEvaluator, value: Any) -> Any:
    if value is None:
        return None
    return evaluator.evaluate_value(value)
