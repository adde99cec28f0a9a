from __future__ import annotations

"""
Locals Resolution Service.

Maps the Atlantis-related keys of an evaluated locals block into a typed
ResolvedLocals, and merges those values along a file's include chain
(root-first) to produce the effective settings of a project.
"""

import logging
import os
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional

from tgatlantis.core.analysis.includes import resolve_include_chain
from tgatlantis.core.parsing.expressions import EvaluationContext, evaluate_locals
from tgatlantis.core.parsing.hcl_parser import HclDocument
from tgatlantis.core.services.parse_cache import ParseCache
from tgatlantis.domain.constants import EXTRA_DEPENDENCIES_KEY, LOCALS_KEY_MAP
from tgatlantis.domain.errors import LocalsValueError
from tgatlantis.domain.locals_models import ResolvedLocals, fold_locals

logger = logging.getLogger(__name__)


# ==============================================================================
# PUBLIC API
# ==============================================================================

def resolve_locals(values: Optional[Mapping[str, Any]]) -> ResolvedLocals:
    """
    Extract the recognized Atlantis keys from an evaluated locals map.

    Unrecognized keys are ignored. Scalars of the wrong type are ignored with
    a debug note.

    Args:
        values: Evaluated locals (None or empty for no locals).

    Returns:
        ResolvedLocals: Typed settings.

    Raises:
        LocalsValueError: extra_atlantis_dependencies contains a non-string
                          element. The error's ``partial`` attribute holds the
                          settings resolved before the failure, and its
                          ``position`` the 1-based index of the element.
    """
    resolved = ResolvedLocals()
    if not values:
        return resolved

    for key, field_name in LOCALS_KEY_MAP.items():
        if key not in values:
            continue
        value = values[key]

        if field_name in ("workflow", "terraform_version"):
            if isinstance(value, str):
                resolved = replace(resolved, **{field_name: value})
            else:
                logger.debug(f"Ignoring local '{key}': expected string, got {type(value).__name__}")

        elif field_name in ("autoplan", "skip", "marked_project"):
            if isinstance(value, bool):
                resolved = replace(resolved, **{field_name: value})
            else:
                logger.debug(f"Ignoring local '{key}': expected bool, got {type(value).__name__}")

        elif field_name == "apply_requirements":
            if isinstance(value, (list, tuple)):
                resolved = replace(resolved, apply_requirements=tuple(str(v) for v in value))
            else:
                logger.debug(f"Ignoring local '{key}': expected list, got {type(value).__name__}")

        elif field_name == "extra_dependencies":
            resolved = _resolve_extra_dependencies(value, resolved)

    return resolved


def read_document_locals(document: HclDocument, context: EvaluationContext) -> Dict[str, Any]:
    """
    Evaluate every locals block of a document.

    Args:
        document: Parsed file.
        context: Evaluation context (config path, include in scope, root).

    Returns:
        Dict[str, Any]: Evaluated locals of all blocks combined.
    """
    raw: Dict[str, Any] = {}
    for block in document.blocks("locals"):
        raw.update(block)
    return evaluate_locals(raw, context)


def parse_locals(
        config_path: str,
        cache: ParseCache,
        root: Optional[str] = None,
) -> ResolvedLocals:
    """
    Resolve the effective locals of a file by folding its include chain.

    Every ancestor's locals are evaluated as Terragrunt does: with the child
    as the config in scope and the ancestor as the include.

    Args:
        config_path: Absolute path of the project's config file.
        cache: Parse cache.
        root: Repository root for get_repo_root().

    Returns:
        ResolvedLocals: Locals merged root-to-leaf.

    Raises:
        LocalsValueError: A file in the chain declares malformed extra
                          dependencies; ``partial`` holds the merged settings
                          up to and including the partial file.
        ParseError, StructuralError, DependencyResolutionError: From the chain.
    """
    config_path = os.path.abspath(config_path)
    chain = resolve_include_chain(config_path, cache, root)

    layers: List[ResolvedLocals] = []
    sources = [(ref.path, ref.path) for ref in chain] + [(config_path, None)]
    for file_path, include_path in sources:
        context = EvaluationContext(config_path=config_path, include_path=include_path, root=root)
        values = read_document_locals(cache.parse(file_path), context)
        try:
            layers.append(resolve_locals(values))
        except LocalsValueError as e:
            partial = fold_locals(layers + [e.partial or ResolvedLocals()])
            raise LocalsValueError(str(e), e.position, partial=partial, path=file_path) from e

    return fold_locals(layers)


# ==============================================================================
# PRIVATE HELPERS
# ==============================================================================

def _resolve_extra_dependencies(value: Any, resolved: ResolvedLocals) -> ResolvedLocals:
    if not isinstance(value, (list, tuple)):
        logger.debug(f"Ignoring local '{EXTRA_DEPENDENCIES_KEY}': expected list, got {type(value).__name__}")
        return resolved

    collected: List[str] = []
    for index, item in enumerate(value, start=1):
        if not isinstance(item, str):
            partial = replace(resolved, extra_dependencies=tuple(collected))
            raise LocalsValueError(
                f"{EXTRA_DEPENDENCIES_KEY} contains non-string value at position {index}",
                position=index,
                partial=partial,
            )
        collected.append(item)
    return replace(resolved, extra_dependencies=tuple(collected))
