from __future__ import annotations

"""
Local Module Source Extraction.

Reads the module blocks of the Terraform/OpenTofu files in a directory and
follows every locally-sourced module (recursively) to produce the trigger
globs a project must watch. Remote sources (registry, git, http, ...) are
outside the scope of change detection and are ignored.
"""

import glob
import logging
import os
from typing import List, Optional, Set

from tgatlantis.core.parsing.expressions import EvaluationContext, ExpressionEvaluator
from tgatlantis.core.services.parse_cache import ParseCache
from tgatlantis.domain.constants import (
    LOCAL_MODULE_SOURCE_PREFIXES,
    MODULE_FILE_PATTERNS,
    MODULE_TRIGGER_GLOBS,
)
from tgatlantis.domain.errors import ParseError
from tgatlantis.domain.graph_models import ModuleCallSource
from tgatlantis.infra.fs import make_absolute

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# PUBLIC API
# -----------------------------------------------------------------------------

def is_local_module_source(raw: str) -> bool:
    """
    Classify a module source string.

    Args:
        raw: Literal value of a module block's source attribute.

    Returns:
        bool: True for relative paths ('./', '../' and their Windows forms).
    """
    return raw.startswith(LOCAL_MODULE_SOURCE_PREFIXES)


def list_module_files(directory: str) -> List[str]:
    """Return the module files of a directory (every dialect), sorted."""
    found: Set[str] = set()
    for pattern in MODULE_FILE_PATTERNS:
        found.update(glob.glob(os.path.join(glob.escape(directory), pattern)))
    return sorted(p for p in found if os.path.isfile(p))


def extract_module_call_sources(directory: str, cache: ParseCache) -> List[ModuleCallSource]:
    """
    Collect the literal sources of every module block in a directory.

    Files that cannot be read or parsed are skipped, as are sources that are
    interpolated or not strings.

    Args:
        directory: Directory holding module files.
        cache: Parse cache.

    Returns:
        List[ModuleCallSource]: Sources in file then declaration order.
    """
    sources: List[ModuleCallSource] = []
    for file_path in list_module_files(directory):
        try:
            document = cache.parse(file_path)
        except ParseError as e:
            logger.debug(f"Skipping unparseable module file {file_path}: {e.detail}")
            continue

        evaluator = ExpressionEvaluator(EvaluationContext(config_path=file_path))
        for label, body in document.labeled_blocks("module"):
            raw = evaluator.evaluate_literal_string(body.get("source"))
            if raw is None:
                logger.debug(f"Module '{label}' in {file_path} has a non-literal source; ignored")
                continue
            sources.append(ModuleCallSource(source=raw, is_local=is_local_module_source(raw)))
    return sources


def extract_local_module_globs(
        directory: str,
        cache: ParseCache,
        visited: Optional[Set[str]] = None,
) -> List[str]:
    """
    Build trigger globs for every local module reachable from a directory.

    Each local module directory contributes one glob per dialect family.
    Module directories are followed recursively; the visited set stops
    self-referencing or mutually-referencing modules.

    Args:
        directory: Directory whose module blocks are inspected.
        cache: Parse cache.
        visited: Absolute directories already inspected.

    Returns:
        List[str]: Absolute globs, sorted and de-duplicated.
    """
    directory = os.path.normpath(os.path.abspath(directory))
    visited = visited if visited is not None else set()
    if directory in visited:
        return []
    visited.add(directory)

    globs: Set[str] = set()
    for call in extract_module_call_sources(directory, cache):
        if not call.is_local:
            continue
        module_dir = make_absolute(call.source.replace("\\", "/"), directory)
        for pattern in MODULE_TRIGGER_GLOBS:
            globs.add(os.path.join(module_dir, pattern))
        globs.update(extract_local_module_globs(module_dir, cache, visited))

    return sorted(globs)
