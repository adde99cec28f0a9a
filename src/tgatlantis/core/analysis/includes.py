from __future__ import annotations

"""
Include Block Analysis.

Extracts include references from a parsed Terragrunt file and walks the
include chain (parents of parents), enforcing the single-unlabeled-include
rule and guarding against include cycles with a visited set.
"""

import logging
import os
from typing import List, Optional, Set

from tgatlantis.core.parsing.expressions import EvaluationContext, ExpressionEvaluator
from tgatlantis.core.parsing.hcl_parser import HclDocument
from tgatlantis.core.services.parse_cache import ParseCache
from tgatlantis.domain.errors import DependencyResolutionError, ParseError, StructuralError
from tgatlantis.domain.graph_models import IncludeReference
from tgatlantis.infra.fs import make_absolute

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# PUBLIC API
# -----------------------------------------------------------------------------

def extract_include_references(
        document: HclDocument,
        config_path: str,
        root: Optional[str] = None,
) -> List[IncludeReference]:
    """
    Return the include blocks declared by a document, in declaration order.

    Args:
        document: Parsed file.
        config_path: Absolute path of the file (paths resolve against its directory).
        root: Repository root for get_repo_root().

    Returns:
        List[IncludeReference]: One reference per include block.

    Raises:
        StructuralError: More than one unlabeled include block.
        DependencyResolutionError: An include path cannot be evaluated.
    """
    evaluator = ExpressionEvaluator(EvaluationContext(config_path=config_path, root=root))
    base_dir = os.path.dirname(os.path.abspath(config_path))

    refs: List[IncludeReference] = []
    unlabeled = 0
    for raw in document.raw_blocks("include"):
        body = {k: v for k, v in raw.items() if k != "__is_block__"}

        # Unlabeled blocks carry attributes directly; labeled ones nest a body per label
        if "path" in body and not isinstance(body["path"], (dict, list)):
            unlabeled += 1
            if unlabeled > 1:
                raise StructuralError(
                    f"{config_path} declares more than one unlabeled include block", config_path
                )
            refs.append(_resolve(evaluator, "", body, base_dir, config_path))
            continue

        for label, nested in body.items():
            nested_bodies = nested if isinstance(nested, list) else [nested]
            for nested_body in nested_bodies:
                if isinstance(nested_body, dict):
                    refs.append(_resolve(evaluator, label, nested_body, base_dir, config_path))

    return refs


def resolve_include_chain(
        config_path: str,
        cache: ParseCache,
        root: Optional[str] = None,
        visited: Optional[Set[str]] = None,
) -> List[IncludeReference]:
    """
    Walk every include reachable from config_path.

    The result is ordered root-first: each parent appears after its own
    ancestors, which is the order locals must be folded in.

    Args:
        config_path: Absolute path of the starting file.
        cache: Parse cache used to read every file of the chain.
        root: Repository root for get_repo_root().
        visited: Paths already walked (cycle guard).

    Returns:
        List[IncludeReference]: Reachable includes, without duplicates.

    Raises:
        StructuralError: A file in the chain declares two unlabeled includes.
        DependencyResolutionError: An include target is missing or unparseable.
    """
    config_path = os.path.abspath(config_path)
    visited = visited if visited is not None else set()
    visited.add(config_path)

    document = cache.parse(config_path)
    chain: List[IncludeReference] = []
    for ref in extract_include_references(document, config_path, root):
        if ref.path in visited:
            logger.debug(f"Include cycle through {ref.path} ignored for {config_path}")
            continue
        try:
            ancestors = resolve_include_chain(ref.path, cache, root, visited)
        except ParseError as e:
            raise DependencyResolutionError(
                f"Include target {ref.path} of {config_path} cannot be parsed: {e.detail}",
                ref.path,
            ) from e
        chain.extend(ancestors)
        chain.append(ref)
    return chain


# -----------------------------------------------------------------------------
# PRIVATE HELPERS
# -----------------------------------------------------------------------------

def _resolve(
        evaluator: ExpressionEvaluator,
        label: str,
        body: dict,
        base_dir: str,
        config_path: str,
) -> IncludeReference:
    raw_path = body.get("path")
    path = evaluator.evaluate_string(raw_path)
    if not path:
        raise DependencyResolutionError(
            f"Include '{label}' in {config_path} has an unresolvable path: {raw_path!r}",
            config_path,
        )
    target = make_absolute(path, base_dir)
    if not os.path.isfile(target):
        raise DependencyResolutionError(
            f"Include '{label}' in {config_path} points to a missing file: {target}",
            target,
        )
    return IncludeReference(label=label, path=target)
