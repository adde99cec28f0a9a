from __future__ import annotations

"""
Configuration Validation Service.

Gatekeeper between untrusted configuration (CLI overrides, programmatic
dictionaries) and the resolution engine. Handles type coercion, path
normalization and default value injection, collecting a warning for every
value it had to correct.
"""

import logging
import os
from typing import Any, Dict, List, Tuple

from tgatlantis.domain.config import default_num_executors, get_default_config
from tgatlantis.infra.fs import normalize_path

logger = logging.getLogger(__name__)

_STRING_FIELDS = ["default_workflow", "default_terraform_version"]

_BOOL_FIELDS = [
    "cascade_dependencies", "ignore_dependency_blocks", "ignore_parent_terragrunt",
    "parallel", "fail_on_project_error",
    "create_hcl_project_childs", "create_hcl_project_external_childs", "use_project_markers",
    "execution_order_groups", "depends_on",
    "autoplan", "automerge", "create_project_name", "create_workspace",
]

_LIST_FIELDS = ["filter_paths", "project_hcl_files", "default_apply_requirements"]


# -----------------------------------------------------------------------------
# PUBLIC API
# -----------------------------------------------------------------------------

def validate_config(
        config: Any,
        *,
        strict: bool = False,
) -> Tuple[Dict[str, Any], List[str]]:
    """
    Validate and normalize a configuration dictionary.

    Args:
        config: Raw configuration data (usually a dictionary).
        strict: If True, raise on type mismatch instead of coercing.

    Returns:
        Tuple[Dict[str, Any], List[str]]: The normalized configuration and
                                          the list of warnings.

    Raises:
        TypeError: In strict mode, on any type mismatch.
        ValueError: In strict mode, on an out-of-range executor count.
    """
    warnings: List[str] = []
    defaults = get_default_config()

    if not isinstance(config, dict):
        msg = f"Invalid config type: expected dict, received {type(config).__name__}."
        if strict:
            raise TypeError(msg)
        warnings.append(f"{msg} Using defaults.")
        logger.warning(msg)
        return defaults, warnings

    merged: Dict[str, Any] = dict(defaults)
    merged.update(config)

    for field in _STRING_FIELDS:
        merged[field] = _as_str(merged.get(field), defaults.get(field, ""), field, warnings, strict)

    for field in _BOOL_FIELDS:
        merged[field] = _as_bool(merged.get(field), defaults.get(field, False), field, warnings, strict)

    for field in _LIST_FIELDS:
        merged[field] = _as_list_str(merged.get(field), defaults.get(field, []), field, warnings, strict)

    merged["num_executors"] = _as_positive_int(
        merged.get("num_executors"), default_num_executors(), "num_executors", warnings, strict
    )

    root = merged.get("root")
    if root is not None and not isinstance(root, str):
        msg = f"Invalid field 'root': expected str, received {type(root).__name__}."
        if strict:
            raise TypeError(msg)
        warnings.append(f"{msg} Using current directory.")
        root = None
    merged["root"] = normalize_path(root, os.getcwd())

    return merged, warnings


# -----------------------------------------------------------------------------
# PRIVATE HELPERS: TYPE COERCION
# -----------------------------------------------------------------------------

def _as_str(value: Any, fallback: str, field: str, warnings: List[str], strict: bool) -> str:
    """Validate and sanitize string inputs."""
    if value is None:
        return fallback
    if isinstance(value, str):
        return value.strip()

    msg = f"Invalid field '{field}': expected str, received {type(value).__name__}."
    if strict:
        raise TypeError(msg)
    warnings.append(f"{msg} Using fallback.")
    return fallback


def _as_bool(value: Any, fallback: bool, field: str, warnings: List[str], strict: bool) -> bool:
    """Coerce various input types into native booleans."""
    if isinstance(value, bool):
        return value
    if value is None:
        return fallback

    if not strict:
        if isinstance(value, (int, float)) and value in (0, 1):
            warnings.append(f"Field '{field}' converted from number {value} to bool.")
            return bool(value)
        if isinstance(value, str):
            s = value.strip().lower()
            if s in ("true", "1", "yes", "y", "on"):
                warnings.append(f"Field '{field}' converted from '{value}' to True.")
                return True
            if s in ("false", "0", "no", "n", "off"):
                warnings.append(f"Field '{field}' converted from '{value}' to False.")
                return False

    msg = f"Invalid field '{field}': expected bool, received {type(value).__name__}."
    if strict:
        raise TypeError(msg)
    warnings.append(f"{msg} Using fallback.")
    return fallback


def _as_list_str(value: Any, fallback: List[str], field: str, warnings: List[str], strict: bool) -> List[str]:
    """Ensure input is a list of sanitized strings, supporting CSV parsing."""
    if value is None:
        return list(fallback)

    if isinstance(value, str) and not strict:
        items = [x.strip() for x in value.split(",") if x.strip()]
        warnings.append(f"Field '{field}' converted from CSV string to list.")
        return items

    if isinstance(value, (list, tuple)):
        out: List[str] = []
        for i, item in enumerate(value):
            if isinstance(item, str):
                s = item.strip()
                if s:
                    out.append(s)
            else:
                msg = f"Invalid item in '{field}[{i}]': expected str."
                if strict:
                    raise TypeError(msg)
                warnings.append(f"{msg} Item discarded.")
        return out

    msg = f"Invalid field '{field}': expected list[str], received {type(value).__name__}."
    if strict:
        raise TypeError(msg)
    warnings.append(f"{msg} Using fallback.")
    return list(fallback)


def _as_positive_int(value: Any, fallback: int, field: str, warnings: List[str], strict: bool) -> int:
    """Coerce the pool width into a positive integer."""
    if value is None:
        return fallback
    if isinstance(value, bool):
        msg = f"Invalid field '{field}': expected int, received bool."
        if strict:
            raise TypeError(msg)
        warnings.append(f"{msg} Using fallback.")
        return fallback

    if isinstance(value, str) and not strict:
        try:
            value = int(value.strip())
            warnings.append(f"Field '{field}' converted from string to int.")
        except ValueError:
            warnings.append(f"Invalid field '{field}': '{value}' is not an integer. Using fallback.")
            return fallback

    if not isinstance(value, int):
        msg = f"Invalid field '{field}': expected int, received {type(value).__name__}."
        if strict:
            raise TypeError(msg)
        warnings.append(f"{msg} Using fallback.")
        return fallback

    if value < 1:
        msg = f"Invalid field '{field}': must be at least 1, received {value}."
        if strict:
            raise ValueError(msg)
        warnings.append(f"{msg} Using fallback.")
        return fallback
    return value
