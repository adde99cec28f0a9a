from __future__ import annotations

"""
Configuration Domain Management.

Defines the default generation settings and the immutable configuration
object consumed by the resolution engine. Raw configuration travels as a
dictionary (defaults merged with CLI overrides) until validation, after which
it is frozen into a GenerateConfig.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Tuple


def default_num_executors() -> int:
    """Worker pool width suited to typical hardware (mirrors ThreadPoolExecutor)."""
    return min(32, (os.cpu_count() or 1) + 4)


# -----------------------------------------------------------------------------
# Configuration Models (Dict-based)
# -----------------------------------------------------------------------------
def get_default_config() -> Dict[str, Any]:
    """
    Generate the default runtime configuration.

    Returns:
        Dict[str, Any]: Default configuration values.
    """
    return {
        # Discovery
        "root": os.getcwd(),
        "filter_paths": [],
        "project_hcl_files": [],

        # Dependency resolution
        "cascade_dependencies": True,
        "ignore_dependency_blocks": False,
        "ignore_parent_terragrunt": True,

        # Concurrency
        "parallel": True,
        "num_executors": default_num_executors(),
        "fail_on_project_error": False,

        # Project-hcl grouping
        "create_hcl_project_childs": False,
        "create_hcl_project_external_childs": True,
        "use_project_markers": False,

        # Ordering
        "execution_order_groups": False,
        "depends_on": False,

        # Project defaults
        "autoplan": False,
        "automerge": False,
        "default_workflow": "",
        "default_terraform_version": "",
        "default_apply_requirements": [],
        "create_project_name": False,
        "create_workspace": False,
    }


@dataclass(frozen=True)
class GenerateConfig:
    """
    Immutable, validated settings for one generation run.

    Attributes mirror the keys of get_default_config(). List settings are
    stored as tuples so the object stays hashable.
    """
    root: str
    filter_paths: Tuple[str, ...] = field(default_factory=tuple)
    project_hcl_files: Tuple[str, ...] = field(default_factory=tuple)

    cascade_dependencies: bool = True
    ignore_dependency_blocks: bool = False
    ignore_parent_terragrunt: bool = True

    parallel: bool = True
    num_executors: int = field(default_factory=default_num_executors)
    fail_on_project_error: bool = False

    create_hcl_project_childs: bool = False
    create_hcl_project_external_childs: bool = True
    use_project_markers: bool = False

    execution_order_groups: bool = False
    depends_on: bool = False

    autoplan: bool = False
    automerge: bool = False
    default_workflow: str = ""
    default_terraform_version: str = ""
    default_apply_requirements: Tuple[str, ...] = field(default_factory=tuple)
    create_project_name: bool = False
    create_workspace: bool = False

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any]) -> "GenerateConfig":
        """Freeze a validated configuration dictionary."""
        known = {k: v for k, v in cfg.items() if k in cls.__dataclass_fields__}
        for key in ("filter_paths", "project_hcl_files", "default_apply_requirements"):
            if key in known:
                known[key] = tuple(known[key])
        known["root"] = os.path.abspath(known.get("root") or os.getcwd())
        return cls(**known)

    def flag_signature(self) -> Tuple[Any, ...]:
        """
        Return the flags that change the outcome of dependency resolution.

        Used as the second half of every dependency cache key.
        """
        return (
            self.cascade_dependencies,
            self.ignore_dependency_blocks,
            self.ignore_parent_terragrunt,
            self.root,
        )

    @property
    def worker_count(self) -> int:
        """Effective pool width (1 when parallelism is disabled)."""
        return max(1, self.num_executors) if self.parallel else 1
