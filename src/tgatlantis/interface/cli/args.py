from __future__ import annotations

"""
CLI Argument Definition and Mapping.

Defines the command-line schema of the 'generate' command and translates
the parsed namespace into configuration overrides understood by the
validator.
"""

import argparse
from typing import Any, Dict, List, Optional

from tgatlantis import __version__

# (flag, config key, help) for every boolean option
_BOOL_FLAGS = [
    ("--autoplan", "autoplan", "Enable autoplan for projects that do not set atlantis_autoplan."),
    ("--automerge", "automerge", "Enable automerge in the generated configuration."),
    ("--cascade-dependencies", "cascade_dependencies",
     "Fold in the dependencies of dependency-block targets, transitively (default: true)."),
    ("--ignore-parent-terragrunt", "ignore_parent_terragrunt",
     "Do not turn parent configs (no include, no terraform source) into projects (default: true)."),
    ("--ignore-dependency-blocks", "ignore_dependency_blocks",
     "Ignore dependency and dependencies blocks."),
    ("--parallel", "parallel", "Resolve projects on a worker pool (default: true)."),
    ("--create-workspace", "create_workspace", "Give every project its own workspace."),
    ("--create-project-name", "create_project_name", "Name projects after their directory."),
    ("--create-hcl-project-childs", "create_hcl_project_childs",
     "Also emit the modules beneath a project-hcl directory as projects."),
    ("--create-hcl-project-external-childs", "create_hcl_project_external_childs",
     "Emit modules outside every project-hcl directory as projects (default: true)."),
    ("--use-project-markers", "use_project_markers",
     "Only treat project-hcl files declaring atlantis_project = true as projects."),
    ("--execution-order-groups", "execution_order_groups", "Emit execution_order_group per project."),
    ("--depends-on", "depends_on", "Emit depends_on per project."),
    ("--fail-on-project-error", "fail_on_project_error",
     "Abort the whole run on the first project error."),
]


# -----------------------------------------------------------------------------
# ARGUMENT DEFINITION
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    """
    Construct the argument parser for the tgatlantis CLI.

    Returns:
        argparse.ArgumentParser: Configured parser instance.
    """
    p = argparse.ArgumentParser(
        prog="tgatlantis",
        description="Generate Atlantis project definitions from a Terragrunt tree.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    sub = p.add_subparsers(dest="command")
    sub.required = True
    g = sub.add_parser("generate", help="Resolve projects and print them as JSON.")

    # --- Discovery ---
    g.add_argument("--root", dest="root", default=None, help="Repository root to scan (default: cwd).")
    g.add_argument(
        "--filter",
        dest="filter_paths",
        default=None,
        help="Comma-separated globs or path prefixes restricting the emitted projects.",
    )
    g.add_argument(
        "--project-hcl-files",
        dest="project_hcl_files",
        default=None,
        help="Comma-separated file names (e.g. env.hcl) whose directories become projects.",
    )

    # --- Behavior flags ---
    for flag, dest, help_text in _BOOL_FLAGS:
        g.add_argument(
            flag,
            dest=dest,
            nargs="?",
            const=True,
            default=None,
            type=_str_to_bool,
            metavar="BOOL",
            help=help_text,
        )

    # --- Project defaults ---
    g.add_argument("--num-executors", dest="num_executors", type=int, default=None,
                   help="Worker pool width.")
    g.add_argument("--workflow", dest="default_workflow", default=None,
                   help="Workflow for projects that do not set atlantis_workflow.")
    g.add_argument("--terraform-version", dest="default_terraform_version", default=None,
                   help="Version pin for projects that do not set atlantis_terraform_version.")
    g.add_argument("--apply-requirements", dest="default_apply_requirements", default=None,
                   help="Comma-separated apply requirements (e.g. approved,mergeable).")

    # --- Diagnostics ---
    g.add_argument("--dump-config", action="store_true", help="Print the effective configuration and exit.")
    g.add_argument("--debug", action="store_true", help="Elevate logging verbosity to DEBUG.")
    g.add_argument("--log-file", dest="log_file", default=None, help="Also write logs to this file.")

    return p


# -----------------------------------------------------------------------------
# ARGUMENT MAPPING
# -----------------------------------------------------------------------------

def args_to_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """
    Translate the argparse Namespace into configuration overrides.

    Options the user did not pass are left out, so defaults apply.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Dict[str, Any]: Configuration overrides subset.
    """
    overrides: Dict[str, Any] = {}

    if args.root is not None:
        overrides["root"] = args.root
    if args.filter_paths is not None:
        overrides["filter_paths"] = _split_csv(args.filter_paths)
    if args.project_hcl_files is not None:
        overrides["project_hcl_files"] = _split_csv(args.project_hcl_files)

    for _, dest, _ in _BOOL_FLAGS:
        value = getattr(args, dest)
        if value is not None:
            overrides[dest] = value

    if args.num_executors is not None:
        overrides["num_executors"] = args.num_executors
    if args.default_workflow is not None:
        overrides["default_workflow"] = args.default_workflow
    if args.default_terraform_version is not None:
        overrides["default_terraform_version"] = args.default_terraform_version
    if args.default_apply_requirements is not None:
        overrides["default_apply_requirements"] = _split_csv(args.default_apply_requirements)

    return overrides


# -----------------------------------------------------------------------------
# HELPERS
# -----------------------------------------------------------------------------

def _split_csv(value: Optional[str]) -> Optional[List[str]]:
    """Convert a comma-separated string into a list of sanitized strings."""
    if value is None:
        return None
    parts = [x.strip() for x in value.split(",")]
    return [x for x in parts if x]


def _str_to_bool(value: str) -> bool:
    """Parse the value of a '--flag=VALUE' boolean option."""
    s = value.strip().lower()
    if s in ("true", "1", "yes", "y", "on"):
        return True
    if s in ("false", "0", "no", "n", "off"):
        return False
    raise argparse.ArgumentTypeError(f"expected a boolean, got '{value}'")
