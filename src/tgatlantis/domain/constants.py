from __future__ import annotations

"""
Domain Constants and Static Data Structures.

Centralizes the file names, dialect globs, recognized locals keys and
module source prefixes shared by the resolution engine.
"""

from typing import Dict, List, Tuple

ATLANTIS_CONFIG_VERSION = 3

# -----------------------------------------------------------------------------
# CONFIGURATION FILES
# -----------------------------------------------------------------------------
TERRAGRUNT_FILENAMES: Tuple[str, ...] = ("terragrunt.hcl", "terragrunt.hcl.json")
DEFAULT_TERRAGRUNT_FILENAME = "terragrunt.hcl"

# Directories never descended into during discovery
PRUNED_DIRECTORIES: Tuple[str, ...] = (".terragrunt-cache", ".terraform", ".git")

# Module file dialects (primary Terraform and OpenTofu variants)
MODULE_FILE_PATTERNS: Tuple[str, ...] = ("*.tf", "*.tf.json", "*.tofu", "*.tofu.json")

# One trigger glob per dialect family for every local module directory
MODULE_TRIGGER_GLOBS: Tuple[str, ...] = ("*.tf*", "*.tofu*")

# Triggers every project watches in its own directory
DEFAULT_PROJECT_TRIGGERS: List[str] = ["*.hcl", "*.tf*"]

# Relative path prefixes that mark a module source as local (Unix and Windows)
LOCAL_MODULE_SOURCE_PREFIXES: Tuple[str, ...] = ("./", "../", ".\\", "..\\")

# -----------------------------------------------------------------------------
# LOCALS KEYS
# -----------------------------------------------------------------------------
LOCALS_KEY_MAP: Dict[str, str] = {
    "atlantis_workflow": "workflow",
    "atlantis_terraform_version": "terraform_version",
    "atlantis_autoplan": "autoplan",
    "atlantis_skip": "skip",
    "atlantis_apply_requirements": "apply_requirements",
    "extra_atlantis_dependencies": "extra_dependencies",
    "atlantis_project": "marked_project",
}

EXTRA_DEPENDENCIES_KEY = "extra_atlantis_dependencies"

# Terraform CLI flag that references a variable file
VAR_FILE_FLAG_PREFIX = "-var-file="
