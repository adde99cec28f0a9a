from __future__ import annotations

"""
End-to-End tests for the tgatlantis command line.

Runs the CLI in a child interpreter exactly as a user or CI job would and
checks the JSON document on stdout.
"""

import json
import os
import subprocess
import sys
from pathlib import Path
from typing import Callable, Dict

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
SRC_DIR = PROJECT_ROOT / "src"
ENTRY_POINT = SRC_DIR / "tgatlantis" / "main.py"


def _run(*args: str) -> subprocess.CompletedProcess:
    """Execute the CLI entry script with src on PYTHONPATH (no install needed)."""
    env = os.environ.copy()
    env["PYTHONPATH"] = str(SRC_DIR) + os.pathsep + env.get("PYTHONPATH", "")
    return subprocess.run(
        [sys.executable, str(ENTRY_POINT), *args],
        capture_output=True,
        text=True,
        env=env,
        timeout=120,
    )


def test_generate_end_to_end(write_tree: Callable[[Dict[str, str]], Path]) -> None:
    """TC-01: A realistic tree yields a valid Atlantis config and exit code 0."""
    root = write_tree({
        "root.hcl": 'locals {\n  atlantis_terraform_version = "v1.6.6"\n}',
        "modules/vpc/main.tf": 'variable "cidr" {}',
        "prod/vpc/terragrunt.hcl": """
            include "root" {
              path = find_in_parent_folders("root.hcl")
            }

            terraform {
              source = "../../modules//vpc"
            }
        """,
        "prod/app/terragrunt.hcl": """
            include "root" {
              path = find_in_parent_folders("root.hcl")
            }

            terraform {
              source = "../../modules/vpc"
            }

            dependency "vpc" {
              config_path = "../vpc"
            }
        """,
    })

    proc = _run("generate", "--root", str(root), "--create-project-name", "--depends-on",
                "--apply-requirements", "approved")

    assert proc.returncode == 0, proc.stderr
    payload = json.loads(proc.stdout)
    assert [p["name"] for p in payload["projects"]] == ["prod_app", "prod_vpc"]
    app = payload["projects"][0]
    assert app["terraform_version"] == "v1.6.6"
    assert app["apply_requirements"] == ["approved"]
    assert app["depends_on"] == ["prod_vpc"]


def test_usage_errors_exit_two() -> None:
    proc = _run("generate", "--parallel=maybe")
    assert proc.returncode == 2
