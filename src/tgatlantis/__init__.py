from __future__ import annotations

"""
tgatlantis: Terragrunt dependency graph resolution for Atlantis projects.
"""

__version__ = "0.1.0"
