from __future__ import annotations

"""
Candidate Discovery and Filtering Service.

Walks a repository to find the Terragrunt configuration files (and any
configured project-hcl files) that may become projects, pruning cache and
VCS directories early. Also implements the post-resolution path filter.
"""

import fnmatch
import logging
import os
from typing import Iterable, Iterator, Sequence

from tgatlantis.domain.constants import PRUNED_DIRECTORIES, TERRAGRUNT_FILENAMES
from tgatlantis.infra.fs import make_absolute

logger = logging.getLogger(__name__)


# ==============================================================================
# PUBLIC API (DISCOVERY SERVICES)
# ==============================================================================

def yield_candidate_files(root: str, project_hcl_files: Sequence[str] = ()) -> Iterator[str]:
    """
    Traverse root and yield candidate configuration files.

    Directories are visited in sorted order so the sequence is stable between
    runs.

    Args:
        root: Repository root.
        project_hcl_files: Extra file names that form projects (e.g. env.hcl).

    Yields:
        str: Absolute path of each Terragrunt or project-hcl file.
    """
    root_abs = os.path.abspath(root)
    wanted = set(TERRAGRUNT_FILENAMES) | set(project_hcl_files)

    for current, dirs, files in os.walk(root_abs):
        # In-place pruning keeps os.walk out of caches and VCS metadata
        dirs[:] = sorted(d for d in dirs if d not in PRUNED_DIRECTORIES)

        for file_name in sorted(files):
            if file_name in wanted:
                yield os.path.join(current, file_name)


def is_project_hcl_file(path: str, project_hcl_files: Iterable[str]) -> bool:
    """Tell whether path is one of the configured project-hcl files."""
    return os.path.basename(path) in set(project_hcl_files)


def matches_filters(path: str, filters: Sequence[str], root: str) -> bool:
    """
    Apply the user's path filters to a config file.

    A filter matches when it is a glob matching the file or its directory, or
    when the file lies beneath the filter path. Relative filters resolve
    against root. An empty filter list matches everything.

    Args:
        path: Absolute path of the config file.
        filters: Raw filter expressions.
        root: Repository root.

    Returns:
        bool: True when the file should be kept.
    """
    if not filters:
        return True

    path = os.path.abspath(path)
    directory = os.path.dirname(path)
    for raw in filters:
        pattern = make_absolute(raw, root)
        if fnmatch.fnmatchcase(path, pattern) or fnmatch.fnmatchcase(directory, pattern):
            return True
        if path == pattern or directory == pattern or path.startswith(pattern.rstrip(os.sep) + os.sep):
            return True
    return False
