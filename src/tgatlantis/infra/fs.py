from __future__ import annotations

"""
FileSystem Infrastructure Layer.

Provides cross-platform path manipulation and file metadata helpers used by
the caches and the dependency graph builder. Acts as an abstraction over the
'os' module to keep path semantics uniform across Windows and Unix-like
systems.
"""

import os
from typing import Optional

# -----------------------------------------------------------------------------
# PATH RESOLUTION API
# -----------------------------------------------------------------------------

def normalize_path(path: Optional[str], fallback: str) -> str:
    """
    Normalize a directory path string into an absolute filesystem path.

    Handles environment variable expansion ($VAR/%VAR%) and user home
    shortcuts (~/). Reverts to fallback if the input is empty or malformed.

    Args:
        path: Raw input path string.
        fallback: Default path to use if resolution fails.

    Returns:
        str: Normalized absolute path.
    """
    p = (path or "").strip()
    if not p:
        p = fallback
    try:
        p = os.path.expandvars(os.path.expanduser(p))
        return os.path.abspath(p)
    except Exception:
        return os.path.abspath(fallback)


def make_absolute(path: str, base_dir: str) -> str:
    """Resolve path against base_dir unless already absolute, then normalize."""
    if not os.path.isabs(path):
        path = os.path.join(base_dir, path)
    return os.path.normpath(path)


def to_slash(path: str) -> str:
    """Convert OS separators to forward slashes."""
    return path.replace(os.sep, "/") if os.sep != "/" else path


def relative_slash_path(path: str, start: str) -> str:
    """Express path relative to start using forward slashes."""
    return to_slash(os.path.relpath(path, start))


def is_external_path(candidate: str, root: str) -> bool:
    """
    Decide whether candidate lies outside root.

    The path is expressed relative to root and tested for a leading
    parent-directory segment. Plain prefix checks on absolute paths would
    treat '/repo-shared' as inside '/repo'.

    Args:
        candidate: Absolute path to classify.
        root: Absolute root directory.

    Returns:
        bool: True when candidate is not contained in root.
    """
    try:
        rel = os.path.relpath(os.path.abspath(candidate), os.path.abspath(root))
    except ValueError:
        # Different drives on Windows
        return True
    return rel == os.pardir or rel.startswith(os.pardir + os.sep)


# -----------------------------------------------------------------------------
# FILE METADATA API
# -----------------------------------------------------------------------------

def get_mtime_ns(path: str) -> Optional[int]:
    """
    Return the modification time of path in nanoseconds.

    Returns:
        Optional[int]: The mtime, or None when the file cannot be stat'ed.
    """
    try:
        return os.stat(path).st_mtime_ns
    except OSError:
        return None
