from __future__ import annotations

"""
Domain Error Taxonomy.

Distinguishes failures that are scoped to a single file or project (and can
be reported next to that project) from run-level failures that abort the
whole generation.
"""

from typing import Optional, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from tgatlantis.domain.locals_models import ResolvedLocals


class TgAtlantisError(Exception):
    """Base class for every error raised by the resolution engine."""


# -----------------------------------------------------------------------------
# PROJECT-SCOPED ERRORS
# -----------------------------------------------------------------------------

class ProjectScopedError(TgAtlantisError):
    """
    Failure attributable to a single configuration file or project.

    Attributes:
        path: Absolute path of the file the error belongs to.
    """

    def __init__(self, message: str, path: str = "") -> None:
        super().__init__(message)
        self.path = path


class ParseError(ProjectScopedError):
    """Malformed configuration syntax (or an unreadable file)."""

    def __init__(self, path: str, detail: str) -> None:
        super().__init__(f"Failed to parse {path}: {detail}", path)
        self.detail = detail


class StructuralError(ProjectScopedError):
    """Invalid declaration shape, e.g. more than one unlabeled include."""


class LocalsValueError(ProjectScopedError):
    """
    A recognized local holds a value of the wrong type.

    The partially-populated result accumulated before the failure is kept on
    the exception for diagnostics.
    """

    def __init__(
            self,
            message: str,
            position: int,
            partial: Optional["ResolvedLocals"] = None,
            path: str = "",
    ) -> None:
        super().__init__(message, path)
        self.position = position
        self.partial = partial


class DependencyResolutionError(ProjectScopedError):
    """An include or dependency target cannot be resolved or parsed."""


# -----------------------------------------------------------------------------
# RUN-LEVEL ERRORS
# -----------------------------------------------------------------------------

class CycleError(TgAtlantisError):
    """A circular dependency prevents execution-order layering."""

    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle = list(cycle)
        super().__init__(f"Dependency cycle detected: {' -> '.join(self.cycle)}")


class CancellationError(TgAtlantisError):
    """The run was aborted by an external shutdown request."""

    def __init__(self, message: str = "Operation cancelled by shutdown signal.") -> None:
        super().__init__(message)
