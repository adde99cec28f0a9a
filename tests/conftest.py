from __future__ import annotations

"""
Global Pytest Configuration and Fixtures.

1. Puts the 'src' directory on sys.path so 'tgatlantis' imports without
   being installed.
2. Provides helpers that lay out Terragrunt trees inside tmp_path and build
. Stops the logging listener after every test so queued records never
   reach an already closed capture stream.
"""

import os
import sys
import textwrap
from pathlib import Path
from typing import Any, Callable, Dict, Iterator

import pytest

# -----------------------------------------------------------------------------
# Path Configuration
# -----------------------------------------------------------------------------
_SRC_PATH = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src"))
if _SRC_PATH not in sys.path:
    sys.path.insert(0, _SRC_PATH)

from tgatlantis.domain.config import GenerateConfig  # noqa: E402
from tgatlantis.infra.logging import shutdown_logging  # noqa: E402


# -----------------------------------------------------------------------------
# Shared Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _drain_logging(capsys: pytest.CaptureFixture) -> Iterator[None]:
    """Stop the log listener while the captured stderr is still open."""
    yield
    shutdown_logging()


@pytest.fixture
def write_tree(tmp_path: Path) -> Callable[[Dict[str, str]], Path]:
    """
    Return a helper that writes {relative path: content} under tmp_path.

    Content is dedented and always ends with a newline (the HCL grammar
    expects one).
    """

    def _write(files: Dict[str, str]) -> Path:
        for rel, content in files.items():
            target = tmp_path / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            body = textwrap.dedent(content).strip("\n") + "\n"
            target.write_text(body, encoding="utf-8")
        return tmp_path

    return _write


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., GenerateConfig]:
    """Return a factory for GenerateConfig rooted at tmp_path."""

    def _make(**overrides: Any) -> GenerateConfig:
        values: Dict[str, Any] = {"root": str(tmp_path), "num_executors": 4}
        values.update(overrides)
        return GenerateConfig.from_dict(values)

    return _make
