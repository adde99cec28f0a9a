from __future__ import annotations

"""
HCL Parsing Service.

Wraps the python-hcl2 library (native syntax) and the json module (JSON
syntax) behind reusable parser instances handed out by a ParserPool. Parsed
output is exposed through HclDocument, a read-only view that understands the
block layout produced by hcl2 so callers never index raw dictionaries.
"""

import json
import logging
import queue
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

import hcl2

from tgatlantis.domain.errors import ParseError

logger = logging.getLogger(__name__)

# Marker key newer hcl2 releases add to block bodies
_BLOCK_MARKER = "__is_block__"

# Top-level keys that are blocks (rather than attributes) in JSON dialects
_JSON_BLOCK_TYPES = (
    "locals", "include", "dependency", "dependencies", "terraform", "module",
)


# ==============================================================================
# DOCUMENT VIEW
# ==============================================================================

class HclDocument:
    """
    Read-only view over a parsed configuration body.

    hcl2 renders every block type as a list of dictionaries; labeled blocks
    nest one dictionary level per label. The accessors below hide that.
    """

    def __init__(self, path: str, body: Dict[str, Any]) -> None:
        self.path = path
        self.body = body

    def attribute(self, name: str, default: Any = None) -> Any:
        """Return a top-level attribute value."""
        return self.body.get(name, default)

    def raw_blocks(self, block_type: str) -> List[Dict[str, Any]]:
        """Return the raw bodies recorded under a block type."""
        value = self.body.get(block_type)
        if value is None:
            return []
        if isinstance(value, dict):
            return [value]
        return [b for b in value if isinstance(b, dict)]

    def blocks(self, block_type: str) -> List[Dict[str, Any]]:
        """Return the bodies of unlabeled blocks of block_type."""
        return [_strip_marker(b) for b in self.raw_blocks(block_type)]

    def labeled_blocks(self, block_type: str) -> List[Tuple[str, Dict[str, Any]]]:
        """Return (label, body) pairs for single-label blocks of block_type."""
        out: List[Tuple[str, Dict[str, Any]]] = []
        for raw in self.raw_blocks(block_type):
            for label, body in raw.items():
                if label == _BLOCK_MARKER:
                    continue
                if isinstance(body, list):
                    out.extend((label, _strip_marker(b)) for b in body if isinstance(b, dict))
                elif isinstance(body, dict):
                    out.append((label, _strip_marker(body)))
        return out


def _strip_marker(body: Dict[str, Any]) -> Dict[str, Any]:
    if _BLOCK_MARKER in body:
        return {k: v for k, v in body.items() if k != _BLOCK_MARKER}
    return body


# ==============================================================================
# PARSER & POOL
# ==============================================================================

class HclParser:
    """
    A reusable parser instance.

    Converts any exception raised by the underlying libraries into a
    ParseError identifying the file.
    """

    def __init__(self) -> None:
        self.parsed_files = 0

    def parse(self, content: str, path: str) -> HclDocument:
        """
        Parse configuration content.

        Args:
            content: Raw file content.
            path: Absolute file path (selects the dialect, used in errors).

        Returns:
            HclDocument: The parsed document.

        Raises:
            ParseError: On any syntax problem or internal parser failure.
        """
        self.parsed_files += 1
        try:
            if path.endswith(".json"):
                body = _normalize_json_body(json.loads(content))
            else:
                body = hcl2.loads(content)
        except Exception as e:
            raise ParseError(path, f"{type(e).__name__}: {e}") from e

        if not isinstance(body, dict):
            raise ParseError(path, f"expected an object body, got {type(body).__name__}")
        return HclDocument(path, body)


def _normalize_json_body(body: Any) -> Any:
    """Reshape a JSON configuration so block values match the hcl2 layout."""
    if not isinstance(body, dict):
        return body
    out = dict(body)
    for key in _JSON_BLOCK_TYPES:
        value = out.get(key)
        if isinstance(value, dict):
            out[key] = [value]
    return out


class ParserPool:
    """
    Thread-safe pool of HclParser instances.

    Parsers are created lazily and handed back on release, so the pool never
    holds more instances than the peak number of concurrent parses.
    """

    def __init__(self, max_idle: Optional[int] = None) -> None:
        self._idle: "queue.LifoQueue[HclParser]" = queue.LifoQueue(maxsize=max_idle or 0)
        self._lock = threading.Lock()
        self.created = 0

    def get(self) -> HclParser:
        """Take an idle parser or create a new one."""
        try:
            return self._idle.get_nowait()
        except queue.Empty:
            with self._lock:
                self.created += 1
            return HclParser()

    def put(self, parser: HclParser) -> None:
        """Return a parser to the pool (dropped if the pool is full)."""
        try:
            self._idle.put_nowait(parser)
        except queue.Full:
            pass

    @contextmanager
    def acquire(self) -> Iterator[HclParser]:
        """Scoped acquisition: the parser is returned even if parsing raises."""
        parser = self.get()
        try:
            yield parser
        finally:
            self.put(parser)
