from __future__ import annotations

"""
Parse Cache Service.

Memoizes parsed configuration documents keyed by absolute path and validated
by modification time. Parse failures are cached exactly like successes so a
broken file is only re-parsed once it changes on disk. Synchronization is
key-scoped: concurrent requests for the same file share one parse, while
unrelated files never wait on each other.
"""

import logging
import os
import threading
from typing import Dict, Optional

from tgatlantis.core.parsing.hcl_parser import HclDocument, ParserPool
from tgatlantis.domain.errors import ParseError
from tgatlantis.domain.graph_models import ParsedFile
from tgatlantis.infra.fs import get_mtime_ns

logger = logging.getLogger(__name__)


class ParseCache:
    """
    Thread-safe, mtime-validated cache of parsed configuration files.

    Owned by the generation engine; reset explicitly at run boundaries and on
    shutdown. Parses finishing after the attached cancellation event is set
    are returned to the caller but never stored.
    """

    def __init__(self, pool: Optional[ParserPool] = None) -> None:
        self._pool = pool or ParserPool()
        self._entries: Dict[str, ParsedFile] = {}
        self._key_locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._count_lock = threading.Lock()
        self._cancellation_event: Optional[threading.Event] = None
        self.parse_count = 0

    # --------------------------------------------------------------------------
    # PUBLIC API
    # --------------------------------------------------------------------------

    def attach_cancellation(self, event: Optional[threading.Event]) -> None:
        """Stop storing new entries once event is set."""
        self._cancellation_event = event

    def parse(self, path: str) -> HclDocument:
        """
        Return the parsed document for path, parsing only when needed.

        Args:
            path: File path (made absolute for the cache key).

        Returns:
            HclDocument: The cached or freshly parsed document.

        Raises:
            ParseError: The (possibly cached) parse failure for this file.
        """
        entry = self.get_entry(path)
        if entry.error is not None:
            raise entry.error
        return entry.document

    def get_entry(self, path: str) -> ParsedFile:
        """Return the valid cache entry for path, refreshing it if stale."""
        abs_path = os.path.abspath(path)
        current_mtime = get_mtime_ns(abs_path)

        entry = self._entries.get(abs_path)
        if entry is not None and entry.mtime_ns == current_mtime:
            return entry

        with self._lock_for(abs_path):
            # Another thread may have refreshed the entry while we waited
            current_mtime = get_mtime_ns(abs_path)
            entry = self._entries.get(abs_path)
            if entry is not None and entry.mtime_ns == current_mtime:
                return entry

            entry = self._parse_file(abs_path, current_mtime)
            event = self._cancellation_event
            if event is not None and event.is_set():
                logger.debug(f"ParseCache: Entry for {abs_path} not stored after cancellation")
                return entry
            self._entries[abs_path] = entry
            return entry

    def mtime_of(self, path: str) -> Optional[int]:
        """Modification time recorded for path (None when not cached)."""
        entry = self._entries.get(os.path.abspath(path))
        return entry.mtime_ns if entry else None

    def reset(self) -> None:
        """Drop every cached entry; per-key locks are kept for in-flight parses."""
        with self._registry_lock:
            self._entries.clear()
        logger.debug("ParseCache: All entries cleared.")

    def __len__(self) -> int:
        return len(self._entries)

    # --------------------------------------------------------------------------
    # PRIVATE HELPERS
    # --------------------------------------------------------------------------

    def _lock_for(self, key: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[key] = lock
            return lock

    def _parse_file(self, path: str, mtime_ns: Optional[int]) -> ParsedFile:
        """Read and parse a file, capturing any failure as a ParseError entry."""
        with self._count_lock:
            self.parse_count += 1

        try:
            with open(path, "r", encoding="utf-8") as f:
                content = f.read()
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"ParseCache: Cannot read {path}: {e}")
            return ParsedFile(path=path, mtime_ns=mtime_ns, error=ParseError(path, str(e)))

        try:
            with self._pool.acquire() as parser:
                document = parser.parse(content, path)
        except ParseError as e:
            logger.debug(f"ParseCache: Parse failure cached for {path}: {e.detail}")
            return ParsedFile(path=path, mtime_ns=mtime_ns, error=e)

        return ParsedFile(path=path, mtime_ns=mtime_ns, document=document)
