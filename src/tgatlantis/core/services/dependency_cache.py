from __future__ import annotations

"""
Dependency Cache and Request Coalescing Service.

Memoizes dependency resolution results keyed by (config path, flag
signature). Entries remember the modification time of every file read while
computing them and are discarded as soon as one of those files changes.
Concurrent misses for the same key are coalesced: one caller computes, the
others wait on the same future and receive the identical result or error.
"""

import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Dict, Hashable, Mapping, Optional, Tuple, TypeVar

from tgatlantis.domain.errors import CancellationError, ProjectScopedError
from tgatlantis.domain.graph_models import DependencyCacheEntry
from tgatlantis.infra.fs import get_mtime_ns

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Interval at which waiters re-check the cancellation event
_WAIT_POLL_SECONDS = 0.05


# ==============================================================================
# SINGLE-FLIGHT
# ==============================================================================

class RequestCoalescer:
    """
    Coalescing map from request key to an in-progress future.

    The first caller for a key stores a future, runs the computation and
    fulfills it; concurrent callers with the same key attach to that future.
    """

    def __init__(self) -> None:
        self._inflight: Dict[Hashable, Future] = {}
        self._lock = threading.Lock()
        self.executions = 0

    def do(
            self,
            key: Hashable,
            fn: Callable[[], T],
            cancellation_event: Optional[threading.Event] = None,
    ) -> Tuple[T, bool]:
        """
        Run fn once per concurrent key.

        Args:
            key: Request identity.
            fn: Computation to run when no identical request is in flight.
            cancellation_event: Observed while waiting on another caller.

        Returns:
            Tuple[T, bool]: (result, shared) where shared is True when the
                            result came from another caller's computation.

        Raises:
            CancellationError: If cancelled while waiting.
            Exception: Whatever fn raised, re-raised to every caller.
        """
        with self._lock:
            future = self._inflight.get(key)
            leader = future is None
            if leader:
                future = Future()
                self._inflight[key] = future
                self.executions += 1

        if not leader:
            return _wait_for(future, cancellation_event), True

        try:
            result = fn()
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result, False
        finally:
            with self._lock:
                self._inflight.pop(key, None)

    def forget(self) -> None:
        """Detach from every in-flight request (used on reset)."""
        with self._lock:
            self._inflight.clear()


def _wait_for(future: Future, cancellation_event: Optional[threading.Event]) -> Any:
    """Block on a coalesced future while honoring cancellation."""
    while True:
        if cancellation_event is not None and cancellation_event.is_set():
            raise CancellationError()
        try:
            return future.result(timeout=_WAIT_POLL_SECONDS)
        except FutureTimeoutError:
            continue


# ==============================================================================
# DEPENDENCY CACHE
# ==============================================================================

class DependencyCache:
    """
    Thread-safe cache of dependency resolutions with mtime validation.

    Both successful results and project-scoped errors are cached; any other
    exception propagates uncached. Once the attached cancellation event is
    set, nothing more is stored.
    """

    def __init__(self) -> None:
        self._entries: Dict[Hashable, DependencyCacheEntry] = {}
        self._lock = threading.Lock()
        self._coalescer = RequestCoalescer()
        self._cancellation_event: Optional[threading.Event] = None
        self._computations = 0

    @property
    def computations(self) -> int:
        """Number of computations actually executed."""
        with self._lock:
            return self._computations

    def attach_cancellation(self, event: Optional[threading.Event]) -> None:
        """Stop accepting writes once event is set (results of an aborted run)."""
        self._cancellation_event = event

    def get(self, key: Hashable) -> Optional[DependencyCacheEntry]:
        """Return the entry for key if present and still valid."""
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        if not _inputs_unchanged(entry.input_mtimes):
            logger.debug(f"DependencyCache: Stale entry dropped for {key!r}")
            with self._lock:
                if self._entries.get(key) is entry:
                    del self._entries[key]
            return None
        return entry

    def set(self, key: Hashable, entry: DependencyCacheEntry) -> bool:
        """Store an entry. Returns False when the write was refused."""
        if _is_cancelled(self._cancellation_event):
            logger.debug(f"DependencyCache: Write for {key!r} refused after cancellation")
            return False
        with self._lock:
            self._entries[key] = entry
        return True

    def get_or_compute(
            self,
            key: Hashable,
            compute: Callable[[], DependencyCacheEntry],
            cancellation_event: Optional[threading.Event] = None,
            owner: Optional[str] = None,
    ) -> DependencyCacheEntry:
        """
        Return a cached entry or compute it exactly once per concurrent key.

        Args:
            key: (config path, flag signature).
            compute: Builds the entry; may raise a ProjectScopedError, which is
                     turned into a cached error entry.
            cancellation_event: Observed while waiting on a coalesced request.
            owner: File the entry belongs to; a cached error is also dropped
                   when this file changes.

        Returns:
            DependencyCacheEntry: Identical object for every concurrent caller.
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        def _compute_and_store() -> DependencyCacheEntry:
            # A previous leader may have stored the entry after our first lookup
            stored = self.get(key)
            if stored is not None:
                return stored
            with self._lock:
                self._computations += 1
            try:
                entry = compute()
            except ProjectScopedError as e:
                inputs = {p: get_mtime_ns(p) for p in (e.path, owner) if p}
                entry = DependencyCacheEntry(dependencies=None, error=e, input_mtimes=inputs)
            if not _is_cancelled(cancellation_event):
                self.set(key, entry)
            return entry

        entry, _ = self._coalescer.do(key, _compute_and_store, cancellation_event)
        return entry

    def reset(self) -> None:
        """Drop every entry and detach from in-flight requests."""
        with self._lock:
            self._entries.clear()
        self._coalescer.forget()
        logger.debug("DependencyCache: All entries cleared.")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def _is_cancelled(event: Optional[threading.Event]) -> bool:
    return event is not None and event.is_set()


def _inputs_unchanged(input_mtimes: Mapping[str, Optional[int]]) -> bool:
    return all(get_mtime_ns(path) == mtime for path, mtime in input_mtimes.items())
