from __future__ import annotations

"""
Bounded Worker Pool.

Runs one task per item on a ThreadPoolExecutor while watching a shared
cancellation event. The first exception raised by a task (or a cancellation
request) stops dispatching: queued futures are cancelled, running tasks are
awaited, and only then is the exception re-raised to the caller.
"""

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, Generic, List, Optional, Sequence, Tuple, TypeVar

from tgatlantis.domain.errors import CancellationError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

# Interval at which the dispatcher re-checks the cancellation event
_POLL_SECONDS = 0.1


class WorkerPool(Generic[T, R]):
    """
    Fixed-width pool for independent resolution tasks.

    Attributes:
        max_workers: Pool width.
        thread_name_prefix: Prefix of worker thread names.
    """

    def __init__(
            self,
            max_workers: int,
            cancellation_event: Optional[threading.Event] = None,
            thread_name_prefix: str = "ResolutionWorker",
    ) -> None:
        self.max_workers = max(1, int(max_workers))
        self.thread_name_prefix = thread_name_prefix
        self._cancellation_event = cancellation_event or threading.Event()

    @property
    def cancellation_event(self) -> threading.Event:
        return self._cancellation_event

    def run(self, fn: Callable[[T], R], items: Sequence[T]) -> List[Tuple[T, R]]:
        """
        Apply fn to every item.

        Args:
            fn: Task body. Should itself honor the cancellation event.
            items: Work items.

        Returns:
            List[Tuple[T, R]]: (item, result) pairs in input order.

        Raises:
            CancellationError: The event was set before every task finished.
            Exception: The first exception raised by a task.
        """
        if not items:
            return []

        results: Dict[int, R] = {}
        executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix=self.thread_name_prefix
        )
        try:
            futures: Dict[Future, int] = {
                executor.submit(self._guarded, fn, item): index
                for index, item in enumerate(items)
            }
            pending = set(futures)
            while pending:
                if self._cancellation_event.is_set():
                    raise CancellationError()

                done, pending = wait(pending, timeout=_POLL_SECONDS, return_when=FIRST_COMPLETED)
                for future in done:
                    # Re-raises the task's exception and aborts the batch
                    results[futures[future]] = future.result()
        except BaseException:
            self._cancellation_event.set()
            # Queued tasks are dropped; running ones finish before we return
            executor.shutdown(wait=True, cancel_futures=True)
            raise
        else:
            executor.shutdown(wait=True)

        return [(items[i], results[i]) for i in range(len(items))]

    def _guarded(self, fn: Callable[[T], R], item: T) -> R:
        if self._cancellation_event.is_set():
            raise CancellationError()
        return fn(item)
