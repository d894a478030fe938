from __future__ import annotations

import concurrent.futures
import logging
import threading
from typing import Any, Callable, List, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BatchExecutorMixin:
    """
    A mixin for work that fans out over a thread pool.

    Work arrives already split into groups. Each group runs on one worker and
    its items are processed sequentially, so there is no work stealing.
    """

    def _run_partitioned(
        self,
        groups: Sequence[Sequence[T]],
        worker_fn: Callable[[T], Any],
        *,
        max_workers: int | None = None,
    ) -> List[List[Any]]:
        """
        Execute ``worker_fn`` over every item of every group.

        Args:
            groups: Work items, one inner sequence per worker.
            worker_fn: Called once per item.
            max_workers: Size of the thread pool; defaults to one per group.

        Returns:
            One list of results per group, in the same order as the input. The
            first exception raised by any worker propagates to the caller;
            every other worker stops before its next item.
        """
        groups = [list(group) for group in groups if group]
        if not groups:
            return []

        failed = threading.Event()

        def run_group(group: List[T]) -> List[Any]:
            results = []
            for item in group:
                if failed.is_set():
                    break
                try:
                    results.append(worker_fn(item))
                except Exception:
                    failed.set()
                    raise
            return results

        logger.debug("Dispatching %d groups to %d workers", len(groups), max_workers or len(groups))
        with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers or len(groups)) as executor:
            futures = [executor.submit(run_group, group) for group in groups]
            try:
                for future in concurrent.futures.as_completed(futures):
                    future.result()
            except Exception:
                failed.set()
                for future in futures:
                    future.cancel()
                raise
            return [future.result() for future in futures]
