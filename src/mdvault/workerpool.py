"""Bounded worker pool and the parallel file processor built on it.

The pool owns a fixed set of threads fed from a bounded task queue; a
feeder blocks when the queue is full, which is the backpressure mechanism.
Results come back on a second bounded queue and are returned in input
order. Pools must be shut down explicitly (or used as context managers).

Small batches skip the pool entirely: below ``workers * 2`` items the
``ParallelFileProcessor`` runs tasks sequentially in the calling thread.
"""

from __future__ import annotations

import logging
import os
import queue
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from .config import MAX_WORKERS, QUEUE_SIZE_FACTOR, SEQUENTIAL_THRESHOLD_FACTOR
from .errors import OperationCancelledError, TaskError

log = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

_STOP = object()


def effective_workers(configured: int | None = None) -> int:
    """Pool size: min(configured, CPU count, MAX_WORKERS), at least 1.

    A missing or non-positive ``configured`` means "use the CPU count".
    """
    cpu = os.cpu_count() or 1
    wanted = configured if configured and configured > 0 else cpu
    return max(1, min(wanted, cpu, MAX_WORKERS))


class CancelToken:
    """Cooperative cancellation shared by every phase of one operation.

    Args:
        timeout: Optional deadline in seconds from creation.
    """

    def __init__(self, timeout: float | None = None):
        self._event = threading.Event()
        self._reason = "operation cancelled"
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self, reason: str = "operation cancelled") -> None:
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._reason = "deadline exceeded"
            self._event.set()
            return True
        return False

    @property
    def reason(self) -> str:
        return self._reason

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None without one."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self, partial: Any = None) -> None:
        """
        Raises:
            OperationCancelledError: If cancelled or past the deadline.
        """
        if self.cancelled:
            raise OperationCancelledError(self._reason, partial=partial)


@dataclass
class TaskResult(Generic[T]):
    """Outcome of one task. Exactly one of ``value``/``error`` is meaningful."""

    index: int
    value: T | None = None
    error: BaseException | None = None
    duration: float = 0.0
    item: Any = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class PoolStats:
    submitted: int = 0
    completed: int = 0
    failed: int = 0
    busy_seconds: float = 0.0
    batches: int = 0


class WorkerPool:
    """Fixed-size thread pool with bounded task and result queues.

    Args:
        workers: Requested size; capped by CPU count and MAX_WORKERS.
        queue_size: Task queue capacity, default ``workers * 10``.
        name: Thread name prefix.
    """

    def __init__(self, workers: int | None = None, queue_size: int | None = None, name: str = "mdvault-worker"):
        self.workers = effective_workers(workers)
        self.queue_size = queue_size or self.workers * QUEUE_SIZE_FACTOR
        self.stats = PoolStats()

        self._tasks: queue.Queue = queue.Queue(maxsize=self.queue_size)
        self._results: queue.Queue = queue.Queue(maxsize=self.queue_size)
        self._batch_lock = threading.Lock()
        self._closed = False

        # Daemon threads; callers still own shutdown().
        self._threads = [
            threading.Thread(target=self._run, name=f"{name}-{i}", daemon=True)
            for i in range(self.workers)
        ]
        for thread in self._threads:
            thread.start()
        log.debug("Started worker pool with %d worker(s), queue size %d", self.workers, self.queue_size)

    def __enter__(self) -> WorkerPool:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    @property
    def closed(self) -> bool:
        return self._closed

    def _run(self) -> None:
        while True:
            job = self._tasks.get()
            try:
                if job is _STOP:
                    return
                index, fn, cancel = job
                started = time.monotonic()
                if cancel is not None and cancel.cancelled:
                    result = TaskResult(index, error=OperationCancelledError(cancel.reason))
                else:
                    try:
                        result = TaskResult(index, value=fn())
                    except Exception as e:
                        result = TaskResult(index, error=e)
                result.duration = time.monotonic() - started
                self._results.put(result)
            finally:
                self._tasks.task_done()

    def _feed(self, tasks: Sequence[Callable[[], T]], cancel: CancelToken | None) -> None:
        for index, fn in enumerate(tasks):
            self._tasks.put((index, fn, cancel))

    def process_batch(
        self,
        tasks: Sequence[Callable[[], T]],
        cancel: CancelToken | None = None,
    ) -> list[TaskResult[T]]:
        """Run every task and block until all have reported.

        Tasks that have not started when ``cancel`` fires report an
        ``OperationCancelledError`` instead of running.

        Returns:
            One TaskResult per task, in input order.

        Raises:
            RuntimeError: If the pool has been shut down.
        """
        if self._closed:
            raise RuntimeError("WorkerPool has been shut down")

        with self._batch_lock:
            self.stats.batches += 1
            self.stats.submitted += len(tasks)

            feeder = threading.Thread(target=self._feed, args=(tasks, cancel), daemon=True)
            feeder.start()

            results: list[TaskResult[T] | None] = [None] * len(tasks)
            for _ in range(len(tasks)):
                result = self._results.get()
                results[result.index] = result
                self.stats.busy_seconds += result.duration
                if result.ok:
                    self.stats.completed += 1
                else:
                    self.stats.failed += 1

            feeder.join()
        return [r for r in results if r is not None]

    def shutdown(self, timeout: float | None = None) -> None:
        """Let queued work drain, then stop every worker.

        Args:
            timeout: Seconds to wait overall; None waits indefinitely.

        Raises:
            TimeoutError: If workers are still busy when the timeout expires.
        """
        if self._closed:
            return
        self._closed = True

        deadline = time.monotonic() + timeout if timeout is not None else None

        def remaining() -> float | None:
            return None if deadline is None else max(0.0, deadline - time.monotonic())

        try:
            for _ in self._threads:
                self._tasks.put(_STOP, timeout=remaining())
        except queue.Full as e:
            raise TimeoutError(f"Worker pool did not drain within {timeout}s") from e

        for thread in self._threads:
            thread.join(remaining())
        alive = [t.name for t in self._threads if t.is_alive()]
        if alive:
            raise TimeoutError(f"Worker pool did not stop within {timeout}s: {', '.join(alive)}")
        log.debug(
            "Worker pool stopped: %d completed, %d failed", self.stats.completed, self.stats.failed
        )


class ParallelFileProcessor:
    """Apply a function to many items, in parallel when the batch is large enough.

    Args:
        workers: Requested worker count (see ``effective_workers``).
        stop_on_error: Raise ``TaskError`` for the first failed item instead
            of returning failures in the results.
    """

    def __init__(self, workers: int | None = None, stop_on_error: bool = False):
        self.workers = effective_workers(workers)
        self.stop_on_error = stop_on_error

    def should_parallelize(self, count: int) -> bool:
        return self.workers > 1 and count >= self.workers * SEQUENTIAL_THRESHOLD_FACTOR

    def process(
        self,
        items: Sequence[T],
        fn: Callable[[T], R],
        cancel: CancelToken | None = None,
        label: Callable[[T], str] = str,
    ) -> list[TaskResult[R]]:
        """Run ``fn`` over ``items``.

        Returns:
            One TaskResult per item in input order, with ``item`` set.

        Raises:
            OperationCancelledError: If ``cancel`` fires; ``partial`` holds the
                successful results gathered so far.
            TaskError: On the first failure when stop_on_error is set.
        """
        if self.should_parallelize(len(items)):
            results = self._process_parallel(items, fn, cancel)
        else:
            results = self._process_sequential(items, fn, cancel, label)

        if cancel is not None and cancel.cancelled:
            raise OperationCancelledError(cancel.reason, partial=[r for r in results if r.ok])

        if self.stop_on_error:
            for result in results:
                if result.error is not None:
                    raise TaskError(label(result.item), result.error) from result.error
        return results

    def _process_sequential(
        self,
        items: Sequence[T],
        fn: Callable[[T], R],
        cancel: CancelToken | None,
        label: Callable[[T], str],
    ) -> list[TaskResult[R]]:
        results: list[TaskResult[R]] = []
        for index, item in enumerate(items):
            if cancel is not None:
                cancel.raise_if_cancelled(partial=[r for r in results if r.ok])
            started = time.monotonic()
            try:
                result = TaskResult(index, value=fn(item), item=item)
            except OperationCancelledError:
                raise
            except Exception as e:
                if self.stop_on_error:
                    raise TaskError(label(item), e) from e
                result = TaskResult(index, error=e, item=item)
            result.duration = time.monotonic() - started
            results.append(result)
        return results

    def _process_parallel(
        self,
        items: Sequence[T],
        fn: Callable[[T], R],
        cancel: CancelToken | None,
    ) -> list[TaskResult[R]]:
        log.debug("Processing %d item(s) with %d worker(s)", len(items), self.workers)
        with WorkerPool(self.workers) as pool:
            results = pool.process_batch([_bind(fn, item) for item in items], cancel)
        for result, item in zip(results, items):
            result.item = item
        return results


def _bind(fn: Callable[[T], R], item: T) -> Callable[[], R]:
    return lambda: fn(item)
