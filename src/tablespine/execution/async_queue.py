"""Single-worker FIFO task queue with backlog warnings.

The queue backs a database's asynchronous write/read path. It is
multi-producer and single-consumer:

* The first :meth:`AsyncTaskQueue.submit` lazily starts exactly one daemon
  worker thread. Submitting never blocks (the queue is unbounded).
* The worker blocks for at most ``poll_interval`` seconds waiting for a task,
  then drains everything queued at that moment into one batch and runs the
  batch in FIFO order.
* A batch larger than ``backlog_threshold`` logs one
  ``async_backlog_exceeded`` warning. Callers that need real backpressure
  read :attr:`AsyncTaskQueue.backlog_size` and throttle themselves.
* A failing task is logged and never stops the worker.
* :meth:`AsyncTaskQueue.wait` blocks until every submitted task has run; it
  returns immediately if the worker was never started.

Usage::

    q = AsyncTaskQueue("players", backlog_threshold=1000)
    q.submit(lambda: print("runs on the worker"))
    q.wait()
    q.stop()
"""

from __future__ import annotations

import queue
import threading
from collections.abc import Callable
from typing import Any

from tablespine.core.errors import ErrorCategory, TableSpineError, categorize_error, is_retryable
from tablespine.core.logging import get_logger

logger = get_logger(__name__)

Task = Callable[[], Any]


class AsyncTaskQueue:
    """FIFO queue drained by one dedicated background thread."""

    def __init__(
        self,
        name: str = "tablespine",
        backlog_threshold: int = 1000,
        poll_interval: float = 0.05,
    ):
        self.name = name
        self.backlog_threshold = backlog_threshold
        self.poll_interval = poll_interval
        self._queue: queue.Queue[Task] = queue.Queue()
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._stopping = threading.Event()
        self._stopped = False

    # -- properties --------------------------------------------------------

    @property
    def started(self) -> bool:
        return self._thread is not None

    @property
    def backlog_size(self) -> int:
        """Tasks queued but not yet picked up by the worker."""
        return self._queue.qsize()

    @property
    def worker_thread(self) -> threading.Thread | None:
        return self._thread

    def is_worker_thread(self) -> bool:
        return self._thread is not None and threading.current_thread() is self._thread

    # -- producer side -----------------------------------------------------

    def submit(self, task: Task) -> None:
        """Enqueue ``task``; starts the worker on first use."""
        with self._lock:
            if self._stopped:
                raise TableSpineError(
                    f"Async queue '{self.name}' is stopped",
                    category=ErrorCategory.INTERNAL,
                )
            if self._thread is None:
                self._thread = threading.Thread(
                    target=self._run, name=f"{self.name}-async", daemon=True
                )
                self._thread.start()
                logger.debug("async_worker_started", queue=self.name)
            self._queue.put(task)

    def wait(self) -> None:
        """Block until every task submitted so far has completed."""
        if self._thread is None:
            return
        if self.is_worker_thread():
            raise TableSpineError(
                f"wait() called from the '{self.name}' worker thread would deadlock",
                category=ErrorCategory.INTERNAL,
            )
        self._queue.join()

    def stop(self, timeout: float | None = None) -> None:
        """Drain outstanding tasks, then stop and join the worker. Idempotent."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
        thread = self._thread
        if thread is None:
            return
        if not self.is_worker_thread():
            self._queue.join()
        self._stopping.set()
        if thread is not threading.current_thread():
            thread.join(timeout)
        logger.debug("async_worker_stopped", queue=self.name)

    # -- consumer side -----------------------------------------------------

    def _drain(self) -> list[Task] | None:
        try:
            first = self._queue.get(timeout=self.poll_interval)
        except queue.Empty:
            return None
        batch = [first]
        while True:
            try:
                batch.append(self._queue.get_nowait())
            except queue.Empty:
                return batch

    def _run(self) -> None:
        while not self._stopping.is_set():
            batch = self._drain()
            if batch is None:
                continue
            if len(batch) > self.backlog_threshold:
                logger.warning(
                    "async_backlog_exceeded",
                    queue=self.name,
                    backlog=len(batch),
                    threshold=self.backlog_threshold,
                )
            for task in batch:
                try:
                    task()
                except Exception as e:
                    logger.exception(
                        "async_task_failed",
                        queue=self.name,
                        category=categorize_error(e).value,
                        retryable=is_retryable(e),
                    )
                finally:
                    self._queue.task_done()

    def __repr__(self) -> str:
        state = "stopped" if self._stopped else ("running" if self._thread else "idle")
        return f"AsyncTaskQueue({self.name!r}, {state}, backlog={self.backlog_size})"


__all__ = ["AsyncTaskQueue", "Task"]
