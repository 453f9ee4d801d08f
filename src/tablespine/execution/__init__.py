"""Background execution: the single-worker async task queue."""

from tablespine.execution.async_queue import AsyncTaskQueue

__all__ = ["AsyncTaskQueue"]
