"""Serialized operation queue for the SQLite connection.

Every database call is submitted as a task with its own future. One
worker coroutine takes tasks in submission order and runs each on a
single dedicated thread, so exactly one call touches the connection at
a time.

Guarantees:
- FIFO: tasks run in the order they were submitted.
- Isolation: a failing task resolves only its own future; the worker
  keeps draining.
- No cancellation: once queued, a task runs to completion even if the
  submitting coroutine stops waiting for it.
"""

import asyncio
import functools
import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any, TypeVar

from relaxed_planner.constants import OPERATION_QUEUE_THREAD_NAME
from relaxed_planner.exceptions import StorageError

T = TypeVar("T")

logger = logging.getLogger(__name__)

_STOP = object()


class OperationQueue:
    """FIFO queue of blocking callables executed one at a time."""

    def __init__(self, thread_name: str = OPERATION_QUEUE_THREAD_NAME):
        self._thread_name = thread_name
        self._queue: asyncio.Queue[Any] | None = None
        self._worker: asyncio.Task[None] | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._closed = False
        self._completed = 0
        self._failed = 0

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> int:
        """Number of tasks waiting to run (excluding the one in progress)."""
        return self._queue.qsize() if self._queue is not None else 0

    @property
    def stats(self) -> dict[str, int]:
        return {"completed": self._completed, "failed": self._failed, "pending": self.pending}

    def _start(self) -> asyncio.Queue[Any]:
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=self._thread_name)
        queue: asyncio.Queue[Any] = asyncio.Queue()
        self._queue = queue
        self._worker = asyncio.get_running_loop().create_task(
            self._drain(queue), name=f"{self._thread_name}-worker"
        )
        logger.debug("Operation queue worker started")
        return queue

    async def submit(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Queue ``fn(*args, **kwargs)`` and wait for its result.

        Args:
            fn: Blocking callable to run on the queue thread.
            *args: Positional arguments for ``fn``.
            **kwargs: Keyword arguments for ``fn``.

        Returns:
            Whatever ``fn`` returns.

        Raises:
            StorageError: If the queue has been closed.
            Exception: Whatever ``fn`` raised, for this task only.
        """
        if self._closed:
            raise StorageError("Operation queue is closed", store="sqlite", operation="submit")
        queue = self._queue if self._queue is not None else self._start()

        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        # Retrieve the exception even when the submitter has gone away
        future.add_done_callback(_consume_exception)
        queue.put_nowait((functools.partial(fn, *args, **kwargs), future))
        return await asyncio.shield(future)

    async def _drain(self, queue: asyncio.Queue[Any]) -> None:
        loop = asyncio.get_running_loop()
        while True:
            item = await queue.get()
            try:
                if item is _STOP:
                    return
                call, future = item
                try:
                    result = await loop.run_in_executor(self._executor, call)
                except Exception as e:
                    self._failed += 1
                    logger.debug(f"Queued operation failed: {e}")
                    if not future.done():
                        future.set_exception(e)
                else:
                    self._completed += 1
                    if not future.done():
                        future.set_result(result)
            finally:
                queue.task_done()

    async def close(self) -> None:
        """Run every task already queued, then stop the worker and its thread.

        Closing twice is a no-op.
        """
        if self._closed:
            return
        self._closed = True
        if self._worker is None or self._queue is None:
            return
        self._queue.put_nowait(_STOP)
        await self._worker
        if self._executor is not None:
            self._executor.shutdown(wait=True)
        logger.debug(
            f"Operation queue stopped (completed={self._completed}, failed={self._failed})"
        )


def _consume_exception(future: asyncio.Future[Any]) -> None:
    if not future.cancelled():
        future.exception()
