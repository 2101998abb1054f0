"""A fixed-size pool of worker threads fed from a shared task queue."""

from __future__ import annotations

import os
import threading
from collections import deque
from concurrent.futures import Future
from typing import Any, Callable


class PoolStoppedError(RuntimeError):
    """Raised when a task is submitted to a pool that has been shut down."""


class ThreadPool:
    """Runs submitted callables on a fixed set of worker threads.

    On shutdown the workers finish every task already queued before exiting.
    """

    def __init__(self, num_threads: int | None = None) -> None:
        if num_threads is None:
            num_threads = os.cpu_count() or 1
        if num_threads < 0:
            raise ValueError("num_threads must not be negative")
        self._tasks: deque[Callable[[], None]] = deque()
        self._condition = threading.Condition()
        self._stopped = False
        self._workers = [
            threading.Thread(target=self._work, daemon=True) for _ in range(num_threads)
        ]
        for worker in self._workers:
            worker.start()

    def _work(self) -> None:
        while True:
            with self._condition:
                self._condition.wait_for(lambda: self._stopped or self._tasks)
                if self._stopped and not self._tasks:
                    return
                task = self._tasks.popleft()
            task()

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        """Queue ``fn(*args, **kwargs)`` and return a future for its result."""
        future: Future = Future()

        def run() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                result = fn(*args, **kwargs)
            except BaseException as exc:
                future.set_exception(exc)
            else:
                future.set_result(result)

        with self._condition:
            if self._stopped:
                raise PoolStoppedError("submit on stopped ThreadPool")
            self._tasks.append(run)
            self._condition.notify()
        return future

    def thread_count(self) -> int:
        """Number of worker threads in the pool."""
        return len(self._workers)

    def shutdown(self) -> None:
        """Stop accepting tasks, run the queued ones and join the workers."""
        with self._condition:
            self._stopped = True
            self._condition.notify_all()
        for worker in self._workers:
            worker.join()

    def __enter__(self) -> ThreadPool:
        return self

    def __exit__(self, *args: Any) -> None:
        self.shutdown()