"""A fixed-size pool of worker threads that runs batches of tasks."""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable, Iterable

log = logging.getLogger(__name__)


class _Batch:
    """Tracks completion of one submitted batch."""

    def __init__(self, count: int) -> None:
        self._remaining = count
        self._errors: list[Exception] = []
        self._condition = threading.Condition()

    def finish(self, error: Exception | None) -> None:
        with self._condition:
            if error is not None:
                self._errors.append(error)
            self._remaining -= 1
            if self._remaining == 0:
                self._condition.notify_all()

    def wait(self) -> list[Exception]:
        with self._condition:
            self._condition.wait_for(lambda: self._remaining == 0)
            return list(self._errors)


class ThreadPool:
    """Worker threads that execute batches of callables and wait for them."""

    def __init__(self, num_threads: int) -> None:
        if num_threads < 0:
            raise ValueError("ThreadPool needs a non-negative number of threads.")
        if num_threads == 0:
            log.error("ThreadPool created with 0 threads, defaulting to 1.")
            num_threads = 1
        self._tasks: queue.SimpleQueue = queue.SimpleQueue()
        self._lock = threading.Lock()
        self._stopped = False
        self._workers = [
            threading.Thread(target=self._work, name=f"threadpool-worker-{i}", daemon=True)
            for i in range(num_threads)
        ]
        for worker in self._workers:
            worker.start()

    @property
    def num_threads(self) -> int:
        """Number of worker threads."""
        return len(self._workers)

    def _work(self) -> None:
        while True:
            item = self._tasks.get()
            if item is None:
                return
            task, batch = item
            error: Exception | None = None
            try:
                task()
            except Exception as exc:
                error = exc
            finally:
                batch.finish(error)

    def run_batch(self, tasks: Iterable[Callable[[], object]]) -> None:
        """Run every task on the pool and block until all have finished.

        The first exception raised by a task is re-raised once the batch is done.
        """
        tasks = list(tasks)
        if not tasks:
            return
        batch = _Batch(len(tasks))
        with self._lock:
            if self._stopped:
                raise RuntimeError("run_batch called on stopped ThreadPool")
            for task in tasks:
                self._tasks.put((task, batch))
        errors = batch.wait()
        if errors:
            raise errors[0]

    def shutdown(self) -> None:
        """Finish queued work, then stop and join every worker."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            for _ in self._workers:
                self._tasks.put(None)
        for worker in self._workers:
            worker.join()

    def __enter__(self) -> ThreadPool:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()