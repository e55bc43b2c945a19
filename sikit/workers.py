"""A fixed-size pool of worker threads fed through a bounded job queue."""

from __future__ import annotations

import queue
import threading
from abc import ABC, abstractmethod
from typing import Any, Iterator

_CLOSED = object()


class _WaitGroup:
    """Counts outstanding tasks and lets callers block until none remain."""

    def __init__(self) -> None:
        self._count = 0
        self._cond = threading.Condition()

    def add(self, delta: int = 1) -> None:
        with self._cond:
            self._count += delta
            if self._count < 0:
                raise ValueError("negative wait group counter")
            if self._count == 0:
                self._cond.notify_all()

    def done(self) -> None:
        self.add(-1)

    def wait(self) -> None:
        with self._cond:
            self._cond.wait_for(lambda: self._count == 0)


class WorkerJob(ABC):
    """A unit of work run by a WorkerPool."""

    @abstractmethod
    def execute(self) -> Any:
        """Run the job and return its result; raise to report an error."""


class WorkerPool:
    """Runs queued jobs on ``num_workers`` threads.

    With ``collect`` set, each job yields one entry on ``results()`` and one
    on ``errors()`` (None where the job had no result or raised nothing).
    """

    def __init__(self, num_workers: int, queue_size: int, collect: bool = False) -> None:
        if num_workers < 0 or queue_size < 0:
            raise ValueError("num_workers and queue_size must not be negative")
        size = max(queue_size, 1)
        self._num_workers = num_workers
        self._jobs: queue.Queue = queue.Queue(maxsize=size)
        self._results: queue.Queue | None = queue.Queue(maxsize=size) if collect else None
        self._errors: queue.Queue | None = queue.Queue(maxsize=size) if collect else None
        self._jobs_wg = _WaitGroup()
        self._results_wg = _WaitGroup()
        self._errors_wg = _WaitGroup()
        self._lock = threading.Lock()
        self._closed = False
        self._started = 0

    def _run(self) -> None:
        try:
            while True:
                job = self._jobs.get()
                if job is _CLOSED:
                    return
                if job is None:
                    continue
                try:
                    result, error = job.execute(), None
                except Exception as exc:
                    result, error = None, exc
                if self._errors is not None:
                    self._errors.put(error)
                if self._results is not None:
                    self._results.put(result)
        finally:
            self._jobs_wg.done()

    def start(self) -> None:
        """Start the worker threads."""
        with self._lock:
            self._jobs_wg.add(self._num_workers)
            self._started += self._num_workers
        for _ in range(self._num_workers):
            threading.Thread(target=self._run, daemon=True).start()

    def wait(self) -> None:
        """Block until workers and registered consumers have finished."""
        self._jobs_wg.wait()
        self._results_wg.wait()
        self._errors_wg.wait()

    def start_and_wait(self) -> None:
        self.start()
        self.wait()

    def finish(self) -> None:
        """Close the job queue, let workers drain it, then close the outputs."""
        with self._lock:
            if self._closed:
                raise RuntimeError("worker pool is already finished")
            self._closed = True
            for _ in range(self._started):
                self._jobs.put(_CLOSED)
        self._jobs_wg.wait()
        if self._errors is not None:
            self._errors.put(_CLOSED)
        self._errors_wg.wait()
        if self._results is not None:
            self._results.put(_CLOSED)
        self._results_wg.wait()

    def queue(self, job: WorkerJob | None) -> None:
        """Add a job, blocking while the queue is full."""
        with self._lock:
            if self._closed:
                raise RuntimeError("cannot queue on a finished worker pool")
            self._jobs.put(job)

    def queue_ignore(self, job: WorkerJob | None) -> None:
        """Add a job if there is room; drop it silently otherwise."""
        with self._lock:
            if self._closed:
                raise RuntimeError("cannot queue on a finished worker pool")
            try:
                self._jobs.put_nowait(job)
            except queue.Full:
                pass

    @staticmethod
    def _drain(source: queue.Queue) -> Iterator[Any]:
        while True:
            item = source.get()
            if item is _CLOSED:
                source.put(_CLOSED)
                return
            yield item

    def results(self) -> Iterator[Any]:
        """Iterate over job results until the pool is finished."""
        if self._results is None:
            raise RuntimeError("this worker pool does not collect results")
        return self._drain(self._results)

    def errors(self) -> Iterator[BaseException | None]:
        """Iterate over job errors until the pool is finished."""
        if self._errors is None:
            raise RuntimeError("this worker pool does not collect errors")
        return self._drain(self._errors)

    def results_ready(self) -> None:
        self._results_wg.add(1)

    def results_done(self) -> None:
        self._results_wg.done()

    def errors_ready(self) -> None:
        self._errors_wg.add(1)

    def errors_done(self) -> None:
        self._errors_wg.done()