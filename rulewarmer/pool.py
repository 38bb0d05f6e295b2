"""Bounded worker pool draining a shared FIFO of warm-up jobs."""

from __future__ import annotations

import logging
import queue
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Generic, Optional, Protocol, TypeVar

import anyio

from .progress import ProgressCounters

logger = logging.getLogger("rulewarmer.pool")


class Job(Protocol):
    """A zero-argument unit of asynchronous work."""

    async def run(self) -> Optional[str]:  # pragma: no cover - protocol definition
        """Execute the job and return an optional progress message."""


JobT = TypeVar("JobT", bound=Job)


class JobQueue(Generic[JobT]):
    """Unbounded FIFO safe for concurrent producers and consumers."""

    def __init__(self, counters: ProgressCounters | None = None) -> None:
        self._items: "queue.SimpleQueue[JobT]" = queue.SimpleQueue()
        self._counters = counters

    def enqueue(self, job: JobT) -> None:
        self._items.put(job)
        if self._counters is not None:
            self._counters.job_enqueued()

    def try_dequeue(self) -> Optional[JobT]:
        """Return the next job, or ``None`` when the queue is empty."""

        try:
            return self._items.get_nowait()
        except queue.Empty:
            return None

    def __len__(self) -> int:
        return self._items.qsize()


@dataclass(frozen=True)
class BatchSummary:
    """Outcome of draining the queue."""

    total: int
    completed: int
    failed: int
    timed_out: bool
    elapsed: timedelta

    @property
    def succeeded(self) -> bool:
        return not self.timed_out and self.failed == 0


class WorkerPool:
    """Run ``workers`` concurrent loops that each pop jobs until none remain."""

    def __init__(self, job_queue: JobQueue, counters: ProgressCounters, *, workers: int) -> None:
        if workers < 1:
            raise ValueError("Worker count must be at least 1")
        self._queue = job_queue
        self._counters = counters
        self._workers = workers

    @property
    def workers(self) -> int:
        return self._workers

    async def run(self, *, deadline: float | None = None) -> BatchSummary:
        """Drain the queue and return once every worker has exited.

        When ``deadline`` seconds elapse first, the remaining work is
        cancelled and the summary is flagged as timed out.
        """

        start_counts = self._counters.snapshot()
        total = start_counts.queued + start_counts.completed
        started = time.perf_counter()

        with anyio.move_on_after(deadline) as scope:
            async with anyio.create_task_group() as task_group:
                for index in range(self._workers):
                    self._counters.worker_started()
                    task_group.start_soon(self._worker, index, name=f"warm-worker-{index}")
                self._counters.report("Worker threads created.")

        timed_out = scope.cancelled_caught
        if timed_out:
            logger.error(
                "Batch deadline of %s seconds expired with %d job(s) unfinished",
                deadline,
                self._counters.snapshot().queued,
            )

        finished = self._counters.snapshot()
        return BatchSummary(
            total=total,
            completed=finished.completed - start_counts.completed,
            failed=finished.failed - start_counts.failed,
            timed_out=timed_out,
            elapsed=timedelta(seconds=time.perf_counter() - started),
        )

    async def _worker(self, index: int) -> None:
        try:
            while True:
                job = self._queue.try_dequeue()
                if job is None:
                    break
                try:
                    message = await job.run()
                except Exception:
                    snapshot = self._counters.job_failed()
                    logger.exception("Worker %d: job %s failed %s", index, job, snapshot)
                    continue
                snapshot = self._counters.job_succeeded()
                if message:
                    self._counters.report(message, snapshot)
        finally:
            self._counters.worker_finished()
        logger.debug("Worker %d found the queue empty and exited", index)


__all__ = ["BatchSummary", "Job", "JobQueue", "WorkerPool"]
