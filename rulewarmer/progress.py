"""Shared progress counters for the worker pool."""

from __future__ import annotations

import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class ProgressSnapshot:
    """Point-in-time view of the counters."""

    active_workers: int
    queued: int
    completed: int
    failed: int = 0

    def __str__(self) -> str:
        return f"({self.active_workers}, {self.queued}, {self.completed})"


class ProgressCounters:
    """Counters shared by every worker.

    ``queued`` counts jobs that have not finished yet and ``completed`` counts
    jobs that have, so their sum always equals the number of jobs enqueued.
    ``failed`` is the subset of completed jobs that raised.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._queued = 0
        self._active_workers = 0
        self._completed = 0
        self._failed = 0

    def job_enqueued(self) -> ProgressSnapshot:
        with self._lock:
            self._queued += 1
            return self._snapshot_locked()

    def worker_started(self) -> ProgressSnapshot:
        with self._lock:
            self._active_workers += 1
            return self._snapshot_locked()

    def worker_finished(self) -> ProgressSnapshot:
        with self._lock:
            if self._active_workers > 0:
                self._active_workers -= 1
            return self._snapshot_locked()

    def job_succeeded(self) -> ProgressSnapshot:
        with self._lock:
            self._finish_job_locked()
            return self._snapshot_locked()

    def job_failed(self) -> ProgressSnapshot:
        with self._lock:
            self._finish_job_locked()
            self._failed += 1
            return self._snapshot_locked()

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return self._snapshot_locked()

    def report(self, message: str, snapshot: ProgressSnapshot | None = None) -> None:
        """Print ``message`` prefixed with the counter triple."""

        current = snapshot if snapshot is not None else self.snapshot()
        print(f"{current}\t{message}", flush=True)

    def _finish_job_locked(self) -> None:
        if self._queued > 0:
            self._queued -= 1
        self._completed += 1

    def _snapshot_locked(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            active_workers=self._active_workers,
            queued=self._queued,
            completed=self._completed,
            failed=self._failed,
        )


__all__ = ["ProgressCounters", "ProgressSnapshot"]
