from __future__ import annotations

import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, List, Optional

from .errors import WorkerError
from .models import ExtractionRecord, WorkerJob
from .processors import run_job


JobRunner = Callable[[WorkerJob], List[ExtractionRecord]]


class WorkerHandle:
    """Exclusive claim on one worker slot, good for a single job."""

    def __init__(self, pool: "WorkerPool", slot: int) -> None:
        self._pool = pool
        self.slot = slot
        self._used = False

    def submit(self, job: WorkerJob) -> Future:
        if self._used:
            raise WorkerError(f"worker {self.slot} handle already used")
        self._used = True
        return self._pool._submit(self.slot, job)

    def release(self) -> None:
        """Give the slot back without running anything."""
        if not self._used:
            self._used = True
            self._pool._release(self.slot)


class WorkerPool:
    """Fixed set of post-processing workers on a bounded thread pool.

    Unlike a queueing executor, callers never wait for a worker: ``try_acquire``
    returns a handle on the first free slot or ``None`` when every slot is
    busy, and the caller is expected to do the work itself. The busy flag is
    cleared on every exit path of a job.
    """

    def __init__(self, size: Optional[int] = None, runner: JobRunner = run_job) -> None:
        self.size = max(1, size or os.cpu_count() or 4)
        self._runner = runner
        self._executor = ThreadPoolExecutor(max_workers=self.size, thread_name_prefix="structscan-worker")
        self._lock = threading.Lock()
        self._busy: List[bool] = [False] * self.size
        self._closed = False

    def try_acquire(self) -> Optional[WorkerHandle]:
        with self._lock:
            if self._closed:
                return None
            for slot, busy in enumerate(self._busy):
                if not busy:
                    self._busy[slot] = True
                    return WorkerHandle(self, slot)
        return None

    @property
    def busy_count(self) -> int:
        with self._lock:
            return sum(self._busy)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self, wait: bool = True) -> None:
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait, cancel_futures=False)

    def _submit(self, slot: int, job: WorkerJob) -> Future:
        try:
            return self._executor.submit(self._wrap_job, slot, job)
        except RuntimeError as exc:
            self._release(slot)
            raise WorkerError(f"worker {slot} unavailable: {exc}") from exc

    def _wrap_job(self, slot: int, job: WorkerJob) -> List[ExtractionRecord]:
        try:
            return self._runner(job)
        except Exception as exc:  # noqa: BLE001
            raise WorkerError(f"job failed in worker {slot}: {exc}") from exc
        finally:
            self._release(slot)

    def _release(self, slot: int) -> None:
        with self._lock:
            self._busy[slot] = False
