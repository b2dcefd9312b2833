"""Tests for the non-queueing worker pool."""

import threading
import unittest

from structscan.errors import WorkerError
from structscan.models import ProcessorSpec, WorkerJob
from structscan.worker_pool import WorkerPool


JOB = WorkerJob(
    data=({"n": 2}, {"n": 1}, {"n": 2}),
    processors=(ProcessorSpec.from_dict({"name": "deduplicate"}),),
)


class TestWorkerPool(unittest.TestCase):
    """Verify slot claiming, job execution and release on every path."""

    def test_acquire_until_exhausted(self):
        pool = WorkerPool(size=2)
        try:
            first = pool.try_acquire()
            second = pool.try_acquire()
            self.assertIsNotNone(first)
            self.assertIsNotNone(second)
            self.assertNotEqual(first.slot, second.slot)
            self.assertIsNone(pool.try_acquire())
            self.assertEqual(pool.busy_count, 2)
            first.release()
            self.assertEqual(pool.busy_count, 1)
            self.assertIsNotNone(pool.try_acquire())
        finally:
            pool.close()

    def test_job_result_and_slot_released(self):
        pool = WorkerPool(size=1)
        try:
            handle = pool.try_acquire()
            result = handle.submit(JOB).result(timeout=5)
            self.assertEqual(result, [{"n": 2}, {"n": 1}])
            self.assertEqual(pool.busy_count, 0)
        finally:
            pool.close()

    def test_failed_job_raises_worker_error_and_releases(self):
        def explode(job):
            raise RuntimeError("boom")

        pool = WorkerPool(size=1, runner=explode)
        try:
            future = pool.try_acquire().submit(JOB)
            with self.assertRaises(WorkerError):
                future.result(timeout=5)
            self.assertEqual(pool.busy_count, 0)
        finally:
            pool.close()

    def test_slot_busy_while_job_runs(self):
        gate = threading.Event()

        def slow(job):
            gate.wait(5)
            return list(job.data)

        pool = WorkerPool(size=1, runner=slow)
        try:
            future = pool.try_acquire().submit(JOB)
            self.assertIsNone(pool.try_acquire())
            gate.set()
            future.result(timeout=5)
            self.assertEqual(pool.busy_count, 0)
        finally:
            pool.close()

    def test_handle_is_single_use(self):
        pool = WorkerPool(size=1)
        try:
            handle = pool.try_acquire()
            handle.submit(JOB).result(timeout=5)
            with self.assertRaises(WorkerError):
                handle.submit(JOB)
        finally:
            pool.close()

    def test_closed_pool_hands_out_nothing(self):
        pool = WorkerPool(size=1)
        pool.close()
        self.assertTrue(pool.closed)
        self.assertIsNone(pool.try_acquire())

    def test_default_size_is_positive(self):
        pool = WorkerPool()
        try:
            self.assertGreaterEqual(pool.size, 1)
        finally:
            pool.close()


if __name__ == "__main__":
    unittest.main()
