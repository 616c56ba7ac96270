from __future__ import annotations

import asyncio
import unittest
from unittest.mock import AsyncMock

from dumpadmin.core.job_queue import JobQueue, JobSubmissionError
from dumpadmin.core.job_store import JobStore


class TestJobQueue(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.store = JobStore()
        self.queue = JobQueue(job_store=self.store, workers=2, max_size=10)

    async def asyncTearDown(self) -> None:
        await self.queue.stop()

    async def test_submit_before_start_is_rejected(self) -> None:
        with self.assertRaises(JobSubmissionError):
            self.queue.submit("noop", AsyncMock())

    async def test_job_runs_and_reports_completion(self) -> None:
        self.queue.start()
        factory = AsyncMock(return_value=3)
        on_done = AsyncMock()

        job_id = self.queue.submit("count", factory, key="k", on_done=on_done)
        self.assertTrue(self.queue.is_active(job_id))
        self.assertEqual((await self.store.get(job_id))["status"], "queued")

        await self.queue.join()

        factory.assert_awaited_once()
        on_done.assert_awaited_once_with(job_id)
        self.assertFalse(self.queue.is_active(job_id))
        job = await self.store.get(job_id)
        self.assertEqual(job["status"], "succeeded")
        self.assertEqual(job["key"], "k")

    async def test_failing_job_is_recorded_and_worker_survives(self) -> None:
        self.queue.start()
        on_done = AsyncMock()
        failing = self.queue.submit("boom", AsyncMock(side_effect=RuntimeError("bad dump")), on_done=on_done)
        ok = self.queue.submit("fine", AsyncMock())

        await self.queue.join()

        failed_job = await self.store.get(failing)
        self.assertEqual(failed_job["status"], "failed")
        self.assertEqual(failed_job["error"], "bad dump")
        on_done.assert_awaited_once_with(failing)
        self.assertEqual((await self.store.get(ok))["status"], "succeeded")

    async def test_full_queue_rejects_submission(self) -> None:
        queue = JobQueue(job_store=self.store, workers=1, max_size=1)
        queue.start()
        try:
            # worker 还没有机会取走第一个任务，队列已满
            queue.submit("first", AsyncMock())
            with self.assertRaises(JobSubmissionError):
                queue.submit("second", AsyncMock())
        finally:
            await queue.stop()

    async def test_stop_drops_queued_jobs(self) -> None:
        self.queue.start()
        on_done = AsyncMock()
        job_id = self.queue.submit("never", AsyncMock(), on_done=on_done)

        await self.queue.stop()

        self.assertFalse(self.queue.running)
        self.assertFalse(self.queue.is_active(job_id))
        job = await self.store.get(job_id)
        self.assertEqual(job["status"], "failed")
        self.assertEqual(job["error"], "dropped on shutdown")
        on_done.assert_not_called()

    async def test_stop_fails_running_job(self) -> None:
        self.queue.start()
        started = asyncio.Event()

        async def slow() -> None:
            started.set()
            await asyncio.sleep(60)

        job_id = self.queue.submit("slow", slow)
        await asyncio.wait_for(started.wait(), timeout=5)

        await self.queue.stop()

        job = await self.store.get(job_id)
        self.assertEqual(job["status"], "failed")
        self.assertEqual(job["error"], "cancelled on shutdown")
        self.assertFalse(self.queue.is_active(job_id))

    async def test_sync_on_done_callback_is_supported(self) -> None:
        self.queue.start()
        done: list[str] = []
        job_id = self.queue.submit("noop", AsyncMock(), on_done=done.append)
        await self.queue.join()
        self.assertEqual(done, [job_id])


class TestJobStore(unittest.IsolatedAsyncioTestCase):
    async def test_history_limit_evicts_oldest_finished(self) -> None:
        store = JobStore(history_limit=1)
        store.create("a", name="first")
        await store.succeed("a")
        store.create("b", name="second")
        await store.fail("b", "x")
        store.create("c", name="third")

        self.assertIsNone(await store.get("a"))
        self.assertIsNotNone(await store.get("b"))
        self.assertEqual(await store.counts(), {"queued": 1, "running": 0, "succeeded": 0, "failed": 1})
        recent = await store.list_recent(10)
        self.assertEqual([j["job_id"] for j in recent][0], "c")


if __name__ == "__main__":
    unittest.main()
