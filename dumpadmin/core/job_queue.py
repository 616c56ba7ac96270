from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Set

from dumpadmin.core.job_store import JobStore

logger = logging.getLogger(__name__)

JobFactory = Callable[[], Awaitable[Any]]
DoneCallback = Callable[[str], Any]


class JobSubmissionError(Exception):
    """
    任务系统拒绝接收任务（未启动或队列已满）。
    """


@dataclass
class _Job:
    job_id: str
    name: str
    key: Optional[str]
    factory: JobFactory
    on_done: Optional[DoneCallback] = None


class JobQueue:
    """
    进程内后台任务系统：有界 asyncio.Queue + 固定数量的 worker。

    - submit() 同步且不 await，返回 job_id
    - 任务完成（成功或失败）后回调 on_done(job_id)
    - stop() 会丢弃仍在排队的任务，对应的 pending 标记交由 clean_queue 回收
    """

    def __init__(self, *, job_store: JobStore, workers: int = 2, max_size: int = 1000) -> None:
        self._store = job_store
        self._worker_count = max(1, workers)
        self._max_size = max_size
        self._queue: Optional[asyncio.Queue[_Job]] = None
        self._workers: List[asyncio.Task[None]] = []
        self._active: Set[str] = set()

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue(maxsize=self._max_size)
        self._workers = [
            asyncio.create_task(self._worker(), name=f"job-worker-{i}")
            for i in range(self._worker_count)
        ]
        logger.info("Job queue started, workers=%s max_size=%s", self._worker_count, self._max_size)

    async def stop(self) -> None:
        if not self.running:
            return
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        dropped = 0
        while self._queue is not None and not self._queue.empty():
            job = self._queue.get_nowait()
            self._active.discard(job.job_id)
            await self._store.fail(job.job_id, "dropped on shutdown")
            dropped += 1
        self._queue = None
        logger.info("Job queue stopped, dropped=%s", dropped)

    def submit(
        self,
        name: str,
        factory: JobFactory,
        *,
        key: Optional[str] = None,
        on_done: Optional[DoneCallback] = None,
    ) -> str:
        if self._queue is None or not self.running:
            raise JobSubmissionError(f"Job queue is not running, rejected job={name}")

        job = _Job(
            job_id=self._store.new_id(),
            name=name,
            key=key,
            factory=factory,
            on_done=on_done,
        )
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull as exc:
            raise JobSubmissionError(
                f"Job queue is full ({self._max_size}), rejected job={name}"
            ) from exc

        self._active.add(job.job_id)
        self._store.create(job.job_id, name=name, key=key)
        logger.info("Job submitted job_id=%s name=%s key=%s", job.job_id, name, key)
        return job.job_id

    def is_active(self, job_id: str) -> bool:
        return job_id in self._active

    @property
    def active_count(self) -> int:
        return len(self._active)

    async def join(self) -> None:
        """
        等待当前队列中的任务全部执行完毕（主要用于测试与优雅停机）。
        """
        if self._queue is not None:
            await self._queue.join()

    async def _worker(self) -> None:
        assert self._queue is not None
        queue = self._queue
        while True:
            job = await queue.get()
            try:
                await self._run(job)
            finally:
                queue.task_done()

    async def _run(self, job: _Job) -> None:
        await self._store.mark_running(job.job_id)
        error: Optional[str] = None
        try:
            await job.factory()
        except asyncio.CancelledError:
            # stop() 取消了正在执行的任务；pending 标记交由 clean_queue 回收
            logger.warning("Job cancelled job_id=%s name=%s", job.job_id, job.name)
            await self._store.fail(job.job_id, "cancelled on shutdown")
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("Job failed job_id=%s name=%s", job.job_id, job.name)
            error = str(exc) or type(exc).__name__
        finally:
            self._active.discard(job.job_id)

        # 先回调再落状态：查询到结束状态时 pending 标记已被移除
        await self._notify_done(job)
        if error is None:
            logger.info("Job succeeded job_id=%s name=%s", job.job_id, job.name)
            await self._store.succeed(job.job_id)
        else:
            await self._store.fail(job.job_id, error)

    async def _notify_done(self, job: _Job) -> None:
        if job.on_done is None:
            return
        try:
            ret = job.on_done(job.job_id)
            if inspect.isawaitable(ret):
                await ret
        except Exception:  # noqa: BLE001
            logger.exception("on_done callback failed job_id=%s", job.job_id)
