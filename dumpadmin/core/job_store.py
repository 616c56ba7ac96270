from __future__ import annotations

import asyncio
import time
import uuid
from typing import Any, Dict, List, Literal, Optional

JobStatus = Literal["queued", "running", "succeeded", "failed"]

_FINISHED: tuple[str, ...] = ("succeeded", "failed")


class JobStore:
    """
    简易内存版后台任务记录，便于管理端查询任务状态。
    后续可替换为 Redis / DB。
    """

    def __init__(self, *, history_limit: int = 500) -> None:
        self._lock = asyncio.Lock()
        self._jobs: Dict[str, Dict[str, Any]] = {}
        self._history_limit = history_limit

    def new_id(self) -> str:
        return uuid.uuid4().hex

    def create(self, job_id: str, *, name: str, key: str | None = None) -> None:
        # 同步写入：提交任务时不允许 await，单个事件循环内不会与其他协程交错
        self._jobs[job_id] = {
            "job_id": job_id,
            "name": name,
            "key": key,
            "status": "queued",
            "created_at": time.time(),
        }
        self._evict_finished()

    async def mark_running(self, job_id: str) -> None:
        now = time.time()
        await self._update(job_id, {"status": "running", "started_at": now, "updated_at": now})

    async def succeed(self, job_id: str) -> None:
        await self._update(job_id, {"status": "succeeded", "updated_at": time.time()})

    async def fail(self, job_id: str, error: str) -> None:
        await self._update(
            job_id,
            {
                "status": "failed",
                "error": error,
                "updated_at": time.time(),
            },
        )

    async def get(self, job_id: str) -> Optional[Dict[str, Any]]:
        async with self._lock:
            if job_id not in self._jobs:
                return None
            # 返回副本避免外部修改
            return dict(self._jobs[job_id])

    async def list_recent(self, limit: int = 50) -> List[Dict[str, Any]]:
        async with self._lock:
            # dict 保持插入顺序，即创建顺序
            jobs = list(self._jobs.values())[::-1]
            return [dict(j) for j in jobs[:limit]]

    async def counts(self) -> Dict[str, int]:
        async with self._lock:
            result = {"queued": 0, "running": 0, "succeeded": 0, "failed": 0}
            for job in self._jobs.values():
                result[job["status"]] += 1
            return result

    async def _update(self, job_id: str, payload: Dict[str, Any]) -> None:
        async with self._lock:
            if job_id not in self._jobs:
                return
            self._jobs[job_id].update(payload)

    def _evict_finished(self) -> None:
        # 仅淘汰已结束的任务，按创建顺序从旧到新
        finished = [j for j in self._jobs.values() if j["status"] in _FINISHED]
        overflow = len(finished) - self._history_limit
        if overflow <= 0:
            return
        for job in finished[:overflow]:
            del self._jobs[job["job_id"]]
