from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, Hashable, List, Optional, Tuple

PendingKey = Hashable


class PendingSet:
    """
    进行中任务的去重表：key -> job_id。

    同一个 key 在其任务排队或执行期间最多出现一次。
    所有「检查后插入」必须放在 locked() 临界区内完成。
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._entries: Dict[PendingKey, str] = {}

    @asynccontextmanager
    async def locked(self) -> AsyncIterator["PendingSet"]:
        async with self._lock:
            yield self

    # 以下 *_unlocked 方法只能在 locked() 内调用

    def contains_unlocked(self, key: PendingKey) -> bool:
        return key in self._entries

    def insert_unlocked(self, key: PendingKey, job_id: str) -> None:
        self._entries[key] = job_id

    async def contains(self, key: PendingKey) -> bool:
        async with self._lock:
            return key in self._entries

    async def get(self, key: PendingKey) -> Optional[str]:
        async with self._lock:
            return self._entries.get(key)

    async def discard(self, key: PendingKey, job_id: str | None = None) -> bool:
        """
        移除标记；传入 job_id 时仅当标记仍属于该任务才移除，避免旧任务回调误删新标记。
        """
        async with self._lock:
            current = self._entries.get(key)
            if current is None:
                return False
            if job_id is not None and current != job_id:
                return False
            del self._entries[key]
            return True

    async def snapshot(self) -> List[Tuple[PendingKey, str]]:
        async with self._lock:
            return list(self._entries.items())

    async def remove_where(self, predicate: Callable[[PendingKey, str], bool]) -> int:
        async with self._lock:
            doomed = [k for k, v in self._entries.items() if predicate(k, v)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    async def size(self) -> int:
        async with self._lock:
            return len(self._entries)
