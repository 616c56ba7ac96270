from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from dumpadmin.core.identifiers import DumpIdentifier


@dataclass
class SimilarityResult:
    """
    某个 dump 的相似度分析结果：与其他 dump 的相似关系 + 计算时间。
    """

    computed_at: datetime
    similarities: Dict[DumpIdentifier, float] = field(default_factory=dict)


class SimilarityStore:
    """
    简易内存版相似度结果存储。
    后续可替换为 Redis / DB。
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._results: Dict[DumpIdentifier, SimilarityResult] = {}

    async def get(self, ident: DumpIdentifier) -> Optional[SimilarityResult]:
        async with self._lock:
            result = self._results.get(ident)
            if result is None:
                return None
            return SimilarityResult(result.computed_at, dict(result.similarities))

    async def save(self, ident: DumpIdentifier, similarities: Dict[DumpIdentifier, float]) -> None:
        async with self._lock:
            self._results[ident] = SimilarityResult(
                computed_at=datetime.now(timezone.utc),
                similarities=dict(similarities),
            )

    async def add_relation(self, ident: DumpIdentifier, other: DumpIdentifier, score: float) -> None:
        """
        为已有结果补充一条反向关系；没有结果的 dump 不创建条目，以免被误判为已分析。
        """
        async with self._lock:
            result = self._results.get(ident)
            if result is not None:
                result.similarities[other] = score

    async def wipe_all(self) -> None:
        async with self._lock:
            self._results.clear()

    async def count(self) -> int:
        async with self._lock:
            return len(self._results)
