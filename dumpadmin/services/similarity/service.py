from __future__ import annotations

import logging
from typing import Dict, Optional

from dumpadmin.core.identifiers import DumpIdentifier
from dumpadmin.services.dumps import DumpRepository
from dumpadmin.services.similarity.config import SimilarityConfig
from dumpadmin.services.similarity.crash_similarity import (
    CrashSimilarity,
    CrashSimilarityResult,
)
from dumpadmin.services.similarity.store import SimilarityStore

logger = logging.getLogger(__name__)


class SimilarityService:
    """
    相似度分析：把一个 dump 与所有已有分析结果的 dump 逐一比较，
    高于阈值的关系双向写入 SimilarityStore。
    """

    def __init__(
        self,
        *,
        dump_repository: DumpRepository,
        store: SimilarityStore,
        config: Optional[SimilarityConfig] = None,
    ) -> None:
        self._dumps = dump_repository
        self._store = store
        self._config = config or SimilarityConfig()

    @property
    def store(self) -> SimilarityStore:
        return self._store

    async def run_analysis(self, ident: DumpIdentifier) -> int:
        """
        后台任务入口；返回入库的相似关系数量。
        """
        result = await self._dumps.get_result(ident)
        if result is None:
            raise LookupError(f"No analysis result for dump {ident}")

        relations: Dict[DumpIdentifier, float] = {}
        for other in await self._dumps.list_dumps():
            other_id = other.id
            if other_id == ident:
                continue
            other_result = await self._dumps.get_result(other_id)
            if other_result is None:
                continue
            similarity = CrashSimilarity.calculate(
                result, other_result, self._config.weights
            )
            if similarity.overall >= self._config.min_similarity:
                relations[other_id] = similarity.overall

        await self._store.save(ident, relations)
        for other_id, score in relations.items():
            await self._store.add_relation(other_id, ident, score)

        logger.info("Similarity analysis done dump=%s relations=%s", ident, len(relations))
        return len(relations)

    async def compare(
        self, a: DumpIdentifier, b: DumpIdentifier
    ) -> Optional[CrashSimilarityResult]:
        res_a = await self._dumps.get_result(a)
        res_b = await self._dumps.get_result(b)
        if res_a is None or res_b is None:
            return None
        return CrashSimilarity.calculate(res_a, res_b, self._config.weights)
