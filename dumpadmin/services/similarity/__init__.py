"""
Crash 相似度

- crash_similarity: 两个 dump 结果之间的相似度计算
- service: 后台相似度分析任务（写入 SimilarityStore）
- identical: 基于文件哈希的「完全相同」关系
"""
from __future__ import annotations

from dumpadmin.services.similarity.config import SimilarityConfig, load_similarity_config
from dumpadmin.services.similarity.crash_similarity import CrashSimilarity, CrashSimilarityResult
from dumpadmin.services.similarity.identical import IdenticalDumpRepository
from dumpadmin.services.similarity.service import SimilarityService
from dumpadmin.services.similarity.store import SimilarityResult, SimilarityStore

__all__ = [
    "CrashSimilarity",
    "CrashSimilarityResult",
    "IdenticalDumpRepository",
    "SimilarityConfig",
    "SimilarityResult",
    "SimilarityService",
    "SimilarityStore",
    "load_similarity_config",
]
