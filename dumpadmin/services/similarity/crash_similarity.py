from __future__ import annotations

from dataclasses import asdict, dataclass
from difflib import SequenceMatcher
from typing import Dict, List, Optional

from dumpadmin.services.dumps.models import DumpResult, ExceptionInfo, ModuleInfo
from dumpadmin.services.similarity.config import SimilarityWeights


@dataclass
class CrashSimilarityResult:
    stack: float
    exception: float
    modules: float
    overall: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


class CrashSimilarity:
    """
    比较两个 dump 分析结果的相似度，各维度取值范围均为 [0, 1]。
    """

    @staticmethod
    def calculate(
        a: DumpResult,
        b: DumpResult,
        weights: Optional[SimilarityWeights] = None,
    ) -> CrashSimilarityResult:
        weights = weights or SimilarityWeights()
        stack = CrashSimilarity.stack_similarity(a, b)
        exception = CrashSimilarity.exception_similarity(a.exception, b.exception)
        modules = CrashSimilarity.module_similarity(a.modules, b.modules)

        total_weight = weights.stack + weights.exception + weights.modules
        if total_weight <= 0:
            overall = 0.0
        else:
            overall = (
                stack * weights.stack
                + exception * weights.exception
                + modules * weights.modules
            ) / total_weight

        return CrashSimilarityResult(
            stack=stack, exception=exception, modules=modules, overall=overall
        )

    @staticmethod
    def stack_similarity(a: DumpResult, b: DumpResult) -> float:
        thread_a = a.crashing_thread()
        thread_b = b.crashing_thread()
        if thread_a is None and thread_b is None:
            return 1.0
        if thread_a is None or thread_b is None:
            return 0.0
        return _sequence_ratio(thread_a.frames, thread_b.frames)

    @staticmethod
    def exception_similarity(
        a: Optional[ExceptionInfo], b: Optional[ExceptionInfo]
    ) -> float:
        if a is None and b is None:
            return 1.0
        if a is None or b is None:
            return 0.0
        if a.type != b.type:
            return 0.0
        return 1.0 if a.message == b.message else 0.5

    @staticmethod
    def module_similarity(a: List[ModuleInfo], b: List[ModuleInfo]) -> float:
        set_a = {(m.name.lower(), m.version) for m in a}
        set_b = {(m.name.lower(), m.version) for m in b}
        if not set_a and not set_b:
            return 1.0
        return len(set_a & set_b) / len(set_a | set_b)


def _sequence_ratio(a: List[str], b: List[str]) -> float:
    if not a and not b:
        return 1.0
    # autojunk 会把高频帧当作噪声，这里关闭以保证短栈也稳定
    return SequenceMatcher(a=a, b=b, autojunk=False).ratio()
