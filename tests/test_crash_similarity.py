"""
crash 相似度计算
"""
import pytest

from dumpadmin.services.dumps import DumpResult
from dumpadmin.services.similarity import CrashSimilarity
from dumpadmin.services.similarity.config import SimilarityWeights
from tests.dump_fixtures import crash_result

FRAMES = ["app!Parser::Read", "app!Loader::Load", "app!main", "kernel32!BaseThreadInitThunk"]


def _result(frames=FRAMES, **kwargs) -> DumpResult:
    return DumpResult.model_validate(crash_result(frames, **kwargs))


def test_identical_results_are_fully_similar():
    a = _result(modules=[("app.exe", "1.0")])
    b = _result(modules=[("app.exe", "1.0")])

    sim = CrashSimilarity.calculate(a, b)

    assert sim.to_dict() == {"stack": 1.0, "exception": 1.0, "modules": 1.0, "overall": 1.0}


def test_exception_with_different_message_scores_half():
    a = _result(exc_message="first")
    b = _result(exc_message="second")
    assert CrashSimilarity.calculate(a, b).exception == 0.5


def test_different_exception_types_score_zero():
    a = _result(exc_type="System.IO.IOException")
    b = _result(exc_type="System.OutOfMemoryException")
    assert CrashSimilarity.calculate(a, b).exception == 0.0


def test_missing_crashing_thread_on_one_side():
    a = _result()
    b = DumpResult()
    assert CrashSimilarity.stack_similarity(a, b) == 0.0
    assert CrashSimilarity.stack_similarity(DumpResult(), DumpResult()) == 1.0


def test_module_similarity_is_jaccard_over_versions():
    a = _result(modules=[("app.exe", "1.0"), ("core.dll", "2.0")])
    b = _result(modules=[("APP.EXE", "1.0"), ("core.dll", "2.1")])
    # {app 1.0} 交集 / {app 1.0, core 2.0, core 2.1} 并集
    assert CrashSimilarity.calculate(a, b).modules == pytest.approx(1 / 3)


def test_partial_stack_overlap():
    a = _result(frames=FRAMES)
    b = _result(frames=["app!Other::Fn"] + FRAMES[1:])
    assert CrashSimilarity.calculate(a, b).stack == pytest.approx(0.75)


def test_overall_uses_weights():
    a = _result(exc_type="A", modules=[("x", "1")])
    b = _result(exc_type="B", modules=[("x", "1")])

    only_stack = CrashSimilarity.calculate(a, b, SimilarityWeights(stack=1, exception=0, modules=0))
    only_exception = CrashSimilarity.calculate(a, b, SimilarityWeights(stack=0, exception=1, modules=0))
    no_weight = CrashSimilarity.calculate(a, b, SimilarityWeights(stack=0, exception=0, modules=0))

    assert only_stack.overall == 1.0
    assert only_exception.overall == 0.0
    assert no_weight.overall == 0.0
