from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from dumpadmin.core.identifiers import DumpIdentifier
from dumpadmin.services.dumps import DumpRepository
from dumpadmin.services.similarity import (
    IdenticalDumpRepository,
    SimilarityConfig,
    SimilarityService,
    SimilarityStore,
    load_similarity_config,
)
from tests.dump_fixtures import crash_result, write_dump

FRAMES = ["app!Parser::Read", "app!Loader::Load", "app!main"]


class TestSimilarityService(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        write_dump(self.root, "b1", "d1", result=crash_result(FRAMES))
        write_dump(self.root, "b1", "d2", result=crash_result(FRAMES))
        write_dump(self.root, "b2", "d3", result=crash_result(["other!x"], exc_type="Other"))
        write_dump(self.root, "b2", "d4")  # 尚无分析结果
        self.store = SimilarityStore()
        self.service = SimilarityService(
            dump_repository=DumpRepository(self.root),
            store=self.store,
            config=SimilarityConfig(min_similarity=0.6),
        )

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def test_run_analysis_stores_relations_above_threshold(self) -> None:
        d1, d2 = DumpIdentifier("b1", "d1"), DumpIdentifier("b1", "d2")
        await self.store.save(d2, {})

        count = await self.service.run_analysis(d1)

        self.assertEqual(count, 1)
        result = await self.store.get(d1)
        self.assertEqual(list(result.similarities), [d2])
        self.assertAlmostEqual(result.similarities[d2], 1.0)
        # 已有结果的一方补充反向关系
        self.assertIn(d1, (await self.store.get(d2)).similarities)
        # 没有结果的 dump 不会被创建条目
        self.assertIsNone(await self.store.get(DumpIdentifier("b2", "d3")))

    async def test_run_analysis_without_result_raises(self) -> None:
        with self.assertRaises(LookupError):
            await self.service.run_analysis(DumpIdentifier("b2", "d4"))

    async def test_compare(self) -> None:
        sim = await self.service.compare(DumpIdentifier("b1", "d1"), DumpIdentifier("b2", "d3"))
        self.assertLess(sim.overall, 0.6)
        self.assertIsNone(
            await self.service.compare(DumpIdentifier("b1", "d1"), DumpIdentifier("b2", "d4"))
        )

    async def test_wipe_all_clears_store(self) -> None:
        await self.service.run_analysis(DumpIdentifier("b1", "d1"))
        await self.store.wipe_all()
        await self.store.wipe_all()
        self.assertEqual(await self.store.count(), 0)


class TestIdenticalDumpRepository(unittest.IsolatedAsyncioTestCase):
    async def test_groups_by_sha256(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            write_dump(root, "b1", "d1", sha256="AAA")
            write_dump(root, "b2", "d2", sha256="aaa")
            write_dump(root, "b3", "d3", sha256="bbb")
            write_dump(root, "b3", "d4")
            repo = IdenticalDumpRepository(dump_repository=DumpRepository(root))

            groups = await repo.create_all_identical_relationships()

            self.assertEqual(groups, 1)
            self.assertEqual(
                await repo.get_identical(DumpIdentifier("b1", "d1")), {DumpIdentifier("b2", "d2")}
            )
            self.assertEqual(await repo.get_identical(DumpIdentifier("b3", "d3")), set())

            await repo.wipe_all()
            await repo.wipe_all()
            self.assertEqual(await repo.get_identical(DumpIdentifier("b1", "d1")), set())


def test_load_similarity_config_falls_back_to_defaults(tmp_path):
    assert load_similarity_config(str(tmp_path / "missing.yml")) == SimilarityConfig()

    bad = tmp_path / "bad.yml"
    bad.write_text("min_similarity: 5\n", encoding="utf-8")
    assert load_similarity_config(str(bad)) == SimilarityConfig()

    good = tmp_path / "good.yml"
    good.write_text("weights:\n  stack: 1\n  exception: 0\n  modules: 0\nmin_similarity: 0.8\n", encoding="utf-8")
    cfg = load_similarity_config(str(good))
    assert cfg.min_similarity == 0.8
    assert cfg.weights.exception == 0


if __name__ == "__main__":
    unittest.main()
