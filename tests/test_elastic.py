from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
from typing import List

import httpx

from dumpadmin.services.dumps import DumpRepository
from dumpadmin.services.search import ElasticSearchError, ElasticSearchService
from tests.dump_fixtures import crash_result, write_dump


class TestElasticSearchService(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        write_dump(root, "b1", "d1", result=crash_result(["f1", "f2"], modules=[("app.exe", "1.0")]))
        write_dump(root, "b1", "d2", result=crash_result(["g1"]))
        write_dump(root, "b2", "d3")  # 无结果，不推送
        self.repo = DumpRepository(root)
        self.requests: List[httpx.Request] = []
        self.index_exists = True

    async def asyncTearDown(self) -> None:
        self._tmp.cleanup()

    def _service(self, handler, batch_size: int = 500) -> ElasticSearchService:
        return ElasticSearchService(
            dump_repository=self.repo,
            base_url="http://es:9200",
            index="superdump",
            batch_size=batch_size,
            transport=httpx.MockTransport(handler),
        )

    def _ok_handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "DELETE":
            return httpx.Response(200 if self.index_exists else 404, json={})
        if request.method == "PUT":
            return httpx.Response(200, json={"acknowledged": True})
        return httpx.Response(200, json={"errors": False, "items": []})

    async def test_push_sends_bulk_ndjson_in_batches(self) -> None:
        service = self._service(self._ok_handler, batch_size=1)

        pushed = await service.push_all_results(clean=False)
        await service.aclose()

        self.assertEqual(pushed, 2)
        self.assertEqual([r.method for r in self.requests], ["POST", "POST"])
        lines = self.requests[0].content.decode("utf-8").strip().split("\n")
        action, doc = json.loads(lines[0]), json.loads(lines[1])
        self.assertEqual(action["index"]["_index"], "superdump")
        self.assertIn(action["index"]["_id"], {"b1:d1", "b1:d2"})
        self.assertEqual(self.requests[0].headers["content-type"], "application/x-ndjson")
        self.assertEqual(doc["exception_type"], "System.NullReferenceException")
        self.assertEqual(doc["system_os"], "Windows 10")

    async def test_clean_recreates_index_and_ignores_missing(self) -> None:
        self.index_exists = False
        service = self._service(self._ok_handler)

        pushed = await service.push_all_results(clean=True)
        await service.aclose()

        self.assertEqual(pushed, 2)
        self.assertEqual([r.method for r in self.requests], ["DELETE", "PUT", "POST"])

    async def test_bulk_item_errors_reduce_count(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "errors": True,
                    "items": [{"index": {"status": 201}}, {"index": {"error": {"type": "mapper"}}}],
                },
            )

        service = self._service(handler)
        self.assertEqual(await service.push_all_results(), 1)
        await service.aclose()

    async def test_http_failure_raises(self) -> None:
        service = self._service(lambda request: httpx.Response(503, text="unavailable"))
        with self.assertRaises(ElasticSearchError) as ctx:
            await service.push_all_results()
        await service.aclose()
        self.assertEqual(ctx.exception.status_code, 503)


if __name__ == "__main__":
    unittest.main()
