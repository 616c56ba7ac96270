from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from dumpadmin.services.dumps import DumpMetainfo, DumpRepository, DumpResult
from dumpadmin.services.search.errors import ElasticSearchError

logger = logging.getLogger(__name__)

INDEX_MAPPINGS: Dict[str, Any] = {
    "mappings": {
        "properties": {
            "bundle_id": {"type": "keyword"},
            "dump_id": {"type": "keyword"},
            "created": {"type": "date"},
            "filename": {"type": "keyword"},
            "exception_type": {"type": "keyword"},
            "exception_message": {"type": "text"},
            "top_frames": {"type": "text"},
            "modules": {"type": "keyword"},
        }
    }
}

TOP_FRAME_COUNT = 10


def build_document(meta: DumpMetainfo, result: DumpResult) -> Dict[str, Any]:
    crashed = result.crashing_thread()
    return {
        "bundle_id": meta.bundle_id,
        "dump_id": meta.dump_id,
        "created": meta.created.isoformat(),
        "filename": meta.filename,
        "exception_type": result.exception.type if result.exception else None,
        "exception_message": result.exception.message if result.exception else None,
        "top_frames": crashed.frames[:TOP_FRAME_COUNT] if crashed else [],
        "modules": [m.name for m in result.modules],
        **{f"system_{k}": v for k, v in result.system_info.items()},
    }


class ElasticSearchService:
    """
    把所有 dump 分析结果推送到 Elasticsearch（_bulk NDJSON）。
    """

    def __init__(
        self,
        *,
        dump_repository: DumpRepository,
        base_url: str,
        index: str,
        timeout_s: float = 30.0,
        batch_size: int = 500,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._dumps = dump_repository
        self._index = index
        self._batch_size = max(1, batch_size)
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"), timeout=timeout_s, transport=transport
        )

    async def push_all_results(self, clean: bool = False) -> int:
        """
        返回推送的文档数量；clean=True 时先删除并重建索引。
        """
        if clean:
            await self._recreate_index()

        batch: List[Dict[str, Any]] = []
        pushed = 0
        for meta in await self._dumps.list_dumps():
            result = await self._dumps.get_result(meta.id)
            if result is None:
                continue
            batch.append(build_document(meta, result))
            if len(batch) >= self._batch_size:
                pushed += await self._bulk(batch)
                batch = []
        if batch:
            pushed += await self._bulk(batch)

        logger.info("Pushed %s documents to index=%s (clean=%s)", pushed, self._index, clean)
        return pushed

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _recreate_index(self) -> None:
        resp = await self._request("DELETE", f"/{self._index}")
        if resp.status_code not in (200, 404):
            raise ElasticSearchError(
                f"Failed to delete index {self._index}: {resp.text[:500]}",
                status_code=resp.status_code,
            )
        resp = await self._request("PUT", f"/{self._index}", json=INDEX_MAPPINGS)
        if resp.status_code != 200:
            raise ElasticSearchError(
                f"Failed to create index {self._index}: {resp.text[:500]}",
                status_code=resp.status_code,
            )
        logger.info("Recreated index=%s", self._index)

    async def _bulk(self, docs: List[Dict[str, Any]]) -> int:
        lines: List[str] = []
        for doc in docs:
            doc_id = f"{doc['bundle_id']}:{doc['dump_id']}"
            lines.append(json.dumps({"index": {"_index": self._index, "_id": doc_id}}))
            lines.append(json.dumps(doc))
        body = "\n".join(lines) + "\n"

        resp = await self._request(
            "POST",
            "/_bulk",
            content=body.encode("utf-8"),
            headers={"Content-Type": "application/x-ndjson"},
        )
        if resp.status_code != 200:
            raise ElasticSearchError(
                f"Bulk request failed: {resp.text[:500]}", status_code=resp.status_code
            )
        data = resp.json()
        if data.get("errors"):
            failed = [
                item for item in data.get("items", [])
                if (item.get("index") or {}).get("error")
            ]
            logger.warning("Bulk push had %s failed documents", len(failed))
            return len(docs) - len(failed)
        return len(docs)

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise ElasticSearchError(f"Elasticsearch request failed: {exc}") from exc
