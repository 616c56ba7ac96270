from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from dumpadmin.core.identifiers import DumpIdentifier
from dumpadmin.services.dumps.models import BundleMetainfo, DumpMetainfo, DumpResult

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

BUNDLE_INFO_FILE = "bundleinfo.json"
DUMP_INFO_FILE = "dumpinfo.json"
RESULT_FILE = "result.json"


class DumpRepository:
    """
    基于文件目录的只读 dump 仓库。

    所有文件读取都放到线程池中执行，避免阻塞事件循环；
    无法解析的文件记录告警后按「不存在」处理。
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    async def get_bundle(self, bundle_id: str) -> Optional[BundleMetainfo]:
        path = self._root / bundle_id / BUNDLE_INFO_FILE
        return await asyncio.to_thread(self._read_model, path, BundleMetainfo)

    async def get_dump(self, ident: DumpIdentifier) -> Optional[DumpMetainfo]:
        path = self._root / ident.bundle_id / ident.dump_id / DUMP_INFO_FILE
        return await asyncio.to_thread(self._read_model, path, DumpMetainfo)

    async def get_result(self, ident: DumpIdentifier) -> Optional[DumpResult]:
        path = self._root / ident.bundle_id / ident.dump_id / RESULT_FILE
        return await asyncio.to_thread(self._read_model, path, DumpResult)

    async def list_bundles(self) -> List[BundleMetainfo]:
        return await asyncio.to_thread(self._list_bundles_sync)

    async def list_dumps(self) -> List[DumpMetainfo]:
        return await asyncio.to_thread(self._list_dumps_sync)

    def _list_bundles_sync(self) -> List[BundleMetainfo]:
        if not self._root.is_dir():
            logger.warning("Dump storage dir does not exist: %s", self._root)
            return []
        bundles = []
        for bundle_dir in sorted(self._root.iterdir()):
            if not bundle_dir.is_dir():
                continue
            info = self._read_model(bundle_dir / BUNDLE_INFO_FILE, BundleMetainfo)
            if info is not None:
                bundles.append(info)
        bundles.sort(key=lambda b: b.created)
        return bundles

    def _list_dumps_sync(self) -> List[DumpMetainfo]:
        if not self._root.is_dir():
            logger.warning("Dump storage dir does not exist: %s", self._root)
            return []
        dumps = []
        for info_path in sorted(self._root.glob(f"*/*/{DUMP_INFO_FILE}")):
            info = self._read_model(info_path, DumpMetainfo)
            if info is not None:
                dumps.append(info)
        dumps.sort(key=lambda d: d.created)
        return dumps

    def _read_model(self, path: Path, model: Type[ModelT]) -> Optional[ModelT]:
        if not path.is_file():
            return None
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            return model.model_validate(raw)
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            logger.warning("Failed to read %s from %s: %s", model.__name__, path, exc)
            return None
