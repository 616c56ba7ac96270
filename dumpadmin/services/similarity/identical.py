from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Dict, List, Set

from dumpadmin.core.identifiers import DumpIdentifier
from dumpadmin.services.dumps import DumpRepository

logger = logging.getLogger(__name__)


class IdenticalDumpRepository:
    """
    「完全相同」的 dump 关系：文件 sha256 相同即视为同一份 dump 的重复上传。
    """

    def __init__(self, *, dump_repository: DumpRepository) -> None:
        self._dumps = dump_repository
        self._lock = asyncio.Lock()
        self._relations: Dict[DumpIdentifier, Set[DumpIdentifier]] = {}

    async def create_all_identical_relationships(self) -> int:
        """
        重新计算全部关系，返回包含多个 dump 的分组数量。
        """
        groups: Dict[str, List[DumpIdentifier]] = defaultdict(list)
        for dump in await self._dumps.list_dumps():
            if dump.sha256:
                groups[dump.sha256.lower()].append(dump.id)

        relations: Dict[DumpIdentifier, Set[DumpIdentifier]] = {}
        multi = 0
        for members in groups.values():
            if len(members) < 2:
                continue
            multi += 1
            for ident in members:
                relations[ident] = {m for m in members if m != ident}

        async with self._lock:
            self._relations = relations

        logger.info("Identical dump relationships rebuilt, groups=%s", multi)
        return multi

    async def get_identical(self, ident: DumpIdentifier) -> Set[DumpIdentifier]:
        async with self._lock:
            return set(self._relations.get(ident, set()))

    async def wipe_all(self) -> None:
        async with self._lock:
            self._relations.clear()
