from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from dumpadmin.services.dumps import DumpRepository
from dumpadmin.services.jira.client import JiraApiClient, JiraIssue
from dumpadmin.services.jira.errors import JiraAPIError

logger = logging.getLogger(__name__)


def _quote_jql(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


class JiraIssueRepository:
    """
    bundle -> 相关 Jira issue 的内存缓存。
    """

    def __init__(
        self,
        *,
        client: JiraApiClient,
        dump_repository: DumpRepository,
        batch_size: int = 50,
    ) -> None:
        self._client = client
        self._dumps = dump_repository
        self._batch_size = max(1, batch_size)
        self._lock = asyncio.Lock()
        self._cache: Dict[str, List[JiraIssue]] = {}

    async def get_issues(self, bundle_id: str) -> Optional[List[JiraIssue]]:
        async with self._lock:
            issues = self._cache.get(bundle_id)
            return list(issues) if issues is not None else None

    async def search_bundle_issues(self, bundle_id: str) -> List[JiraIssue]:
        issues = await self._client.search(f"text ~ {_quote_jql(bundle_id)}")
        async with self._lock:
            self._cache[bundle_id] = issues
        return issues

    async def search_all_bundle_issues(
        self, max_age: Optional[timedelta], force: bool = False
    ) -> int:
        """
        为指定时间窗口内创建的 bundle 搜索 issue；max_age 为 None 表示不限。
        返回实际发起搜索的 bundle 数量，单个 bundle 失败不影响其余。
        """
        threshold = datetime.now(timezone.utc) - max_age if max_age is not None else None
        searched = 0
        for bundle in await self._dumps.list_bundles():
            if threshold is not None and bundle.created < threshold:
                continue
            if not force:
                async with self._lock:
                    if bundle.bundle_id in self._cache:
                        continue
            try:
                await self.search_bundle_issues(bundle.bundle_id)
            except JiraAPIError as exc:
                logger.warning("Jira search failed for bundle=%s: %s", bundle.bundle_id, exc)
                continue
            except Exception:  # noqa: BLE001
                logger.exception("Jira search crashed for bundle=%s, continuing", bundle.bundle_id)
                continue
            searched += 1

        logger.info("Searched Jira issues for %s bundles (force=%s)", searched, force)
        return searched

    async def force_refresh_all_issues(self) -> int:
        """
        重新拉取缓存中所有 issue 的最新状态，返回刷新到的 issue 数量。
        """
        async with self._lock:
            keys = sorted({issue.key for issues in self._cache.values() for issue in issues})

        fresh: Dict[str, JiraIssue] = {}
        for i in range(0, len(keys), self._batch_size):
            batch = keys[i : i + self._batch_size]
            for issue in await self._client.search(f"key in ({','.join(batch)})"):
                fresh[issue.key] = issue

        async with self._lock:
            for bundle_id, issues in self._cache.items():
                self._cache[bundle_id] = [fresh.get(issue.key, issue) for issue in issues]

        logger.info("Refreshed %s of %s cached Jira issues", len(fresh), len(keys))
        return len(fresh)

    async def wipe_cache(self) -> None:
        async with self._lock:
            self._cache.clear()
        logger.info("Jira issue cache wiped")
