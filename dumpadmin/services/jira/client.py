from __future__ import annotations

import logging
from json import JSONDecodeError
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

from dumpadmin.services.jira.errors import JiraAPIError

logger = logging.getLogger(__name__)

SEARCH_FIELDS = "summary,status,resolution,updated"


class JiraIssue(BaseModel):
    key: str
    summary: Optional[str] = None
    status: Optional[str] = None
    resolution: Optional[str] = None
    # Jira 时间格式为 2026-01-01T10:00:00.000+0000，原样保留
    updated: Optional[str] = None

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "JiraIssue":
        fields = raw.get("fields") or {}
        return cls(
            key=raw["key"],
            summary=fields.get("summary"),
            status=(fields.get("status") or {}).get("name"),
            resolution=(fields.get("resolution") or {}).get("name"),
            updated=fields.get("updated"),
        )


class JiraApiClient:
    """
    Jira REST API 客户端

    负责：
    - Basic Auth（用户名 + API Token）
    - /rest/api/2/search 分页查询
    """

    def __init__(
        self,
        *,
        base_url: str,
        user: Optional[str] = None,
        api_token: Optional[str] = None,
        timeout_s: float = 20.0,
        page_size: int = 100,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        auth = httpx.BasicAuth(user, api_token) if user and api_token else None
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            auth=auth,
            timeout=timeout_s,
            transport=transport,
        )
        self._page_size = page_size

    async def search(self, jql: str, *, max_results: Optional[int] = None) -> List[JiraIssue]:
        issues: List[JiraIssue] = []
        start_at = 0
        while True:
            params = {
                "jql": jql,
                "startAt": start_at,
                "maxResults": self._page_size,
                "fields": SEARCH_FIELDS,
            }
            data = await self._get_json("/rest/api/2/search", params=params)
            page = data.get("issues") or []
            issues.extend(JiraIssue.from_api(item) for item in page)

            total = int(data.get("total", len(issues)))
            start_at += len(page)
            if not page or start_at >= total:
                break
            if max_results is not None and len(issues) >= max_results:
                break

        if max_results is not None:
            issues = issues[:max_results]
        logger.info("Jira search returned %s issues, jql=%s", len(issues), jql)
        return issues

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get_json(self, path: str, *, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = await self._client.get(path, params=params)
        except httpx.HTTPError as exc:
            raise JiraAPIError(f"Jira request failed: {exc}") from exc

        if resp.status_code != 200:
            logger.error(
                "Jira API error: path=%s status=%s body=%s", path, resp.status_code, resp.text[:500]
            )
            raise JiraAPIError(
                f"Jira API returned {resp.status_code} for {path}",
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except JSONDecodeError as exc:
            raise JiraAPIError(
                f"Jira API returned non-JSON body for {path}", status_code=resp.status_code
            ) from exc
