"""
管理操作审计日志：统一写入 dumpadmin.audit logger。
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import Request

audit_logger = logging.getLogger("dumpadmin.audit")


def _client(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def log_admin_event(event: str, request: Request, **params: Any) -> None:
    audit_logger.info("admin_event=%s client=%s params=%s", event, _client(request), params)


def log_not_found(event: str, request: Request, **params: Any) -> None:
    audit_logger.warning("not_found event=%s client=%s params=%s", event, _client(request), params)


def log_dump_access(event: str, request: Request, bundle_id: str, dump_id: str) -> None:
    audit_logger.info(
        "dump_access event=%s client=%s bundle_id=%s dump_id=%s",
        event,
        _client(request),
        bundle_id,
        dump_id,
    )


def log_similarity_event(event: str, request: Request, *dump_ids: str) -> None:
    audit_logger.info("similarity event=%s client=%s dumps=%s", event, _client(request), list(dump_ids))


def log_elastic_clean(event: str, request: Request, clean: bool) -> None:
    audit_logger.info("elastic event=%s client=%s clean=%s", event, _client(request), clean)
