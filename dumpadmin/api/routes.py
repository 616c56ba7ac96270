from __future__ import annotations

import hmac
import logging
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from dumpadmin.api import audit
from dumpadmin.core.container import AdminServices
from dumpadmin.core.dispatcher import DispatchOutcome, DispatchResult
from dumpadmin.core.identifiers import (
    EPOCH,
    DumpIdentifier,
    max_age_from_days,
    not_before_from_days,
)
from dumpadmin.core.job_store import JobStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

JIRA_REFRESH_KEY = "jira:refresh-all"
JIRA_SEARCH_KEY = "jira:search-bundles"
ELASTIC_PUSH_KEY = "elastic:push"


def get_services(request: Request) -> AdminServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return services


async def require_admin(
    x_admin_token: Optional[str] = Header(default=None),
    services: AdminServices = Depends(get_services),
) -> None:
    """
    管理员校验：配置了 ADMIN_TOKEN 时要求请求头 X-Admin-Token 一致。
    """
    expected = services.settings.ADMIN_TOKEN
    if expected and not hmac.compare_digest((x_admin_token or "").encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Admin token required")


class TriggerDumpRequest(BaseModel):
    bundle_id: str = Field(..., description="bundle id")
    dump_id: str = Field(..., description="dump id")


class TriggerAllRequest(BaseModel):
    force: bool = False
    days: int = Field(default=-1, description="只把该天数内计算的结果视为最新；<= 0 表示不限")


class DaysRequest(BaseModel):
    days: int = Field(default=-1, description="<= 0 表示不限时间窗口")


class ElasticPushRequest(BaseModel):
    clean: bool = False


class DispatchResponse(BaseModel):
    outcome: Literal["queued", "up_to_date", "already_queued"]
    job_id: Optional[str] = None


class TriggerAllResponse(BaseModel):
    queued: int
    skipped: int
    failed: int
    error: Optional[str] = None


class CompareResponse(BaseModel):
    dump1: Optional[str] = None
    dump2: Optional[str] = None
    similarity: Optional[Dict[str, float]] = None
    error: Optional[str] = None


class JobResponse(BaseModel):
    job_id: str
    name: str
    key: Optional[str] = None
    status: JobStatus
    error: Optional[str] = None
    created_at: float
    started_at: Optional[float] = None
    updated_at: Optional[float] = None


def _parse_ident(bundle_id: str, dump_id: str) -> DumpIdentifier:
    try:
        return DumpIdentifier(bundle_id, dump_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _to_response(result: DispatchResult) -> DispatchResponse:
    if result.outcome is DispatchOutcome.NOT_FOUND:
        raise HTTPException(status_code=404, detail=result.detail or "Not found")
    if result.outcome is DispatchOutcome.UNAVAILABLE:
        raise HTTPException(status_code=404, detail=result.detail or "Feature disabled")
    if result.outcome is DispatchOutcome.FAILED:
        raise HTTPException(status_code=503, detail=result.detail or "Job submission failed")
    return DispatchResponse(outcome=result.outcome.value, job_id=result.job_id)


@router.get("/overview", summary="管理概览", dependencies=[Depends(require_admin)])
async def overview(services: AdminServices = Depends(get_services)) -> Dict[str, Any]:
    features = services.dispatcher.features
    return {
        "features": {"jira": features.jira, "elasticsearch": features.elasticsearch},
        "queue_running": services.job_queue.running,
        "pending": await services.dispatcher.pending_count(),
        "jobs": await services.job_store.counts(),
        "similarity_results": await services.similarity_store.count(),
    }


@router.get(
    "/compare",
    summary="比较两个 dump 的相似度",
    response_model=CompareResponse,
    dependencies=[Depends(require_admin)],
)
async def compare_dumps(
    request: Request,
    bundle_id1: str = Query(...),
    dump_id1: str = Query(...),
    bundle_id2: str = Query(...),
    dump_id2: str = Query(...),
    services: AdminServices = Depends(get_services),
) -> CompareResponse:
    try:
        a = DumpIdentifier(bundle_id1, dump_id1)
        b = DumpIdentifier(bundle_id2, dump_id2)
        similarity = await services.similarity_service.compare(a, b)
    except Exception as exc:  # noqa: BLE001
        logger.exception("compare_dumps failed")
        return CompareResponse(error=f"exception while comparing: {exc}")

    if similarity is None:
        return CompareResponse(error="could not compare dumps.")
    audit.log_similarity_event("CompareDumps", request, str(a), str(b))
    return CompareResponse(dump1=str(a), dump2=str(b), similarity=similarity.to_dict())


@router.post(
    "/similarity/trigger",
    summary="触发单个 dump 的相似度分析",
    response_model=DispatchResponse,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(require_admin)],
)
async def trigger_similarity_analysis(
    payload: TriggerDumpRequest,
    request: Request,
    services: AdminServices = Depends(get_services),
) -> DispatchResponse:
    ident = _parse_ident(payload.bundle_id, payload.dump_id)
    result = await services.dispatcher.trigger_one(ident, force=True, not_before=EPOCH)
    if result.outcome is DispatchOutcome.NOT_FOUND:
        audit.log_not_found(
            "TriggerSimilarityAnalysis", request, bundle_id=ident.bundle_id, dump_id=ident.dump_id
        )
    else:
        audit.log_dump_access("TriggerSimilarityAnalysis", request, ident.bundle_id, ident.dump_id)
    return _to_response(result)


@router.post(
    "/similarity/trigger-all",
    summary="触发全部 dump 的相似度分析",
    response_model=TriggerAllResponse,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(require_admin)],
)
async def trigger_similarity_analysis_for_all(
    payload: TriggerAllRequest,
    request: Request,
    services: AdminServices = Depends(get_services),
) -> TriggerAllResponse:
    audit.log_admin_event(
        "TriggerSimilarityAnalysisForAllDumps", request, force=payload.force, days=payload.days
    )
    summary = await services.dispatcher.trigger_all(
        payload.force, not_before_from_days(payload.days)
    )
    return TriggerAllResponse(
        queued=summary.queued,
        skipped=summary.skipped,
        failed=summary.failed,
        error=summary.error,
    )


@router.post("/similarity/wipe", summary="清空相似度结果", dependencies=[Depends(require_admin)])
async def wipe_similarity(
    request: Request, services: AdminServices = Depends(get_services)
) -> Dict[str, str]:
    audit.log_admin_event("SimilarityWipeAll", request)
    await services.dispatcher.wipe_all()
    return {"status": "ok"}


@router.post(
    "/similarity/clean-queue",
    summary="回收孤立的 pending 标记",
    dependencies=[Depends(require_admin)],
)
async def clean_similarity_queue(
    request: Request, services: AdminServices = Depends(get_services)
) -> Dict[str, int]:
    audit.log_admin_event("CleanSimilarityAnalysisQueue", request)
    removed = await services.dispatcher.clean_queue()
    return {"removed": removed}


@router.post(
    "/identical/create",
    summary="重建完全相同 dump 关系",
    dependencies=[Depends(require_admin)],
)
async def create_identical_relationships(
    request: Request, services: AdminServices = Depends(get_services)
) -> Dict[str, int]:
    audit.log_admin_event("CreateAllIdenticalDumpRelationships", request)
    groups = await services.identical_repository.create_all_identical_relationships()
    return {"groups": groups}


@router.post(
    "/identical/wipe",
    summary="清空完全相同 dump 关系",
    dependencies=[Depends(require_admin)],
)
async def wipe_identical_relationships(
    request: Request, services: AdminServices = Depends(get_services)
) -> Dict[str, str]:
    audit.log_admin_event("WipeAllIdenticalDumpRelationships", request)
    await services.identical_repository.wipe_all()
    return {"status": "ok"}


@router.post(
    "/jira/refresh",
    summary="后台刷新全部缓存的 Jira issue",
    response_model=DispatchResponse,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(require_admin)],
)
async def force_refresh_all_jira_issues(
    request: Request, services: AdminServices = Depends(get_services)
) -> DispatchResponse:
    jira = services.jira_repository
    if jira is None or not services.dispatcher.features.jira:
        raise HTTPException(status_code=404, detail="Jira integration disabled")
    audit.log_admin_event("ForceRefreshAllJiraIssues", request)
    result = await services.dispatcher.trigger_job(
        JIRA_REFRESH_KEY,
        "jira_refresh_all_issues",
        jira.force_refresh_all_issues,
        feature="jira",
    )
    return _to_response(result)


@router.post(
    "/jira/wipe-cache",
    summary="清空 Jira issue 缓存",
    dependencies=[Depends(require_admin)],
)
async def wipe_jira_issue_cache(
    request: Request, services: AdminServices = Depends(get_services)
) -> Dict[str, str]:
    jira = services.jira_repository
    if jira is None or not services.dispatcher.features.jira:
        raise HTTPException(status_code=404, detail="Jira integration disabled")
    audit.log_admin_event("WipeJiraIssueCache", request)
    await jira.wipe_cache()
    return {"status": "ok"}


@router.post(
    "/jira/search-bundles",
    summary="后台为 bundle 搜索 Jira issue",
    response_model=DispatchResponse,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(require_admin)],
)
async def force_search_bundle_issues(
    payload: DaysRequest,
    request: Request,
    services: AdminServices = Depends(get_services),
) -> DispatchResponse:
    jira = services.jira_repository
    if jira is None or not services.dispatcher.features.jira:
        raise HTTPException(status_code=404, detail="Jira integration disabled")
    audit.log_admin_event("ForceSearchBundleIssues", request, days=payload.days)
    max_age = max_age_from_days(payload.days)

    async def job() -> int:
        return await jira.search_all_bundle_issues(max_age, force=True)

    result = await services.dispatcher.trigger_job(
        JIRA_SEARCH_KEY, "jira_search_bundle_issues", job, feature="jira"
    )
    return _to_response(result)


@router.post(
    "/elastic/push",
    summary="后台推送全部结果到 Elasticsearch",
    response_model=DispatchResponse,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(require_admin)],
)
async def push_elastic_search(
    payload: ElasticPushRequest,
    request: Request,
    services: AdminServices = Depends(get_services),
) -> DispatchResponse:
    elastic = services.elastic_service
    if elastic is None or not services.dispatcher.features.elasticsearch:
        raise HTTPException(status_code=404, detail="Elasticsearch disabled")
    audit.log_elastic_clean("PushElasticSearch", request, payload.clean)

    async def job() -> int:
        return await elastic.push_all_results(payload.clean)

    result = await services.dispatcher.trigger_job(
        ELASTIC_PUSH_KEY, "elastic_push_all_results", job, feature="elasticsearch"
    )
    return _to_response(result)


@router.get(
    "/jobs",
    summary="最近的后台任务",
    response_model=List[JobResponse],
    dependencies=[Depends(require_admin)],
)
async def list_jobs(
    limit: int = Query(default=50, ge=1, le=500),
    services: AdminServices = Depends(get_services),
) -> List[JobResponse]:
    return [JobResponse(**job) for job in await services.job_store.list_recent(limit)]


@router.get(
    "/jobs/{job_id}",
    summary="查询后台任务状态",
    response_model=JobResponse,
    dependencies=[Depends(require_admin)],
)
async def get_job(job_id: str, services: AdminServices = Depends(get_services)) -> JobResponse:
    job = await services.job_store.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobResponse(**job)
