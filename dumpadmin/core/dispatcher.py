from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    Optional,
    Protocol,
    Sequence,
    TypeVar,
    Union,
)

from dumpadmin.core.identifiers import EPOCH, DumpIdentifier
from dumpadmin.core.job_queue import JobFactory, JobSubmissionError
from dumpadmin.core.pending_set import PendingKey, PendingSet

logger = logging.getLogger(__name__)

T = TypeVar("T")

SIMILARITY_JOB = "similarity_analysis"


class DumpLike(Protocol):
    @property
    def id(self) -> DumpIdentifier: ...


class ResultLike(Protocol):
    computed_at: datetime


class DumpSource(Protocol):
    async def get_bundle(self, bundle_id: str) -> Optional[Any]: ...

    async def get_dump(self, ident: DumpIdentifier) -> Optional[Any]: ...

    async def list_dumps(self) -> Sequence[DumpLike]: ...


class ResultSource(Protocol):
    async def get(self, ident: DumpIdentifier) -> Optional[ResultLike]: ...

    async def wipe_all(self) -> None: ...


class JobSystem(Protocol):
    def submit(
        self,
        name: str,
        factory: JobFactory,
        *,
        key: Optional[str] = None,
        on_done: Optional[Callable[[str], Any]] = None,
    ) -> str: ...

    def is_active(self, job_id: str) -> bool: ...


class DispatchOutcome(str, Enum):
    QUEUED = "queued"
    UP_TO_DATE = "up_to_date"
    ALREADY_QUEUED = "already_queued"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


class _AllDumps:
    def __repr__(self) -> str:
        return "ALL"


ALL = _AllDumps()


@dataclass(frozen=True)
class DispatchRequest:
    item: Union[DumpIdentifier, _AllDumps]
    force: bool = False
    not_before: datetime = EPOCH


@dataclass
class DispatchResult:
    outcome: DispatchOutcome
    job_id: Optional[str] = None
    detail: Optional[str] = None


@dataclass
class TriggerAllSummary:
    queued: int = 0
    skipped: int = 0
    failed: int = 0
    error: Optional[str] = None

    def record(self, outcome: DispatchOutcome) -> None:
        if outcome is DispatchOutcome.QUEUED:
            self.queued += 1
        elif outcome is DispatchOutcome.FAILED:
            self.failed += 1
        else:
            self.skipped += 1


@dataclass(frozen=True)
class FeatureFlags:
    jira: bool = False
    elasticsearch: bool = False

    def enabled(self, feature: str) -> bool:
        try:
            return bool(getattr(self, feature))
        except AttributeError as exc:
            raise ValueError(f"Unknown feature: {feature}") from exc


@dataclass(frozen=True)
class DispatcherConfig:
    features: FeatureFlags = field(default_factory=FeatureFlags)
    repository_timeout_s: float = 10.0


class AnalysisDispatcher:
    """
    决定一次后台计算是立即提交、跳过（结果已是最新 / 已在队列中），
    并保证同一个 key 同时最多只有一个进行中的任务。

    只负责到「提交成功」为止；任务完成后由回调移除 pending 标记。
    """

    def __init__(
        self,
        *,
        dumps: DumpSource,
        results: ResultSource,
        jobs: JobSystem,
        analyze: Callable[[DumpIdentifier], Awaitable[Any]],
        config: Optional[DispatcherConfig] = None,
        pending: Optional[PendingSet] = None,
    ) -> None:
        self._dumps = dumps
        self._results = results
        self._jobs = jobs
        self._analyze = analyze
        self._config = config or DispatcherConfig()
        self._pending = pending or PendingSet()

    @property
    def features(self) -> FeatureFlags:
        return self._config.features

    async def dispatch(
        self, request: DispatchRequest
    ) -> Union[DispatchResult, TriggerAllSummary]:
        if isinstance(request.item, DumpIdentifier):
            return await self.trigger_one(request.item, request.force, request.not_before)
        return await self.trigger_all(request.force, request.not_before)

    async def trigger_one(
        self,
        item: DumpIdentifier,
        force: bool = False,
        not_before: datetime = EPOCH,
    ) -> DispatchResult:
        try:
            if await self._bounded(self._dumps.get_bundle(item.bundle_id)) is None:
                logger.info("trigger_one: bundle not found bundle_id=%s", item.bundle_id)
                return DispatchResult(DispatchOutcome.NOT_FOUND, detail="bundle not found")
            if await self._bounded(self._dumps.get_dump(item)) is None:
                logger.info("trigger_one: dump not found dump=%s", item)
                return DispatchResult(DispatchOutcome.NOT_FOUND, detail="dump not found")
            return await self._dispatch_analysis(item, force, not_before)
        except asyncio.TimeoutError:
            logger.warning("trigger_one: repository timed out dump=%s", item)
            return DispatchResult(DispatchOutcome.FAILED, detail="repository timeout")
        except Exception as exc:  # noqa: BLE001
            logger.exception("trigger_one failed dump=%s", item)
            return DispatchResult(DispatchOutcome.FAILED, detail=str(exc))

    async def trigger_all(
        self, force: bool = False, not_before: datetime = EPOCH
    ) -> TriggerAllSummary:
        summary = TriggerAllSummary()
        try:
            dumps = await self._bounded(self._dumps.list_dumps())
        except Exception as exc:  # noqa: BLE001
            logger.exception("trigger_all: listing dumps failed")
            summary.error = str(exc) or type(exc).__name__
            return summary

        for dump in dumps:
            try:
                result = await self._dispatch_analysis(dump.id, force, not_before)
            except Exception:  # noqa: BLE001
                logger.exception("trigger_all: dispatch failed for one dump, continuing")
                summary.failed += 1
                continue
            summary.record(result.outcome)

        logger.info(
            "trigger_all done force=%s not_before=%s queued=%s skipped=%s failed=%s",
            force,
            not_before.isoformat(),
            summary.queued,
            summary.skipped,
            summary.failed,
        )
        return summary

    async def trigger_job(
        self,
        key: str,
        name: str,
        factory: JobFactory,
        *,
        feature: Optional[str] = None,
    ) -> DispatchResult:
        """
        单例型管理任务（Jira 刷新、索引推送等）的去重提交。
        """
        if feature is not None and not self._config.features.enabled(feature):
            logger.info("trigger_job: feature %s disabled, job=%s", feature, name)
            return DispatchResult(DispatchOutcome.UNAVAILABLE, detail=f"{feature} disabled")
        return await self._submit(key, name, factory)

    async def clean_queue(self) -> int:
        """
        回收没有对应活动任务的 pending 标记；不会取消正在执行的任务。
        """
        removed = await self._pending.remove_where(
            lambda _key, job_id: not self._jobs.is_active(job_id)
        )
        logger.info("clean_queue removed %s orphaned markers", removed)
        return removed

    async def wipe_all(self) -> None:
        await self._results.wipe_all()
        removed = await self._pending.remove_where(
            lambda key, _job_id: isinstance(key, DumpIdentifier)
        )
        logger.info("wipe_all: results wiped, %s pending markers dropped", removed)

    async def is_pending(self, key: PendingKey) -> bool:
        return await self._pending.contains(key)

    async def pending_count(self) -> int:
        return await self._pending.size()

    async def _dispatch_analysis(
        self, item: DumpIdentifier, force: bool, not_before: datetime
    ) -> DispatchResult:
        if not force:
            existing = await self._bounded(self._results.get(item))
            if existing is not None and existing.computed_at >= not_before:
                return DispatchResult(DispatchOutcome.UP_TO_DATE)

        async def job() -> Any:
            return await self._analyze(item)

        return await self._submit(item, SIMILARITY_JOB, job)

    async def _submit(self, key: PendingKey, name: str, factory: JobFactory) -> DispatchResult:
        # 检查、提交、插入之间不能有 await
        async with self._pending.locked() as pending:
            if pending.contains_unlocked(key):
                return DispatchResult(DispatchOutcome.ALREADY_QUEUED)
            try:
                job_id = self._jobs.submit(
                    name,
                    factory,
                    key=str(key),
                    on_done=functools.partial(self._on_done, key),
                )
            except JobSubmissionError as exc:
                logger.warning("Job submission rejected key=%s: %s", key, exc)
                return DispatchResult(DispatchOutcome.FAILED, detail=str(exc))
            pending.insert_unlocked(key, job_id)

        return DispatchResult(DispatchOutcome.QUEUED, job_id=job_id)

    async def _on_done(self, key: PendingKey, job_id: str) -> None:
        await self._pending.discard(key, job_id)

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self._config.repository_timeout_s)
