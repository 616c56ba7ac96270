from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from dumpadmin.config import Settings
from dumpadmin.core.dispatcher import AnalysisDispatcher, DispatcherConfig, FeatureFlags
from dumpadmin.core.job_queue import JobQueue
from dumpadmin.core.job_store import JobStore
from dumpadmin.services.dumps import DumpRepository
from dumpadmin.services.jira import JiraApiClient, JiraIssueRepository
from dumpadmin.services.search import ElasticSearchService
from dumpadmin.services.similarity import (
    IdenticalDumpRepository,
    SimilarityService,
    SimilarityStore,
    load_similarity_config,
)

logger = logging.getLogger(__name__)


@dataclass
class AdminServices:
    """
    管理端用到的全部服务实例，随应用生命周期启动/关闭。
    """

    settings: Settings
    job_store: JobStore
    job_queue: JobQueue
    dump_repository: DumpRepository
    similarity_store: SimilarityStore
    similarity_service: SimilarityService
    identical_repository: IdenticalDumpRepository
    dispatcher: AnalysisDispatcher
    jira_client: Optional[JiraApiClient] = None
    jira_repository: Optional[JiraIssueRepository] = None
    elastic_service: Optional[ElasticSearchService] = None

    async def start(self) -> None:
        self.job_queue.start()

    async def stop(self) -> None:
        await self.job_queue.stop()
        if self.jira_client is not None:
            await self.jira_client.aclose()
        if self.elastic_service is not None:
            await self.elastic_service.aclose()


def build_services(settings: Settings) -> AdminServices:
    job_store = JobStore(history_limit=settings.JOB_HISTORY_LIMIT)
    job_queue = JobQueue(
        job_store=job_store,
        workers=settings.JOB_WORKERS,
        max_size=settings.JOB_QUEUE_SIZE,
    )
    dumps = DumpRepository(settings.DUMP_STORAGE_DIR)
    store = SimilarityStore()
    similarity = SimilarityService(
        dump_repository=dumps,
        store=store,
        config=load_similarity_config(settings.SIMILARITY_CONFIG_PATH),
    )

    jira_client: Optional[JiraApiClient] = None
    jira_repository: Optional[JiraIssueRepository] = None
    if settings.USE_JIRA_INTEGRATION:
        if not settings.JIRA_URL:
            raise ValueError("USE_JIRA_INTEGRATION is enabled but JIRA_URL is not set")
        jira_client = JiraApiClient(
            base_url=settings.JIRA_URL,
            user=settings.JIRA_USER,
            api_token=settings.JIRA_API_TOKEN,
            timeout_s=settings.JIRA_TIMEOUT_S,
        )
        jira_repository = JiraIssueRepository(
            client=jira_client,
            dump_repository=dumps,
            batch_size=settings.JIRA_BATCH_SIZE,
        )

    elastic: Optional[ElasticSearchService] = None
    if settings.USE_ELASTICSEARCH:
        elastic = ElasticSearchService(
            dump_repository=dumps,
            base_url=settings.ELASTICSEARCH_URL,
            index=settings.ELASTICSEARCH_INDEX,
            timeout_s=settings.ELASTICSEARCH_TIMEOUT_S,
            batch_size=settings.ELASTICSEARCH_BATCH_SIZE,
        )

    dispatcher = AnalysisDispatcher(
        dumps=dumps,
        results=store,
        jobs=job_queue,
        analyze=similarity.run_analysis,
        config=DispatcherConfig(
            features=FeatureFlags(
                jira=settings.USE_JIRA_INTEGRATION,
                elasticsearch=settings.USE_ELASTICSEARCH,
            ),
            repository_timeout_s=settings.REPOSITORY_TIMEOUT_S,
        ),
    )

    logger.info(
        "Admin services built, storage=%s jira=%s elasticsearch=%s",
        settings.DUMP_STORAGE_DIR,
        settings.USE_JIRA_INTEGRATION,
        settings.USE_ELASTICSEARCH,
    )
    return AdminServices(
        settings=settings,
        job_store=job_store,
        job_queue=job_queue,
        dump_repository=dumps,
        similarity_store=store,
        similarity_service=similarity,
        identical_repository=IdenticalDumpRepository(dump_repository=dumps),
        dispatcher=dispatcher,
        jira_client=jira_client,
        jira_repository=jira_repository,
        elastic_service=elastic,
    )
