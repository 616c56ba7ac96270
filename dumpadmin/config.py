from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    全局配置，从环境变量与 .env 中读取。
    """

    # 管理接口鉴权：为空时不校验（仅用于本地开发）
    ADMIN_TOKEN: str | None = None

    # Dump 存储与相似度配置
    DUMP_STORAGE_DIR: str = "data/dumps"
    SIMILARITY_CONFIG_PATH: str = "similarity_config.yml"

    # 后台任务
    JOB_WORKERS: int = 2
    JOB_QUEUE_SIZE: int = 1000
    JOB_HISTORY_LIMIT: int = 500
    REPOSITORY_TIMEOUT_S: float = 10.0

    # Jira 集成（可选）
    USE_JIRA_INTEGRATION: bool = False
    JIRA_URL: str | None = None
    JIRA_USER: str | None = None
    JIRA_API_TOKEN: str | None = None
    JIRA_TIMEOUT_S: float = 20.0
    JIRA_BATCH_SIZE: int = 50

    # Elasticsearch 推送（可选）
    USE_ELASTICSEARCH: bool = False
    ELASTICSEARCH_URL: str = "http://localhost:9200"
    ELASTICSEARCH_INDEX: str = "superdump"
    ELASTICSEARCH_TIMEOUT_S: float = 30.0
    ELASTICSEARCH_BATCH_SIZE: int = 500

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """
    获取全局单例配置实例。
    """
    return Settings()
