from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


class SimilarityWeights(BaseModel):
    """
    各维度在综合相似度中的权重，不要求归一化。
    """

    stack: float = Field(default=0.6, ge=0)
    exception: float = Field(default=0.3, ge=0)
    modules: float = Field(default=0.1, ge=0)


class SimilarityConfig(BaseModel):
    """
    从 similarity_config.yml 解析出的配置模型。
    """

    weights: SimilarityWeights = Field(default_factory=SimilarityWeights)
    min_similarity: float = Field(
        default=0.6, ge=0, le=1, description="低于该值的相似关系不入库"
    )


def load_similarity_config(config_path: Optional[str] = None) -> SimilarityConfig:
    """
    读取相似度配置；文件缺失或格式错误时回退到内置默认值。
    """
    path = Path(config_path or "similarity_config.yml")
    if not path.exists():
        logger.warning("similarity config not found at %s, using defaults", path)
        return SimilarityConfig()

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        cfg = SimilarityConfig.model_validate(raw)
    except (OSError, yaml.YAMLError, ValidationError) as exc:
        logger.warning("Invalid similarity config at %s, using defaults: %s", path, exc)
        return SimilarityConfig()

    logger.info(
        "Loaded similarity config from %s, min_similarity=%s", path, cfg.min_similarity
    )
    return cfg
