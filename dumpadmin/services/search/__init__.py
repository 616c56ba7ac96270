"""
搜索索引推送（可选，由 USE_ELASTICSEARCH 控制）
"""
from __future__ import annotations

from dumpadmin.services.search.elastic import ElasticSearchService
from dumpadmin.services.search.errors import ElasticSearchError

__all__ = ["ElasticSearchError", "ElasticSearchService"]
