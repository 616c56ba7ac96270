"""
Elasticsearch 异常定义
"""
from typing import Optional


class ElasticSearchError(Exception):
    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
