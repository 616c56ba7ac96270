"""
Jira 集成（可选，由 USE_JIRA_INTEGRATION 控制）
"""
from __future__ import annotations

from dumpadmin.services.jira.client import JiraApiClient, JiraIssue
from dumpadmin.services.jira.errors import JiraAPIError
from dumpadmin.services.jira.repository import JiraIssueRepository

__all__ = [
    "JiraAPIError",
    "JiraApiClient",
    "JiraIssue",
    "JiraIssueRepository",
]
