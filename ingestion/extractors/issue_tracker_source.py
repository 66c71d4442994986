"""
Issue tracker task source: tickets assigned to the current user via JQL
"""

from typing import Any, Dict, List, Optional
from clients.issue_tracker import IssueTrackerClient
from core.config import settings
from core.exceptions import (
    AuthenticationError,
    IssueTrackerError,
    NetworkError,
    SourceFetchError,
)
from ingestion.base import SourceClient
from ingestion.transformers.attention import (
    AGENT_LAST_UPDATED_FIELD,
    AGENT_NEXT_UPDATE_FIELD,
    SLA_RESOLUTION_FIELD,
)
import logging

logger = logging.getLogger(__name__)

SEARCH_FIELDS = [
    "summary",
    "status",
    "priority",
    "description",
    "assignee",
    "created",
    "duedate",
    AGENT_LAST_UPDATED_FIELD,
    AGENT_NEXT_UPDATE_FIELD,
    SLA_RESOLUTION_FIELD,
]


class IssueTrackerSource(SourceClient):
    """
    Fetch open tickets for the configured account.

    The JQL can be overridden per fetch with the issue_tracker_jql setting.
    """

    def __init__(
        self,
        client: IssueTrackerClient,
        jql: Optional[str] = None,
        max_results: int = 50
    ):
        self.client = client
        self.jql = jql or settings.ISSUE_TRACKER_JQL
        self.max_results = max_results

    async def fetch(self, source_config: Optional[Dict[str, str]] = None) -> List[Dict[str, Any]]:
        jql = (source_config or {}).get("issue_tracker_jql") or self.jql

        try:
            issues = await self.client.search_by_query(jql, SEARCH_FIELDS, self.max_results)
        except IssueTrackerError as e:
            if e.status_code in (401, 403):
                raise AuthenticationError(
                    "Issue tracker rejected credentials",
                    context={"status_code": e.status_code},
                    original_exception=e
                )
            if e.retryable:
                raise NetworkError(
                    "Issue tracker temporarily unavailable",
                    context={"status_code": e.status_code},
                    original_exception=e
                )
            raise SourceFetchError(
                "Issue tracker search failed",
                context={"status_code": e.status_code, "jql": jql},
                original_exception=e
            )

        logger.info(f"Issue tracker search returned {len(issues)} issues")
        return issues

    async def close(self) -> None:
        await self.client.close()
