"""
Microsoft Graph task sources: planner, to-do, calendar and flagged email
"""

from typing import Any, Dict, List, Optional
from datetime import datetime, timedelta, timezone
from clients.graph import GraphClient
from ingestion.base import SourceClient
from models.base import TaskSource
from models.settings import DEFAULT_SETTINGS
import logging

logger = logging.getLogger(__name__)

GRAPH_SOURCES = (TaskSource.PLANNER, TaskSource.TODO, TaskSource.CALENDAR, TaskSource.EMAIL)

CALENDAR_WINDOW_DAYS = 7

EMAIL_FILTERS = {
    "flagged": "flag/flagStatus eq 'flagged'",
    "unread": "isRead eq false",
    "unread_and_flagged": "(isRead eq false or flag/flagStatus eq 'flagged')",
    "all": None,
}


def _positive_int(value: Optional[str], default: int) -> int:
    try:
        parsed = int(value) if value is not None else default
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def build_email_filter(filter_type: str, days: int, now: Optional[datetime] = None) -> str:
    """OData filter for the configured mail view, limited to the last `days` days"""
    now = now or datetime.now(timezone.utc)
    parts = []

    status_filter = EMAIL_FILTERS.get(filter_type, EMAIL_FILTERS["flagged"])
    if status_filter:
        parts.append(status_filter)

    if days > 0:
        since = (now - timedelta(days=days)).strftime("%Y-%m-%dT%H:%M:%SZ")
        parts.append(f"receivedDateTime ge {since}")

    return " and ".join(parts)


class GraphSource(SourceClient):
    """One Graph-backed source; kind selects the resource"""

    def __init__(self, kind: TaskSource, client: GraphClient):
        if kind not in GRAPH_SOURCES:
            raise ValueError(f"{kind.value} is not a Graph source")
        self.kind = kind
        self.client = client

    async def fetch(self, source_config: Optional[Dict[str, str]] = None) -> List[Dict[str, Any]]:
        config = source_config or {}

        if self.kind == TaskSource.PLANNER:
            items = await self.client.list_planner_tasks()
        elif self.kind == TaskSource.TODO:
            items = await self.client.list_todo_tasks()
        elif self.kind == TaskSource.CALENDAR:
            start = datetime.now(timezone.utc)
            items = await self.client.calendar_view(start, start + timedelta(days=CALENDAR_WINDOW_DAYS))
        else:
            filter_type = config.get("email_filter") or DEFAULT_SETTINGS["email_filter"]
            days = _positive_int(config.get("email_days"), int(DEFAULT_SETTINGS["email_days"]))
            limit = _positive_int(config.get("email_limit"), int(DEFAULT_SETTINGS["email_limit"]))
            items = await self.client.list_messages(build_email_filter(filter_type, days), top=limit)

        logger.info(f"Graph {self.kind.value} returned {len(items)} items")
        return items

    async def close(self) -> None:
        # The Graph client is shared by all four sources; closing twice is a no-op
        await self.client.close()
