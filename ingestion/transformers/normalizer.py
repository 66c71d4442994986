"""
Transform raw source records into canonical tasks with Pydantic validation
"""

from typing import Any, Callable, Dict, List, Optional
from datetime import date, datetime, timedelta
from html import unescape
from pydantic import ValidationError
from core.exceptions import NormalizationError
from ingestion.transformers.attention import evaluate_attention
from ingestion.transformers.fields import FieldAccessor, parse_datetime
from models.base import TaskSource, TaskStatus
from schemas.task import NormalizedTask
import logging
import re

logger = logging.getLogger(__name__)

Strategy = Callable[[Dict[str, Any]], Dict[str, Any]]

DEFAULT_PRIORITY = 50

COMPLETE_STATUSES = {"100", "completed", "done", "closed", "resolved"}
OPEN_STATUSES = {"", "0", "notstarted", "open", "todo", "new"}
DEFERRED_STATUSES = {"waitingonothers", "deferred"}

ISSUE_TRACKER_PRIORITIES = [
    ("highest", 95),
    ("critical", 95),
    ("high", 80),
    ("medium", 50),
    ("lowest", 15),
    ("low", 30),
]

TODO_PRIORITIES = {"high": 80, "normal": 50, "low": 30}

BOARD_PRIORITIES = [
    ("critical", 95),
    ("high", 80),
    ("medium", 55),
    ("low", 30),
]

URL_TEMPLATES = {
    TaskSource.PLANNER: "https://planner.cloud.microsoft/Home/Task/{id}",
    TaskSource.TODO: "https://to-do.office.com/tasks/id/{id}/details",
}

# Keys copied from a mapped record into NormalizedTask
_TASK_KEYS = (
    "description",
    "due_date",
    "source_url",
    "category",
    "sla_breach_at",
    "urgency_score",
    "sla_remaining_ms",
    "attention_reasons",
)

_TAG_RE = re.compile(r"<[^>]*>")
_WS_RE = re.compile(r"\s+")
_NUMERIC_RE = re.compile(r"^\d+(\.\d+)?$")


# ============================================================================
# Shared helpers
# ============================================================================

def strip_html(html: Optional[str]) -> Optional[str]:
    """Drop tags, unescape entities and collapse whitespace"""
    if html is None:
        return None
    text = _TAG_RE.sub(" ", html)
    text = unescape(text).replace("\xa0", " ")
    text = _WS_RE.sub(" ", text).strip()
    return text or None


def normalize_status(value: Any) -> Optional[TaskStatus]:
    """
    Map a source status vocabulary onto TaskStatus.

    Returns None for completed items, which are excluded from upsert.
    """
    if value is None:
        return TaskStatus.OPEN
    if isinstance(value, TaskStatus):
        return value

    raw = str(value).strip().lower()
    compact = raw.replace(" ", "").replace("_", "").replace("-", "")

    if compact in COMPLETE_STATUSES or raw in COMPLETE_STATUSES:
        return None
    if compact in OPEN_STATUSES:
        return TaskStatus.OPEN
    if _NUMERIC_RE.match(compact):
        percent = float(compact)
        if percent >= 100:
            return None
        return TaskStatus.IN_PROGRESS if percent > 0 else TaskStatus.OPEN
    if compact == "inprogress" or "progress" in compact or "review" in compact:
        return TaskStatus.IN_PROGRESS
    if compact in DEFERRED_STATUSES:
        return TaskStatus.OPEN

    try:
        return TaskStatus(raw)
    except ValueError:
        return TaskStatus.OPEN


def normalize_priority(value: Any) -> int:
    """Coerce a priority to an int in 0-100; blank or unparsable values become the default"""
    if value is None or value == "" or isinstance(value, bool):
        return DEFAULT_PRIORITY

    try:
        if isinstance(value, (int, float)):
            parsed = int(value)
        else:
            parsed = int(float(str(value).strip()))
    except (ValueError, TypeError, OverflowError):
        return DEFAULT_PRIORITY

    return max(0, min(100, parsed))


def build_source_url(
    source: TaskSource,
    source_id: str,
    issue_tracker_base_url: Optional[str] = None
) -> Optional[str]:
    """Deep link back to the origin system, where the source has a known URL template"""
    if source == TaskSource.ISSUE_TRACKER:
        if not issue_tracker_base_url:
            return None
        return f"{issue_tracker_base_url.rstrip('/')}/browse/{source_id}"

    template = URL_TEMPLATES.get(source)
    return template.format(id=source_id) if template else None


def extract_description(item: Dict[str, Any]) -> Optional[str]:
    """Pick a plain-text description from the field formats used across sources"""
    description = item.get("description")
    if isinstance(description, str) and description:
        return description

    body = item.get("body")
    if isinstance(body, dict) and isinstance(body.get("content"), str) and body["content"]:
        return strip_html(body["content"])

    notes = item.get("notes")
    if isinstance(notes, str) and notes:
        return notes

    preview = item.get("bodyPreview")
    if isinstance(preview, str) and preview:
        return strip_html(preview)

    return None


def _date_value(value: Any) -> Optional[str]:
    """Return a due date string from strings, Graph {dateTime} objects or datetime values"""
    if value is None or value == "":
        return None
    if isinstance(value, dict):
        return _date_value(value.get("dateTime"))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _ranked_priority(text: Optional[str], ranks: List[tuple], default: int) -> int:
    if not text:
        return default
    lower = text.lower()
    for keyword, value in ranks:
        if keyword in lower:
            return value
    return default


def map_planner_priority(priority: Any) -> int:
    """Planner priority runs 0 (urgent) to 10 (low)"""
    if priority is None or priority == "":
        return DEFAULT_PRIORITY
    try:
        value = float(priority)
    except (TypeError, ValueError):
        return DEFAULT_PRIORITY
    if value <= 1:
        return 90
    if value <= 3:
        return 70
    if value <= 5:
        return 50
    if value <= 7:
        return 30
    return 20


def find_column_value(columns: Any, *keywords: str) -> Optional[str]:
    """First board column whose id or title contains one of the keywords"""
    if not isinstance(columns, list):
        return None
    for column in columns:
        if not isinstance(column, dict):
            continue
        column_id = str(column.get("id") or "").lower()
        title = str(column.get("title") or "").lower()
        if any(kw in column_id or kw in title for kw in keywords):
            value = column.get("text") or column.get("value")
            return str(value) if value else None
    return None


# ============================================================================
# Normalizer
# ============================================================================

class SourceNormalizer:
    """
    Normalize raw records from every source into the canonical task shape.

    Handles:
    - Per-source field mapping (registry of strategy functions)
    - Status and priority vocabularies
    - Deep link synthesis
    - Validation through NormalizedTask
    """

    def __init__(
        self,
        issue_tracker_base_url: Optional[str] = None,
        now_provider: Callable[[], datetime] = datetime.now
    ):
        self.issue_tracker_base_url = issue_tracker_base_url
        self.now_provider = now_provider
        self._strategies: Dict[TaskSource, Strategy] = {
            TaskSource.ISSUE_TRACKER: self._map_issue_tracker,
            TaskSource.PLANNER: self._map_planner,
            TaskSource.TODO: self._map_todo,
            TaskSource.CALENDAR: self._map_calendar,
            TaskSource.EMAIL: self._map_email,
            TaskSource.SPREADSHEET_BOARD: self._map_board,
        }

    def register(self, source: TaskSource, strategy: Strategy) -> None:
        """Install or replace the mapping strategy for a source"""
        self._strategies[source] = strategy

    def strategy_for(self, source: TaskSource) -> Strategy:
        return self._strategies.get(source, self._map_generic)

    def map_raw(self, raw: Dict[str, Any], source: TaskSource) -> Dict[str, Any]:
        """Map a raw record to a partial task dict (no validation)"""
        if raw.get("source_id") and raw.get("title"):
            mapped = dict(raw)
            if not mapped.get("description"):
                mapped["description"] = extract_description(raw)
            return mapped
        return self.strategy_for(source)(raw)

    def normalize(self, raw: Dict[str, Any], source: TaskSource) -> Optional[NormalizedTask]:
        """
        Normalize one raw record.

        Returns:
            Validated NormalizedTask, or None when the record is complete upstream

        Raises:
            NormalizationError: if the record is malformed
        """
        if not isinstance(raw, dict):
            raise NormalizationError(
                "Raw record is not an object",
                context={"source": source.value, "type": type(raw).__name__}
            )

        try:
            mapped = self.map_raw(raw, source)
            priority = normalize_priority(mapped.get("priority"))
            status = normalize_status(mapped.get("status"))
        except NormalizationError:
            raise
        except Exception as e:
            raise NormalizationError(
                f"Could not map record: {e}",
                context={"source": source.value, "raw_id": self.raw_id(raw)},
                original_exception=e
            )

        if status is None:
            return None

        source_id = mapped.get("source_id")
        title = mapped.get("title")
        missing = [name for name, value in (("source_id", source_id), ("title", title)) if not value]
        if missing:
            raise NormalizationError(
                "Record is missing required fields",
                context={
                    "source": source.value,
                    "raw_id": self.raw_id(raw),
                    "missing_fields": missing,
                }
            )

        values = {key: mapped.get(key) for key in _TASK_KEYS if mapped.get(key) is not None}
        values["due_date"] = _date_value(values.get("due_date"))
        if not values.get("source_url"):
            values["source_url"] = build_source_url(source, str(source_id), self.issue_tracker_base_url)

        try:
            return NormalizedTask(
                source=source,
                source_id=str(source_id),
                title=str(title),
                status=status,
                priority=priority,
                raw_data=raw,
                **values
            )
        except ValidationError as e:
            raise NormalizationError(
                "Normalized record failed validation",
                context={"source": source.value, "raw_id": self.raw_id(raw)},
                original_exception=e
            )

    def normalize_many(self, items: List[Any], source: TaskSource) -> List[NormalizedTask]:
        """Normalize a batch, skipping completed and malformed records"""
        tasks = []
        for raw in items:
            try:
                task = self.normalize(raw, source)
            except NormalizationError as e:
                logger.warning(f"Skipping {source.value} record: {e}")
                continue
            if task is not None:
                tasks.append(task)
        return tasks

    @staticmethod
    def raw_id(raw: Any) -> Optional[str]:
        """Identifier recoverable from a raw record, even a malformed one"""
        if not isinstance(raw, dict):
            return None
        for key in ("source_id", "key", "id"):
            value = raw.get(key)
            if value not in (None, ""):
                return str(value)
        return None

    # ------------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------------

    def _map_issue_tracker(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        issue = FieldAccessor(raw)
        key = raw.get("key") or raw.get("id")
        status_name = issue.name("status")
        priority_name = issue.name("priority")
        priority = _ranked_priority(priority_name, ISSUE_TRACKER_PRIORITIES, DEFAULT_PRIORITY)

        assignee = issue.get("assignee")
        if isinstance(assignee, dict):
            assignee = assignee.get("displayName") or assignee.get("name")

        parts = [
            f"Assignee: {assignee or 'Unassigned'}",
            f"Status: {status_name or 'unknown'}",
            f"Priority: {priority_name or 'unknown'}",
        ]
        body = issue.get("description")
        if isinstance(body, str) and body.strip():
            parts.append(body.strip())

        now = self.now_provider()
        attention = evaluate_attention(raw, now, priority)
        sla_breach_at = None
        if attention.sla_remaining_ms is not None:
            sla_breach_at = (now + timedelta(milliseconds=attention.sla_remaining_ms)).isoformat()

        return {
            "source_id": key,
            "title": issue.get("summary") or raw.get("title"),
            "description": "\n".join(parts),
            "status": status_name,
            "priority": priority,
            "due_date": issue.get("duedate") or raw.get("due_date"),
            "source_url": raw.get("url") if not self.issue_tracker_base_url else None,
            "category": "project",
            "sla_breach_at": sla_breach_at,
            "urgency_score": attention.urgency_score,
            "sla_remaining_ms": attention.sla_remaining_ms,
            "attention_reasons": attention.reasons,
        }

    def _map_planner(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        status = raw.get("percentComplete")
        if status is None:
            status = raw.get("status")
        return {
            "source_id": raw.get("id"),
            "title": raw.get("title"),
            "description": extract_description(raw),
            "status": status,
            "priority": map_planner_priority(raw.get("priority")),
            "due_date": raw.get("dueDateTime"),
            "category": "project",
        }

    def _map_todo(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        importance = str(raw.get("importance") or "").lower()
        return {
            "source_id": raw.get("id"),
            "title": raw.get("title"),
            "description": extract_description(raw),
            "status": raw.get("status"),
            "priority": TODO_PRIORITIES.get(importance, DEFAULT_PRIORITY),
            "due_date": raw.get("dueDateTime"),
            "category": "admin",
        }

    def _map_calendar(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "source_id": raw.get("id"),
            "title": raw.get("subject"),
            "description": extract_description(raw),
            "status": TaskStatus.OPEN,
            "priority": 40,
            "due_date": raw.get("startWithTimeZone") or raw.get("start"),
            "source_url": raw.get("webLink"),
            "category": "admin",
        }

    def _map_email(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        description = extract_description(raw)
        sender = raw.get("from")
        if not description and isinstance(sender, dict):
            address = sender.get("emailAddress")
            name = address.get("name") if isinstance(address, dict) else address
            description = f"From: {name}" if name else None

        flag = raw.get("flag") if isinstance(raw.get("flag"), dict) else {}
        return {
            "source_id": raw.get("id"),
            "title": raw.get("subject"),
            "description": description,
            "status": TaskStatus.OPEN,
            "priority": 75 if raw.get("importance") == "high" else 45,
            "due_date": flag.get("dueDateTime"),
            "source_url": raw.get("webLink"),
            "category": "admin",
        }

    def _map_board(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        columns = raw.get("column_values")

        status_text = (find_column_value(columns, "status") or "").lower()
        if any(word in status_text for word in ("done", "completed", "closed")):
            status = "done"
        elif "progress" in status_text or "working" in status_text:
            status = TaskStatus.IN_PROGRESS
        else:
            status = TaskStatus.OPEN

        due = parse_datetime(find_column_value(columns, "date", "due", "deadline", "timeline"))

        return {
            "source_id": raw.get("id"),
            "title": raw.get("name"),
            "description": extract_description(raw),
            "status": status,
            "priority": _ranked_priority(find_column_value(columns, "priority"), BOARD_PRIORITIES, 55),
            "due_date": due.isoformat() if due else None,
            "source_url": raw.get("url"),
            "category": "project",
        }

    def _map_generic(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        due = raw.get("due_date")
        if due is None:
            due = raw.get("dueDateTime")
        return {
            "source_id": raw.get("source_id") or raw.get("id"),
            "title": raw.get("title") or raw.get("subject") or raw.get("name"),
            "description": extract_description(raw),
            "status": raw.get("status"),
            "priority": raw.get("priority"),
            "due_date": due,
            "source_url": raw.get("source_url") or raw.get("webLink"),
        }
