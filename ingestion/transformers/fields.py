"""
Typed access to loosely-shaped issue payloads.

Issue tracker clients emit either flat records ({"status": ...}) or REST
shaped ones ({"fields": {"status": ...}}), and some wrap custom field
values as {"value": X}. Every lookup goes through get_field so business
logic never has to care which shape arrived.
"""

from typing import Any, Dict, Optional
from datetime import date, datetime
import re

_COMPACT_OFFSET = re.compile(r"([+-]\d{2})(\d{2})$")


def get_field(issue: Dict[str, Any], key: str) -> Any:
    """
    Read a field with the fallback chain: flat key -> fields.key -> unwrap {value}.

    Returns None when the field is absent.
    """
    if not isinstance(issue, dict):
        return None

    if key in issue:
        value = issue[key]
    else:
        nested = issue.get("fields")
        value = nested.get(key) if isinstance(nested, dict) else None

    if isinstance(value, dict) and "value" in value:
        value = value["value"]

    return value


def get_name(value: Any) -> Optional[str]:
    """Return a plain string for values that are either strings or {"name": ...} objects"""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        name = value.get("name")
        return str(name) if name is not None else None
    return None


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a date/time value; invalid or missing values become None.

    Accepts datetime/date instances, epoch milliseconds and ISO 8601 strings
    (including "Z" and compact "+0000" offsets).
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str):
        return None

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _COMPACT_OFFSET.sub(r"\1:\2", text)

    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def align_to(moment: datetime, reference: datetime) -> datetime:
    """Make moment comparable with reference (naive means local time)"""
    if moment.tzinfo is not None and reference.tzinfo is None:
        return moment.astimezone().replace(tzinfo=None)
    if moment.tzinfo is None and reference.tzinfo is not None:
        return moment.replace(tzinfo=reference.tzinfo)
    return moment


def parse_datetime_relative(value: Any, reference: datetime) -> Optional[datetime]:
    """parse_datetime, aligned to the timezone awareness of reference"""
    parsed = parse_datetime(value)
    if parsed is None:
        return None
    return align_to(parsed, reference)


class FieldAccessor:
    """
    Read-only view over one issue payload.

    Usage:
        issue = FieldAccessor(raw)
        issue.name("status")          # "In Progress"
        issue.datetime("created")     # datetime or None
    """

    def __init__(self, issue: Optional[Dict[str, Any]]):
        self.issue = issue if isinstance(issue, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        value = get_field(self.issue, key)
        return default if value is None else value

    def name(self, key: str) -> Optional[str]:
        return get_name(self.get(key))

    def datetime(self, key: str, reference: Optional[datetime] = None) -> Optional[datetime]:
        if reference is None:
            return parse_datetime(self.get(key))
        return parse_datetime_relative(self.get(key), reference)
