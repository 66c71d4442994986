"""
SLA & attention evaluation for issue tracker tickets.

Pure functions that decide whether a ticket needs attention and how urgent
it is. All functions are deterministic given (issue, now, priority).

Custom fields:
    customfield_14081 - Agent Last Updated
    customfield_14185 - Agent Next Update
    customfield_14048 - SLA Resolution (one or many SLA cycle objects)

Urgency score (0-100):

    | Factor          | Max | Logic                                        |
    |-----------------|-----|----------------------------------------------|
    | SLA breached    |  30 | +30 if resolution SLA breached               |
    | SLA approaching |  20 | 2h remaining -> 0, 0 remaining -> 20         |
    | Overdue update  |  25 | +25 if agent update is overdue               |
    | Priority        |  15 | priority clamped to 15-95, mapped to 0-15    |
    | Ticket age      |  10 | 0 days -> 0, 7+ days -> 10                   |
"""

from typing import Any, Dict, Iterator, List, Optional
from datetime import datetime, timedelta
from pydantic import BaseModel, Field
from ingestion.transformers.fields import get_field, get_name, parse_datetime_relative
import math

AGENT_LAST_UPDATED_FIELD = "customfield_14081"
AGENT_NEXT_UPDATE_FIELD = "customfield_14185"
SLA_RESOLUTION_FIELD = "customfield_14048"

WAITING_ON_REQUESTOR = "waiting on requestor"

FOUR_HOURS_MS = 4 * 60 * 60 * 1000
TWO_HOURS_MS = 2 * 60 * 60 * 1000
DAY_MS = 24 * 60 * 60 * 1000

REASON_OVERDUE_UPDATE = "overdue_update"
REASON_SLA_BREACHED = "sla_breached"
REASON_SLA_APPROACHING = "sla_approaching"


class AttentionResult(BaseModel):
    """Composite attention evaluation of one ticket"""
    needs_attention: bool
    reasons: List[str] = Field(default_factory=list)
    urgency_score: int = 0
    sla_remaining_ms: Optional[int] = None  # None = no SLA, negative = breached


# ============================================================================
# Helpers
# ============================================================================

def _status_name(issue: Dict[str, Any]) -> str:
    return (get_name(get_field(issue, "status")) or "").strip().lower()


def _start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def _elapsed_ms(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() * 1000


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _sla_cycles(issue: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
    """Yield SLA objects from the resolution field, normalised to a list"""
    raw = get_field(issue, SLA_RESOLUTION_FIELD)
    if not raw:
        return
    for sla in raw if isinstance(raw, list) else [raw]:
        if isinstance(sla, dict):
            yield sla


def _cycle_breached(cycle: Any) -> bool:
    if not isinstance(cycle, dict):
        return False
    if cycle.get("breached") is True:
        return True
    remaining = cycle.get("remainingTime")
    if isinstance(remaining, dict):
        millis = remaining.get("millis")
        if _is_number(millis) and millis < 0:
            return True
    return False


# ============================================================================
# Core evaluation
# ============================================================================

def is_overdue_update(issue: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    """
    True only when all of these hold:
    1. status is not "waiting on requestor"
    2. the ticket is at least 4 hours old (missing created counts as old)
    3. Agent Next Update is not in the future
    4. Agent Last Updated is not within today
    """
    now = now or datetime.now()

    if _status_name(issue) == WAITING_ON_REQUESTOR:
        return False

    created = parse_datetime_relative(get_field(issue, "created"), now)
    if created and _elapsed_ms(created, now) < FOUR_HOURS_MS:
        return False

    next_update = parse_datetime_relative(get_field(issue, AGENT_NEXT_UPDATE_FIELD), now)
    if next_update and next_update > now:
        return False

    last_updated = parse_datetime_relative(get_field(issue, AGENT_LAST_UPDATED_FIELD), now)
    if last_updated:
        start_of_today = _start_of_day(now)
        start_of_tomorrow = start_of_today + timedelta(days=1)
        if start_of_today <= last_updated < start_of_tomorrow:
            return False

    return True


def is_resolution_sla_breached(issue: Dict[str, Any]) -> bool:
    """
    True if any ongoing or completed SLA cycle is flagged breached or has
    negative remaining time. No SLA data means not breached.
    """
    for sla in _sla_cycles(issue):
        if _cycle_breached(sla.get("ongoingCycle")):
            return True
        completed = sla.get("completedCycles")
        if isinstance(completed, list) and any(_cycle_breached(c) for c in completed):
            return True
    return False


def get_sla_remaining_ms(issue: Dict[str, Any]) -> Optional[int]:
    """
    Remaining milliseconds on the ongoing SLA cycle.

    Returns None without SLA data and -1 when the ongoing cycle is flagged
    breached without a numeric remaining time.
    """
    for sla in _sla_cycles(issue):
        ongoing = sla.get("ongoingCycle")
        if not isinstance(ongoing, dict):
            continue
        remaining = ongoing.get("remainingTime")
        if isinstance(remaining, dict) and _is_number(remaining.get("millis")):
            return int(remaining["millis"])
        if ongoing.get("breached") is True:
            return -1
    return None


def is_sla_near_breach(issue: Dict[str, Any]) -> bool:
    """Positive remaining time under two hours"""
    remaining = get_sla_remaining_ms(issue)
    if remaining is None:
        return False
    return 0 < remaining < TWO_HOURS_MS


def compute_urgency_score(
    issue: Dict[str, Any],
    priority: float = 50,
    now: Optional[datetime] = None,
) -> int:
    """Weighted urgency score, capped at 100"""
    now = now or datetime.now()
    score = 0

    if is_resolution_sla_breached(issue):
        score += 30
    else:
        remaining = get_sla_remaining_ms(issue)
        if remaining is not None and 0 < remaining < TWO_HOURS_MS:
            score += _round_half_up((TWO_HOURS_MS - remaining) / TWO_HOURS_MS * 20)

    if is_overdue_update(issue, now):
        score += 25

    clamped = max(15, min(95, priority))
    score += _round_half_up((clamped - 15) / 80 * 15)

    created = parse_datetime_relative(get_field(issue, "created"), now)
    if created:
        age_days = max(0.0, _elapsed_ms(created, now) / DAY_MS)
        score += _round_half_up(min(1.0, age_days / 7) * 10)

    return min(100, score)


def due_is_ok(issue: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    """
    True when there is no due date or the due date falls on today
    (between start of today and the start-of-tomorrow cutoff, inclusive).
    """
    now = now or datetime.now()
    due = parse_datetime_relative(get_field(issue, "duedate"), now)
    if due is None:
        return True
    start_of_today = _start_of_day(now)
    start_of_tomorrow = start_of_today + timedelta(days=1)
    return start_of_today <= due <= start_of_tomorrow


def evaluate_attention(
    issue: Dict[str, Any],
    now: Optional[datetime] = None,
    priority: float = 50,
) -> AttentionResult:
    """Evaluate every attention reason plus urgency score and SLA remaining time"""
    now = now or datetime.now()
    reasons: List[str] = []

    if is_overdue_update(issue, now):
        reasons.append(REASON_OVERDUE_UPDATE)
    if is_resolution_sla_breached(issue):
        reasons.append(REASON_SLA_BREACHED)
    if is_sla_near_breach(issue):
        reasons.append(REASON_SLA_APPROACHING)

    return AttentionResult(
        needs_attention=len(reasons) > 0,
        reasons=reasons,
        urgency_score=compute_urgency_score(issue, priority, now),
        sla_remaining_ms=get_sla_remaining_ms(issue),
    )
