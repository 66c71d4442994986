from sqlalchemy import JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ============================================================================
# ENUMS
# ============================================================================

class TaskSource(str, enum.Enum):
    """Origin of a task"""
    ISSUE_TRACKER = "issue-tracker"
    PLANNER = "planner"
    TODO = "todo"
    CALENDAR = "calendar"
    EMAIL = "email"
    SPREADSHEET_BOARD = "spreadsheet-board"
    MILESTONE = "milestone"
    MANUAL = "manual"


# Owned by this system; never garbage-collected by the aggregator
LOCALLY_OWNED_SOURCES = frozenset({TaskSource.MILESTONE, TaskSource.MANUAL})

# May legitimately return zero items; also not kept across restarts
EPHEMERAL_SOURCES = frozenset({TaskSource.CALENDAR, TaskSource.EMAIL})


class TaskStatus(str, enum.Enum):
    """Canonical task status"""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    DISMISSED = "dismissed"
    SNOOZED = "snoozed"


class SyncStatus(str, enum.Enum):
    """Per-source sync phase"""
    IDLE = "idle"
    FETCHING = "fetching"
    NORMALIZING = "normalizing"
    RECONCILING = "reconciling"
    ERROR = "error"


class RunStatus(str, enum.Enum):
    """Onboarding run status"""
    PENDING = "pending"
    SUCCESS = "success"
    PARTIAL = "partial"
    ERROR = "error"


class ItemType(str, enum.Enum):
    """Capability item kind"""
    STANDARD = "standard"
    BOLT_ON = "bolt_on"
