"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class and shared enums (TaskSource, TaskStatus, SyncStatus, RunStatus)
    task: Canonical aggregated tasks
    sync_state: Per-source sync outcome tracking
    onboarding: Onboarding run ledger
    onboarding_config: Ticket groups, capabilities, items, sale types and the capability matrix
    settings: Global and per-user runtime settings

Usage:
    from models import Task, OnboardingRun
    from models.base import TaskSource, TaskStatus

Example:
    task = Task(
        id="manual:1",
        source=TaskSource.MANUAL,
        source_id="1",
        title="Call the customer"
    )
    session.add(task)
    await session.commit()
"""

from models.base import Base, TaskSource, TaskStatus, SyncStatus, RunStatus, ItemType
from models.task import Task
from models.sync_state import SourceSyncState
from models.onboarding import OnboardingRun
from models.onboarding_config import (
    TicketGroup,
    Capability,
    CapabilityItem,
    SaleType,
    CapabilityMatrixEntry,
)
from models.settings import Setting, UserSetting

__all__ = [
    "Base",
    "TaskSource",
    "TaskStatus",
    "SyncStatus",
    "RunStatus",
    "ItemType",
    "Task",
    "SourceSyncState",
    "OnboardingRun",
    "TicketGroup",
    "Capability",
    "CapabilityItem",
    "SaleType",
    "CapabilityMatrixEntry",
    "Setting",
    "UserSetting",
]
