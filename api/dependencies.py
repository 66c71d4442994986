"""
FastAPI dependencies shared by the routers.

Long-lived services (aggregator, settings stores, issue tracker client,
drop folder watcher) are created in the application lifespan and kept on
app.state; these helpers hand them to route handlers.
"""

from dataclasses import dataclass
from typing import AsyncGenerator, Optional
from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from clients.issue_tracker import IssueTrackerClient
from core.database import get_session
from core.settings_store import SettingsStore, UserSettingsStore
from ingestion.aggregator import TaskAggregator
from onboarding.config_resolver import OnboardingConfigRepository
from onboarding.ledger import OnboardingRunLedger
from onboarding.orchestrator import OnboardingOrchestrator


@dataclass
class CurrentUser:
    id: int
    role: str = "user"


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Database session for one request"""
    async for session in get_session():
        yield session


def get_aggregator(request: Request) -> TaskAggregator:
    aggregator = getattr(request.app.state, "aggregator", None)
    if aggregator is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Aggregator not started")
    return aggregator


def get_settings_store(request: Request) -> Optional[SettingsStore]:
    return getattr(request.app.state, "settings_store", None)


def get_user_settings_store(request: Request) -> Optional[UserSettingsStore]:
    return getattr(request.app.state, "user_settings_store", None)


def get_issue_tracker(request: Request) -> Optional[IssueTrackerClient]:
    return getattr(request.app.state, "issue_tracker", None)


async def get_current_user(
    x_user_id: Optional[int] = Header(None),
    x_user_role: Optional[str] = Header(None)
) -> Optional[CurrentUser]:
    """Caller identity forwarded by the front end; None for anonymous calls"""
    if x_user_id is None:
        return None
    return CurrentUser(id=x_user_id, role=x_user_role or "user")


def get_orchestrator(
    db: AsyncSession = Depends(get_db),
    tracker: Optional[IssueTrackerClient] = Depends(get_issue_tracker),
    settings_store: Optional[SettingsStore] = Depends(get_settings_store)
) -> OnboardingOrchestrator:
    return OnboardingOrchestrator(
        tracker,
        OnboardingConfigRepository(db),
        OnboardingRunLedger(db),
        settings_getter=settings_store.get_all if settings_store else None,
    )
