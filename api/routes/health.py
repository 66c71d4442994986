"""
Health check endpoint with database and per-source sync status
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from api.dependencies import get_db
from schemas.api import HealthCheckResponse, SourceSyncInfo
from ingestion.base import SyncStateTracker
from models.base import SyncStatus
from datetime import datetime
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Sync state for every source that has run
    - Scheduler and drop folder status
    """

    # Check database connectivity
    db_connected = False

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {str(e)}")

    sources = []
    successful_sources = 0
    failed_sources = 0

    if db_connected:
        try:
            for state in await SyncStateTracker(db).get_all():
                if state.status == SyncStatus.ERROR:
                    failed_sources += 1
                elif state.last_success_at is not None:
                    successful_sources += 1
                sources.append(SourceSyncInfo.model_validate(state))
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch sync state: {str(e)}")

    scheduler = getattr(request.app.state, "scheduler", None)
    watcher = getattr(request.app.state, "drop_folder", None)

    return HealthCheckResponse(
        timestamp=datetime.utcnow(),
        database_connected=db_connected,
        sources=sources,
        total_sources=len(sources),
        successful_sources=successful_sources,
        failed_sources=failed_sources,
        scheduler_running=bool(scheduler and scheduler.scheduler.running),
        drop_folder=watcher.status() if watcher else None,
    )
