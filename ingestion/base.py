"""
Abstract base class for task sources and per-source sync state tracking
"""

from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from models.base import SyncStatus
from models.sync_state import SourceSyncState
import logging

logger = logging.getLogger(__name__)


class SourceClient(ABC):
    """
    Abstract base class for all task source clients.

    Contract:
    - fetch returns a (possibly empty) list of raw items; "no items" is [] not an error
    - fetch raises SourceFetchError only for genuine transport or auth failure
    """

    @abstractmethod
    async def fetch(self, source_config: Optional[Dict[str, str]] = None) -> List[Dict[str, Any]]:
        """
        Fetch raw items from the source.

        Args:
            source_config: Flat settings map (filters, limits) for this fetch

        Returns:
            List of raw item dictionaries
        """
        pass

    async def close(self) -> None:
        """Release transport resources"""
        return None


class SyncStateTracker:
    """
    Persist per-source sync outcomes.

    Responsibilities:
    - Record phase transitions (fetching, reconciling, error)
    - Keep run counters and the last error message
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def get(self, source: str) -> Optional[SourceSyncState]:
        result = await self.db.execute(
            select(SourceSyncState).where(SourceSyncState.source == source)
        )
        return result.scalar_one_or_none()

    async def get_all(self) -> List[SourceSyncState]:
        result = await self.db.execute(select(SourceSyncState).order_by(SourceSyncState.source))
        return list(result.scalars().all())

    async def _get_or_create(self, source: str) -> SourceSyncState:
        state = await self.get(source)
        if state is None:
            state = SourceSyncState(
                source=source,
                status=SyncStatus.IDLE,
                total_runs=0,
                total_records_processed=0,
                last_records_processed=0,
                last_records_removed=0,
            )
            self.db.add(state)
        return state

    async def mark_started(self, source: str) -> SourceSyncState:
        state = await self._get_or_create(source)
        state.status = SyncStatus.FETCHING
        state.last_run_at = datetime.utcnow()
        state.updated_at = datetime.utcnow()
        await self.db.commit()
        return state

    async def mark_success(self, source: str, records_processed: int, records_removed: int) -> SourceSyncState:
        """Record a completed cycle"""
        state = await self._get_or_create(source)
        now = datetime.utcnow()

        state.status = SyncStatus.IDLE
        state.total_runs = (state.total_runs or 0) + 1
        state.total_records_processed = (state.total_records_processed or 0) + records_processed
        state.last_records_processed = records_processed
        state.last_records_removed = records_removed
        state.last_success_at = now
        state.error_message = None
        state.updated_at = now

        await self.db.commit()
        return state

    async def mark_failure(self, source: str, error_message: str) -> SourceSyncState:
        """Record a failed cycle; the previous success timestamp is kept"""
        state = await self._get_or_create(source)
        now = datetime.utcnow()

        state.status = SyncStatus.ERROR
        state.total_runs = (state.total_runs or 0) + 1
        state.last_records_processed = 0
        state.last_records_removed = 0
        state.last_failure_at = now
        state.error_message = error_message
        state.updated_at = now

        await self.db.commit()
        return state
