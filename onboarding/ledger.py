"""
Onboarding run ledger
"""

from typing import Any, Dict, List, Optional
from datetime import datetime
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from models.base import RunStatus
from models.onboarding import OnboardingRun
import logging
import re

logger = logging.getLogger(__name__)


class OnboardingRunLedger:
    """
    Persistence for onboarding runs.

    A successful run with a parent key is the idempotency record for its
    onboarding_ref; partial and failed runs are kept for audit only.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def get_by_ref(self, onboarding_ref: str) -> Optional[OnboardingRun]:
        """Latest successful run for a ref"""
        result = await self.db.execute(
            select(OnboardingRun)
            .where(
                OnboardingRun.onboarding_ref == onboarding_ref,
                OnboardingRun.status == RunStatus.SUCCESS,
                OnboardingRun.parent_key.is_not(None),
            )
            .order_by(OnboardingRun.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_all_by_ref(self, onboarding_ref: str) -> List[OnboardingRun]:
        """Every run for a ref, newest first"""
        result = await self.db.execute(
            select(OnboardingRun)
            .where(OnboardingRun.onboarding_ref == onboarding_ref)
            .order_by(OnboardingRun.id.desc())
        )
        return list(result.scalars().all())

    async def get_recent(self, limit: int = 20) -> List[OnboardingRun]:
        result = await self.db.execute(
            select(OnboardingRun).order_by(OnboardingRun.id.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def get_max_ref_number(self, prefix: str) -> int:
        """Highest numeric suffix among refs starting with prefix (0 if none)"""
        result = await self.db.execute(
            select(OnboardingRun.onboarding_ref).where(OnboardingRun.onboarding_ref.like(f"{prefix}%"))
        )
        pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$", re.IGNORECASE)

        highest = 0
        for ref in result.scalars().all():
            match = pattern.match(ref or "")
            if match:
                highest = max(highest, int(match.group(1)))
        return highest

    async def create(
        self,
        onboarding_ref: str,
        payload: Optional[Dict[str, Any]] = None,
        user_id: Optional[int] = None,
        dry_run: bool = False
    ) -> OnboardingRun:
        run = OnboardingRun(
            onboarding_ref=onboarding_ref,
            status=RunStatus.PENDING,
            payload=payload,
            user_id=user_id,
            dry_run=dry_run,
            created_count=0,
            linked_count=0,
        )
        self.db.add(run)
        await self.db.commit()
        await self.db.refresh(run)
        logger.info(f"Created onboarding run #{run.id} for {onboarding_ref}")
        return run

    async def update(self, run_id: int, **patch: Any) -> Optional[OnboardingRun]:
        run = await self.db.get(OnboardingRun, run_id)
        if run is None:
            logger.warning(f"Onboarding run #{run_id} not found for update")
            return None

        for field, value in patch.items():
            setattr(run, field, value)
        run.updated_at = datetime.utcnow()

        await self.db.commit()
        return run
