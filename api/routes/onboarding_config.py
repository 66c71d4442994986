"""
Capability matrix endpoints
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_db
from core.exceptions import StoreError
from onboarding.config_resolver import OnboardingConfigRepository
from schemas.onboarding import MatrixResponse, MatrixUpdateRequest, ResolvedTicketGroup
from typing import List
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/onboarding-config", tags=["Onboarding Config"])


@router.get("/resolve/{sale_type}", response_model=List[ResolvedTicketGroup])
async def resolve(sale_type: str, db: AsyncSession = Depends(get_db)):
    """Ticket groups, capabilities and items a sale type would create"""
    return await OnboardingConfigRepository(db).resolve_for_sale_type(sale_type)


@router.get("/matrix", response_model=MatrixResponse)
async def get_matrix(db: AsyncSession = Depends(get_db)):
    return await OnboardingConfigRepository(db).get_full_matrix()


@router.put("/matrix", response_model=MatrixResponse)
async def update_matrix(body: MatrixUpdateRequest, db: AsyncSession = Depends(get_db)):
    """Apply matrix cell updates atomically and return the updated matrix"""
    repository = OnboardingConfigRepository(db)
    try:
        await repository.batch_update_matrix(body.updates)
    except StoreError as e:
        logger.error(f"Matrix update failed: {e}")
        raise HTTPException(status_code=400, detail=e.message)
    return await repository.get_full_matrix()
