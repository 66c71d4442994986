"""
Onboarding ticket creation and run status endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import CurrentUser, get_current_user, get_db, get_orchestrator
from core.exceptions import MatrixResolutionError, TaskHubException
from onboarding.ledger import OnboardingRunLedger
from onboarding.orchestrator import OnboardingOrchestrator
from schemas.onboarding import (
    CreateTicketsRequest,
    NextRefResponse,
    OnboardingPayload,
    OnboardingResult,
    OnboardingRunResponse,
    RunStatusResponse,
)
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/onboarding", tags=["Onboarding"])


@router.post("/create-tickets", response_model=OnboardingResult)
async def create_tickets(
    body: CreateTicketsRequest,
    dry_run: bool = Query(False, description="Preview tickets without creating anything"),
    orchestrator: OnboardingOrchestrator = Depends(get_orchestrator),
    user: Optional[CurrentUser] = Depends(get_current_user)
):
    """
    Create the parent QA ticket and one child per ticket group.

    Errors:
    - 400: sale type resolves to no ticket groups
    - 503: issue tracker not configured (live runs only)
    - 500: ticket creation failed
    """
    if not dry_run and orchestrator.tracker is None:
        raise HTTPException(status_code=503, detail="Issue tracker is not configured")

    payload = OnboardingPayload.model_validate(body.model_dump(exclude={"filter_group_ids"}))
    try:
        return await orchestrator.execute(
            payload,
            dry_run=dry_run,
            user_id=user.id if user else None,
            filter_group_ids=body.filter_group_ids,
        )
    except MatrixResolutionError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except TaskHubException as e:
        logger.error(f"Onboarding {payload.onboarding_ref} failed: {e}")
        raise HTTPException(status_code=500, detail=e.message)


@router.get("/status/{onboarding_ref}", response_model=RunStatusResponse)
async def run_status(onboarding_ref: str, db: AsyncSession = Depends(get_db)):
    """Latest run plus full history for a ref"""
    runs = await OnboardingRunLedger(db).get_all_by_ref(onboarding_ref)
    if not runs:
        raise HTTPException(status_code=404, detail=f"No onboarding runs for {onboarding_ref}")

    history = [OnboardingRunResponse.model_validate(run) for run in runs]
    return RunStatusResponse(latest=history[0], history=history)


@router.get("/next-ref", response_model=NextRefResponse)
async def next_ref(
    prefix: str = Query("BYM", min_length=1, max_length=20),
    db: AsyncSession = Depends(get_db)
):
    """Suggest the next free onboarding ref for a prefix (BYM0001, BYM0002, ...)"""
    next_number = await OnboardingRunLedger(db).get_max_ref_number(prefix) + 1
    return NextRefResponse(
        prefix=prefix,
        next_number=next_number,
        suggested_ref=f"{prefix}{next_number:04d}",
    )


@router.get("/runs", response_model=List[OnboardingRunResponse])
async def recent_runs(
    limit: int = Query(20, ge=1, le=200),
    db: AsyncSession = Depends(get_db)
):
    runs = await OnboardingRunLedger(db).get_recent(limit)
    return [OnboardingRunResponse.model_validate(run) for run in runs]
