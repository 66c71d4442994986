"""
Task endpoints: listing, manual CRUD, on-demand sync and attention evaluation
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import (
    CurrentUser,
    get_aggregator,
    get_current_user,
    get_db,
    get_settings_store,
    get_user_settings_store,
)
from ingestion.aggregator import TaskAggregator
from ingestion.loaders.task_store import TaskStore
from ingestion.source_filter import get_allowed_sources
from ingestion.transformers.attention import AttentionResult, evaluate_attention
from models.base import TaskSource, TaskStatus, LOCALLY_OWNED_SOURCES
from schemas.api import SyncAllResponse, SyncResultResponse
from schemas.task import AttentionRequest, TaskCreate, TaskListResponse, TaskResponse, TaskUpdate
from typing import Optional
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/tasks", tags=["Tasks"])


@router.get("", response_model=TaskListResponse)
async def list_tasks(
    request: Request,
    status_filter: Optional[TaskStatus] = Query(None, alias="status", description="Filter by status"),
    source: Optional[TaskSource] = Query(None, description="Filter by source"),
    include_hidden: bool = Query(False, description="Include done, dismissed and snoozed tasks"),
    db: AsyncSession = Depends(get_db),
    user: Optional[CurrentUser] = Depends(get_current_user)
):
    """
    List tasks ordered by pinned, priority and due date.

    When the caller identifies itself, only sources it may see are returned.
    """
    allowed = None
    if user is not None:
        allowed = await get_allowed_sources(
            user.id,
            user.role,
            get_user_settings_store(request),
            get_settings_store(request),
        )

    tasks = await TaskStore(db).get_all(
        status=status_filter,
        source=source,
        sources=allowed,
        include_hidden=include_hidden,
    )
    return TaskListResponse(
        tasks=[TaskResponse.model_validate(task) for task in tasks],
        total=len(tasks),
    )


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(data: TaskCreate, db: AsyncSession = Depends(get_db)):
    """Create a manual task"""
    task = await TaskStore(db).create_manual(data)
    return TaskResponse.model_validate(task)


@router.post("/sync", response_model=SyncAllResponse)
async def sync_all(aggregator: TaskAggregator = Depends(get_aggregator)):
    """Sync every registered source now"""
    results = await aggregator.sync_all()
    return SyncAllResponse(
        results=[SyncResultResponse.model_validate(r) for r in results],
        total_tasks=sum(r.count for r in results),
        failed_sources=[r.source for r in results if r.error],
    )


@router.post("/sync/{source}", response_model=SyncResultResponse)
async def sync_source(source: str, aggregator: TaskAggregator = Depends(get_aggregator)):
    """Sync one source now"""
    result = await aggregator.sync_source(source)
    if result.error == "Unknown source":
        raise HTTPException(status_code=404, detail=f"Unknown source: {source}")
    return SyncResultResponse.model_validate(result)


@router.post("/attention", response_model=AttentionResult)
async def evaluate(request_body: AttentionRequest):
    """Evaluate attention reasons and urgency for one issue payload"""
    return evaluate_attention(request_body.issue, request_body.now, request_body.priority)


@router.get("/{task_id:path}", response_model=TaskResponse)
async def get_task(task_id: str, db: AsyncSession = Depends(get_db)):
    task = await TaskStore(db).get_by_id(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
    return TaskResponse.model_validate(task)


@router.patch("/{task_id:path}", response_model=TaskResponse)
async def update_task(task_id: str, data: TaskUpdate, db: AsyncSession = Depends(get_db)):
    """Apply a user edit (status, pin, snooze)"""
    task = await TaskStore(db).update(task_id, data)
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
    return TaskResponse.model_validate(task)


@router.delete("/{task_id:path}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(task_id: str, db: AsyncSession = Depends(get_db)):
    """Delete a task; synced tasks reappear on the next sync unless removed upstream"""
    store = TaskStore(db)
    task = await store.get_by_id(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
    if task.source not in LOCALLY_OWNED_SOURCES:
        logger.info(f"Deleting synced task {task_id}; it returns if still present upstream")
    await store.delete(task_id)
