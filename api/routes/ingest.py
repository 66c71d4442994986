"""
Bulk ingest endpoint for automation flows that fetch tasks themselves
"""

from fastapi import APIRouter, Depends, HTTPException
from api.dependencies import get_aggregator
from core.exceptions import ConfigurationError
from ingestion.aggregator import TaskAggregator
from schemas.api import IngestRequest, SyncResultResponse
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Ingest"])


@router.post("/ingest", response_model=SyncResultResponse)
async def ingest(body: IngestRequest, aggregator: TaskAggregator = Depends(get_aggregator)):
    """
    Apply pushed items for one source.

    Skipped (not an error) when the bridge or the source is disabled.
    """
    logger.info(f"POST /ingest - source={body.source.value}, items={len(body.tasks)}, prune={body.prune}")
    try:
        result = await aggregator.ingest(body.source, body.tasks, prune=body.prune)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=e.message)

    if result.error:
        raise HTTPException(status_code=500, detail=result.error)
    return SyncResultResponse.model_validate(result)
