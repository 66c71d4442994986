"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from models.base import SyncStatus, TaskSource


# ============================================================================
# Health Check Schemas
# ============================================================================

class SourceSyncInfo(BaseModel):
    """Sync state of one source for the health check"""
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    source: str
    status: SyncStatus
    last_run_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    last_failure_at: Optional[datetime] = None
    total_runs: int = 0
    last_records_processed: int = 0
    last_records_removed: int = 0
    error_message: Optional[str] = None


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "degraded",
                "timestamp": "2024-01-15T10:30:00Z",
                "database_connected": True,
                "total_sources": 2,
                "successful_sources": 1,
                "failed_sources": 1,
                "sources": [
                    {
                        "source": "calendar",
                        "status": "idle",
                        "last_run_at": "2024-01-15T10:25:00Z",
                        "last_success_at": "2024-01-15T10:25:00Z",
                        "total_runs": 42,
                        "last_records_processed": 7,
                        "last_records_removed": 1
                    },
                    {
                        "source": "issue-tracker",
                        "status": "error",
                        "last_run_at": "2024-01-15T10:25:00Z",
                        "last_failure_at": "2024-01-15T10:25:00Z",
                        "total_runs": 42,
                        "error_message": "Fetch failed: Issue tracker API 401: Unauthorized"
                    }
                ]
            }
        }
    )

    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    database_connected: bool
    sources: List[SourceSyncInfo] = Field(default_factory=list)
    total_sources: int = 0
    successful_sources: int = 0
    failed_sources: int = 0
    scheduler_running: bool = False
    drop_folder: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def determine_status(self):
        """Determine overall health status"""
        if not self.database_connected:
            self.status = "unhealthy"
        elif self.total_sources == 0 or self.failed_sources == 0:
            self.status = "healthy"
        elif self.failed_sources < self.total_sources:
            self.status = "degraded"
        else:
            self.status = "unhealthy"
        return self


# ============================================================================
# Sync Schemas
# ============================================================================

class SyncResultResponse(BaseModel):
    """Outcome of one source cycle"""
    model_config = ConfigDict(from_attributes=True)

    source: str
    count: int = 0
    removed: int = 0
    failed: int = 0
    error: Optional[str] = None
    skipped: bool = False
    reason: Optional[str] = None


class SyncAllResponse(BaseModel):
    results: List[SyncResultResponse]
    total_tasks: int = 0
    failed_sources: List[str] = Field(default_factory=list)


class IngestRequest(BaseModel):
    """Items pushed by an automation flow for one source"""
    source: TaskSource
    tasks: List[Any] = Field(default_factory=list)
    prune: bool = Field(False, description="Purge the source's tasks when tasks is empty")


# ============================================================================
# Settings Schemas
# ============================================================================

class SettingUpdate(BaseModel):
    value: str


class SettingResponse(BaseModel):
    key: str
    value: str


# ============================================================================
# Error Response Schema
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response"""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "Resource not found",
                "detail": "Task calendar:AAMk... does not exist",
                "timestamp": "2024-01-15T10:30:00Z"
            }
        }
    )

    error: str
    detail: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)
