"""
Pydantic schemas for canonical tasks
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from models.base import TaskSource, TaskStatus
from models.task import Task


class NormalizedTask(BaseModel):
    """
    Canonical task produced by the source normalizer.

    Ensures:
    - source_id and title are present and non-blank
    - priority sits in the common 0-100 band
    - status is a canonical TaskStatus
    """

    source: TaskSource
    source_id: str = Field(..., min_length=1, max_length=255)
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.OPEN
    priority: int = Field(default=50, ge=0, le=100)
    due_date: Optional[str] = Field(None, max_length=64)
    source_url: Optional[str] = Field(None, max_length=2048)
    category: Optional[str] = Field(None, max_length=50)

    # SLA / urgency metadata (issue tracker only)
    sla_breach_at: Optional[str] = None
    urgency_score: Optional[int] = Field(None, ge=0, le=100)
    sla_remaining_ms: Optional[int] = None
    attention_reasons: Optional[List[str]] = None

    raw_data: Optional[Dict[str, Any]] = None

    @field_validator("source_id", mode="before")
    @classmethod
    def coerce_source_id(cls, v):
        if v is None:
            return v
        return str(v).strip()

    @field_validator("title")
    @classmethod
    def clean_title(cls, v):
        """Clean and normalize title"""
        v = v.strip()
        if not v:
            raise ValueError("Title cannot be empty after stripping")
        return v[:500]

    @property
    def id(self) -> str:
        return Task.make_id(self.source, self.source_id)


class TaskCreate(BaseModel):
    """Manual task created by the user"""
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    priority: int = Field(default=50, ge=0, le=100)
    due_date: Optional[str] = None
    category: Optional[str] = Field(None, max_length=50)
    source_url: Optional[str] = None

    @field_validator("title")
    @classmethod
    def clean_title(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Title cannot be empty after stripping")
        return v


class TaskUpdate(BaseModel):
    """Direct user edit; only set fields are applied"""
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[int] = Field(None, ge=0, le=100)
    due_date: Optional[str] = None
    is_pinned: Optional[bool] = None
    snoozed_until: Optional[datetime] = None


class TaskResponse(BaseModel):
    """Response model for a stored task"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    source: TaskSource
    source_id: str
    source_url: Optional[str] = None
    title: str
    description: Optional[str] = None
    status: TaskStatus
    priority: int
    due_date: Optional[str] = None
    category: Optional[str] = None
    is_pinned: bool = False
    snoozed_until: Optional[datetime] = None
    sla_breach_at: Optional[str] = None
    urgency_score: Optional[int] = None
    sla_remaining_ms: Optional[int] = None
    attention_reasons: Optional[List[str]] = None
    last_synced_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class TaskListResponse(BaseModel):
    """List of tasks visible to the caller"""
    tasks: List[TaskResponse]
    total: int


class AttentionRequest(BaseModel):
    """Ad-hoc attention evaluation of one issue payload"""
    issue: Dict[str, Any]
    priority: float = Field(default=50, ge=0, le=100)
    now: Optional[datetime] = None
