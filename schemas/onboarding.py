"""
Pydantic schemas for onboarding ticket orchestration and the capability matrix
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime
from models.base import ItemType, RunStatus


# ============================================================================
# Payload
# ============================================================================

class Customer(BaseModel):
    name: str = Field(..., min_length=1)


class OnboardingPayload(BaseModel):
    """
    Onboarding request.

    Accepts snake_case or camelCase keys (schemaVersion, onboardingRef, ...).
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    schema_version: Literal[1]
    onboarding_ref: str = Field(..., min_length=1)
    sale_type: str = Field(..., min_length=1)
    customer: Customer
    target_due_date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$")
    config: Dict[str, Any] = Field(default_factory=dict)


class CreateTicketsRequest(OnboardingPayload):
    """Payload plus an optional ticket group filter for staged creation"""
    filter_group_ids: Optional[List[int]] = None


# ============================================================================
# Resolved matrix
# ============================================================================

class ResolvedItem(BaseModel):
    name: str
    item_type: ItemType = ItemType.STANDARD


class ResolvedCapability(BaseModel):
    capability_id: int
    capability_name: str
    items: List[ResolvedItem] = Field(default_factory=list)


class ResolvedTicketGroup(BaseModel):
    """One child ticket's worth of capabilities; ticket_group_id is None for ungrouped capabilities"""
    ticket_group_id: Optional[int] = None
    ticket_group_name: str
    capabilities: List[ResolvedCapability] = Field(default_factory=list)


# ============================================================================
# Results
# ============================================================================

class ChildGroupPreview(BaseModel):
    ticket_group_id: Optional[int] = None
    ticket_group_name: str
    summary: str


class OnboardingPreview(BaseModel):
    parent_summary: str
    child_summaries: List[str]
    child_groups: List[ChildGroupPreview] = Field(default_factory=list)


class OnboardingResult(BaseModel):
    """Outcome of OnboardingOrchestrator.execute"""
    parent_key: str
    child_keys: List[str] = Field(default_factory=list)
    created_count: int = 0
    linked_count: int = 0
    existing: bool = False
    dry_run: bool = False
    details: Optional[OnboardingPreview] = None


class OnboardingRunResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    onboarding_ref: str
    status: RunStatus
    parent_key: Optional[str] = None
    child_keys: Optional[List[str]] = None
    created_count: int = 0
    linked_count: int = 0
    dry_run: bool = False
    error_message: Optional[str] = None
    user_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class RunStatusResponse(BaseModel):
    latest: OnboardingRunResponse
    history: List[OnboardingRunResponse]


class NextRefResponse(BaseModel):
    prefix: str
    next_number: int
    suggested_ref: str


# ============================================================================
# Matrix
# ============================================================================

class MatrixUpdate(BaseModel):
    sale_type_id: int
    capability_id: int
    enabled: bool
    notes: Optional[str] = None


class MatrixUpdateRequest(BaseModel):
    updates: List[MatrixUpdate]


class MatrixSaleType(BaseModel):
    id: int
    name: str


class MatrixCapability(BaseModel):
    id: int
    name: str
    ticket_group_id: Optional[int] = None
    ticket_group_name: Optional[str] = None


class MatrixCell(BaseModel):
    sale_type_id: int
    capability_id: int
    enabled: bool
    notes: Optional[str] = None


class MatrixResponse(BaseModel):
    sale_types: List[MatrixSaleType]
    capabilities: List[MatrixCapability]
    cells: List[MatrixCell]
