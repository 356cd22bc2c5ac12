# backend/bevisible/schemas/schedule.py
"""
Pydantic schemas for schedule generation and batch listing.
"""

from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, List
from datetime import date, datetime
from uuid import UUID

from bevisible.enums import BatchStatus


class ScheduleGenerateRequest(BaseModel):
    """Generate (or overwrite with regenerate=True) the batches of one date."""
    schedule_date: Optional[date] = Field(
        None, alias="date",
        description="Schedule date; defaults to tomorrow in the reference time zone"
    )
    regenerate: bool = False

    model_config = ConfigDict(populate_by_name=True)


class ScheduleGenerateResponse(BaseModel):
    success: bool = True
    error: Optional[str] = None
    schedule_date: date
    created: bool = Field(..., description="False when batches already existed and regenerate was not set")
    total_batches: int = 0
    total_prompts: int = 0
    total_brands: int = 0
    accounts_used: int = 0
    degraded_assignments: int = 0
    disabled_accounts: List[UUID] = Field(default_factory=list)


class ScheduleBatchResponse(BaseModel):
    id: UUID
    schedule_date: date
    batch_number: int
    execution_time: datetime
    account_id: UUID
    brand_id: Optional[UUID] = None
    prompt_ids: List[UUID]
    batch_size: int
    status: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ScheduleListResponse(BaseModel):
    success: bool = True
    error: Optional[str] = None
    schedule_date: date
    total_batches: int
    batches: List[ScheduleBatchResponse]


class BatchStatusUpdate(BaseModel):
    """Executor feedback for one batch."""
    status: str
    error_message: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        allowed = {s.value for s in BatchStatus}
        if v not in allowed:
            raise ValueError(f"status must be one of {sorted(allowed)}")
        return v
