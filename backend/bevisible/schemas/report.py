# backend/bevisible/schemas/report.py
"""
Pydantic schemas for daily report initialization and status.
"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Dict, Any
from datetime import date, datetime
from uuid import UUID


class ReportInitializeRequest(BaseModel):
    brand_id: UUID
    report_date: Optional[date] = Field(None, description="Defaults to today in the reference time zone")


class ReportInitializeResponse(BaseModel):
    success: bool
    error: Optional[str] = None
    message: Optional[str] = None
    report_id: Optional[UUID] = None
    processing_stage: Optional[str] = None
    total_prompts: int = 0
    already_complete: bool = False
    created: bool = False


class StageRunResponse(BaseModel):
    stage: str
    status: str
    attempted: int = 0
    ok: int = 0
    no_result: int = 0
    errors: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class DailyReportResponse(BaseModel):
    id: UUID
    brand_id: UUID
    report_date: date
    status: str
    processing_stage: str
    generated: bool
    total_prompts: int
    completed_prompts: int
    total_mentions: int
    average_position: Optional[float] = None
    sentiment_positive: int
    sentiment_neutral: int
    sentiment_negative: int
    visibility_score: Optional[float] = None
    mention_rate: Optional[float] = None
    position_score: Optional[float] = None
    mention_dominance: Optional[float] = None
    urls_total: int
    urls_new: int
    urls_classified: int
    completed_at: Optional[datetime] = None
    stages: List[StageRunResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class StageRunResult(BaseModel):
    """Outcome of one stage invocation."""
    success: bool
    error: Optional[str] = None
    report_id: UUID
    stage: str
    status: str
    skipped: bool = False
    stats: Dict[str, Any] = Field(default_factory=dict)
