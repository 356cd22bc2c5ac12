"""Pydantic schemas for the automation account pool."""

from pydantic import BaseModel, ConfigDict, field_validator
from typing import Optional, List
from datetime import datetime
from uuid import UUID

from bevisible.enums import SessionHealth


def _check_session_health(v):
    if v is None:
        return v
    allowed = {h.value for h in SessionHealth}
    if v not in allowed:
        raise ValueError(f"session_health must be one of {sorted(allowed)}")
    return v


class AccountResponse(BaseModel):
    id: UUID
    email: Optional[str] = None
    display_name: Optional[str] = None
    proxy_endpoint: Optional[str] = None
    session_health: str
    status: str
    last_used_at: Optional[datetime] = None
    consecutive_errors: int = 0
    disabled_reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class AccountListResponse(BaseModel):
    success: bool = True
    error: Optional[str] = None
    total: int
    accounts: List[AccountResponse]


class UsageRecordRequest(BaseModel):
    prompt_id: UUID
    brand_id: UUID
    executed_at: Optional[datetime] = None
    session_health: Optional[str] = None

    @field_validator("session_health")
    @classmethod
    def validate_session_health(cls, v):
        return _check_session_health(v)


class FailureRecordRequest(BaseModel):
    error: str
    session_health: Optional[str] = None

    @field_validator("session_health")
    @classmethod
    def validate_session_health(cls, v):
        return _check_session_health(v)
