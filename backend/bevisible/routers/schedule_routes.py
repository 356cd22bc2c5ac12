"""
Schedule Routes
===============
Nightly schedule generation, listing, and executor feedback on batches.
"""

import logging
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from bevisible.config import settings
from bevisible.deps import get_schedule_generator, get_schedule_repository
from bevisible.repositories.base import ScheduleRepository
from bevisible.routers.errors import error_response
from bevisible.schemas.schedule import (
    BatchStatusUpdate,
    ScheduleBatchResponse,
    ScheduleGenerateRequest,
    ScheduleGenerateResponse,
    ScheduleListResponse,
)
from bevisible.services.scheduler_engine.schedule_generator import ScheduleGenerator
from bevisible.timeutils import local_tomorrow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/schedule", tags=["Schedule"])


@router.post("/generate", response_model=ScheduleGenerateResponse)
async def generate_schedule(
    request: ScheduleGenerateRequest,
    generator: ScheduleGenerator = Depends(get_schedule_generator)
):
    """
    Generate the batches of one date (default: tomorrow).

    Returns created=false with the existing batch count when the date is
    already scheduled and regenerate is not set.
    """
    try:
        return await generator.generate(request.schedule_date, regenerate=request.regenerate)
    except Exception as e:
        return error_response(e, schedule_date=str(request.schedule_date) if request.schedule_date else None)


@router.get("", response_model=ScheduleListResponse)
async def list_schedule(
    schedule_date: Optional[date] = Query(None, alias="date"),
    account_id: Optional[UUID] = Query(None, alias="accountId"),
    schedules: ScheduleRepository = Depends(get_schedule_repository)
):
    """List the batches of one date, optionally for one account, by execution time."""
    schedule_date = schedule_date or local_tomorrow(settings.SCHEDULE_TIMEZONE)
    try:
        batches = await schedules.list_batches(schedule_date, account_id=account_id)
    except Exception as e:
        return error_response(e)

    return ScheduleListResponse(
        schedule_date=schedule_date,
        total_batches=len(batches),
        batches=[ScheduleBatchResponse.model_validate(b) for b in batches],
    )


@router.post("/batches/{batch_id}/status", response_model=ScheduleBatchResponse)
async def update_batch_status(
    batch_id: UUID,
    update: BatchStatusUpdate,
    schedules: ScheduleRepository = Depends(get_schedule_repository)
):
    """Executor feedback: pending -> executing -> completed | failed."""
    try:
        batch = await schedules.update_batch_status(batch_id, update.status, update.error_message)
    except Exception as e:
        return error_response(e)

    logger.info(f"📦 [SCHEDULE] Batch {batch.batch_number} of {batch.schedule_date} is now {batch.status}")
    return ScheduleBatchResponse.model_validate(batch)
