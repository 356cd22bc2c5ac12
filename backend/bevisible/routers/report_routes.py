"""
Report Routes
=============
Daily report initialization (fire-and-continue), status, and the internal
per-stage entry points.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends

from bevisible.deps import ReportRunner, get_orchestrator, get_report_repository, get_report_runner
from bevisible.enums import PIPELINE_STAGES
from bevisible.exceptions import NotFoundError
from bevisible.repositories.base import ReportRepository
from bevisible.routers.errors import error_response
from bevisible.schemas.report import (
    DailyReportResponse,
    ReportInitializeRequest,
    ReportInitializeResponse,
    StageRunResponse,
    StageRunResult,
)
from bevisible.services.report_pipeline.orchestrator import ReportPipelineOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Reports"])


@router.post("/report/initialize", response_model=ReportInitializeResponse)
async def initialize_report(
    request: ReportInitializeRequest,
    background_tasks: BackgroundTasks,
    orchestrator: ReportPipelineOrchestrator = Depends(get_orchestrator),
    run_report: ReportRunner = Depends(get_report_runner)
):
    """
    Find or create today's report for a brand and resume it in the background.

    Returns immediately; a completed report is returned without starting
    any processing.
    """
    try:
        result = await orchestrator.initialize(request.brand_id, request.report_date)
    except Exception as e:
        return error_response(e)

    if not result.already_complete:
        background_tasks.add_task(run_report, result.report_id)
        logger.info(f"🚀 [REPORT] Queued background run for report {result.report_id}")

    return result


@router.get("/reports/{report_id}", response_model=DailyReportResponse)
async def get_report(
    report_id: UUID,
    reports: ReportRepository = Depends(get_report_repository)
):
    try:
        report = await reports.get_report(report_id)
        if not report:
            raise NotFoundError(f"Daily report {report_id} not found")
        runs = await reports.list_stage_runs(report_id)
    except Exception as e:
        return error_response(e)

    response = DailyReportResponse.model_validate(report)
    response.stages = [
        StageRunResponse.model_validate(runs[stage]) for stage in PIPELINE_STAGES if stage in runs
    ]
    return response


@router.post("/reports/{report_id}/stages/{stage}", response_model=StageRunResult)
async def run_report_stage(
    report_id: UUID,
    stage: str,
    orchestrator: ReportPipelineOrchestrator = Depends(get_orchestrator)
):
    """Internal entry point: run one stage of a report. Idempotent per report."""
    try:
        return await orchestrator.run_stage(report_id, stage)
    except Exception as e:
        return error_response(e, report_id=str(report_id), stage=stage)
