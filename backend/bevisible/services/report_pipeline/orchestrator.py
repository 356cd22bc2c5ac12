# backend/bevisible/services/report_pipeline/orchestrator.py
"""
Report Pipeline Orchestrator

Per (brand, date):
    initialized -> perplexity -> google_ai_overview -> url_processing -> completed

Flow:
1. Find or create the DailyReport row (never two rows per brand/date)
2. A completed report is returned as-is: no provider is called
3. Each stage not yet complete/skipped is claimed (compare-and-swap on its
   stage row), run, finished with its counters, then aggregated
4. A failed stage stops the run and leaves processing_stage on that stage,
   so the next invocation retries it
"""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Optional, Protocol
from uuid import UUID

from bevisible.config import Settings, settings as default_settings
from bevisible.enums import (
    FINISHED_STAGE_STATUSES,
    PIPELINE_STAGES,
    ProcessingStage,
    StageStatus,
)
from bevisible.exceptions import BeVisibleError, DataIntegrityError, NotFoundError
from bevisible.models import DailyReport
from bevisible.repositories.base import BrandRepository, ReportRepository
from bevisible.schemas.report import ReportInitializeResponse, StageRunResult
from bevisible.services.report_pipeline.aggregator import ReportAggregator
from bevisible.services.report_pipeline.stage_processor import StageOutcome
from bevisible.timeutils import local_today, utcnow

logger = logging.getLogger(__name__)

ADVANCING_STATUSES = {
    StageStatus.COMPLETE.value,
    StageStatus.SKIPPED.value,
    StageStatus.EXPIRED.value,
}


class StageRunner(Protocol):
    stage: str

    async def run(self, report: DailyReport) -> StageOutcome:
        ...


class ReportPipelineOrchestrator:

    def __init__(
        self,
        reports: ReportRepository,
        brands: BrandRepository,
        stage_runners: Dict[str, StageRunner],
        aggregator: Optional[ReportAggregator] = None,
        config: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        missing = [stage for stage in PIPELINE_STAGES if stage not in stage_runners]
        if missing:
            raise ValueError(f"No runner configured for stage(s): {', '.join(missing)}")

        self.reports = reports
        self.brands = brands
        self.stage_runners = stage_runners
        self.aggregator = aggregator or ReportAggregator(reports)
        self.config = config or default_settings
        self.clock = clock

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def initialize(self, brand_id: UUID, report_date: Optional[date] = None) -> ReportInitializeResponse:
        """Find or create the report for (brand, date). Does not run any stage."""
        brand = await self.brands.get_brand(brand_id)
        if not brand:
            raise NotFoundError(f"Brand {brand_id} not found")

        report_date = report_date or local_today(self.config.SCHEDULE_TIMEZONE, self.clock())
        existing = await self.reports.find_report(brand_id, report_date)

        # A completed report is a no-op even if the brand's prompts changed since
        if existing is not None and existing.processing_stage == ProcessingStage.COMPLETED.value:
            report, created = existing, False
        else:
            prompts = await self.brands.list_active_prompts(brand_id)
            if not prompts:
                raise ValueError(f"Brand {brand.name} has no active prompts")
            report, created = await self.reports.find_or_create_report(brand_id, report_date, len(prompts))

        already_complete = report.processing_stage == ProcessingStage.COMPLETED.value

        if created:
            logger.info(f"🆕 [REPORT] Created report {report.id} for {brand.name} on {report_date}")
        elif already_complete:
            logger.info(f"✅ [REPORT] Report {report.id} for {brand.name} on {report_date} already completed")
        else:
            logger.info(
                f"🔄 [REPORT] Resuming report {report.id} for {brand.name} "
                f"from stage '{report.processing_stage}'"
            )

        return ReportInitializeResponse(
            success=True,
            message="Report already completed" if already_complete else "Report processing started",
            report_id=report.id,
            processing_stage=report.processing_stage,
            total_prompts=report.total_prompts,
            already_complete=already_complete,
            created=created,
        )

    async def initialize_and_run(self, brand_id: UUID, report_date: Optional[date] = None) -> dict:
        initialized = await self.initialize(brand_id, report_date)
        if initialized.already_complete:
            return {"report_id": initialized.report_id, "processing_stage": initialized.processing_stage}
        return await self.run(initialized.report_id)

    async def run(self, report_id: UUID) -> dict:
        """Drive a report through every unfinished stage, in order."""
        report = await self._require_report(report_id)
        if report.processing_stage == ProcessingStage.COMPLETED.value:
            logger.info(f"✅ [REPORT] Report {report_id} already completed, nothing to do")
            return {"report_id": report_id, "processing_stage": report.processing_stage, "stages": {}}

        stages = {}
        try:
            for stage in PIPELINE_STAGES:
                outcome = await self._execute_stage(report, stage)
                if outcome is None:
                    stages[stage] = StageStatus.RUNNING.value
                    logger.info(f"⏳ [REPORT] Stage '{stage}' of {report_id} is held by another run, stopping")
                    break

                stages[stage] = outcome.status
                if not outcome.advances:
                    logger.warning(
                        f"⚠️ [REPORT] Stage '{stage}' of {report_id} {outcome.status}: "
                        f"{outcome.error_message}. Will retry on next invocation"
                    )
                    break
        except Exception as e:
            logger.error(f"❌ [REPORT] Unexpected error processing report {report_id}: {e}", exc_info=True)
            await self.reports.mark_failed(report_id)
            raise

        report = await self._require_report(report_id)
        logger.info(f"📊 [REPORT] Report {report_id} now at '{report.processing_stage}': {stages}")
        return {"report_id": report_id, "processing_stage": report.processing_stage, "stages": stages}

    async def run_stage(self, report_id: UUID, stage: str) -> StageRunResult:
        """Run a single stage of a report. Idempotent: finished stages are not re-run."""
        if stage not in PIPELINE_STAGES:
            raise ValueError(f"Unknown stage '{stage}', expected one of {PIPELINE_STAGES}")

        report = await self._require_report(report_id)
        runs = await self.reports.list_stage_runs(report_id)
        run = runs.get(stage)

        if report.processing_stage == ProcessingStage.COMPLETED.value or (
            run is not None and run.status in FINISHED_STAGE_STATUSES
        ):
            return StageRunResult(
                success=True,
                report_id=report_id,
                stage=stage,
                status=run.status if run else StageStatus.COMPLETE.value,
                skipped=True,
                stats=self._run_stats(run),
            )

        pending = [
            earlier for earlier in PIPELINE_STAGES[:PIPELINE_STAGES.index(stage)]
            if runs.get(earlier) is None or runs[earlier].status not in ADVANCING_STATUSES
        ]
        if pending:
            raise ValueError(
                f"Stage '{stage}' of report {report_id} cannot run before {', '.join(pending)} finished"
            )

        outcome = await self._execute_stage(report, stage)
        if outcome is None:
            return StageRunResult(
                success=True,
                report_id=report_id,
                stage=stage,
                status=StageStatus.RUNNING.value,
                skipped=True,
            )

        return StageRunResult(
            success=outcome.advances,
            error=outcome.error_message,
            report_id=report_id,
            stage=stage,
            status=outcome.status,
            stats=outcome.counts,
        )

    # ------------------------------------------------------------------
    # Stage execution
    # ------------------------------------------------------------------

    async def _execute_stage(self, report: DailyReport, stage: str) -> Optional[StageOutcome]:
        """
        Run one stage unless it already finished. Returns None when another
        invocation holds the stage.
        """
        runs = await self.reports.list_stage_runs(report.id)
        run = runs.get(stage)
        if run is None:
            raise DataIntegrityError(f"Report {report.id} has no '{stage}' stage row")

        if run.status in FINISHED_STAGE_STATUSES:
            logger.info(f"⏭️ [REPORT] Stage '{stage}' of {report.id} already {run.status}, skipping")
            await self._advance_past(report.id, stage)
            return StageOutcome(stage=stage, status=run.status, counts=self._run_stats(run))

        stale_before = self.clock() - timedelta(minutes=self.config.STAGE_STALE_AFTER_MINUTES)
        if not await self.reports.claim_stage(report.id, stage, stale_before):
            return None

        await self.reports.advance_processing_stage(report.id, stage)
        logger.info(f"🚀 [REPORT] Stage '{stage}' claimed for report {report.id}")

        try:
            outcome = await self.stage_runners[stage].run(report)
        except BeVisibleError as e:
            logger.error(f"❌ [REPORT] Stage '{stage}' of {report.id} failed: {e}")
            outcome = StageOutcome(stage=stage, status=StageStatus.FAILED.value, error_message=str(e))
        except Exception as e:
            await self.reports.finish_stage(report.id, stage, StageStatus.FAILED.value, error_message=str(e))
            raise

        await self.reports.finish_stage(
            report.id,
            stage,
            outcome.status,
            counts=outcome.counts or None,
            error_message=outcome.error_message,
        )
        await self.aggregator.aggregate(report.id)

        if outcome.advances:
            await self._advance_past(report.id, stage)

        return outcome

    async def _advance_past(self, report_id: UUID, stage: str) -> None:
        """Move to the next stage, or complete the report once every stage is done."""
        runs = await self.reports.list_stage_runs(report_id)
        if all(
            runs.get(s) is not None and runs[s].status in ADVANCING_STATUSES
            for s in PIPELINE_STAGES
        ):
            report = await self._require_report(report_id)
            if report.processing_stage != ProcessingStage.COMPLETED.value:
                await self.reports.mark_completed(report_id, self.clock())
                await self.aggregator.aggregate(report_id)
                logger.info(f"🎉 [REPORT] Report {report_id} completed")
            return

        position = PIPELINE_STAGES.index(stage)
        if position + 1 < len(PIPELINE_STAGES):
            await self.reports.advance_processing_stage(report_id, PIPELINE_STAGES[position + 1])

    async def _require_report(self, report_id: UUID) -> DailyReport:
        report = await self.reports.get_report(report_id)
        if not report:
            raise NotFoundError(f"Daily report {report_id} not found")
        return report

    @staticmethod
    def _run_stats(run) -> dict:
        if run is None:
            return {}
        return {
            "attempted": run.attempted,
            "ok": run.ok,
            "no_result": run.no_result,
            "errors": run.errors,
        }
