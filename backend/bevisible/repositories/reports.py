"""SQLAlchemy implementation of the report store."""

import logging
import uuid
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bevisible.enums import (
    PIPELINE_STAGES,
    STAGE_ORDER,
    ProcessingStage,
    ReportStatus,
    StageStatus,
)
from bevisible.exceptions import DataIntegrityError, NotFoundError
from bevisible.models import DailyReport, PromptResult, ReportStageRun, UrlInventory
from bevisible.repositories.base import ReportRepository
from bevisible.timeutils import utcnow

logger = logging.getLogger(__name__)

CLAIMABLE_STAGE_STATUSES = [
    StageStatus.NOT_STARTED.value,
    StageStatus.FAILED.value,
    StageStatus.EXPIRED.value,
]

STAGE_COUNTER_FIELDS = ("attempted", "ok", "no_result", "errors")

AGGREGATE_FIELDS = (
    "total_mentions",
    "average_position",
    "sentiment_positive",
    "sentiment_neutral",
    "sentiment_negative",
    "completed_prompts",
    "visibility_score",
    "mention_rate",
    "position_score",
    "mention_dominance",
)


class SqlReportRepository(ReportRepository):
    """
    Report rows are mutated with conditional UPDATE statements where two
    invocations may race (stage claim, stage advancement). Reads that follow
    such an update use populate_existing so the identity map never serves
    stale state.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    async def _select_report(self, brand_id: UUID, report_date: date) -> Optional[DailyReport]:
        result = await self.db.execute(
            select(DailyReport)
            .where(DailyReport.brand_id == brand_id, DailyReport.report_date == report_date)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_report(self, brand_id: UUID, report_date: date) -> Optional[DailyReport]:
        return await self._select_report(brand_id, report_date)

    async def find_or_create_report(
        self,
        brand_id: UUID,
        report_date: date,
        total_prompts: int
    ) -> Tuple[DailyReport, bool]:
        existing = await self._select_report(brand_id, report_date)
        if existing:
            return existing, False

        report = DailyReport(
            id=uuid.uuid4(),
            brand_id=brand_id,
            report_date=report_date,
            status=ReportStatus.RUNNING.value,
            processing_stage=ProcessingStage.INITIALIZED.value,
            generated=False,
            total_prompts=total_prompts,
            completed_prompts=0,
            total_mentions=0,
            sentiment_positive=0,
            sentiment_neutral=0,
            sentiment_negative=0,
            urls_total=0,
            urls_new=0,
            urls_classified=0,
        )
        self.db.add(report)
        for stage in PIPELINE_STAGES:
            self.db.add(ReportStageRun(
                id=uuid.uuid4(),
                daily_report_id=report.id,
                stage=stage,
                status=StageStatus.NOT_STARTED.value,
                attempted=0,
                ok=0,
                no_result=0,
                errors=0,
            ))

        try:
            await self.db.commit()
        except IntegrityError:
            # Another invocation created the row first
            await self.db.rollback()
            existing = await self._select_report(brand_id, report_date)
            if not existing:
                raise DataIntegrityError(
                    f"Daily report for brand {brand_id} on {report_date} could not be created"
                )
            logger.info(f"[REPORT] Lost create race for brand {brand_id} on {report_date}, reusing row")
            return existing, False

        return report, True

    async def get_report(self, report_id: UUID) -> Optional[DailyReport]:
        result = await self.db.execute(
            select(DailyReport)
            .where(DailyReport.id == report_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _require_report(self, report_id: UUID) -> DailyReport:
        report = await self.get_report(report_id)
        if not report:
            raise NotFoundError(f"Daily report {report_id} not found")
        return report

    async def advance_processing_stage(self, report_id: UUID, to_stage: str) -> bool:
        target_rank = STAGE_ORDER[to_stage]
        behind = [stage for stage, rank in STAGE_ORDER.items() if rank < target_rank]

        result = await self.db.execute(
            update(DailyReport)
            .where(DailyReport.id == report_id, DailyReport.processing_stage.in_(behind))
            .values(
                processing_stage=to_stage,
                status=(
                    ReportStatus.COMPLETED.value
                    if to_stage == ProcessingStage.COMPLETED.value
                    else ReportStatus.RUNNING.value
                ),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount == 1

    async def mark_completed(self, report_id: UUID, completed_at: datetime) -> None:
        await self.db.execute(
            update(DailyReport)
            .where(DailyReport.id == report_id)
            .values(
                processing_stage=ProcessingStage.COMPLETED.value,
                status=ReportStatus.COMPLETED.value,
                generated=True,
                completed_at=completed_at,
                updated_at=completed_at,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

    async def mark_failed(self, report_id: UUID) -> None:
        await self.db.execute(
            update(DailyReport)
            .where(
                DailyReport.id == report_id,
                DailyReport.processing_stage != ProcessingStage.COMPLETED.value,
            )
            .values(
                processing_stage=ProcessingStage.FAILED.value,
                status=ReportStatus.FAILED.value,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

    async def save_aggregates(self, report_id: UUID, aggregates: dict) -> None:
        values = {k: aggregates[k] for k in AGGREGATE_FIELDS if k in aggregates}
        if not values:
            return
        values["updated_at"] = utcnow()
        await self.db.execute(
            update(DailyReport)
            .where(DailyReport.id == report_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

    async def save_url_stats(self, report_id: UUID, total: int, new: int, classified: int) -> None:
        await self.db.execute(
            update(DailyReport)
            .where(DailyReport.id == report_id)
            .values(urls_total=total, urls_new=new, urls_classified=classified, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

    # ------------------------------------------------------------------
    # Stage rows
    # ------------------------------------------------------------------

    async def list_stage_runs(self, report_id: UUID) -> Dict[str, ReportStageRun]:
        result = await self.db.execute(
            select(ReportStageRun)
            .where(ReportStageRun.daily_report_id == report_id)
            .execution_options(populate_existing=True)
        )
        return {run.stage: run for run in result.scalars().all()}

    async def claim_stage(self, report_id: UUID, stage: str, stale_before: datetime) -> bool:
        now = utcnow()
        result = await self.db.execute(
            update(ReportStageRun)
            .where(
                ReportStageRun.daily_report_id == report_id,
                ReportStageRun.stage == stage,
                or_(
                    ReportStageRun.status.in_(CLAIMABLE_STAGE_STATUSES),
                    and_(
                        ReportStageRun.status == StageStatus.RUNNING.value,
                        or_(
                            ReportStageRun.started_at.is_(None),
                            ReportStageRun.started_at < stale_before,
                        ),
                    ),
                ),
            )
            .values(
                status=StageStatus.RUNNING.value,
                started_at=now,
                completed_at=None,
                error_message=None,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount == 1

    async def finish_stage(
        self,
        report_id: UUID,
        stage: str,
        status: str,
        counts: Optional[Dict[str, int]] = None,
        error_message: Optional[str] = None
    ) -> ReportStageRun:
        runs = await self.list_stage_runs(report_id)
        run = runs.get(stage)
        if not run:
            raise NotFoundError(f"Stage '{stage}' not found for report {report_id}")

        run.status = status
        run.completed_at = utcnow()
        run.error_message = error_message
        for field in STAGE_COUNTER_FIELDS:
            if counts and field in counts:
                setattr(run, field, counts[field])

        await self.db.commit()
        return run

    # ------------------------------------------------------------------
    # Prompt results
    # ------------------------------------------------------------------

    async def _select_prompt_result(
        self,
        report_id: UUID,
        prompt_id: UUID,
        provider: str
    ) -> Optional[PromptResult]:
        result = await self.db.execute(
            select(PromptResult).where(
                PromptResult.daily_report_id == report_id,
                PromptResult.brand_prompt_id == prompt_id,
                PromptResult.provider == provider,
            )
        )
        return result.scalar_one_or_none()

    async def upsert_prompt_result(self, values: dict) -> PromptResult:
        report_id = values["daily_report_id"]
        prompt_id = values["brand_prompt_id"]
        provider = values["provider"]

        row = await self._select_prompt_result(report_id, prompt_id, provider)
        if row is None:
            row = PromptResult(id=uuid.uuid4(), **values)
            self.db.add(row)
        else:
            for key, value in values.items():
                setattr(row, key, value)

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            row = await self._select_prompt_result(report_id, prompt_id, provider)
            if row is None:
                raise DataIntegrityError(
                    f"Could not upsert result for prompt {prompt_id} ({provider})"
                )
            for key, value in values.items():
                setattr(row, key, value)
            await self.db.commit()

        return row

    async def list_prompt_results(
        self,
        report_id: UUID,
        provider: Optional[str] = None
    ) -> List[PromptResult]:
        query = select(PromptResult).where(PromptResult.daily_report_id == report_id)
        if provider:
            query = query.where(PromptResult.provider == provider)
        query = query.order_by(PromptResult.provider, PromptResult.brand_prompt_id)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # URL inventory
    # ------------------------------------------------------------------

    async def known_urls(self, urls: Iterable[str]) -> Set[str]:
        urls = list(urls)
        if not urls:
            return set()
        result = await self.db.execute(select(UrlInventory.url).where(UrlInventory.url.in_(urls)))
        return set(result.scalars().all())

    async def classified_urls(self, urls: Iterable[str]) -> Set[str]:
        urls = list(urls)
        if not urls:
            return set()
        result = await self.db.execute(
            select(UrlInventory.url).where(UrlInventory.url.in_(urls), UrlInventory.classified_at.is_not(None))
        )
        return set(result.scalars().all())

    async def upsert_urls(self, entries: List[dict], seen_at: datetime) -> None:
        if not entries:
            return

        result = await self.db.execute(
            select(UrlInventory).where(UrlInventory.url.in_([e["url"] for e in entries]))
        )
        existing = {row.url: row for row in result.scalars().all()}

        for entry in entries:
            row = existing.get(entry["url"])
            if row is None:
                row = UrlInventory(
                    id=uuid.uuid4(),
                    url=entry["url"],
                    domain=entry.get("domain"),
                    extracted=False,
                    first_seen_at=seen_at,
                )
                self.db.add(row)
                existing[row.url] = row
            row.last_seen_at = seen_at
            if entry.get("content_category"):
                row.content_category = entry["content_category"]
                row.classified_at = seen_at

        await self.db.commit()
