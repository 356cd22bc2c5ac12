# backend/bevisible/services/report_pipeline/stage_processor.py
"""
Provider Stage Processor

Runs one provider over every active prompt of a report's brand:
- prompts already answered ok for (report, provider) are not re-queried
- calls run concurrently inside small sub-batches, with a delay between
  sub-batches to respect provider rate limits
- every prompt ends as one upserted PromptResult row: ok, no_result or error
- an item failure never aborts the stage

Counters are recomputed from the stored rows so a resumed stage reports
totals for the whole report, not just the last invocation.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from bevisible.enums import ResultStatus, StageStatus
from bevisible.exceptions import DataIntegrityError, NotFoundError
from bevisible.models import Brand, BrandPrompt, DailyReport, PromptResult
from bevisible.repositories.base import BrandRepository, ReportRepository
from bevisible.schemas.mentions import dump_citations, dump_competitor_mentions
from bevisible.services.providers.base import ProviderClient, ProviderResponse
from bevisible.services.report_pipeline.mention_analyzer import MentionAnalyzer
from bevisible.timeutils import local_today, utcnow

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class StageOutcome:
    """Terminal status and counters of one stage invocation."""
    stage: str
    status: str
    counts: Dict[str, int] = field(default_factory=dict)
    error_message: Optional[str] = None

    @property
    def advances(self) -> bool:
        """Whether the report may move on to the next stage."""
        return self.status in (
            StageStatus.COMPLETE.value,
            StageStatus.SKIPPED.value,
            StageStatus.EXPIRED.value,
        )


def count_results(results: List[PromptResult], prompt_ids=None) -> Dict[str, int]:
    counts = {"attempted": 0, "ok": 0, "no_result": 0, "errors": 0}
    for result in results:
        if prompt_ids is not None and result.brand_prompt_id not in prompt_ids:
            continue
        counts["attempted"] += 1
        if result.provider_status == ResultStatus.OK.value:
            counts["ok"] += 1
        elif result.provider_status == ResultStatus.NO_RESULT.value:
            counts["no_result"] += 1
        else:
            counts["errors"] += 1
    return counts


class ProviderStageProcessor:

    def __init__(
        self,
        reports: ReportRepository,
        brands: BrandRepository,
        provider: ProviderClient,
        analyzer: Optional[MentionAnalyzer] = None,
        batch_size: int = 5,
        batch_delay_seconds: float = 2.0,
        sleep: Sleep = asyncio.sleep,
        timezone_name: str = "America/Los_Angeles",
        clock: Callable[[], datetime] = utcnow
    ):
        self.reports = reports
        self.brands = brands
        self.provider = provider
        self.analyzer = analyzer or MentionAnalyzer()
        self.batch_size = max(1, batch_size)
        self.batch_delay_seconds = batch_delay_seconds
        self.sleep = sleep
        self.timezone_name = timezone_name
        self.clock = clock

    @property
    def stage(self) -> str:
        return self.provider.name

    def _today(self) -> date:
        return local_today(self.timezone_name, self.clock())

    async def run(self, report: DailyReport) -> StageOutcome:
        tag = f"[{self.stage.upper()}]"

        brand = await self.brands.get_brand(report.brand_id)
        if not brand:
            raise NotFoundError(f"Brand {report.brand_id} for report {report.id} not found")

        if self.provider.live_only and report.report_date < self._today():
            logger.info(f"⏭️ {tag} Skipping past date {report.report_date}: answers only exist for today")
            return StageOutcome(
                stage=self.stage,
                status=StageStatus.EXPIRED.value,
                counts={"attempted": 0, "ok": 0, "no_result": 0, "errors": 0},
            )

        prompts = await self.brands.list_active_prompts(brand.id)
        existing = await self.reports.list_prompt_results(report.id, self.stage)
        answered = {r.brand_prompt_id for r in existing if r.provider_status == ResultStatus.OK.value}
        pending = [p for p in prompts if p.id not in answered]

        logger.info(
            f"🚀 {tag} Report {report.id} ({brand.name}): {len(prompts)} active prompts, "
            f"{len(pending)} to query"
        )

        unsaved = 0
        total_batches = (len(pending) + self.batch_size - 1) // self.batch_size
        for number, start in enumerate(range(0, len(pending), self.batch_size), start=1):
            if number > 1 and self.batch_delay_seconds > 0:
                await self.sleep(self.batch_delay_seconds)

            batch = pending[start:start + self.batch_size]
            logger.info(f"📊 {tag} Batch {number}/{total_batches} ({len(batch)} prompts)")

            # Provider calls run concurrently; writes stay sequential on the one session
            answers = await asyncio.gather(*(self._query(prompt) for prompt in batch))
            for prompt, response, error in answers:
                values = self._result_values(report, brand, prompt, response, error)
                try:
                    await self.reports.upsert_prompt_result(values)
                except DataIntegrityError as e:
                    logger.error(f"❌ {tag} Could not save result for prompt {prompt.id}: {e}")
                    unsaved += 1

        stored = await self.reports.list_prompt_results(report.id, self.stage)
        counts = count_results(stored, {p.id for p in prompts})
        counts["errors"] += unsaved

        status = StageStatus.COMPLETE.value if counts["errors"] == 0 else StageStatus.FAILED.value
        error_message = None
        if counts["errors"]:
            error_message = f"{counts['errors']} of {counts['attempted']} prompts failed"

        logger.info(
            f"📊 {tag} Stage {status} - Attempted: {counts['attempted']}, OK: {counts['ok']}, "
            f"No Result: {counts['no_result']}, Errors: {counts['errors']}"
        )
        return StageOutcome(stage=self.stage, status=status, counts=counts, error_message=error_message)

    async def _query(self, prompt: BrandPrompt) -> Tuple[BrandPrompt, Optional[ProviderResponse], Optional[Exception]]:
        try:
            return prompt, await self.provider.query(prompt.text), None
        except Exception as e:
            logger.error(f"❌ [{self.stage.upper()}] Prompt {prompt.id} failed: {e}")
            return prompt, None, e

    def _result_values(
        self,
        report: DailyReport,
        brand: Brand,
        prompt: BrandPrompt,
        response: Optional[ProviderResponse],
        error: Optional[Exception]
    ) -> dict:
        values = {
            "daily_report_id": report.id,
            "brand_prompt_id": prompt.id,
            "provider": self.stage,
            "prompt_text": prompt.text,
            "provider_status": ResultStatus.ERROR.value,
            "provider_error_message": None,
            "response_text": None,
            "response_time_ms": None,
            "citations": [],
            "brand_mentioned": False,
            "brand_mention_count": 0,
            "brand_position": None,
            "competitor_mentions": [],
            "sentiment_score": 0.0,
        }

        if error is not None:
            values["provider_error_message"] = str(error) or error.__class__.__name__
            return values

        values["response_time_ms"] = response.latency_ms
        if not response.has_results or not response.content:
            values["provider_status"] = ResultStatus.NO_RESULT.value
            values["provider_error_message"] = (
                "No search results found" if not response.has_results else "Empty response content"
            )
            return values

        analysis = self.analyzer.analyze(response.content, brand.name, brand.competitors or [])
        values.update({
            "provider_status": ResultStatus.OK.value,
            "response_text": response.content,
            "citations": dump_citations(response.citations),
            "brand_mentioned": analysis.mentioned,
            "brand_mention_count": analysis.mention_count,
            "brand_position": analysis.position if analysis.mentioned else None,
            "competitor_mentions": dump_competitor_mentions(analysis.competitor_mentions),
            "sentiment_score": analysis.sentiment,
        })
        return values
