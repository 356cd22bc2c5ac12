"""
Service wiring.

Every service receives its repositories and collaborators at construction;
this module is the single place where they are built from a session and
the application settings.
"""

import logging
from typing import Awaitable, Callable, Dict, Optional
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from bevisible.config import Settings, settings
from bevisible.database import AsyncSessionLocal, get_db
from bevisible.repositories.accounts import SqlAccountPoolRepository
from bevisible.repositories.brands import SqlBrandRepository
from bevisible.repositories.reports import SqlReportRepository
from bevisible.repositories.schedules import SqlScheduleRepository
from bevisible.services.account_pool import AccountPoolService
from bevisible.services.providers.base import ProviderClient
from bevisible.services.providers.google_ai_overview import GoogleAIOverviewProvider
from bevisible.services.providers.perplexity import PerplexityProvider
from bevisible.services.report_pipeline.mention_analyzer import KeywordSentimentScorer, MentionAnalyzer
from bevisible.services.report_pipeline.orchestrator import ReportPipelineOrchestrator
from bevisible.services.report_pipeline.stage_processor import ProviderStageProcessor
from bevisible.services.report_pipeline.url_processor import HttpUrlClassifier, UrlProcessingStage
from bevisible.services.scheduler_engine.schedule_generator import ScheduleGenerator

logger = logging.getLogger(__name__)

ReportRunner = Callable[[UUID], Awaitable[None]]


def build_providers(config: Settings = settings) -> Dict[str, ProviderClient]:
    providers = [
        PerplexityProvider(
            api_key=config.PERPLEXITY_API_KEY,
            model=config.PERPLEXITY_MODEL,
            timeout=config.PROVIDER_TIMEOUT_SECONDS,
        ),
        GoogleAIOverviewProvider(
            api_key=config.GOOGLE_API_KEY,
            cse_id=config.GOOGLE_CSE_ID,
            timeout=config.PROVIDER_TIMEOUT_SECONDS,
        ),
    ]
    return {provider.name: provider for provider in providers}


def build_schedule_generator(db: AsyncSession, config: Settings = settings) -> ScheduleGenerator:
    return ScheduleGenerator(
        brands=SqlBrandRepository(db),
        accounts=SqlAccountPoolRepository(db),
        schedules=SqlScheduleRepository(db),
        config=config,
    )


def build_orchestrator(
    db: AsyncSession,
    config: Settings = settings,
    providers: Optional[Dict[str, ProviderClient]] = None
) -> ReportPipelineOrchestrator:
    reports = SqlReportRepository(db)
    brands = SqlBrandRepository(db)
    providers = providers or build_providers(config)
    analyzer = MentionAnalyzer(KeywordSentimentScorer(window=config.SENTIMENT_WINDOW_CHARS))

    runners = {
        name: ProviderStageProcessor(
            reports,
            brands,
            provider,
            analyzer=analyzer,
            batch_size=config.STAGE_BATCH_SIZE,
            batch_delay_seconds=config.STAGE_BATCH_DELAY_SECONDS,
            timezone_name=config.SCHEDULE_TIMEZONE,
        )
        for name, provider in providers.items()
    }

    classifier = None
    if config.URL_CLASSIFIER_ENDPOINT:
        classifier = HttpUrlClassifier(
            config.URL_CLASSIFIER_ENDPOINT,
            api_key=config.URL_CLASSIFIER_API_KEY,
            timeout=config.PROVIDER_TIMEOUT_SECONDS,
        )
    url_stage = UrlProcessingStage(reports, classifier=classifier)
    runners[url_stage.stage] = url_stage

    return ReportPipelineOrchestrator(reports, brands, runners, config=config)


async def run_report_in_background(report_id: UUID) -> None:
    """Run a report on its own session; the request session is closed by then."""
    async with AsyncSessionLocal() as db:
        try:
            await build_orchestrator(db).run(report_id)
        except Exception as e:
            logger.error(f"❌ [REPORT] Background run of report {report_id} failed: {e}", exc_info=True)


# ============================================
# FastAPI dependencies
# ============================================

async def get_schedule_generator(db: AsyncSession = Depends(get_db)) -> ScheduleGenerator:
    return build_schedule_generator(db)


async def get_schedule_repository(db: AsyncSession = Depends(get_db)) -> SqlScheduleRepository:
    return SqlScheduleRepository(db)


async def get_account_repository(db: AsyncSession = Depends(get_db)) -> SqlAccountPoolRepository:
    return SqlAccountPoolRepository(db)


async def get_account_pool(db: AsyncSession = Depends(get_db)) -> AccountPoolService:
    return AccountPoolService(SqlAccountPoolRepository(db), settings.MAX_CONSECUTIVE_ACCOUNT_ERRORS)


async def get_report_repository(db: AsyncSession = Depends(get_db)) -> SqlReportRepository:
    return SqlReportRepository(db)


async def get_orchestrator(db: AsyncSession = Depends(get_db)) -> ReportPipelineOrchestrator:
    return build_orchestrator(db)


def get_report_runner() -> ReportRunner:
    return run_report_in_background
