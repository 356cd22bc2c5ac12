"""APScheduler configuration for the nightly schedule and daily reports."""

import asyncio
import logging
from datetime import timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from bevisible.config import settings
from bevisible.database import AsyncSessionLocal
from bevisible.deps import build_orchestrator, build_schedule_generator
from bevisible.repositories.accounts import SqlAccountPoolRepository
from bevisible.repositories.brands import SqlBrandRepository
from bevisible.services.account_pool import AccountPoolService
from bevisible.timeutils import utcnow

logger = logging.getLogger(__name__)

# Create scheduler instance
scheduler = AsyncIOScheduler(timezone=settings.SCHEDULE_TIMEZONE)


async def generate_nightly_schedule(session_factory=AsyncSessionLocal):
    """
    Generate tomorrow's schedule (reference time zone).
    Called by APScheduler at NIGHTLY_SCHEDULE_HOUR.
    """
    try:
        async with session_factory() as db:
            result = await build_schedule_generator(db).generate()
        logger.info(
            f"🌙 Nightly schedule for {result.schedule_date}: "
            f"created={result.created}, batches={result.total_batches}"
        )
    except Exception as e:
        logger.error(f"❌ Nightly schedule generation failed: {e}", exc_info=True)


async def run_daily_reports(session_factory=AsyncSessionLocal, sleep=asyncio.sleep):
    """
    Initialize and run today's report for every eligible brand.

    Brands are processed one at a time, with INTER_BRAND_DELAY_SECONDS
    between them: the shared account pool is the bottleneck, not CPU.
    """
    logger.info("Running daily reports...")

    try:
        async with session_factory() as db:
            inventory = await SqlBrandRepository(db).list_eligible_brands_with_active_prompts()
    except Exception as e:
        logger.error(f"❌ Error loading brands for daily reports: {e}", exc_info=True)
        return 0

    logger.info(f"Found {len(inventory)} brands to process")

    processed = 0
    for index, item in enumerate(inventory):
        if index > 0 and settings.INTER_BRAND_DELAY_SECONDS > 0:
            await sleep(settings.INTER_BRAND_DELAY_SECONDS)
        try:
            async with session_factory() as db:
                summary = await build_orchestrator(db).initialize_and_run(item.brand_id)
            processed += 1
            logger.info(f"Processed brand {item.brand_name}: {summary.get('processing_stage')}")
        except Exception as e:
            logger.error(f"Error processing brand {item.brand_name}: {e}")

    logger.info(f"Daily reports done: {processed}/{len(inventory)} brands processed")
    return processed


async def prune_execution_history(session_factory=AsyncSessionLocal):
    """Drop execution history older than HISTORY_RETENTION_DAYS."""
    try:
        cutoff = utcnow() - timedelta(days=settings.HISTORY_RETENTION_DAYS)
        async with session_factory() as db:
            await AccountPoolService(SqlAccountPoolRepository(db)).prune_history(cutoff)
    except Exception as e:
        logger.error(f"Error in history pruning job: {e}")


def start_scheduler():
    """
    Initialize and start the APScheduler.

    Jobs (reference time zone):
    - Nightly schedule generation: daily at NIGHTLY_SCHEDULE_HOUR
    - Daily reports: daily at DAILY_REPORTS_HOUR
    - Execution history pruning: daily at 03:30
    """
    if scheduler.running:
        logger.info("Scheduler already running")
        return

    try:
        scheduler.add_job(
            generate_nightly_schedule,
            trigger=CronTrigger(hour=settings.NIGHTLY_SCHEDULE_HOUR, minute=0),
            id='nightly_schedule_generation',
            name='Nightly Schedule Generation',
            replace_existing=True,
            max_instances=1
        )
        logger.info(f"✅ Scheduled: Nightly Schedule Generation (daily at {settings.NIGHTLY_SCHEDULE_HOUR:02d}:00)")

        scheduler.add_job(
            run_daily_reports,
            trigger=CronTrigger(hour=settings.DAILY_REPORTS_HOUR, minute=0),
            id='daily_reports',
            name='Daily Reports',
            replace_existing=True,
            max_instances=1
        )
        logger.info(f"✅ Scheduled: Daily Reports (daily at {settings.DAILY_REPORTS_HOUR:02d}:00)")

        scheduler.add_job(
            prune_execution_history,
            trigger=CronTrigger(hour=3, minute=30),
            id='execution_history_pruning',
            name='Execution History Pruning',
            replace_existing=True,
            max_instances=1
        )
        logger.info("✅ Scheduled: Execution History Pruning (daily at 03:30)")

        scheduler.start()
        logger.info("✅ APScheduler started successfully!")

        for job in scheduler.get_jobs():
            logger.info(f"   • {job.name}: Next run at {job.next_run_time}")

    except Exception as e:
        logger.error(f"❌ Error starting scheduler: {e}")


def stop_scheduler():
    """Stop the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Scheduler stopped")
