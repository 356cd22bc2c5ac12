# backend/bevisible/services/scheduler_engine/schedule_generator.py
"""
Nightly schedule generation.

PHASE 1: inventory discovery
PHASE 2: account routing (scoring per prompt)
PHASE 3: batch construction (interleave, chunk, time slots)
PHASE 4: persistence

A date that already has batches is left untouched unless regenerate is
set. The (schedule_date, batch_number) unique key turns a concurrent
duplicate run into an integrity error, reported as "already generated".
"""

import logging
import random
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from bevisible.config import Settings, settings as default_settings
from bevisible.exceptions import DataIntegrityError, SchedulingExhaustion
from bevisible.repositories.base import (
    AccountPoolRepository,
    BrandRepository,
    ScheduleRepository,
)
from bevisible.schemas.inventory import PromptAssignment
from bevisible.schemas.schedule import ScheduleGenerateResponse
from bevisible.services.account_pool import AccountPoolService
from bevisible.services.scheduler_engine.account_selector import AccountSelector
from bevisible.services.scheduler_engine.batch_builder import BatchBuilder
from bevisible.services.scheduler_engine.inventory import InventoryDiscovery
from bevisible.timeutils import local_tomorrow, utcnow

logger = logging.getLogger(__name__)


class ScheduleGenerator:

    def __init__(
        self,
        brands: BrandRepository,
        accounts: AccountPoolRepository,
        schedules: ScheduleRepository,
        config: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.config = config or default_settings
        self.schedules = schedules
        self.accounts = accounts
        self.clock = clock

        self.inventory = InventoryDiscovery(brands, self.config.MAX_PROMPTS_PER_BRAND)
        self.pool = AccountPoolService(accounts, self.config.MAX_CONSECUTIVE_ACCOUNT_ERRORS)
        self.builder = BatchBuilder(
            min_batch_size=self.config.MIN_BATCH_SIZE,
            max_batch_size=self.config.MAX_BATCH_SIZE,
            window_start_hour=self.config.SCHEDULE_WINDOW_START_HOUR,
            window_end_hour=self.config.SCHEDULE_WINDOW_END_HOUR,
            min_spacing_minutes=self.config.MIN_SLOT_SPACING_MINUTES,
            timezone_name=self.config.SCHEDULE_TIMEZONE,
            rng=rng,
        )

    async def generate(
        self,
        schedule_date: Optional[date] = None,
        regenerate: bool = False
    ) -> ScheduleGenerateResponse:
        now = self.clock()
        schedule_date = schedule_date or local_tomorrow(self.config.SCHEDULE_TIMEZONE, now)

        logger.info("=" * 70)
        logger.info(f"🌙 [SCHEDULER] Generating schedule for {schedule_date} (regenerate={regenerate})")
        logger.info("=" * 70)

        existing = await self.schedules.count_batches(schedule_date)
        if existing and not regenerate:
            logger.info(f"⚠️ [SCHEDULER] {existing} batches already exist for {schedule_date}, skipping")
            return ScheduleGenerateResponse(
                success=True,
                schedule_date=schedule_date,
                created=False,
                total_batches=existing,
            )

        # PHASE 1
        inventory = await self.inventory.discover()
        total_prompts = sum(len(item.prompts) for item in inventory)
        if total_prompts == 0:
            logger.warning(f"⚠️ [SCHEDULER] No eligible brands with active prompts for {schedule_date}")
            return ScheduleGenerateResponse(
                success=True,
                schedule_date=schedule_date,
                created=False,
                total_batches=existing,
            )

        # PHASE 2
        accounts, disabled = await self.pool.schedulable_accounts()
        if not accounts:
            logger.error(
                f"🚨 [SCHEDULER] No eligible automation accounts: {total_prompts} prompts "
                f"for {schedule_date} will have zero coverage"
            )
            raise SchedulingExhaustion(f"No eligible automation accounts for {schedule_date}")

        since = now - timedelta(days=self.config.HISTORY_LOOKBACK_DAYS)
        history = await self.accounts.list_execution_history(since)
        logger.info(f"   [ROUTING] {len(accounts)} accounts, {len(history)} history entries since {since.date()}")

        selector = AccountSelector(accounts, history, self.config.MIN_PROMPT_REUSE_HOURS, now)
        assignments = []
        for item in inventory:
            for prompt in item.prompts:
                account, degraded = selector.select(prompt.id, item.brand_id)
                assignments.append(PromptAssignment(
                    brand_id=item.brand_id,
                    brand_name=item.brand_name,
                    prompt_id=prompt.id,
                    prompt_text=prompt.text,
                    account_id=account.id,
                    degraded=degraded,
                ))

        # PHASE 3
        batches = self.builder.build(assignments, schedule_date)

        # PHASE 4
        if existing and regenerate:
            removed = await self.schedules.delete_batches(schedule_date)
            logger.info(f"♻️ [SCHEDULER] Regenerating: removed {removed} batches for {schedule_date}")

        try:
            await self.schedules.insert_batches(batches)
        except DataIntegrityError as e:
            logger.warning(f"⚠️ [SCHEDULER] Concurrent generation detected for {schedule_date}: {e}")
            return ScheduleGenerateResponse(
                success=True,
                schedule_date=schedule_date,
                created=False,
                total_batches=await self.schedules.count_batches(schedule_date),
                disabled_accounts=disabled,
            )

        accounts_used = {a.account_id for a in assignments}
        logger.info("📊 [SCHEDULER] SUMMARY")
        logger.info(f"   Date: {schedule_date}")
        logger.info(f"   Brands: {len(inventory)}, prompts: {total_prompts}, batches: {len(batches)}")
        logger.info(f"   Accounts used: {len(accounts_used)}, degraded assignments: {selector.degraded_count}")
        logger.info(f"✅ [SCHEDULER] Schedule generation complete for {schedule_date}")

        return ScheduleGenerateResponse(
            success=True,
            schedule_date=schedule_date,
            created=True,
            total_batches=len(batches),
            total_prompts=total_prompts,
            total_brands=len(inventory),
            accounts_used=len(accounts_used),
            degraded_assignments=selector.degraded_count,
            disabled_accounts=disabled,
        )
