# tests/services/test_schedule_generator.py
"""
Tests for ScheduleGenerator

Coverage:
- Full generation for one date
- Idempotence (same date twice without regenerate)
- Regeneration
- Account pool problems (empty, misconfigured, expired sessions)
- Inventory failures and concurrent generation

Run with: pytest backend/tests/services/test_schedule_generator.py -v
"""

from datetime import date, timedelta
from unittest.mock import AsyncMock

import pytest

from bevisible.exceptions import DataIntegrityError, SchedulingExhaustion
from bevisible.services.scheduler_engine.schedule_generator import ScheduleGenerator
from tests.fakes import make_account, make_brand, make_history, make_prompt

SCHEDULE_DATE = date(2026, 3, 11)


# ============================================================================
# FIXTURES - MODULE LEVEL
# ============================================================================

@pytest.fixture
def globex(brand_repo):
    brand = make_brand("Globex")
    brand_repo.add(brand, [make_prompt(brand, f"globex question {i}") for i in range(2)])
    return brand


@pytest.fixture
def generator(brand_repo, account_repo, schedule_repo, test_settings, rng, clock):
    return ScheduleGenerator(
        brand_repo,
        account_repo,
        schedule_repo,
        config=test_settings,
        rng=rng,
        clock=clock,
    )


# ============================================================================
# GENERATION
# ============================================================================

class TestGenerate:

    @pytest.mark.asyncio
    async def test_generates_batches_for_every_active_prompt(self, generator, schedule_repo, acme, globex, pool):
        result = await generator.generate(SCHEDULE_DATE)

        assert result.created is True
        assert result.total_prompts == 6
        assert result.total_brands == 2
        assert result.total_batches == await schedule_repo.count_batches(SCHEDULE_DATE)
        assert 1 <= result.accounts_used <= 3
        assert result.degraded_assignments == 0

        scheduled = [p for b in schedule_repo.batches.values() for p in b.prompt_ids]
        assert len(scheduled) == 6
        assert len(set(scheduled)) == 6

    @pytest.mark.asyncio
    async def test_defaults_to_tomorrow_in_reference_zone(self, generator, acme, pool):
        # 19:00 UTC on March 10 is late morning in Los Angeles
        result = await generator.generate()
        assert result.schedule_date == date(2026, 3, 11)

    @pytest.mark.asyncio
    async def test_second_call_is_a_no_op(self, generator, schedule_repo, acme, pool):
        first = await generator.generate(SCHEDULE_DATE)
        second = await generator.generate(SCHEDULE_DATE)

        assert second.created is False
        assert second.total_batches == first.total_batches
        assert await schedule_repo.count_batches(SCHEDULE_DATE) == first.total_batches
        assert schedule_repo.insert_calls == 1

    @pytest.mark.asyncio
    async def test_regenerate_replaces_batches(self, generator, schedule_repo, acme, pool):
        await generator.generate(SCHEDULE_DATE)
        old_ids = set(schedule_repo.batches)

        result = await generator.generate(SCHEDULE_DATE, regenerate=True)

        assert result.created is True
        assert schedule_repo.insert_calls == 2
        assert not old_ids & set(schedule_repo.batches)
        assert await schedule_repo.count_batches(SCHEDULE_DATE) == result.total_batches

    @pytest.mark.asyncio
    async def test_other_dates_untouched(self, generator, schedule_repo, acme, pool):
        await generator.generate(SCHEDULE_DATE)
        await generator.generate(SCHEDULE_DATE + timedelta(days=1))
        await generator.generate(SCHEDULE_DATE, regenerate=True)

        assert await schedule_repo.count_batches(SCHEDULE_DATE + timedelta(days=1)) > 0


# ============================================================================
# ACCOUNT POOL
# ============================================================================

class TestAccountPool:

    @pytest.mark.asyncio
    async def test_no_accounts_raises(self, generator, schedule_repo, acme):
        with pytest.raises(SchedulingExhaustion):
            await generator.generate(SCHEDULE_DATE)
        assert schedule_repo.batches == {}

    @pytest.mark.asyncio
    async def test_misconfigured_account_is_disabled(self, generator, account_repo, acme, pool):
        broken = make_account("noproxy@example.com", proxy_host=None)
        account_repo.accounts[broken.id] = broken

        result = await generator.generate(SCHEDULE_DATE)

        assert result.created is True
        assert result.disabled_accounts == [broken.id]
        assert broken.status == "disabled"
        assert "proxy" in broken.disabled_reason

    @pytest.mark.asyncio
    async def test_expired_session_is_skipped_not_disabled(self, generator, account_repo, schedule_repo, acme):
        expired = make_account("expired@example.com", session_health="expired")
        healthy = make_account("healthy@example.com")
        account_repo.accounts[expired.id] = expired
        account_repo.accounts[healthy.id] = healthy

        result = await generator.generate(SCHEDULE_DATE)

        assert result.disabled_accounts == []
        assert expired.status == "active"
        assert {b.account_id for b in schedule_repo.batches.values()} == {healthy.id}

    @pytest.mark.asyncio
    async def test_ineligible_accounts_are_never_scheduled(self, generator, account_repo, acme):
        personal = make_account("personal@example.com", is_eligible=False)
        account_repo.accounts[personal.id] = personal

        with pytest.raises(SchedulingExhaustion):
            await generator.generate(SCHEDULE_DATE)

    @pytest.mark.asyncio
    async def test_recently_run_prompts_count_as_degraded(self, generator, brand_repo, account_repo, acme, now):
        only = make_account("only@example.com", last_used_at=now - timedelta(hours=3))
        account_repo.accounts[only.id] = only
        for prompt in await brand_repo.list_active_prompts(acme.id):
            account_repo.history.append(make_history(only, prompt.id, acme.id, now - timedelta(hours=3)))

        result = await generator.generate(SCHEDULE_DATE)

        assert result.created is True
        assert result.degraded_assignments == 4


# ============================================================================
# FAILURE MODES
# ============================================================================

class TestFailureModes:

    @pytest.mark.asyncio
    async def test_inventory_failure_schedules_nothing(self, generator, brand_repo, schedule_repo, acme, pool):
        brand_repo.fail = True

        result = await generator.generate(SCHEDULE_DATE)

        assert result.created is False
        assert result.total_batches == 0
        assert schedule_repo.insert_calls == 0

    @pytest.mark.asyncio
    async def test_no_eligible_brands(self, generator, brand_repo, schedule_repo, pool):
        demo = make_brand("Demo Co", is_demo=True)
        brand_repo.add(demo, [make_prompt(demo, "demo question")])

        result = await generator.generate(SCHEDULE_DATE)

        assert result.created is False
        assert schedule_repo.batches == {}

    @pytest.mark.asyncio
    async def test_concurrent_run_reports_existing(self, generator, schedule_repo, acme, pool):
        schedule_repo.insert_batches = AsyncMock(side_effect=DataIntegrityError("duplicate batch"))
        schedule_repo.count_batches = AsyncMock(side_effect=[0, 3])

        result = await generator.generate(SCHEDULE_DATE)

        assert result.created is False
        assert result.total_batches == 3
