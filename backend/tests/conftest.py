# tests/conftest.py

import os

# Must be set before bevisible.config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENABLE_SCHEDULER", "false")

import random
from datetime import datetime, timezone

import pytest

from bevisible.config import Settings
from tests.fakes import (
    FakeAccountPoolRepository,
    FakeBrandRepository,
    FakeReportRepository,
    FakeScheduleRepository,
    make_account,
    make_brand,
    make_prompt,
)


# Mid-day in Los Angeles, so "today" and "tomorrow" are unambiguous
NOW = datetime(2026, 3, 10, 19, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def test_settings():
    """Settings with no delays and deterministic windows"""
    return Settings(
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        MIN_BATCH_SIZE=1,
        MAX_BATCH_SIZE=6,
        SCHEDULE_WINDOW_START_HOUR=8,
        SCHEDULE_WINDOW_END_HOUR=18,
        MIN_SLOT_SPACING_MINUTES=10,
        SCHEDULE_TIMEZONE="America/Los_Angeles",
        MIN_PROMPT_REUSE_HOURS=24.0,
        HISTORY_LOOKBACK_DAYS=7,
        STAGE_BATCH_SIZE=5,
        STAGE_BATCH_DELAY_SECONDS=0,
        INTER_BRAND_DELAY_SECONDS=0,
        STAGE_STALE_AFTER_MINUTES=60,
        ENABLE_SCHEDULER=False,
    )


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def brand_repo():
    return FakeBrandRepository()


@pytest.fixture
def account_repo():
    return FakeAccountPoolRepository()


@pytest.fixture
def schedule_repo():
    return FakeScheduleRepository()


@pytest.fixture
def report_repo():
    return FakeReportRepository()


@pytest.fixture
def acme(brand_repo):
    """Brand with two competitors and four active prompts (plus one inactive)"""
    brand = make_brand("Acme", competitors=["Globex", "Initech"])
    prompts = [
        make_prompt(brand, f"best project management tool #{i}")
        for i in range(4)
    ]
    prompts.append(make_prompt(brand, "retired question", status="inactive"))
    brand_repo.add(brand, prompts)
    return brand


@pytest.fixture
def pool(account_repo):
    """Three healthy, never-used accounts"""
    accounts = [make_account(email=f"bot{i}@example.com") for i in range(3)]
    for account in accounts:
        account_repo.accounts[account.id] = account
    return accounts
