"""
Generate the schedule of one date from the command line.

Usage: python backend/scripts/generate_schedule.py [--date YYYY-MM-DD] [--regenerate]
Defaults to tomorrow in the reference time zone.
"""
import argparse
import asyncio
import logging
import sys
from datetime import date

from bevisible.config import settings
from bevisible.database import AsyncSessionLocal
from bevisible.deps import build_schedule_generator
from bevisible.exceptions import SchedulingExhaustion


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Generate the nightly prompt schedule")
    parser.add_argument("--date", type=date.fromisoformat, default=None, help="Schedule date (YYYY-MM-DD)")
    parser.add_argument("--regenerate", action="store_true", help="Replace existing batches for the date")
    return parser.parse_args(argv)


async def generate(schedule_date=None, regenerate=False):
    async with AsyncSessionLocal() as db:
        return await build_schedule_generator(db).generate(schedule_date, regenerate=regenerate)


def main(argv=None) -> int:
    logging.basicConfig(level=settings.LOG_LEVEL)
    args = parse_args(argv)

    if args.date:
        print(f"ℹ️  Manual run for date: {args.date}")

    try:
        result = asyncio.run(generate(args.date, args.regenerate))
    except SchedulingExhaustion as e:
        print(f"❌ Schedule generation failed: {e}")
        return 1

    if result.created:
        print(
            f"✅ {result.schedule_date}: {result.total_batches} batches, "
            f"{result.total_prompts} prompts, {result.total_brands} brands, "
            f"{result.accounts_used} accounts"
        )
    else:
        print(f"⚠️  {result.schedule_date}: nothing created ({result.total_batches} existing batches)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
