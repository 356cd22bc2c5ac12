# backend/bevisible/services/scheduler_engine/batch_builder.py
"""
Batch construction for one schedule date.

1. Interleave assignments by brand, weighted round-robin (no brand clusters)
2. Chunk the interleaved sequence into random-sized batches
3. Draw one execution slot per batch inside the daily window, with a
   minimum spacing, sorted ascending
4. One ScheduleBatch row per chunk, on the account of its first prompt
"""

import logging
import random
import uuid
from collections import OrderedDict
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional, Sequence, TypeVar
from zoneinfo import ZoneInfo

from bevisible.enums import BatchStatus
from bevisible.exceptions import SchedulingExhaustion
from bevisible.models import ScheduleBatch
from bevisible.schemas.inventory import PromptAssignment

logger = logging.getLogger(__name__)

T = TypeVar("T")


def interleave_by_brand(assignments: Sequence[PromptAssignment]) -> List[PromptAssignment]:
    """
    Weighted round-robin over the brand queues.

    The k-th prompt of a brand with n prompts is placed at (k + 0.5) / n
    along the sequence, ties going to the brand seen first. Equal-sized
    queues come out in plain round-robin order; a large brand is spread
    across the smaller ones instead of trailing them as one long run.
    """
    queues = OrderedDict()
    for assignment in assignments:
        queues.setdefault(assignment.brand_id, []).append(assignment)

    keyed = []
    for brand_index, queue in enumerate(queues.values()):
        for k, assignment in enumerate(queue):
            keyed.append(((k + 0.5) / len(queue), brand_index, assignment))

    keyed.sort(key=lambda item: (item[0], item[1]))
    return [assignment for _, _, assignment in keyed]


def max_consecutive_run(assignments: Sequence[PromptAssignment]) -> int:
    longest = current = 0
    previous = None
    for assignment in assignments:
        current = current + 1 if assignment.brand_id == previous else 1
        previous = assignment.brand_id
        longest = max(longest, current)
    return longest


def chunk_randomly(items: Sequence[T], min_size: int, max_size: int, rng: random.Random) -> List[List[T]]:
    """Split `items` in order into chunks of random size in [min_size, max_size]."""
    if min_size < 1 or max_size < min_size:
        raise ValueError(f"Invalid batch size range {min_size}-{max_size}")

    chunks = []
    remaining = list(items)
    while remaining:
        upper = min(max_size, len(remaining))
        size = rng.randint(min(min_size, upper), upper)
        chunks.append(remaining[:size])
        remaining = remaining[size:]
    return chunks


def generate_time_slots(
    count: int,
    schedule_date: date,
    start_hour: int,
    end_hour: int,
    min_spacing_minutes: int,
    tz_name: str,
    rng: random.Random
) -> List[datetime]:
    """
    `count` UTC timestamps inside [start_hour, end_hour) local time on
    `schedule_date`, strictly increasing, consecutive slots at least
    `min_spacing_minutes` apart.

    Offsets are drawn uniformly from the minutes left over after reserving
    the spacing, then the spacing is added back, so generation never loops.
    """
    if count == 0:
        return []

    spacing = max(1, min_spacing_minutes)
    total_minutes = (end_hour - start_hour) * 60
    free_minutes = total_minutes - 1 - (count - 1) * spacing
    if total_minutes <= 0 or free_minutes < 0:
        raise SchedulingExhaustion(
            f"Cannot fit {count} batches with {spacing}min spacing "
            f"in a {total_minutes}min window on {schedule_date}"
        )

    offsets = sorted(rng.randint(0, free_minutes) for _ in range(count))
    window_start = datetime.combine(schedule_date, time(hour=start_hour), tzinfo=ZoneInfo(tz_name))

    return [
        (window_start + timedelta(minutes=offset + i * spacing)).astimezone(timezone.utc)
        for i, offset in enumerate(offsets)
    ]


class BatchBuilder:
    """Turns prompt assignments into ScheduleBatch rows for one date."""

    def __init__(
        self,
        min_batch_size: int,
        max_batch_size: int,
        window_start_hour: int,
        window_end_hour: int,
        min_spacing_minutes: int,
        timezone_name: str,
        rng: Optional[random.Random] = None
    ):
        self.min_batch_size = min_batch_size
        self.max_batch_size = max_batch_size
        self.window_start_hour = window_start_hour
        self.window_end_hour = window_end_hour
        self.min_spacing_minutes = min_spacing_minutes
        self.timezone_name = timezone_name
        self.rng = rng or random.Random()

    def build(self, assignments: Sequence[PromptAssignment], schedule_date: date) -> List[ScheduleBatch]:
        if not assignments:
            return []

        interleaved = interleave_by_brand(assignments)
        logger.info(
            f"📊 [INTERLEAVING] {len(interleaved)} prompts, "
            f"max consecutive same-brand run: {max_consecutive_run(interleaved)}"
        )

        chunks = chunk_randomly(interleaved, self.min_batch_size, self.max_batch_size, self.rng)
        slots = generate_time_slots(
            len(chunks),
            schedule_date,
            self.window_start_hour,
            self.window_end_hour,
            self.min_spacing_minutes,
            self.timezone_name,
            self.rng,
        )
        logger.info(f"📅 [SCHEDULING] {len(chunks)} batches from {len(interleaved)} prompts for {schedule_date}")

        batches = []
        for number, (chunk, execution_time) in enumerate(zip(chunks, slots), start=1):
            first = chunk[0]
            batches.append(ScheduleBatch(
                id=uuid.uuid4(),
                schedule_date=schedule_date,
                batch_number=number,
                execution_time=execution_time,
                account_id=first.account_id,
                brand_id=first.brand_id,
                prompt_ids=[str(a.prompt_id) for a in chunk],
                batch_size=len(chunk),
                status=BatchStatus.PENDING.value,
            ))
            logger.debug(
                f"   Batch {number}: {len(chunk)} prompts at {execution_time.isoformat()} "
                f"(account {first.account_id})"
            )

        return batches
