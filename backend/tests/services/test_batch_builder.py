# tests/services/test_batch_builder.py
"""
Tests for batch construction

Coverage:
- Brand interleaving and run-length bound
- Random chunking inside the configured size range
- Time slots: window, spacing, ordering, exhaustion
- ScheduleBatch rows built from chunks

Run with: pytest backend/tests/services/test_batch_builder.py -v
"""

import random
from datetime import date, datetime, time
from uuid import uuid4
from zoneinfo import ZoneInfo

import pytest

from bevisible.exceptions import SchedulingExhaustion
from bevisible.schemas.inventory import PromptAssignment
from bevisible.services.scheduler_engine.batch_builder import (
    BatchBuilder,
    chunk_randomly,
    generate_time_slots,
    interleave_by_brand,
    max_consecutive_run,
)

LA = ZoneInfo("America/Los_Angeles")
SCHEDULE_DATE = date(2026, 3, 11)


# ============================================================================
# FIXTURES - MODULE LEVEL
# ============================================================================

def assignments_for(counts, account_id=None):
    """Assignments for len(counts) brands, listed brand after brand"""
    result = []
    for index, count in enumerate(counts):
        brand_id = uuid4()
        for n in range(count):
            result.append(PromptAssignment(
                brand_id=brand_id,
                brand_name=f"Brand {index}",
                prompt_id=uuid4(),
                prompt_text=f"prompt {n}",
                account_id=account_id or uuid4(),
            ))
    return result


@pytest.fixture
def builder(rng):
    return BatchBuilder(
        min_batch_size=2,
        max_batch_size=4,
        window_start_hour=8,
        window_end_hour=18,
        min_spacing_minutes=10,
        timezone_name="America/Los_Angeles",
        rng=rng,
    )


# ============================================================================
# INTERLEAVING
# ============================================================================

class TestInterleaving:

    def test_largest_brand_run_is_bounded(self):
        assignments = assignments_for([10, 3, 1])
        largest = assignments[0].brand_id

        interleaved = interleave_by_brand(assignments)

        longest = current = 0
        for assignment in interleaved:
            current = current + 1 if assignment.brand_id == largest else 0
            longest = max(longest, current)
        assert longest <= 3
        assert max_consecutive_run(interleaved) <= 3

    def test_equal_queues_alternate(self):
        assignments = assignments_for([3, 3])
        first, second = assignments[0].brand_id, assignments[3].brand_id

        interleaved = interleave_by_brand(assignments)

        assert [a.brand_id for a in interleaved] == [first, second] * 3

    def test_keeps_every_assignment_and_brand_order(self):
        assignments = assignments_for([4, 2, 1])

        interleaved = interleave_by_brand(assignments)

        assert sorted(a.prompt_id for a in interleaved) == sorted(a.prompt_id for a in assignments)
        for brand_id in {a.brand_id for a in assignments}:
            original = [a.prompt_id for a in assignments if a.brand_id == brand_id]
            reordered = [a.prompt_id for a in interleaved if a.brand_id == brand_id]
            assert reordered == original

    def test_empty_input(self):
        assert interleave_by_brand([]) == []
        assert max_consecutive_run([]) == 0


# ============================================================================
# CHUNKING
# ============================================================================

class TestChunking:

    def test_chunk_sizes_within_range(self, rng):
        chunks = chunk_randomly(list(range(50)), 2, 5, rng)

        assert [item for chunk in chunks for item in chunk] == list(range(50))
        assert all(len(chunk) <= 5 for chunk in chunks)
        # Only the final chunk may fall under the minimum
        assert all(len(chunk) >= 2 for chunk in chunks[:-1])

    def test_short_tail_becomes_its_own_batch(self):
        chunks = chunk_randomly([1], 3, 6, random.Random(0))
        assert chunks == [[1]]

    def test_invalid_range_rejected(self, rng):
        with pytest.raises(ValueError):
            chunk_randomly([1, 2], 0, 3, rng)
        with pytest.raises(ValueError):
            chunk_randomly([1, 2], 4, 3, rng)


# ============================================================================
# TIME SLOTS
# ============================================================================

class TestTimeSlots:

    def test_slots_sorted_spaced_and_inside_window(self, rng):
        slots = generate_time_slots(30, SCHEDULE_DATE, 8, 18, 10, "America/Los_Angeles", rng)

        assert len(slots) == 30
        window_start = datetime.combine(SCHEDULE_DATE, time(8), tzinfo=LA)
        window_end = datetime.combine(SCHEDULE_DATE, time(18), tzinfo=LA)
        for slot in slots:
            assert slot.utcoffset().total_seconds() == 0
            assert window_start <= slot < window_end
        for earlier, later in zip(slots, slots[1:]):
            assert (later - earlier).total_seconds() >= 10 * 60

    def test_window_exactly_full(self, rng):
        # 60 one-minute slots in a one-hour window
        slots = generate_time_slots(60, SCHEDULE_DATE, 8, 9, 1, "America/Los_Angeles", rng)

        assert len(slots) == 60
        assert slots[0] == datetime.combine(SCHEDULE_DATE, time(8), tzinfo=LA)
        assert slots[-1] == datetime.combine(SCHEDULE_DATE, time(8, 59), tzinfo=LA)

    def test_too_many_batches_raises(self, rng):
        with pytest.raises(SchedulingExhaustion):
            generate_time_slots(61, SCHEDULE_DATE, 8, 9, 1, "America/Los_Angeles", rng)

    def test_zero_batches(self, rng):
        assert generate_time_slots(0, SCHEDULE_DATE, 8, 18, 10, "America/Los_Angeles", rng) == []


# ============================================================================
# BATCH ROWS
# ============================================================================

class TestBatchBuilder:

    def test_builds_numbered_pending_batches(self, builder):
        assignments = assignments_for([5, 4, 3])

        batches = builder.build(assignments, SCHEDULE_DATE)

        assert [b.batch_number for b in batches] == list(range(1, len(batches) + 1))
        assert sum(b.batch_size for b in batches) == 12
        assert all(b.status == "pending" for b in batches)
        assert all(b.schedule_date == SCHEDULE_DATE for b in batches)
        times = [b.execution_time for b in batches]
        assert times == sorted(times)

    def test_batch_uses_first_prompt_account_and_brand(self, builder):
        assignments = assignments_for([3, 3])
        by_prompt = {str(a.prompt_id): a for a in assignments}

        for batch in builder.build(assignments, SCHEDULE_DATE):
            first = by_prompt[batch.prompt_ids[0]]
            assert batch.account_id == first.account_id
            assert batch.brand_id == first.brand_id
            assert len(batch.prompt_ids) == batch.batch_size

    def test_no_assignments_no_batches(self, builder):
        assert builder.build([], SCHEDULE_DATE) == []
