# tests/services/test_account_selector.py
"""
Tests for AccountSelector

Coverage:
- Prompt reuse filter
- Degraded least-recently-used fallback
- Brand gap outweighs idle time
- Spreading a fresh pool across accounts

Run with: pytest backend/tests/services/test_account_selector.py -v
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from bevisible.exceptions import SchedulingExhaustion
from bevisible.services.scheduler_engine.account_selector import AccountSelector
from tests.fakes import make_account, make_history


class TestReuseFilter:

    def test_recent_pair_is_not_selected(self, now):
        prompt_id, brand_id = uuid4(), uuid4()
        recent = make_account("recent@example.com", last_used_at=now - timedelta(hours=2))
        fresh = make_account("fresh@example.com", last_used_at=now - timedelta(hours=1))
        history = [make_history(recent, prompt_id, brand_id, now - timedelta(hours=2))]

        selector = AccountSelector([recent, fresh], history, 24, now)
        account, degraded = selector.select(prompt_id, brand_id)

        assert account is fresh
        assert degraded is False
        assert selector.degraded_count == 0

    def test_all_recent_falls_back_to_least_recently_used(self, now):
        prompt_id, brand_id = uuid4(), uuid4()
        older = make_account("older@example.com", last_used_at=now - timedelta(hours=10))
        newer = make_account("newer@example.com", last_used_at=now - timedelta(hours=2))
        history = [
            make_history(older, prompt_id, brand_id, now - timedelta(hours=10)),
            make_history(newer, prompt_id, brand_id, now - timedelta(hours=2)),
        ]

        selector = AccountSelector([newer, older], history, 24, now)
        account, degraded = selector.select(prompt_id, brand_id)

        assert account is older
        assert degraded is True
        assert selector.degraded_count == 1

    def test_fallback_prefers_never_used_account(self, now):
        prompt_id = uuid4()
        used = make_account("used@example.com", last_used_at=now - timedelta(days=3))
        never = make_account("never@example.com", last_used_at=None)

        selector = AccountSelector([used, never], [], 24, now)

        assert selector.least_recently_used() is never

    def test_empty_pool_raises(self, now):
        with pytest.raises(SchedulingExhaustion):
            AccountSelector([], [], 24, now)


class TestScoring:

    def test_score_components(self, now):
        prompt_id, brand_id = uuid4(), uuid4()
        account = make_account(last_used_at=now - timedelta(hours=5))
        history = [
            make_history(account, prompt_id, brand_id, now - timedelta(hours=48)),
            make_history(account, uuid4(), brand_id, now - timedelta(hours=30)),
        ]

        selector = AccountSelector([account], history, 24, now)
        score = selector.score_account(account, prompt_id, brand_id)

        assert score.prompt_gap_hours == pytest.approx(48)
        assert score.brand_gap_hours == pytest.approx(30)
        assert score.idle_hours == pytest.approx(5)
        assert score.score == pytest.approx(48 * 1000 + 30 * 500 + 5)

    def test_brand_gap_outweighs_idle(self, now):
        prompt_id, brand_id = uuid4(), uuid4()
        # a: brand untouched for 30h but used for another brand an hour ago
        a = make_account("a@example.com", last_used_at=now - timedelta(hours=1))
        # b: idle longer, but ran this brand 3h ago
        b = make_account("b@example.com", last_used_at=now - timedelta(hours=3))
        history = [
            make_history(a, prompt_id, brand_id, now - timedelta(hours=48)),
            make_history(b, prompt_id, brand_id, now - timedelta(hours=48)),
            make_history(a, uuid4(), brand_id, now - timedelta(hours=30)),
            make_history(a, uuid4(), uuid4(), now - timedelta(hours=1)),
            make_history(b, uuid4(), brand_id, now - timedelta(hours=3)),
        ]

        selector = AccountSelector([b, a], history, 24, now)
        ranked = selector.rank_candidates(prompt_id, brand_id)

        assert [s.account for s in ranked] == [a, b]

    def test_new_prompt_avoids_account_that_just_ran_the_brand(self, now):
        brand_id = uuid4()
        busy = make_account("busy@example.com", last_used_at=now - timedelta(hours=2))
        rested = make_account("rested@example.com", last_used_at=now - timedelta(hours=2))
        history = [make_history(busy, uuid4(), brand_id, now - timedelta(hours=2))]

        selector = AccountSelector([busy, rested], history, 24, now)
        account, degraded = selector.select(uuid4(), brand_id)

        assert account is rested
        assert degraded is False

    def test_new_prompt_prefers_longer_idle_account(self, now):
        recent = make_account("recent@example.com", last_used_at=now - timedelta(hours=1))
        idle = make_account("idle@example.com", last_used_at=now - timedelta(hours=12))

        selector = AccountSelector([recent, idle], [], 24, now)

        assert selector.select(uuid4(), uuid4())[0] is idle

    def test_fresh_pool_spreads_assignments(self, now):
        accounts = [make_account(f"bot{i}@example.com") for i in range(3)]
        selector = AccountSelector(accounts, [], 24, now)

        chosen = [selector.select(uuid4(), uuid4())[0] for _ in range(6)]

        assert all(selector.assigned_counts[a.id] == 2 for a in accounts)
        assert chosen[:3] == accounts
        assert selector.degraded_count == 0
