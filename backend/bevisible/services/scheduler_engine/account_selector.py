# backend/bevisible/services/scheduler_engine/account_selector.py
"""
Account scoring for prompt routing.

For every candidate account three gaps are computed from the rolling
execution history:

- prompt gap: hours since this exact (account, prompt) pair last ran
- brand gap: hours since this (account, brand) pair last ran
- idle: hours since the account was last used for anything

Accounts whose prompt gap is below the reuse threshold are discarded.
score = prompt_gap * 1000 + brand_gap * 500 + idle
Equal scores (every never-run pair is inf) fall back to brand gap, then
assignments made in this run, then idle time.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from bevisible.exceptions import SchedulingExhaustion
from bevisible.models import AutomationAccount, ExecutionHistoryEntry
from bevisible.timeutils import as_utc, hours_between

logger = logging.getLogger(__name__)

PROMPT_GAP_WEIGHT = 1000
BRAND_GAP_WEIGHT = 500
IDLE_WEIGHT = 1


@dataclass
class AccountScore:
    account: AutomationAccount
    prompt_gap_hours: float
    brand_gap_hours: float
    idle_hours: float

    @property
    def score(self) -> float:
        return (
            self.prompt_gap_hours * PROMPT_GAP_WEIGHT
            + self.brand_gap_hours * BRAND_GAP_WEIGHT
            + self.idle_hours * IDLE_WEIGHT
        )


class AccountSelector:
    """Pick the best pool account for each prompt."""

    def __init__(
        self,
        accounts: List[AutomationAccount],
        history: List[ExecutionHistoryEntry],
        min_prompt_reuse_hours: float,
        now: datetime
    ):
        if not accounts:
            raise SchedulingExhaustion("No active automation accounts available")

        self.accounts = list(accounts)
        self.min_prompt_reuse_hours = min_prompt_reuse_hours
        self.now = now

        # Latest execution per (account, prompt) and (account, brand)
        self._last_prompt_run: Dict[Tuple[UUID, UUID], datetime] = {}
        self._last_brand_run: Dict[Tuple[UUID, UUID], datetime] = {}
        for entry in history:
            executed_at = as_utc(entry.executed_at)
            self._remember(self._last_prompt_run, (entry.account_id, entry.prompt_id), executed_at)
            self._remember(self._last_brand_run, (entry.account_id, entry.brand_id), executed_at)

        # Assignments made by this selector, used only to break score ties
        self.assigned_counts: Dict[UUID, int] = defaultdict(int)
        self.degraded_count = 0

    @staticmethod
    def _remember(index: dict, key, executed_at: datetime):
        current = index.get(key)
        if current is None or executed_at > current:
            index[key] = executed_at

    def score_account(
        self,
        account: AutomationAccount,
        prompt_id: UUID,
        brand_id: Optional[UUID] = None
    ) -> AccountScore:
        prompt_gap = hours_between(self._last_prompt_run.get((account.id, prompt_id)), self.now)
        brand_gap = float("inf")
        if brand_id is not None:
            brand_gap = hours_between(self._last_brand_run.get((account.id, brand_id)), self.now)
        idle = hours_between(account.last_used_at, self.now)

        return AccountScore(
            account=account,
            prompt_gap_hours=prompt_gap,
            brand_gap_hours=brand_gap,
            idle_hours=idle,
        )

    def rank_candidates(self, prompt_id: UUID, brand_id: Optional[UUID] = None) -> List[AccountScore]:
        """Candidates passing the reuse filter, best first."""
        scores = [
            self.score_account(account, prompt_id, brand_id)
            for account in self.accounts
        ]
        eligible = [s for s in scores if s.prompt_gap_hours >= self.min_prompt_reuse_hours]

        # A never-run pair scores inf, so the brand gap and idle time also break ties
        eligible.sort(key=lambda s: (
            -s.score,
            -s.brand_gap_hours,
            self.assigned_counts[s.account.id],
            -s.idle_hours,
        ))
        return eligible

    def least_recently_used(self) -> AutomationAccount:
        # Never-used accounts sort first
        return min(
            self.accounts,
            key=lambda a: (
                a.last_used_at is not None,
                as_utc(a.last_used_at) if a.last_used_at else self.now,
                self.assigned_counts[a.id],
            )
        )

    def select(self, prompt_id: UUID, brand_id: Optional[UUID] = None) -> Tuple[AutomationAccount, bool]:
        """Return (account, degraded). degraded means the reuse filter was ignored."""
        ranked = self.rank_candidates(prompt_id, brand_id)

        if ranked:
            best = ranked[0]
            logger.debug(
                f"   [ROUTING] prompt {prompt_id} -> {best.account.email} "
                f"(prompt gap {best.prompt_gap_hours:.1f}h, brand gap {best.brand_gap_hours:.1f}h, "
                f"idle {best.idle_hours:.1f}h)"
            )
            account, degraded = best.account, False
        else:
            account, degraded = self.least_recently_used(), True
            self.degraded_count += 1
            logger.warning(
                f"⚠️ [ROUTING] Every account ran prompt {prompt_id} within "
                f"{self.min_prompt_reuse_hours}h, falling back to least recently used {account.email}"
            )

        self.assigned_counts[account.id] += 1
        return account, degraded
