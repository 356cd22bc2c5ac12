# backend/bevisible/repositories/base.py
"""
Repository interfaces injected into the scheduling and report services.

Services never touch a session or a global client directly; they receive
one implementation of each interface at construction. The SQLAlchemy
implementations live next to this module.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple
from uuid import UUID

from bevisible.models import (
    AutomationAccount,
    Brand,
    BrandPrompt,
    DailyReport,
    ExecutionHistoryEntry,
    PromptResult,
    ReportStageRun,
    ScheduleBatch,
)
from bevisible.schemas.inventory import BrandInventory


class BrandRepository(ABC):
    """Read-only snapshot of brands and prompts."""

    @abstractmethod
    async def list_eligible_brands_with_active_prompts(
        self,
        max_prompts_per_brand: Optional[int] = None
    ) -> List[BrandInventory]:
        """
        Brands that completed onboarding, are not demos, whose owner has
        reporting enabled, and that have at least one active prompt.
        """

    @abstractmethod
    async def get_brand(self, brand_id: UUID) -> Optional[Brand]:
        pass

    @abstractmethod
    async def list_active_prompts(self, brand_id: UUID) -> List[BrandPrompt]:
        pass


class AccountPoolRepository(ABC):
    """Automation accounts and their execution history."""

    @abstractmethod
    async def list_accounts(self) -> List[AutomationAccount]:
        pass

    @abstractmethod
    async def list_active_accounts(self) -> List[AutomationAccount]:
        """Accounts with status=active that are eligible for scheduling."""

    @abstractmethod
    async def get_account(self, account_id: UUID) -> Optional[AutomationAccount]:
        pass

    @abstractmethod
    async def list_execution_history(self, since: datetime) -> List[ExecutionHistoryEntry]:
        """History entries executed at or after `since`, newest first."""

    @abstractmethod
    async def record_usage(
        self,
        account_id: UUID,
        prompt_id: UUID,
        brand_id: UUID,
        executed_at: datetime,
        session_health: Optional[str] = None
    ) -> ExecutionHistoryEntry:
        """Append a history entry, stamp last_used_at, reset the error counter."""

    @abstractmethod
    async def record_failure(
        self,
        account_id: UUID,
        error: str,
        max_consecutive_errors: int,
        session_health: Optional[str] = None
    ) -> AutomationAccount:
        """Increment the error counter; disable at `max_consecutive_errors`."""

    @abstractmethod
    async def disable_account(self, account_id: UUID, reason: str) -> None:
        pass

    @abstractmethod
    async def prune_execution_history(self, before: datetime) -> int:
        pass


class ScheduleRepository(ABC):
    """Persisted schedule batches."""

    @abstractmethod
    async def count_batches(self, schedule_date: date) -> int:
        pass

    @abstractmethod
    async def delete_batches(self, schedule_date: date) -> int:
        pass

    @abstractmethod
    async def insert_batches(self, batches: List[ScheduleBatch]) -> None:
        """Insert all rows atomically; DataIntegrityError on a duplicate (date, batch_number)."""

    @abstractmethod
    async def list_batches(
        self,
        schedule_date: date,
        account_id: Optional[UUID] = None
    ) -> List[ScheduleBatch]:
        """Batches of one date ordered by execution_time."""

    @abstractmethod
    async def get_batch(self, batch_id: UUID) -> Optional[ScheduleBatch]:
        pass

    @abstractmethod
    async def update_batch_status(
        self,
        batch_id: UUID,
        status: str,
        error_message: Optional[str] = None
    ) -> ScheduleBatch:
        pass


class ReportRepository(ABC):
    """Daily reports, their stage rows, prompt results and URL inventory."""

    @abstractmethod
    async def find_or_create_report(
        self,
        brand_id: UUID,
        report_date: date,
        total_prompts: int
    ) -> Tuple[DailyReport, bool]:
        """Return (report, created). Never creates a second row for (brand, date)."""

    @abstractmethod
    async def find_report(self, brand_id: UUID, report_date: date) -> Optional[DailyReport]:
        pass

    @abstractmethod
    async def get_report(self, report_id: UUID) -> Optional[DailyReport]:
        pass

    @abstractmethod
    async def list_stage_runs(self, report_id: UUID) -> Dict[str, ReportStageRun]:
        pass

    @abstractmethod
    async def claim_stage(self, report_id: UUID, stage: str, stale_before: datetime) -> bool:
        """
        Compare-and-swap the stage row to running.

        Succeeds when the stage is not_started, failed or expired, or when it
        has been running since before `stale_before`. Returns False when
        another invocation holds the stage or it is already finished.
        """

    @abstractmethod
    async def finish_stage(
        self,
        report_id: UUID,
        stage: str,
        status: str,
        counts: Optional[Dict[str, int]] = None,
        error_message: Optional[str] = None
    ) -> ReportStageRun:
        pass

    @abstractmethod
    async def advance_processing_stage(self, report_id: UUID, to_stage: str) -> bool:
        """Move processing_stage forward only. Returns False if it was already at or past `to_stage`."""

    @abstractmethod
    async def mark_completed(self, report_id: UUID, completed_at: datetime) -> None:
        pass

    @abstractmethod
    async def mark_failed(self, report_id: UUID) -> None:
        """Set processing_stage=failed unless the report already completed."""

    @abstractmethod
    async def upsert_prompt_result(self, values: dict) -> PromptResult:
        """Insert or replace the row keyed by (daily_report_id, brand_prompt_id, provider)."""

    @abstractmethod
    async def list_prompt_results(
        self,
        report_id: UUID,
        provider: Optional[str] = None
    ) -> List[PromptResult]:
        pass

    @abstractmethod
    async def save_aggregates(self, report_id: UUID, aggregates: dict) -> None:
        pass

    @abstractmethod
    async def known_urls(self, urls: Iterable[str]) -> Set[str]:
        pass

    @abstractmethod
    async def classified_urls(self, urls: Iterable[str]) -> Set[str]:
        """The subset of urls already carrying a content classification."""

    @abstractmethod
    async def upsert_urls(self, entries: List[dict], seen_at: datetime) -> None:
        """Insert new URLs or refresh last_seen_at / classification of known ones."""

    @abstractmethod
    async def save_url_stats(self, report_id: UUID, total: int, new: int, classified: int) -> None:
        pass
