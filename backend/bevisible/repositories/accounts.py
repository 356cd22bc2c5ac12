"""SQLAlchemy implementation of the account pool repository."""

import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from bevisible.enums import AccountStatus
from bevisible.exceptions import NotFoundError
from bevisible.models import AutomationAccount, ExecutionHistoryEntry
from bevisible.repositories.base import AccountPoolRepository
from bevisible.timeutils import utcnow

logger = logging.getLogger(__name__)


class SqlAccountPoolRepository(AccountPoolRepository):

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_accounts(self) -> List[AutomationAccount]:
        result = await self.db.execute(select(AutomationAccount).order_by(AutomationAccount.email))
        return list(result.scalars().all())

    async def list_active_accounts(self) -> List[AutomationAccount]:
        result = await self.db.execute(
            select(AutomationAccount)
            .where(
                AutomationAccount.status == AccountStatus.ACTIVE.value,
                AutomationAccount.is_eligible == True,  # noqa: E712
            )
            .order_by(AutomationAccount.email)
        )
        return list(result.scalars().all())

    async def get_account(self, account_id: UUID) -> Optional[AutomationAccount]:
        result = await self.db.execute(
            select(AutomationAccount).where(AutomationAccount.id == account_id)
        )
        return result.scalar_one_or_none()

    async def _require_account(self, account_id: UUID) -> AutomationAccount:
        account = await self.get_account(account_id)
        if not account:
            raise NotFoundError(f"Automation account {account_id} not found")
        return account

    async def list_execution_history(self, since: datetime) -> List[ExecutionHistoryEntry]:
        result = await self.db.execute(
            select(ExecutionHistoryEntry)
            .where(ExecutionHistoryEntry.executed_at >= since)
            .order_by(ExecutionHistoryEntry.executed_at.desc())
        )
        return list(result.scalars().all())

    async def record_usage(
        self,
        account_id: UUID,
        prompt_id: UUID,
        brand_id: UUID,
        executed_at: datetime,
        session_health: Optional[str] = None
    ) -> ExecutionHistoryEntry:
        account = await self._require_account(account_id)

        entry = ExecutionHistoryEntry(
            account_id=account_id,
            prompt_id=prompt_id,
            brand_id=brand_id,
            executed_at=executed_at,
        )
        self.db.add(entry)

        account.last_used_at = executed_at
        account.consecutive_errors = 0
        account.last_error = None
        if session_health:
            account.session_health = session_health

        await self.db.commit()
        return entry

    async def record_failure(
        self,
        account_id: UUID,
        error: str,
        max_consecutive_errors: int,
        session_health: Optional[str] = None
    ) -> AutomationAccount:
        account = await self._require_account(account_id)

        account.consecutive_errors = (account.consecutive_errors or 0) + 1
        account.last_error = error
        if session_health:
            account.session_health = session_health

        if account.consecutive_errors >= max_consecutive_errors:
            account.status = AccountStatus.DISABLED.value
            account.disabled_reason = (
                f"{account.consecutive_errors} consecutive errors, last: {error}"
            )
            logger.error(
                f"🚨 [ACCOUNT POOL] Disabled {account.email} after "
                f"{account.consecutive_errors} consecutive errors"
            )

        await self.db.commit()
        return account

    async def disable_account(self, account_id: UUID, reason: str) -> None:
        account = await self._require_account(account_id)
        account.status = AccountStatus.DISABLED.value
        account.disabled_reason = reason
        account.updated_at = utcnow()
        await self.db.commit()

    async def prune_execution_history(self, before: datetime) -> int:
        result = await self.db.execute(
            delete(ExecutionHistoryEntry).where(ExecutionHistoryEntry.executed_at < before)
        )
        await self.db.commit()
        return result.rowcount or 0
