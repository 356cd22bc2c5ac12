"""
Account Pool Registry

Validates pool accounts before scheduling and records executor feedback
(usage and failures) back onto the accounts.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from bevisible.enums import SessionHealth
from bevisible.exceptions import ConfigurationError
from bevisible.models import AutomationAccount, ExecutionHistoryEntry
from bevisible.repositories.base import AccountPoolRepository
from bevisible.timeutils import utcnow

logger = logging.getLogger(__name__)


def validate_account(account: AutomationAccount) -> None:
    """Raise ConfigurationError when the account cannot run a session."""
    if not account.email:
        raise ConfigurationError(f"Account {account.id} has no email", account_id=str(account.id))
    if not account.proxy_host:
        raise ConfigurationError(
            f"Account {account.email} has no proxy configured", account_id=str(account.id)
        )


class AccountPoolService:

    def __init__(self, accounts: AccountPoolRepository, max_consecutive_errors: int = 3):
        self.accounts = accounts
        self.max_consecutive_errors = max_consecutive_errors

    async def schedulable_accounts(self) -> Tuple[List[AutomationAccount], List[UUID]]:
        """
        Active, eligible accounts ready to be scheduled.

        Accounts with missing credentials are disabled and reported in the
        second element; accounts with an expired session are skipped.
        """
        usable = []
        disabled = []

        for account in await self.accounts.list_active_accounts():
            if account.session_health == SessionHealth.EXPIRED.value:
                logger.info(f"   [ACCOUNT POOL] Skipping {account.email}: session expired")
                continue
            try:
                validate_account(account)
            except ConfigurationError as e:
                logger.error(f"❌ [ACCOUNT POOL] {e}; disabling account")
                await self.accounts.disable_account(account.id, str(e))
                disabled.append(account.id)
                continue
            usable.append(account)

        logger.info(f"   [ACCOUNT POOL] {len(usable)} schedulable account(s), {len(disabled)} disabled")
        return usable, disabled

    async def record_usage(
        self,
        account_id: UUID,
        prompt_id: UUID,
        brand_id: UUID,
        executed_at: Optional[datetime] = None,
        session_health: Optional[str] = None
    ) -> ExecutionHistoryEntry:
        return await self.accounts.record_usage(
            account_id,
            prompt_id,
            brand_id,
            executed_at or utcnow(),
            session_health=session_health,
        )

    async def record_failure(
        self,
        account_id: UUID,
        error: str,
        session_health: Optional[str] = None
    ) -> AutomationAccount:
        logger.warning(f"⚠️ [ACCOUNT POOL] Failure on account {account_id}: {error}")
        return await self.accounts.record_failure(
            account_id,
            error,
            self.max_consecutive_errors,
            session_health=session_health,
        )

    async def prune_history(self, before: datetime) -> int:
        removed = await self.accounts.prune_execution_history(before)
        logger.info(f"🗑️ [ACCOUNT POOL] Pruned {removed} execution history entries before {before.isoformat()}")
        return removed
