"""
Account Pool Routes
===================
Pool listing and executor feedback (usage, failures) per account.
"""

from uuid import UUID

from fastapi import APIRouter, Depends

from bevisible.deps import get_account_pool, get_account_repository
from bevisible.exceptions import NotFoundError
from bevisible.repositories.base import AccountPoolRepository
from bevisible.routers.errors import error_response
from bevisible.schemas.account import (
    AccountListResponse,
    AccountResponse,
    FailureRecordRequest,
    UsageRecordRequest,
)
from bevisible.services.account_pool import AccountPoolService

router = APIRouter(prefix="/api/v1/accounts", tags=["Account Pool"])


@router.get("", response_model=AccountListResponse)
async def list_accounts(accounts: AccountPoolRepository = Depends(get_account_repository)):
    try:
        rows = await accounts.list_accounts()
    except Exception as e:
        return error_response(e)

    return AccountListResponse(
        total=len(rows),
        accounts=[AccountResponse.model_validate(a) for a in rows],
    )


@router.post("/{account_id}/usage", response_model=AccountResponse)
async def record_usage(
    account_id: UUID,
    request: UsageRecordRequest,
    pool: AccountPoolService = Depends(get_account_pool)
):
    """Executor ran a prompt on this account: append history, stamp last use."""
    try:
        await pool.record_usage(
            account_id,
            request.prompt_id,
            request.brand_id,
            executed_at=request.executed_at,
            session_health=request.session_health,
        )
        account = await pool.accounts.get_account(account_id)
        if not account:
            raise NotFoundError(f"Automation account {account_id} not found")
    except Exception as e:
        return error_response(e)

    return AccountResponse.model_validate(account)


@router.post("/{account_id}/failure", response_model=AccountResponse)
async def record_failure(
    account_id: UUID,
    request: FailureRecordRequest,
    pool: AccountPoolService = Depends(get_account_pool)
):
    """Executor hit an error on this account; repeated failures disable it."""
    try:
        account = await pool.record_failure(account_id, request.error, session_health=request.session_health)
    except Exception as e:
        return error_response(e)

    return AccountResponse.model_validate(account)
