"""SQLAlchemy implementation of the schedule repository."""

from datetime import date
from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bevisible.enums import BATCH_TRANSITIONS, BatchStatus
from bevisible.exceptions import DataIntegrityError, NotFoundError
from bevisible.models import ScheduleBatch
from bevisible.repositories.base import ScheduleRepository
from bevisible.timeutils import utcnow


class SqlScheduleRepository(ScheduleRepository):

    def __init__(self, db: AsyncSession):
        self.db = db

    async def count_batches(self, schedule_date: date) -> int:
        result = await self.db.execute(
            select(func.count(ScheduleBatch.id)).where(ScheduleBatch.schedule_date == schedule_date)
        )
        return result.scalar_one()

    async def delete_batches(self, schedule_date: date) -> int:
        result = await self.db.execute(
            delete(ScheduleBatch).where(ScheduleBatch.schedule_date == schedule_date)
        )
        await self.db.commit()
        return result.rowcount or 0

    async def insert_batches(self, batches: List[ScheduleBatch]) -> None:
        self.db.add_all(batches)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise DataIntegrityError(f"Schedule batches already exist: {e.orig}") from e

    async def list_batches(
        self,
        schedule_date: date,
        account_id: Optional[UUID] = None
    ) -> List[ScheduleBatch]:
        query = select(ScheduleBatch).where(ScheduleBatch.schedule_date == schedule_date)
        if account_id:
            query = query.where(ScheduleBatch.account_id == account_id)
        query = query.order_by(ScheduleBatch.execution_time, ScheduleBatch.batch_number)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_batch(self, batch_id: UUID) -> Optional[ScheduleBatch]:
        result = await self.db.execute(select(ScheduleBatch).where(ScheduleBatch.id == batch_id))
        return result.scalar_one_or_none()

    async def update_batch_status(
        self,
        batch_id: UUID,
        status: str,
        error_message: Optional[str] = None
    ) -> ScheduleBatch:
        batch = await self.get_batch(batch_id)
        if not batch:
            raise NotFoundError(f"Schedule batch {batch_id} not found")

        if status != batch.status and status not in BATCH_TRANSITIONS.get(batch.status, set()):
            raise DataIntegrityError(
                f"Invalid batch transition {batch.status} -> {status} for batch {batch_id}"
            )

        batch.status = status
        if status == BatchStatus.EXECUTING.value:
            batch.started_at = utcnow()
        elif status in (BatchStatus.COMPLETED.value, BatchStatus.FAILED.value):
            batch.completed_at = utcnow()
        if error_message is not None:
            batch.error_message = error_message

        await self.db.commit()
        return batch
