"""SQLAlchemy implementation of the brand snapshot repository."""

from collections import defaultdict
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bevisible.enums import PromptStatus
from bevisible.models import Brand, BrandPrompt, User
from bevisible.repositories.base import BrandRepository
from bevisible.schemas.inventory import BrandInventory, PromptRef


class SqlBrandRepository(BrandRepository):

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_eligible_brands_with_active_prompts(
        self,
        max_prompts_per_brand: Optional[int] = None
    ) -> List[BrandInventory]:
        result = await self.db.execute(
            select(Brand)
            .join(User, User.id == Brand.owner_user_id)
            .where(
                Brand.onboarding_completed == True,  # noqa: E712
                Brand.is_demo == False,  # noqa: E712
                User.reports_enabled == True,  # noqa: E712
            )
            .order_by(Brand.created_at, Brand.name)
        )
        brands = result.scalars().all()
        if not brands:
            return []

        prompts_result = await self.db.execute(
            select(BrandPrompt)
            .where(
                BrandPrompt.brand_id.in_([b.id for b in brands]),
                BrandPrompt.status == PromptStatus.ACTIVE.value,
            )
            .order_by(BrandPrompt.created_at, BrandPrompt.id)
        )
        by_brand = defaultdict(list)
        for prompt in prompts_result.scalars().all():
            by_brand[prompt.brand_id].append(prompt)

        inventory = []
        for brand in brands:
            prompts = by_brand.get(brand.id, [])
            if max_prompts_per_brand:
                prompts = prompts[:max_prompts_per_brand]
            if not prompts:
                continue
            inventory.append(BrandInventory(
                brand_id=brand.id,
                brand_name=brand.name,
                competitors=list(brand.competitors or []),
                prompts=[PromptRef(id=p.id, text=p.text) for p in prompts],
            ))
        return inventory

    async def get_brand(self, brand_id: UUID) -> Optional[Brand]:
        result = await self.db.execute(select(Brand).where(Brand.id == brand_id))
        return result.scalar_one_or_none()

    async def list_active_prompts(self, brand_id: UUID) -> List[BrandPrompt]:
        result = await self.db.execute(
            select(BrandPrompt)
            .where(
                BrandPrompt.brand_id == brand_id,
                BrandPrompt.status == PromptStatus.ACTIVE.value,
            )
            .order_by(BrandPrompt.created_at, BrandPrompt.id)
        )
        return list(result.scalars().all())
