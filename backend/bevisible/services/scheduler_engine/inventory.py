"""Inventory discovery: today's eligible brands and their active prompts."""

import logging
from typing import List, Optional

from bevisible.repositories.base import BrandRepository
from bevisible.schemas.inventory import BrandInventory

logger = logging.getLogger(__name__)


class InventoryDiscovery:
    """
    Read-only snapshot of everything that should be scheduled today.

    Any upstream read failure yields an empty inventory instead of a partial
    one; callers treat empty as "nothing to schedule".
    """

    def __init__(self, brands: BrandRepository, max_prompts_per_brand: Optional[int] = None):
        self.brands = brands
        self.max_prompts_per_brand = max_prompts_per_brand

    async def discover(self) -> List[BrandInventory]:
        logger.info("🔍 [DISCOVERY] Finding eligible brands...")

        try:
            inventory = await self.brands.list_eligible_brands_with_active_prompts(
                max_prompts_per_brand=self.max_prompts_per_brand
            )
        except Exception as e:
            logger.error(f"❌ [DISCOVERY] Inventory read failed, scheduling nothing: {e}", exc_info=True)
            return []

        for item in inventory:
            logger.info(f"  - {item.brand_name}: {len(item.prompts)} active prompts")

        total = sum(len(item.prompts) for item in inventory)
        logger.info(f"✅ [DISCOVERY] {len(inventory)} brand(s), {total} prompt(s) to process")
        return inventory
