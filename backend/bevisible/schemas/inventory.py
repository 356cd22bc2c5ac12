"""Read-only snapshot of brands and their active prompts."""

from pydantic import BaseModel, Field
from typing import List
from uuid import UUID


class PromptRef(BaseModel):
    id: UUID
    text: str


class BrandInventory(BaseModel):
    """One eligible brand with the prompts to run for it today."""
    brand_id: UUID
    brand_name: str
    competitors: List[str] = Field(default_factory=list)
    prompts: List[PromptRef] = Field(default_factory=list)


class PromptAssignment(BaseModel):
    """A prompt routed to a pool account by the scheduler."""
    brand_id: UUID
    brand_name: str
    prompt_id: UUID
    prompt_text: str
    account_id: UUID
    degraded: bool = False
