# backend/bevisible/schemas/mentions.py
"""
Explicit records stored in PromptResult JSON columns.

Citation and CompetitorMention are validated whenever they cross the
database boundary, so rows never carry free-form blobs.
"""

from pydantic import BaseModel, Field, field_validator
from typing import List, Optional


class Citation(BaseModel):
    """URL cited by a provider answer."""
    url: str
    title: Optional[str] = None
    snippet: Optional[str] = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Citation url must not be empty")
        return v


class CompetitorMention(BaseModel):
    """How one competitor appears in a provider answer."""
    name: str
    count: int = Field(default=0, ge=0)
    position: int = Field(default=-1, ge=-1, description="First match offset, -1 when absent")
    portrayal_type: str = "neutral"


class MentionAnalysis(BaseModel):
    """Brand and competitor mention analysis of one answer."""
    mentioned: bool
    mention_count: int = 0
    position: int = -1
    sentiment: float = Field(default=0.0, ge=-1.0, le=1.0)
    competitor_mentions: List[CompetitorMention] = Field(default_factory=list)


def load_citations(raw) -> List[Citation]:
    return [Citation.model_validate(item) for item in (raw or [])]


def dump_citations(citations: List[Citation]) -> List[dict]:
    return [c.model_dump(exclude_none=True) for c in citations]


def load_competitor_mentions(raw) -> List[CompetitorMention]:
    return [CompetitorMention.model_validate(item) for item in (raw or [])]


def dump_competitor_mentions(mentions: List[CompetitorMention]) -> List[dict]:
    return [m.model_dump() for m in mentions]
