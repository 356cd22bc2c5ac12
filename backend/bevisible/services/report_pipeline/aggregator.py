"""Report aggregation, recomputed from scratch from the stored PromptResult rows."""

import logging
from typing import Iterable, List, Optional
from uuid import UUID

from bevisible.enums import ResultStatus
from bevisible.models import PromptResult
from bevisible.repositories.base import ReportRepository
from bevisible.schemas.mentions import CompetitorMention, load_competitor_mentions

logger = logging.getLogger(__name__)

POSITIVE_THRESHOLD = 0.1
NEGATIVE_THRESHOLD = -0.1


def brand_rank(brand_position: Optional[int], competitors: Iterable[CompetitorMention]) -> Optional[int]:
    """
    1-based rank of the brand among every entity found in one answer,
    ordered by first-mention offset. None unless the brand and at least
    one competitor were found.
    """
    if brand_position is None or brand_position < 0:
        return None

    # The brand sorts ahead of a competitor found at the same offset
    entities = [(brand_position, 0)]
    entities.extend((c.position, 1) for c in competitors if c.position >= 0)
    if len(entities) < 2:
        return None

    entities.sort()
    return entities.index((brand_position, 0)) + 1


def sentiment_bucket(score: float) -> str:
    if score > POSITIVE_THRESHOLD:
        return "positive"
    if score < NEGATIVE_THRESHOLD:
        return "negative"
    return "neutral"


def position_score(brand_position: int, competitors: Iterable[CompetitorMention]) -> float:
    """
    How early the brand appears against the earliest competitor in one answer:
    1.0 when first (or alone), 0.7 when tied, otherwise a score decaying
    with the distance, floored at 0.3.
    """
    positions = [c.position for c in competitors if c.position >= 0]
    if not positions:
        return 1.0

    earliest = min(positions)
    if brand_position < earliest:
        return 1.0
    if brand_position == earliest:
        return 0.7
    relative = 1 / (1 + (brand_position - earliest) / 100)
    return max(0.3, relative * 0.5)


def compute_visibility(results: List[PromptResult]) -> dict:
    """
    0-100 visibility score over the ok results of a report:
    40% mention rate, 30% competitive position, 30% mention dominance.
    Components are stored as percentages.
    """
    ok_results = [r for r in results if r.provider_status == ResultStatus.OK.value]
    if not ok_results:
        return {"visibility_score": 0.0, "mention_rate": 0.0, "position_score": 0.0, "mention_dominance": 0.0}

    mentioned = 0
    position_total = 0.0
    positions_analyzed = 0
    brand_mentions = 0
    competitor_mentions = 0

    for result in ok_results:
        competitors = load_competitor_mentions(result.competitor_mentions)
        brand_mentions += result.brand_mention_count or 0
        competitor_mentions += sum(c.count for c in competitors)

        if not result.brand_mentioned:
            continue
        mentioned += 1
        if result.brand_position is None or result.brand_position < 0:
            continue
        position_total += position_score(result.brand_position, competitors)
        positions_analyzed += 1

    mention_rate = mentioned / len(ok_results)
    average_position_score = position_total / positions_analyzed if positions_analyzed else 0.0
    all_mentions = brand_mentions + competitor_mentions
    dominance = brand_mentions / all_mentions if all_mentions else 0.0

    score = mention_rate * 40 + average_position_score * 30 + dominance * 30
    return {
        "visibility_score": round(score, 2),
        "mention_rate": round(mention_rate * 100, 2),
        "position_score": round(average_position_score * 100, 2),
        "mention_dominance": round(dominance * 100, 2),
    }


def compute_aggregates(results: List[PromptResult]) -> dict:
    total_mentions = 0
    ranks = []
    buckets = {"positive": 0, "neutral": 0, "negative": 0}
    completed = set()

    for result in results:
        if result.provider_status == ResultStatus.OK.value:
            completed.add(result.brand_prompt_id)

        if not result.brand_mentioned:
            continue

        total_mentions += 1
        rank = brand_rank(result.brand_position, load_competitor_mentions(result.competitor_mentions))
        if rank is not None:
            ranks.append(rank)
        buckets[sentiment_bucket(result.sentiment_score or 0.0)] += 1

    return {
        "total_mentions": total_mentions,
        "average_position": round(sum(ranks) / len(ranks), 2) if ranks else None,
        "sentiment_positive": buckets["positive"],
        "sentiment_neutral": buckets["neutral"],
        "sentiment_negative": buckets["negative"],
        "completed_prompts": len(completed),
        **compute_visibility(results),
    }


class ReportAggregator:

    def __init__(self, reports: ReportRepository):
        self.reports = reports

    async def aggregate(self, report_id: UUID) -> dict:
        results = await self.reports.list_prompt_results(report_id)
        aggregates = compute_aggregates(results)
        await self.reports.save_aggregates(report_id, aggregates)

        logger.info(
            f"📊 [AGGREGATE] Report {report_id}: {aggregates['total_mentions']} mentions, "
            f"avg position {aggregates['average_position']}, "
            f"visibility {aggregates['visibility_score']}, "
            f"sentiment +{aggregates['sentiment_positive']}/"
            f"={aggregates['sentiment_neutral']}/-{aggregates['sentiment_negative']}"
        )
        return aggregates
