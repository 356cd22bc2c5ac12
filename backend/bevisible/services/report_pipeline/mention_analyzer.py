# backend/bevisible/services/report_pipeline/mention_analyzer.py
"""
Brand and competitor mention analysis of one provider answer.

Matching is a case-insensitive substring search. Position is the offset of
the first match, -1 when absent. Sentiment is delegated to a pluggable
SentimentScorer.
"""

from abc import ABC, abstractmethod
from typing import List, Sequence

from bevisible.schemas.mentions import CompetitorMention, MentionAnalysis

POSITIVE_WORDS = [
    "excellent", "great", "amazing", "outstanding", "superior", "best",
    "leading", "innovative", "reliable", "trusted", "quality", "effective",
    "successful", "popular", "recommended",
]

NEGATIVE_WORDS = [
    "poor", "bad", "terrible", "awful", "inferior", "worst", "failing",
    "unreliable", "problematic", "disappointing", "ineffective",
    "unsuccessful", "criticized",
]


def find_occurrences(text: str, needle: str) -> List[int]:
    """Offsets of every (possibly overlapping) case-insensitive match."""
    needle = (needle or "").strip().lower()
    if not needle:
        return []

    haystack = text.lower()
    offsets = []
    index = haystack.find(needle)
    while index != -1:
        offsets.append(index)
        index = haystack.find(needle, index + 1)
    return offsets


class SentimentScorer(ABC):
    """Scores how favorably a brand is portrayed, in [-1, 1]."""

    @abstractmethod
    def score(self, text: str, brand_name: str) -> float:
        pass


class KeywordSentimentScorer(SentimentScorer):
    """
    +step for every distinct positive keyword, -step for every distinct
    negative keyword found within `window` characters around the first
    brand mention. Clamped to [-1, 1]; 0 when the brand is absent.
    """

    def __init__(
        self,
        window: int = 100,
        step: float = 0.1,
        positive_words: Sequence[str] = POSITIVE_WORDS,
        negative_words: Sequence[str] = NEGATIVE_WORDS
    ):
        self.window = window
        self.step = step
        self.positive_words = list(positive_words)
        self.negative_words = list(negative_words)

    def score(self, text: str, brand_name: str) -> float:
        offsets = find_occurrences(text, brand_name)
        if not offsets:
            return 0.0

        start = max(0, offsets[0] - self.window)
        end = min(len(text), offsets[0] + len(brand_name.strip()) + self.window)
        context = text[start:end].lower()

        score = 0.0
        score += self.step * sum(1 for word in self.positive_words if word in context)
        score -= self.step * sum(1 for word in self.negative_words if word in context)

        return round(max(-1.0, min(1.0, score)), 4)


class MentionAnalyzer:

    def __init__(self, sentiment_scorer: SentimentScorer = None):
        self.sentiment_scorer = sentiment_scorer or KeywordSentimentScorer()

    def analyze(self, text: str, brand_name: str, competitors: Sequence[str]) -> MentionAnalysis:
        brand_offsets = find_occurrences(text, brand_name)
        mentioned = bool(brand_offsets)

        competitor_mentions = []
        for competitor in competitors or []:
            offsets = find_occurrences(text, competitor)
            if offsets:
                competitor_mentions.append(CompetitorMention(
                    name=competitor,
                    count=len(offsets),
                    position=offsets[0],
                ))

        return MentionAnalysis(
            mentioned=mentioned,
            mention_count=len(brand_offsets),
            position=brand_offsets[0] if mentioned else -1,
            sentiment=self.sentiment_scorer.score(text, brand_name) if mentioned else 0.0,
            competitor_mentions=competitor_mentions,
        )
