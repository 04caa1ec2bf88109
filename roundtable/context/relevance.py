"""Relevance and importance scoring for context items."""

import dataclasses
import math
from datetime import datetime, timezone

from roundtable.models import ContextItem, ContextItemType
from roundtable.similarity import extract_keywords

RECENCY_DECAY_FACTOR = 0.1

_RELEVANCE_TYPE_BOOST = {
    ContextItemType.REFERENCE: 1.3,
    ContextItemType.SUMMARY: 1.3,
}

# Used by smart truncation: reference > summary > file > note > message
TYPE_WEIGHTS = {
    ContextItemType.REFERENCE: 1.3,
    ContextItemType.SUMMARY: 1.2,
    ContextItemType.FILE: 1.1,
    ContextItemType.NOTE: 1.0,
    ContextItemType.MESSAGE: 0.9,
}


def age_hours(item: ContextItem, now: datetime | None = None) -> float:
    now = now or datetime.now(timezone.utc)
    return max(0.0, (now - item.timestamp).total_seconds() / 3600)


def recency_multiplier(item: ContextItem, now: datetime | None = None, decay: float = RECENCY_DECAY_FACTOR) -> float:
    return math.exp(-age_hours(item, now) * decay)


class RelevanceScorer:
    """Scores context items against a query and optional recent context."""

    def __init__(self, decay_factor: float = RECENCY_DECAY_FACTOR) -> None:
        self._decay = decay_factor

    def score(
        self,
        item: ContextItem,
        query_keywords: list[str],
        context_keywords: list[str],
        now: datetime | None = None,
    ) -> float:
        item_words = set(extract_keywords(item.content))
        query_overlap = sum(1 for w in query_keywords if w in item_words)
        context_overlap = sum(1 for w in context_keywords if w in item_words)

        relevance = (query_overlap * 2 + context_overlap) / (len(query_keywords) + len(context_keywords) + 1)
        relevance *= _RELEVANCE_TYPE_BOOST.get(item.type, 1.0)
        relevance *= item.priority / 50
        relevance *= recency_multiplier(item, now, self._decay)
        return min(1.0, max(0.0, relevance))

    def score_items(
        self,
        items: list[ContextItem],
        query: str,
        recent_context: list[str] | None = None,
        now: datetime | None = None,
    ) -> list[ContextItem]:
        """Return copies of items with relevance_score filled in. Inputs are not modified."""
        query_keywords = extract_keywords(query)
        context_keywords = extract_keywords(" ".join(recent_context)) if recent_context else []
        now = now or datetime.now(timezone.utc)
        return [
            dataclasses.replace(item, relevance_score=self.score(item, query_keywords, context_keywords, now))
            for item in items
        ]


def importance_score(item: ContextItem, now: datetime | None = None, decay: float = RECENCY_DECAY_FACTOR) -> float:
    """Priority, relevance, type and age folded into one number for truncation order."""
    score = item.priority / 100
    if item.relevance_score:
        score *= 0.5 + item.relevance_score
    score *= TYPE_WEIGHTS.get(item.type, 1.0)
    score *= 0.7 + 0.3 * recency_multiplier(item, now, decay)
    return score
