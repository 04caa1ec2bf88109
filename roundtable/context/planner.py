"""Optimization planning: propose strategies with estimated token savings."""

import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from itertools import combinations

from config.config_loader import ContextConfig
from roundtable.context.relevance import age_hours
from roundtable.models import ContextItem, ContextItemType, OptimizationAction, OptimizationStrategy
from roundtable.similarity import jaccard_similarity

logger = logging.getLogger(__name__)

LOW_RELEVANCE_REMOVAL = "low-relevance-removal"
MESSAGE_COMPRESSION = "message-compression"
CONVERSATION_SUMMARIZATION = "conversation-summarization"
DUPLICATE_MERGING = "duplicate-merging"

STRATEGY_NAMES = (LOW_RELEVANCE_REMOVAL, MESSAGE_COMPRESSION, CONVERSATION_SUMMARIZATION, DUPLICATE_MERGING)

_UNSCORED_RELEVANCE = 0.5
_LOW_PRIORITY = 40
_COMPRESS_AFTER_HOURS = 24
_COMPRESSION_SAVING = 0.4
_SUMMARIZATION_SAVING = 0.7
_SUMMARIZATION_MIN_ITEMS = 5
DUPLICATE_SIMILARITY = 0.8
DEFAULT_SESSION = "default"


@dataclass
class DuplicatePair:
    item_ids: list[str]
    similarity: float
    tokens_saved: int  # the smaller item's tokens


def total_tokens(items: list[ContextItem]) -> int:
    return sum(item.tokens for item in items)


def find_duplicate_content(items: list[ContextItem]) -> list[DuplicatePair]:
    """Every pair of items more than 80% similar, biggest saving first."""
    pairs: list[DuplicatePair] = []
    for a, b in combinations(items, 2):
        similarity = jaccard_similarity(a.content, b.content)
        if similarity > DUPLICATE_SIMILARITY:
            pairs.append(DuplicatePair([a.id, b.id], similarity, min(a.tokens, b.tokens)))
    return sorted(pairs, key=lambda p: p.tokens_saved, reverse=True)


def group_messages_by_session(items: list[ContextItem]) -> dict[str, list[ContextItem]]:
    groups: dict[str, list[ContextItem]] = defaultdict(list)
    for item in items:
        if item.type is ContextItemType.MESSAGE:
            groups[item.session_id or DEFAULT_SESSION].append(item)
    return dict(groups)


class OptimizationPlanner:
    """Generates the four candidate strategies for a context set."""

    def __init__(self, config: ContextConfig | None = None) -> None:
        self._config = config or ContextConfig()

    def analyze(
        self,
        items: list[ContextItem],
        now: datetime | None = None,
        threshold: int | None = None,
    ) -> list[OptimizationStrategy]:
        """Candidate strategies sorted by estimated savings, largest first.

        Empty when the set is already at or under threshold (ideal_tokens by
        default).
        """
        threshold = self._config.ideal_tokens if threshold is None else threshold
        current = total_tokens(items)
        if current <= threshold:
            logger.debug("Context at %d tokens, under %d; nothing to plan", current, threshold)
            return []

        now = now or datetime.now(timezone.utc)
        candidates = [
            self.low_relevance_removal(items),
            self.message_compression(items, now),
            self.conversation_summarization(items),
            self.duplicate_merging(items),
        ]
        strategies = [s for s in candidates if s.tokens_saved > 0]
        logger.info(
            "Context at %d tokens (threshold %d): %d candidate strategies",
            current, threshold, len(strategies),
        )
        return sorted(strategies, key=lambda s: s.tokens_saved, reverse=True)

    def low_relevance_removal(self, items: list[ContextItem]) -> OptimizationStrategy:
        targets = [
            item for item in items
            if (item.relevance_score if item.relevance_score is not None else _UNSCORED_RELEVANCE)
            < self._config.min_relevance_score
            and item.priority < _LOW_PRIORITY
            and item.type is not ContextItemType.REFERENCE
        ]
        return OptimizationStrategy(
            name=LOW_RELEVANCE_REMOVAL,
            description="Remove items with low relevance scores",
            tokens_saved=total_tokens(targets),
            items_affected=len(targets),
            actions=[
                OptimizationAction(
                    type="remove",
                    item_ids=[item.id for item in targets],
                    reason="Low relevance score and priority",
                    impact="low",
                )
            ],
        )

    def message_compression(self, items: list[ContextItem], now: datetime) -> OptimizationStrategy:
        targets = [
            item for item in items
            if item.type is ContextItemType.MESSAGE
            and not item.compressed
            and age_hours(item, now) > _COMPRESS_AFTER_HOURS
        ]
        return OptimizationStrategy(
            name=MESSAGE_COMPRESSION,
            description="Compress old messages to save space",
            tokens_saved=math.floor(total_tokens(targets) * _COMPRESSION_SAVING),
            items_affected=len(targets),
            actions=[
                OptimizationAction(
                    type="compress",
                    item_ids=[item.id for item in targets],
                    reason=f"Messages older than {_COMPRESS_AFTER_HOURS} hours",
                    impact="medium",
                )
            ],
        )

    def conversation_summarization(self, items: list[ContextItem]) -> OptimizationStrategy:
        actions: list[OptimizationAction] = []
        group_tokens = 0
        affected = 0
        for session_id, group in group_messages_by_session(items).items():
            tokens = total_tokens(group)
            if tokens <= self._config.summarization_chunk_size or len(group) <= _SUMMARIZATION_MIN_ITEMS:
                continue
            group_tokens += tokens
            affected += len(group)
            actions.append(
                OptimizationAction(
                    type="summarize",
                    item_ids=[item.id for item in group],
                    reason=f"Long conversation sequence in session {session_id}",
                    impact="high",
                )
            )
        return OptimizationStrategy(
            name=CONVERSATION_SUMMARIZATION,
            description="Summarize long conversation chunks",
            tokens_saved=math.floor(group_tokens * _SUMMARIZATION_SAVING),
            items_affected=affected,
            actions=actions,
        )

    def duplicate_merging(self, items: list[ContextItem]) -> OptimizationStrategy:
        pairs = find_duplicate_content(items)
        return OptimizationStrategy(
            name=DUPLICATE_MERGING,
            description="Merge duplicate or very similar content",
            tokens_saved=sum(p.tokens_saved for p in pairs),
            items_affected=len({item_id for p in pairs for item_id in p.item_ids}),
            actions=[
                OptimizationAction(
                    type="merge",
                    item_ids=p.item_ids,
                    reason=f"{round(p.similarity * 100)}% similarity",
                    impact="low",
                )
                for p in pairs
            ],
        )
