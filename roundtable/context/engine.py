"""Context budget engine: keep a context set under its token budget."""

import dataclasses
import logging
from datetime import datetime, timezone

from config.config_loader import ContextConfig
from roundtable.context.applier import StrategyApplier, compress_item
from roundtable.context.planner import (
    STRATEGY_NAMES,
    DuplicatePair,
    OptimizationPlanner,
    find_duplicate_content,
    total_tokens,
)
from roundtable.context.relevance import RelevanceScorer, importance_score
from roundtable.context.summarizer import KeyPointSummarizer, Summarizer
from roundtable.models import (
    ContextItem,
    ContextLimitStatus,
    OptimizationResult,
    OptimizationStrategy,
)

logger = logging.getLogger(__name__)

ALWAYS_KEEP_PRIORITY = 90
_COMPRESS_ROOM = 0.9  # only try compressed inclusion below this fraction of the budget


class ContextBudgetEngine:
    """Scores, plans and applies context optimizations for one context set at a time.

    Construct once and pass it where needed; it keeps no state between calls.
    """

    def __init__(self, config: ContextConfig | None = None, summarizer: Summarizer | None = None) -> None:
        self._config = config or ContextConfig()
        self._planner = OptimizationPlanner(self._config)
        self._applier = StrategyApplier(summarizer or KeyPointSummarizer())
        self._scorer = RelevanceScorer(self._config.recency_decay_factor)

    @property
    def config(self) -> ContextConfig:
        return self._config

    def analyze(self, items: list[ContextItem], now: datetime | None = None) -> list[OptimizationStrategy]:
        return self._planner.analyze(items, now)

    async def optimize(
        self,
        items: list[ContextItem],
        target_tokens: int | None = None,
        allowed_strategies: list[str] | None = None,
    ) -> OptimizationResult:
        """Apply strategies, largest estimated saving first, until the set fits target_tokens.

        The input list and its items are left untouched. When no combination
        of strategies reaches the target, the best result is returned with
        target_reached=False.

        Raises:
            ValueError: allowed_strategies names an unknown strategy.
        """
        target = self._config.ideal_tokens if target_tokens is None else target_tokens
        if allowed_strategies is not None:
            unknown = sorted(set(allowed_strategies) - set(STRATEGY_NAMES))
            if unknown:
                raise ValueError(f"Unknown strategies: {', '.join(unknown)}")

        original = total_tokens(items)
        current_items = list(items)
        current = original
        applied: list[OptimizationStrategy] = []

        for strategy in self._planner.analyze(items, threshold=target):
            if current <= target:
                break
            if allowed_strategies is not None and strategy.name not in allowed_strategies:
                logger.debug("Strategy %s not allowed, skipping", strategy.name)
                continue
            new_items = await self._applier.apply(current_items, strategy)
            new_total = total_tokens(new_items)
            if new_total >= current:
                logger.info("Discarded %s: %d -> %d tokens saves nothing", strategy.name, current, new_total)
                continue
            applied.append(dataclasses.replace(strategy, tokens_saved=current - new_total))
            logger.info(
                "Applied %s: %d -> %d tokens (estimated saving %d)",
                strategy.name, current, new_total, strategy.tokens_saved,
            )
            current_items, current = new_items, new_total

        saved = original - current
        reached = current <= target
        if not reached:
            logger.warning("Context optimization could not reach %d tokens (at %d)", target, current)

        return OptimizationResult(
            original_tokens=original,
            optimized_tokens=current,
            tokens_saved=saved,
            compression_ratio=current / original if original else 1.0,
            strategies=applied,
            optimized_items=current_items,
            summary=_describe(applied, saved, target, current, reached),
            target_tokens=target,
            target_reached=reached,
        )

    def smart_truncate(
        self,
        items: list[ContextItem],
        max_tokens: int | None = None,
        now: datetime | None = None,
    ) -> list[ContextItem]:
        """Keep the most important items that fit max_tokens.

        Items with priority >= 90 are always kept, even over budget. An item
        that would overflow is kept in compressed form when that fits.
        """
        limit = self._config.max_tokens if max_tokens is None else max_tokens
        now = now or datetime.now(timezone.utc)
        ranked = sorted(
            items,
            key=lambda item: importance_score(item, now, self._config.recency_decay_factor),
            reverse=True,
        )

        kept: list[ContextItem] = []
        current = 0
        for item in ranked:
            if current + item.tokens <= limit or item.priority >= ALWAYS_KEEP_PRIORITY:
                kept.append(item)
                current += item.tokens
            elif current < limit * _COMPRESS_ROOM:
                compressed = compress_item(item)
                if current + compressed.tokens <= limit:
                    kept.append(compressed)
                    current += compressed.tokens

        logger.debug("Smart truncation kept %d/%d items, %d tokens", len(kept), len(items), current)
        return kept

    def score_relevance(
        self,
        items: list[ContextItem],
        query: str,
        recent_context: list[str] | None = None,
        now: datetime | None = None,
    ) -> list[ContextItem]:
        return self._scorer.score_items(items, query, recent_context, now)

    def find_duplicate_content(self, items: list[ContextItem]) -> list[DuplicatePair]:
        return find_duplicate_content(items)

    def validate_limit(self, items: list[ContextItem], max_tokens: int | None = None) -> ContextLimitStatus:
        limit = self._config.max_tokens if max_tokens is None else max_tokens
        current = total_tokens(items)
        return ContextLimitStatus(
            within_limit=current <= limit,
            current_tokens=current,
            excess_tokens=max(0, current - limit),
            utilization_percent=current / limit * 100 if limit else 100.0,
        )


def _describe(
    applied: list[OptimizationStrategy],
    saved: int,
    target: int,
    current: int,
    reached: bool,
) -> str:
    if not applied:
        if reached:
            return "No optimization was needed."
        return f"No applicable strategy; target of {target} tokens not reached ({current} tokens remain)."

    parts = ", ".join(f"{s.name.replace('-', ' ')}: {s.tokens_saved} tokens saved" for s in applied)
    summary = f"Optimized context by {saved} tokens using: {parts}."
    if not reached:
        summary += f" Target of {target} tokens not reached ({current} tokens remain)."
    return summary
