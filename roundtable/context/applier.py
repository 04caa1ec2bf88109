"""Apply one optimization strategy to a context set, producing a new set."""

import dataclasses
import logging
import uuid
from datetime import datetime, timezone

from roundtable.context.summarizer import Summarizer
from roundtable.models import ContextItem, ContextItemType, OptimizationAction, OptimizationStrategy
from roundtable.tokens import compress_content, estimate_tokens

logger = logging.getLogger(__name__)

SUMMARY_PRIORITY = 85
SUMMARY_SOURCE = "optimizer"
MERGE_SEPARATOR = "\n---\n"


def compress_item(item: ContextItem) -> ContextItem:
    compressed = compress_content(item.content)
    return dataclasses.replace(
        item,
        content=compressed,
        tokens=estimate_tokens(compressed),
        compressed=True,
        original_length=item.tokens,
    )


class StrategyApplier:
    """Executes strategy actions. Never mutates the list or items it is given."""

    def __init__(self, summarizer: Summarizer) -> None:
        self._summarizer = summarizer

    async def apply(self, items: list[ContextItem], strategy: OptimizationStrategy) -> list[ContextItem]:
        result = list(items)
        for action in strategy.actions:
            if action.type == "remove":
                result = self._remove(result, action)
            elif action.type == "compress":
                result = self._compress(result, action)
            elif action.type == "summarize":
                result = await self._summarize(result, action)
            elif action.type == "merge":
                result = self._merge(result, action)
            else:
                raise ValueError(f"Unknown optimization action: {action.type}")
        return result

    def _remove(self, items: list[ContextItem], action: OptimizationAction) -> list[ContextItem]:
        ids = set(action.item_ids)
        return [item for item in items if item.id not in ids]

    def _compress(self, items: list[ContextItem], action: OptimizationAction) -> list[ContextItem]:
        ids = set(action.item_ids)
        return [compress_item(item) if item.id in ids and not item.compressed else item for item in items]

    async def _summarize(self, items: list[ContextItem], action: OptimizationAction) -> list[ContextItem]:
        ids = set(action.item_ids)
        targets = [item for item in items if item.id in ids]
        if not targets:
            return items

        summary = (await self._summarizer.summarize(targets)).strip()
        if not summary:
            logger.warning("Summarizer returned nothing for %d items; keeping originals", len(targets))
            return items

        session_id = targets[0].session_id
        tags = ["auto-generated", "summary"]
        if session_id:
            tags.append(f"session:{session_id}")
        summary_item = ContextItem(
            id=f"summary_{uuid.uuid4().hex[:12]}",
            content=summary,
            type=ContextItemType.SUMMARY,
            priority=SUMMARY_PRIORITY,
            tokens=estimate_tokens(summary),
            source=SUMMARY_SOURCE,
            session_id=session_id,
            timestamp=datetime.now(timezone.utc),
            tags=tags,
        )
        logger.debug(
            "Summarized %d items (%d tokens) into %s (%d tokens)",
            len(targets), sum(t.tokens for t in targets), summary_item.id, summary_item.tokens,
        )
        return [item for item in items if item.id not in ids] + [summary_item]

    def _merge(self, items: list[ContextItem], action: OptimizationAction) -> list[ContextItem]:
        ids = set(action.item_ids)
        targets = [item for item in items if item.id in ids]
        # A pair may already be gone after an overlapping merge.
        if len(targets) < 2:
            return items

        keep = targets[0]
        for candidate in targets[1:]:
            if candidate.priority > keep.priority:
                keep = candidate
        content = MERGE_SEPARATOR.join(item.content for item in targets)
        merged = dataclasses.replace(
            keep,
            content=content,
            tokens=estimate_tokens(content),
            tags=[*keep.tags, "merged"],
        )
        return [merged if item.id == keep.id else item for item in items if item.id not in ids or item.id == keep.id]
