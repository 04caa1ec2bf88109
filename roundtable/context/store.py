"""In-memory context store: typed context items plus a running token total."""

import dataclasses
import logging
import threading
import uuid
from datetime import datetime, timezone

from config.config_loader import ContextConfig
from roundtable.models import ContextItem, ContextItemType, ContextSnapshot, OptimizationResult
from roundtable.similarity import jaccard_similarity
from roundtable.tokens import estimate_tokens

logger = logging.getLogger(__name__)

_BASE_PRIORITY = {
    ContextItemType.SUMMARY: 90,
    ContextItemType.REFERENCE: 80,
    ContextItemType.FILE: 70,
    ContextItemType.MESSAGE: 60,
    ContextItemType.NOTE: 40,
}
_RELEVANCE_WINDOW = 10
_FIRST_ITEM_RELEVANCE = 0.8
_USER_SOURCE_BOOST = 10


class ContextLimitExceeded(ValueError):
    """Adding an item would push the store past its max_tokens."""


def auto_priority(item_type: ContextItemType, relevance: float, source: str) -> int:
    """Type-based priority, shifted up to +/-20 by relevance and +10 for user-sourced items."""
    priority = _BASE_PRIORITY.get(item_type, 50)
    priority += (relevance - 0.5) * 40
    if source == "user":
        priority += _USER_SOURCE_BOOST
    return int(max(0, min(100, round(priority))))


class ContextStore:
    """One project's context. Every write adjusts the running total by the item's token delta."""

    def __init__(self, config: ContextConfig | None = None) -> None:
        self._config = config or ContextConfig()
        self._items: dict[str, ContextItem] = {}
        self._total = 0
        self._lock = threading.Lock()

    @property
    def total_tokens(self) -> int:
        return self._total

    def read(self) -> ContextSnapshot:
        with self._lock:
            return ContextSnapshot(
                items=list(self._items.values()),
                total_tokens=self._total,
                max_tokens=self._config.max_tokens,
                ideal_tokens=self._config.ideal_tokens,
            )

    def get(self, item_id: str) -> ContextItem:
        with self._lock:
            return self._items[item_id]

    def add(
        self,
        content: str,
        item_type: ContextItemType,
        source: str,
        priority: int | None = None,
        session_id: str | None = None,
        tags: list[str] | None = None,
        allow_overflow: bool = False,
    ) -> ContextItem:
        """Create and store a new item.

        Raises:
            ValueError: Empty content.
            ContextLimitExceeded: The item does not fit and allow_overflow is False.
        """
        if not content or not content.strip():
            raise ValueError("Content is required")
        tokens = estimate_tokens(content)

        with self._lock:
            if self._total + tokens > self._config.max_tokens and not allow_overflow:
                raise ContextLimitExceeded(
                    f"Adding {tokens} tokens would exceed the {self._config.max_tokens} token limit"
                )
            relevance = self._relevance_to_recent(content)
            item = ContextItem(
                id=f"context_{uuid.uuid4().hex[:12]}",
                content=content,
                type=item_type,
                priority=priority if priority is not None else auto_priority(item_type, relevance, source),
                tokens=tokens,
                source=source,
                relevance_score=relevance,
                session_id=session_id,
                timestamp=datetime.now(timezone.utc),
                tags=list(tags or []),
            )
            self._put(item)
        logger.debug("Added %s (%s, %d tokens), total %d", item.id, item_type.value, tokens, self._total)
        return item

    def put(self, item: ContextItem) -> None:
        """Insert or replace an item as-is."""
        with self._lock:
            self._put(item)

    def update(
        self,
        item_id: str,
        content: str | None = None,
        priority: int | None = None,
        tags: list[str] | None = None,
    ) -> ContextItem:
        """Edit an item. Content changes re-estimate its tokens.

        Raises:
            KeyError: Unknown item_id.
        """
        with self._lock:
            item = self._items[item_id]
            changes: dict = {}
            if content is not None and content != item.content:
                changes["content"] = content
                changes["tokens"] = estimate_tokens(content)
            if priority is not None:
                changes["priority"] = priority
            if tags is not None:
                changes["tags"] = list(tags)
            updated = dataclasses.replace(item, **changes)
            self._put(updated)
            return updated

    def delete(self, item_id: str) -> int:
        """Remove an item and return the tokens it freed.

        Raises:
            KeyError: Unknown item_id.
        """
        with self._lock:
            item = self._items.pop(item_id)
            self._total -= item.tokens
            return item.tokens

    def apply(self, result: OptimizationResult) -> None:
        """Replace the stored set with the optimized items in one locked step."""
        keep = {item.id: item for item in result.optimized_items}
        with self._lock:
            for item_id in [i for i in self._items if i not in keep]:
                self._total -= self._items.pop(item_id).tokens
            for item in result.optimized_items:
                if self._items.get(item.id) != item:
                    self._put(item)
        logger.info("Applied optimization: %s", result.summary)

    def _put(self, item: ContextItem) -> None:
        previous = self._items.get(item.id)
        self._total += item.tokens - (previous.tokens if previous else 0)
        self._items[item.id] = item

    def _relevance_to_recent(self, content: str) -> float:
        recent = sorted(self._items.values(), key=lambda i: i.timestamp, reverse=True)[:_RELEVANCE_WINDOW]
        if not recent:
            return _FIRST_ITEM_RELEVANCE
        return max(jaccard_similarity(content, item.content) for item in recent)
