"""JSON (de)serialization of context items for the CLI."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from roundtable.models import ContextItem, ContextItemType
from roundtable.tokens import estimate_tokens

logger = logging.getLogger(__name__)


def item_from_dict(raw: dict[str, Any]) -> ContextItem:
    """Build a ContextItem from a JSON object.

    Missing tokens are estimated from the content. Naive timestamps are
    taken as UTC.

    Raises:
        ValueError: Missing id/content or an unknown type.
    """
    if not raw.get("id") or "content" not in raw:
        raise ValueError(f"Context item needs an id and content: {raw!r}")

    timestamp = raw.get("timestamp")
    if timestamp:
        parsed = datetime.fromisoformat(timestamp)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
    else:
        parsed = datetime.now(timezone.utc)

    content = raw["content"]
    return ContextItem(
        id=raw["id"],
        content=content,
        type=ContextItemType(raw.get("type", "message")),
        priority=int(raw.get("priority", 50)),
        tokens=int(raw["tokens"]) if raw.get("tokens") is not None else estimate_tokens(content),
        source=raw.get("source", "user"),
        relevance_score=raw.get("relevance_score"),
        session_id=raw.get("session_id"),
        timestamp=parsed,
        tags=list(raw.get("tags", [])),
        compressed=bool(raw.get("compressed", False)),
        original_length=raw.get("original_length"),
    )


def item_to_dict(item: ContextItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "content": item.content,
        "type": item.type.value,
        "priority": item.priority,
        "tokens": item.tokens,
        "source": item.source,
        "relevance_score": item.relevance_score,
        "session_id": item.session_id,
        "timestamp": item.timestamp.isoformat(),
        "tags": item.tags,
        "compressed": item.compressed,
        "original_length": item.original_length,
    }


def load_items(path: Path) -> list[ContextItem]:
    """Read a JSON list of context items from path."""
    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        raise ValueError(f"{path} must contain a JSON list of context items")
    items = [item_from_dict(entry) for entry in raw]
    logger.debug("Loaded %d context items from %s", len(items), path)
    return items


def save_items(items: list[ContextItem], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps([item_to_dict(i) for i in items], indent=2), encoding="utf-8")
    logger.info("Context saved to: %s", path)
    return path
