"""Tests for roundtable/context/serialization.py."""

import json
from datetime import timezone

import pytest

from roundtable.context.serialization import item_from_dict, item_to_dict, load_items, save_items
from roundtable.models import ContextItemType
from roundtable.tokens import estimate_tokens
from tests.conftest import make_item


def test_item_from_dict_fills_defaults():
    item = item_from_dict({"id": "a", "content": "Remember the deploy freeze", "timestamp": "2025-06-01T10:00:00"})

    assert item.type is ContextItemType.MESSAGE
    assert item.priority == 50
    assert item.tokens == estimate_tokens("Remember the deploy freeze")
    assert item.timestamp.tzinfo == timezone.utc


def test_item_from_dict_requires_id_and_content():
    with pytest.raises(ValueError):
        item_from_dict({"content": "no id"})
    with pytest.raises(ValueError):
        item_from_dict({"id": "x"})


def test_item_from_dict_rejects_unknown_type():
    with pytest.raises(ValueError):
        item_from_dict({"id": "x", "content": "y", "type": "poem"})


def test_save_then_load(tmp_path):
    items = [make_item("a", "first")]
    items[0].tags.append("pinned")
    path = save_items(items, tmp_path / "out" / "context.json")

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw[0]["type"] == "message"
    assert raw[0] == item_to_dict(items[0])
    assert load_items(path) == items


def test_load_items_requires_list(context_file):
    context_file.write_text(json.dumps({"id": "a"}), encoding="utf-8")
    with pytest.raises(ValueError, match="JSON list"):
        load_items(context_file)
