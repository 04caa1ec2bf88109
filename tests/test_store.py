"""Tests for roundtable/context/store.py."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from config.config_loader import ContextConfig
from roundtable.context.engine import ContextBudgetEngine
from roundtable.context.store import ContextLimitExceeded, ContextStore, auto_priority
from roundtable.models import ContextItemType, OptimizationResult
from roundtable.tokens import estimate_tokens
from tests.conftest import make_item


@pytest.mark.parametrize(
    "item_type,relevance,source,expected",
    [
        (ContextItemType.NOTE, 0.5, "system", 40),
        (ContextItemType.NOTE, 0.0, "system", 20),
        (ContextItemType.MESSAGE, 0.5, "user", 70),
        (ContextItemType.SUMMARY, 1.0, "user", 100),
        (ContextItemType.REFERENCE, 0.5, "assistant", 80),
    ],
)
def test_auto_priority(item_type, relevance, source, expected):
    assert auto_priority(item_type, relevance, source) == expected


def test_add_estimates_tokens_and_priority():
    store = ContextStore()

    item = store.add("We picked Postgres for the orders service.", ContextItemType.MESSAGE, "assistant")

    assert item.tokens == estimate_tokens(item.content)
    # first item scores 0.8 relevance: 60 + 12
    assert item.priority == 72
    assert item.id.startswith("context_")
    assert store.total_tokens == item.tokens
    assert store.read().items == [item]


def test_explicit_priority_wins():
    store = ContextStore()
    item = store.add("Pinned design doc", ContextItemType.REFERENCE, "user", priority=99, tags=["pinned"])
    assert item.priority == 99
    assert item.tags == ["pinned"]


def test_add_rejects_empty_content():
    with pytest.raises(ValueError):
        ContextStore().add("   ", ContextItemType.NOTE, "user")


def test_add_over_limit_raises_unless_allowed():
    store = ContextStore(ContextConfig(max_tokens=20, ideal_tokens=10))
    text = "word " * 30

    with pytest.raises(ContextLimitExceeded):
        store.add(text, ContextItemType.NOTE, "user")
    assert store.total_tokens == 0

    store.add(text, ContextItemType.NOTE, "user", allow_overflow=True)
    assert store.total_tokens == estimate_tokens(text)


def test_update_applies_token_delta():
    store = ContextStore()
    item = store.add("short note", ContextItemType.NOTE, "user")
    longer = "a considerably longer note that replaces the short one " * 5

    updated = store.update(item.id, content=longer, priority=10)

    assert updated.tokens == estimate_tokens(longer)
    assert updated.priority == 10
    assert store.total_tokens == updated.tokens
    assert store.get(item.id) == updated


def test_update_unknown_item():
    with pytest.raises(KeyError):
        ContextStore().update("nope", content="x")


def test_delete_frees_tokens():
    store = ContextStore()
    a = store.add("first note here", ContextItemType.NOTE, "user")
    b = store.add("second note here", ContextItemType.NOTE, "user")

    assert store.delete(a.id) == a.tokens
    assert store.total_tokens == b.tokens
    with pytest.raises(KeyError):
        store.delete(a.id)


def test_snapshot_reports_budget():
    config = ContextConfig(max_tokens=1000, ideal_tokens=500)
    snapshot = ContextStore(config).read()
    assert (snapshot.total_tokens, snapshot.max_tokens, snapshot.ideal_tokens) == (0, 1000, 500)


async def test_apply_optimization_result_keeps_total_consistent():
    config = ContextConfig(max_tokens=10_000, ideal_tokens=500)
    store = ContextStore(config)
    store.put(make_item("note", "Item one discusses gardening tips", ContextItemType.NOTE, priority=10,
                        tokens=300, relevance_score=0.1))
    store.put(make_item("ref", "Item two discusses database sharding", ContextItemType.REFERENCE, tokens=300))
    assert store.total_tokens == 600

    result = await ContextBudgetEngine(config).optimize(store.read().items)
    store.apply(result)

    snapshot = store.read()
    assert [i.id for i in snapshot.items] == ["ref"]
    assert snapshot.total_tokens == result.optimized_tokens == sum(i.tokens for i in snapshot.items)


def test_apply_with_concurrent_adds_keeps_total_consistent():
    store = ContextStore(ContextConfig(max_tokens=1_000_000, ideal_tokens=500))
    for i in range(50):
        store.put(make_item(f"old{i}", f"Old note {i}", tokens=10))
    result = OptimizationResult(
        original_tokens=500,
        optimized_tokens=250,
        tokens_saved=250,
        compression_ratio=0.5,
        strategies=[],
        optimized_items=[make_item(f"old{i}", f"Old note {i}", tokens=10) for i in range(25)],
        summary="Dropped half",
        target_tokens=250,
        target_reached=True,
    )

    def add_many() -> None:
        for i in range(200):
            store.add(f"Fresh message number {i} about sharding", ContextItemType.MESSAGE, "user")

    with ThreadPoolExecutor(max_workers=4) as pool:
        futures = [pool.submit(add_many) for _ in range(3)]
        for _ in range(20):
            store.apply(result)
        for future in futures:
            future.result()

    snapshot = store.read()
    assert snapshot.total_tokens == sum(i.tokens for i in snapshot.items)
