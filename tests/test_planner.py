"""Tests for roundtable/context/planner.py."""

import math

from config.config_loader import ContextConfig
from roundtable.context.planner import (
    CONVERSATION_SUMMARIZATION,
    DUPLICATE_MERGING,
    LOW_RELEVANCE_REMOVAL,
    MESSAGE_COMPRESSION,
    OptimizationPlanner,
    find_duplicate_content,
    group_messages_by_session,
)
from roundtable.models import ContextItemType
from tests.conftest import make_item

SMALL = ContextConfig(max_tokens=1000, ideal_tokens=500, summarization_chunk_size=400)


def distinct(i: int) -> str:
    return f"Item {i} discusses subject{i} alpha{i} bravo{i}"


def test_under_ideal_proposes_nothing(now):
    items = [make_item("a", distinct(1), tokens=200)]
    assert OptimizationPlanner(SMALL).analyze(items, now) == []


def test_low_relevance_removal_skips_references(now):
    note = make_item("note", distinct(1), ContextItemType.NOTE, priority=10, tokens=300, relevance_score=0.1)
    ref = make_item("ref", distinct(2), ContextItemType.REFERENCE, priority=10, tokens=300, relevance_score=0.1)

    strategies = OptimizationPlanner(SMALL).analyze([note, ref], now)

    removal = next(s for s in strategies if s.name == LOW_RELEVANCE_REMOVAL)
    assert removal.actions[0].item_ids == ["note"]
    assert removal.actions[0].type == "remove"
    assert removal.tokens_saved == 300


def test_unscored_items_are_not_low_relevance(now):
    item = make_item("a", distinct(1), ContextItemType.NOTE, priority=10, tokens=600)
    strategy = OptimizationPlanner(SMALL).low_relevance_removal([item])
    assert strategy.tokens_saved == 0


def test_message_compression_targets_old_uncompressed_messages(now):
    items = [
        make_item("old", distinct(1), tokens=300, age_hours=30),
        make_item("fresh", distinct(2), tokens=300, age_hours=1),
        make_item("done", distinct(3), tokens=300, age_hours=30, compressed=True),
        make_item("note", distinct(4), ContextItemType.NOTE, tokens=300, age_hours=30),
    ]

    strategy = OptimizationPlanner(SMALL).message_compression(items, now)

    assert strategy.name == MESSAGE_COMPRESSION
    assert strategy.actions[0].item_ids == ["old"]
    assert strategy.tokens_saved == 120


def test_conversation_summarization_one_action_per_session():
    items = [make_item(f"s1-{i}", distinct(i), tokens=100, session_id="s1") for i in range(6)]
    items += [make_item(f"s2-{i}", distinct(10 + i), tokens=100, session_id="s2") for i in range(6)]
    items += [make_item(f"s3-{i}", distinct(20 + i), tokens=100, session_id="s3") for i in range(3)]

    strategy = OptimizationPlanner(SMALL).conversation_summarization(items)

    assert strategy.name == CONVERSATION_SUMMARIZATION
    assert len(strategy.actions) == 2
    assert strategy.actions[0].item_ids == [f"s1-{i}" for i in range(6)]
    assert strategy.tokens_saved == math.floor(1200 * 0.7)
    assert strategy.items_affected == 12


def test_group_messages_by_session_uses_default():
    items = [make_item("a", distinct(1)), make_item("b", distinct(2), session_id="s1")]
    groups = group_messages_by_session(items)
    assert set(groups) == {"default", "s1"}


def test_find_duplicate_content_pairs_by_saving():
    items = [
        make_item("a", "Redis cache eviction policy tuning", tokens=100),
        make_item("b", "Redis cache eviction policy tuning", tokens=40),
        make_item("c", distinct(3), tokens=500),
    ]

    pairs = find_duplicate_content(items)

    assert len(pairs) == 1
    assert pairs[0].item_ids == ["a", "b"]
    assert pairs[0].tokens_saved == 40


def test_analyze_sorted_by_estimated_saving(now):
    items = [
        make_item("dup1", "Redis cache eviction policy tuning", ContextItemType.NOTE, tokens=100),
        make_item("dup2", "Redis cache eviction policy tuning", ContextItemType.NOTE, tokens=100),
        make_item("old", distinct(1), tokens=1000, age_hours=48),
    ]

    strategies = OptimizationPlanner(SMALL).analyze(items, now)

    assert [s.name for s in strategies] == [MESSAGE_COMPRESSION, DUPLICATE_MERGING]
    savings = [s.tokens_saved for s in strategies]
    assert savings == sorted(savings, reverse=True)
