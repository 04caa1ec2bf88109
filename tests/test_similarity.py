"""Tests for roundtable/similarity.py."""

import pytest

from roundtable.similarity import extract_keywords, jaccard_similarity, keyword_recall


def test_extract_keywords_drops_short_words_stop_words_and_punctuation():
    assert extract_keywords("The Quick, brown fox jumps over THE lazy dog!") == [
        "quick", "brown", "jumps", "over", "lazy",
    ]


def test_extract_keywords_keeps_repeats_in_order():
    assert extract_keywords("cache redis cache") == ["cache", "redis", "cache"]


def test_extract_keywords_empty_text():
    assert extract_keywords("") == []


def test_jaccard_identical_texts():
    assert jaccard_similarity("redis cache layer", "redis cache layer") == 1.0


def test_jaccard_disjoint_texts():
    assert jaccard_similarity("postgres indexes", "kubernetes pods") == 0.0


def test_jaccard_partial_overlap():
    # {redis, cache, layer} vs {redis, cache, database}: 2 shared of 4
    assert jaccard_similarity("redis cache layer", "redis cache database") == pytest.approx(0.5)


def test_jaccard_no_keywords_is_zero():
    assert jaccard_similarity("a an the", "") == 0.0


def test_jaccard_identical_texts_without_keywords():
    assert jaccard_similarity("Yes.", "yes. ") == 1.0
    assert jaccard_similarity("Yes.", "No.") == 0.0


def test_jaccard_is_symmetric():
    a = "Use PostgreSQL with read replicas"
    b = "PostgreSQL replicas handle read traffic"
    assert jaccard_similarity(a, b) == jaccard_similarity(b, a)


def test_keyword_recall():
    assert keyword_recall(["redis", "cache"], ["redis", "layer"]) == pytest.approx(0.5)
    assert keyword_recall(["redis"], ["redis"]) == 1.0


def test_keyword_recall_empty_prompt():
    assert keyword_recall([], ["anything"]) == 0.0
