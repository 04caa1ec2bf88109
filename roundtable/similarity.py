"""Keyword extraction and Jaccard similarity shared by the roundtable and context engines."""

import re

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "as", "is", "was", "are", "were", "be",
    "been", "being", "have", "has", "had", "do", "does", "did", "will",
    "would", "could", "should", "may", "might", "must", "can", "this",
    "that", "these", "those", "they", "them", "their", "there", "where",
    "when", "why", "how", "what", "which", "who", "whom", "whose",
})


def extract_keywords(text: str) -> list[str]:
    """Return lower-cased keywords in order of appearance (repeats kept).

    Punctuation is stripped, words of 3 characters or fewer and stop words
    are dropped.
    """
    cleaned = _NON_WORD.sub("", text.lower())
    return [w for w in cleaned.split() if len(w) > 3 and w not in STOP_WORDS]


def _normalize(text: str) -> str:
    return _WHITESPACE.sub(" ", text.lower()).strip()


def jaccard_similarity(text1: str, text2: str) -> float:
    """Jaccard index over the two texts' keyword sets.

    Texts equal up to case and whitespace score 1.0 even without keywords
    ("Yes." vs "yes."). Otherwise 0.0 when neither has a keyword.
    """
    if _normalize(text1) == _normalize(text2):
        return 1.0
    words1 = set(extract_keywords(text1))
    words2 = set(extract_keywords(text2))
    union = words1 | words2
    if not union:
        return 0.0
    return len(words1 & words2) / len(union)


def keyword_recall(prompt_keywords: list[str], response_keywords: list[str]) -> float:
    """Fraction of prompt keywords that also appear in the response."""
    if not prompt_keywords:
        return 0.0
    present = set(response_keywords)
    matches = [w for w in prompt_keywords if w in present]
    return len(matches) / len(prompt_keywords)
