"""Post-processing over completed roundtable responses: dedup, consensus, quality ranking."""

import logging
from itertools import combinations

from roundtable.models import Consensus, DuplicateGroup, RoundtableResponse
from roundtable.similarity import extract_keywords, jaccard_similarity, keyword_recall

logger = logging.getLogger(__name__)

GENERIC_PHRASES = (
    "i cannot",
    "i am not able",
    "i don't have",
    "sorry",
    "as an ai",
    "i am an ai",
    "artificial intelligence",
)

_DEFAULT_LATENCY_SEC = 5.0


def detect_duplicates(responses: list[RoundtableResponse], threshold: float) -> list[DuplicateGroup]:
    """Group near-duplicate responses.

    Greedy first-match: each response seeds a group with every later,
    still-ungrouped response whose similarity reaches threshold. A response
    joins at most one group.
    """
    groups: list[DuplicateGroup] = []
    grouped: set[str] = set()

    for i, first in enumerate(responses[:-1]):
        if first.backend in grouped:
            continue
        members = [first.backend]
        max_similarity = 0.0
        for other in responses[i + 1:]:
            if other.backend in grouped:
                continue
            similarity = jaccard_similarity(first.content, other.content)
            if similarity >= threshold:
                members.append(other.backend)
                grouped.add(other.backend)
                max_similarity = max(max_similarity, similarity)
        if len(members) > 1:
            grouped.add(first.backend)
            groups.append(DuplicateGroup(backends=members, similarity=max_similarity))

    return groups


def agreement_label(level: int) -> str:
    if level >= 90:
        return "unanimous"
    if level >= 70:
        return "majority"
    if level >= 40:
        return "split"
    return "diverse"


def calculate_consensus(responses: list[RoundtableResponse]) -> Consensus:
    """Mean pairwise keyword similarity across all responses, as 0-100."""
    if len(responses) <= 1:
        return Consensus(level=100, agreement="unanimous")

    similarities = [jaccard_similarity(a.content, b.content) for a, b in combinations(responses, 2)]
    level = round(sum(similarities) / len(similarities) * 100)
    return Consensus(level=level, agreement=agreement_label(level))


def is_generic_response(content: str) -> bool:
    lower = content.lower()
    return any(phrase in lower for phrase in GENERIC_PHRASES)


def quality_score(response: RoundtableResponse, prompt: str) -> float:
    """Heuristic 0-100 quality score. Base 50, adjusted by length, relevance, structure, latency."""
    content = response.content
    score = 50.0

    word_count = len(content.split())
    if 20 < word_count < 500:
        score += 10
    if 100 < word_count < 300:
        score += 5  # sweet spot

    score += keyword_recall(extract_keywords(prompt), extract_keywords(content)) * 20

    if "\n-" in content or "\n*" in content:
        score += 5
    if "\n\n" in content:
        score += 3
    if "```" in content:
        score += 10

    if is_generic_response(content):
        score -= 15

    latency = response.metadata.latency_sec or _DEFAULT_LATENCY_SEC
    if latency < 2:
        score += 5
    elif latency > 10:
        score -= 5

    return max(0.0, min(100.0, score))


def rank_responses(responses: list[RoundtableResponse], prompt: str) -> list[RoundtableResponse]:
    """Score every response and assign 1-based ranks in place. Returns best first."""
    for response in responses:
        response.quality_score = quality_score(response, prompt)
    ranked = sorted(responses, key=lambda r: r.quality_score, reverse=True)
    for position, response in enumerate(ranked, start=1):
        response.rank = position
    logger.debug("Ranking: %s", [(r.backend, r.quality_score) for r in ranked])
    return ranked
