"""Token and cost estimation heuristics. Pure functions, used by both engines."""

import math
import re

_CODE_CHARS = re.compile(r"[{}();=<>]")
_STRUCTURED_CHARS = re.compile(r"[:\[\]{}\",]")
_WHITESPACE = re.compile(r"\s+")
_SHORT_WORDS = re.compile(r"\b(the|a|an|and|or|but|in|on|at|to|for|of|with|by)\b", re.IGNORECASE)

BASE_TOKENS_PER_WORD = 1.3
CHARS_PER_TOKEN = 3.5
DEFAULT_COST_PER_1K = 0.001


def estimate_tokens(text: str) -> int:
    """Estimate the token count of text.

    Takes the larger of a per-word and a per-character estimate. Code and
    structured data push the per-word multiplier up.
    """
    if not text:
        return 0
    words = len(text.split())
    multiplier = BASE_TOKENS_PER_WORD
    if _CODE_CHARS.search(text):
        multiplier += 0.2
    if _STRUCTURED_CHARS.search(text):
        multiplier += 0.1
    return math.ceil(max(words * multiplier, len(text) / CHARS_PER_TOKEN))


def estimate_cost(backend: str, tokens: int, cost_table: dict[str, float]) -> float:
    """Dollar cost of tokens on backend, from a per-1k-token price table."""
    return tokens / 1000 * cost_table.get(backend, DEFAULT_COST_PER_1K)


def compress_content(content: str) -> str:
    """Collapse whitespace and abbreviate common short words to their first letter."""
    collapsed = _WHITESPACE.sub(" ", content)
    return _SHORT_WORDS.sub(lambda m: m.group(0)[0], collapsed).strip()
