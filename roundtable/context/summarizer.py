"""Summarizers used by the conversation-summarization strategy."""

import logging
import re
from typing import Protocol

from roundtable.caller import ModelCaller
from roundtable.models import ContextItem, SessionSettings
from roundtable.providers.base import BackendError

logger = logging.getLogger(__name__)

_SENTENCE = re.compile(r"[^.!?]+[.!?]?")
_KEY_MARKERS = ("important", "key", "main", "conclusion", "result", "because", "therefore")
_MAX_KEY_POINTS = 5
_LEADING_SENTENCES = 3


class Summarizer(Protocol):
    async def summarize(self, items: list[ContextItem]) -> str: ...


def format_items(items: list[ContextItem]) -> str:
    return "\n\n".join(f"[{item.type.value.upper()}] {item.content}" for item in items)


def extract_key_points(content: str) -> str:
    """Pick up to five sentences that look like decisions, conclusions or questions.

    Falls back to the leading sentences when nothing stands out.
    """
    sentences = [s.strip() for s in _SENTENCE.findall(content) if len(s.strip()) > 10]
    important = [
        s for s in sentences
        if "?" in s or any(marker in s.lower() for marker in _KEY_MARKERS)
    ]
    picked = important[:_MAX_KEY_POINTS] or sentences[:_LEADING_SENTENCES]
    return " ".join(picked)


class KeyPointSummarizer:
    """Extractive summary, no model call."""

    async def summarize(self, items: list[ContextItem]) -> str:
        return extract_key_points(format_items(items))


class ModelSummarizer:
    """Asks one backend for a summary; falls back to key points when the call fails."""

    def __init__(
        self,
        caller: ModelCaller,
        backend: str,
        prompt_template: str,
        timeout_sec: float = 30.0,
        settings: SessionSettings | None = None,
    ) -> None:
        self._caller = caller
        self._backend = backend
        self._template = prompt_template
        self._timeout = timeout_sec
        self._settings = settings or SessionSettings(temperature=0.2, max_tokens=1024, streaming=False)
        self._fallback = KeyPointSummarizer()

    async def summarize(self, items: list[ContextItem]) -> str:
        prompt = self._template.format(content=format_items(items))
        try:
            response = await self._caller.call(self._backend, prompt, self._settings, self._timeout)
        except BackendError as exc:
            logger.warning("Summarization via %s failed, using key points: %s", self._backend, exc)
            return await self._fallback.summarize(items)
        return response.content.strip()
