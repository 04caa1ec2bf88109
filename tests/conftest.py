"""Shared pytest fixtures."""

import asyncio
from collections.abc import AsyncIterator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from config.config_loader import AppConfig, BackendConfig, ContextConfig, PromptsConfig, RoundtableDefaults
from roundtable.caller import ModelCaller
from roundtable.executor import RoundtableExecutor
from roundtable.models import ContextItem, ContextItemType
from roundtable.providers.base import AIProvider, BackendError, CompletionRequest, StreamEvent
from roundtable.slots import ConcurrencySlotManager

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class MockProvider(AIProvider):
    """Test double AIProvider.

    Streams ``chunks`` one event at a time, then a metadata event. ``delay``
    sleeps before the first chunk; ``error`` raises instead of streaming.
    Every request is recorded in ``calls``.
    """

    def __init__(
        self,
        provider_name: str = "mock",
        response_content: str = "Mock response",
        chunks: list[str] | None = None,
        delay: float = 0.0,
        error: Exception | None = None,
        metadata: dict | None = None,
    ) -> None:
        self._name = provider_name
        self.chunks = chunks if chunks is not None else [response_content]
        self.delay = delay
        self.error = error
        self.metadata = metadata if metadata is not None else {"tokens": 10}
        self.calls: list[CompletionRequest] = []
        self.closed = False

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        self.calls.append(request)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            for chunk in self.chunks:
                yield StreamEvent(type="chunk", content=chunk)
            yield StreamEvent(type="metadata", metadata=dict(self.metadata))
        finally:
            self.closed = True


def failing_provider(name: str, message: str = "boom") -> MockProvider:
    return MockProvider(name, error=BackendError(name, message))


def make_item(
    item_id: str,
    content: str = "Some context content for testing",
    item_type: ContextItemType = ContextItemType.MESSAGE,
    priority: int = 50,
    tokens: int = 100,
    relevance_score: float | None = None,
    session_id: str | None = None,
    age_hours: float = 0.0,
    compressed: bool = False,
) -> ContextItem:
    return ContextItem(
        id=item_id,
        content=content,
        type=item_type,
        priority=priority,
        tokens=tokens,
        source="user",
        relevance_score=relevance_score,
        session_id=session_id,
        timestamp=NOW - timedelta(hours=age_hours),
        compressed=compressed,
    )


def build_executor(
    providers: dict[str, AIProvider],
    ceilings: dict[str, int] | None = None,
    fallbacks: dict[str, str] | None = None,
) -> RoundtableExecutor:
    """Executor with no shuffling so test order is the request order."""
    return RoundtableExecutor(
        caller=ModelCaller(providers),
        slots=ConcurrencySlotManager(ceilings or {name: 5 for name in providers}),
        fallbacks=fallbacks if fallbacks is not None else {},
        shuffle=lambda order: None,
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def context_config() -> ContextConfig:
    return ContextConfig(max_tokens=200_000, ideal_tokens=150_000)


@pytest.fixture
def sample_backend_config() -> BackendConfig:
    return BackendConfig(
        name="test-backend",
        sdk="endpoint",
        model="test-model-1",
        api_key_env="TEST_API_KEY",
        max_concurrency=2,
        cost_per_1k=0.002,
        base_url="http://completions.test/api/complete",
    )


@pytest.fixture
def sample_app_config(context_config: ContextConfig, sample_backend_config: BackendConfig) -> AppConfig:
    return AppConfig(
        roundtable=RoundtableDefaults(
            backends=["alpha", "beta"],
            timeout_sec=30.0,
            max_concurrency=6,
            deduplication_threshold=0.85,
            priority_backends=["alpha"],
        ),
        context=context_config,
        backends={"test-backend": sample_backend_config},
        prompts=PromptsConfig(summarization="Summarize:\n{content}"),
        available_backends={"test-backend"},
    )


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def two_mock_providers() -> dict[str, MockProvider]:
    return {
        "alpha": MockProvider("alpha", "Response from alpha about caching layers"),
        "beta": MockProvider("beta", "Response from beta about database indexes"),
    }


@pytest.fixture
def context_file(tmp_path: Path) -> Path:
    return tmp_path / "context.json"
