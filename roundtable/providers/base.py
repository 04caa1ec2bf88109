"""Completion boundary: request/stream types, error taxonomy and the provider ABC."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from roundtable.models import SessionSettings


class BackendError(Exception):
    """Raised when a backend call fails."""

    def __init__(self, backend: str, message: str) -> None:
        self.backend = backend
        super().__init__(f"[{backend}] {message}")


class BackendTimeout(BackendError):
    """Raised when a backend call exceeds its deadline."""


class FallbackExhausted(BackendError):
    """Primary backend and its fallback both failed."""

    def __init__(self, backend: str, fallback: str, reason: str) -> None:
        self.fallback = fallback
        super().__init__(backend, f"fallback {fallback} also failed: {reason}")


@dataclass
class CompletionRequest:
    messages: list[dict[str, str]]  # [{"role": ..., "content": ...}]
    settings: SessionSettings
    preferred_backend: str

    def to_payload(self) -> dict[str, Any]:
        """Wire shape of the completion endpoint."""
        return {
            "messages": self.messages,
            "settings": {
                "temperature": self.settings.temperature,
                "maxTokens": self.settings.max_tokens,
                "streaming": self.settings.streaming,
            },
            "preferredBackend": self.preferred_backend,
        }


@dataclass
class StreamEvent:
    type: str  # "chunk" or "metadata"
    content: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class CompletionResult:
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)


def build_messages(prompt: str, settings: SessionSettings) -> list[dict[str, str]]:
    messages: list[dict[str, str]] = []
    if settings.system_prompt:
        messages.append({"role": "system", "content": settings.system_prompt})
    messages.append({"role": "user", "content": prompt})
    return messages


class AIProvider(ABC):
    """Abstract base for all completion backends."""

    @abstractmethod
    def name(self) -> str:
        """Return the backend identifier (e.g. 'gpt-4o', 'claude-3-haiku')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string sent to the API."""
        ...

    @abstractmethod
    def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        """Stream a completion.

        Yields zero or more ``chunk`` events in arrival order, then at most one
        ``metadata`` event carrying any of: tokens, cost, latency, finish_reason.

        Raises:
            BackendError: On API failure or invalid response.
        """
        ...

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        """Non-streaming completion: drain stream() into one result."""
        parts: list[str] = []
        metadata: dict[str, Any] = {}
        async for event in self.stream(request):
            if event.type == "chunk":
                parts.append(event.content)
            elif event.type == "metadata":
                metadata.update(event.metadata)
        return CompletionResult(content="".join(parts), metadata=metadata)
