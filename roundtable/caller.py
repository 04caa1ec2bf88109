"""One prompt-completion call to one backend, streamed, under a deadline."""

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from contextlib import aclosing
from typing import Any

from roundtable.models import ResponseMetadata, RoundtableResponse, SessionSettings
from roundtable.providers.base import (
    AIProvider,
    BackendError,
    BackendTimeout,
    CompletionRequest,
    build_messages,
)
from roundtable.tokens import estimate_cost, estimate_tokens

logger = logging.getLogger(__name__)


class ModelCaller:
    """Turns a provider stream into a RoundtableResponse.

    The deadline covers the whole call, streaming included. When it expires
    the consuming coroutine is cancelled and the provider stream is closed,
    so nothing keeps running in the background.
    """

    def __init__(self, providers: dict[str, AIProvider], cost_table: dict[str, float] | None = None) -> None:
        self._providers = providers
        self._cost_table = dict(cost_table or {})

    def has_backend(self, backend: str) -> bool:
        return backend in self._providers

    async def call(
        self,
        backend: str,
        prompt: str,
        settings: SessionSettings,
        timeout_sec: float,
        on_chunk: Callable[[str], None] | None = None,
    ) -> RoundtableResponse:
        """Run one completion.

        Raises:
            BackendTimeout: The deadline passed before the stream finished.
            BackendError: Any other failure, including an empty answer.
        """
        provider = self._providers.get(backend)
        if provider is None:
            raise BackendError(backend, "No provider configured")

        request = CompletionRequest(
            messages=build_messages(prompt, settings),
            settings=settings,
            preferred_backend=backend,
        )

        start = time.monotonic()
        try:
            content, remote = await asyncio.wait_for(
                self._consume(provider, request, on_chunk),
                timeout=timeout_sec,
            )
        except TimeoutError as exc:
            raise BackendTimeout(backend, f"Request timed out after {timeout_sec}s") from exc
        except BackendError:
            raise
        except Exception as exc:
            raise BackendError(backend, f"Unexpected error: {exc}") from exc

        latency = time.monotonic() - start

        if not content:
            raise BackendError(backend, "Empty response content")

        tokens = int(remote.get("tokens") or estimate_tokens(content))
        cost = remote.get("cost")
        if cost is None:
            cost = estimate_cost(backend, tokens, self._cost_table)

        logger.info("%s: %.2fs, %d tokens, $%.5f", backend, latency, tokens, cost)

        return RoundtableResponse(
            message_id=f"msg_{backend}_{uuid.uuid4().hex[:12]}",
            backend=backend,
            content=content,
            metadata=ResponseMetadata(
                tokens=tokens,
                cost=float(cost),
                latency_sec=latency,
                finish_reason=str(remote.get("finish_reason") or "stop"),
            ),
        )

    async def _consume(
        self,
        provider: AIProvider,
        request: CompletionRequest,
        on_chunk: Callable[[str], None] | None,
    ) -> tuple[str, dict[str, Any]]:
        if not request.settings.streaming:
            result = await provider.complete(request)
            return result.content, result.metadata

        parts: list[str] = []
        metadata: dict[str, Any] = {}
        async with aclosing(provider.stream(request)) as events:
            async for event in events:
                if event.type == "chunk" and event.content:
                    parts.append(event.content)
                    if on_chunk:
                        on_chunk(event.content)
                elif event.type == "metadata":
                    metadata.update(event.metadata)
        return "".join(parts), metadata
