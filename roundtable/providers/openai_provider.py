"""OpenAI provider using openai SDK with native async streaming."""

import logging
import os
from collections.abc import AsyncIterator
from typing import Any

from openai import AsyncOpenAI

from config.config_loader import BackendConfig
from roundtable.providers.base import AIProvider, BackendError, CompletionRequest, StreamEvent

logger = logging.getLogger(__name__)


class OpenAIProvider(AIProvider):
    """OpenAI chat completions via openai SDK."""

    def __init__(self, config: BackendConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise BackendError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = self._make_client(api_key)

    def _make_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        metadata: dict[str, Any] = {}
        try:
            response = await self._client.chat.completions.create(
                model=self._config.model,
                messages=request.messages,
                max_tokens=request.settings.max_tokens,
                temperature=request.settings.temperature,
                stream=True,
                stream_options={"include_usage": True},
            )
            async for chunk in response:
                if chunk.usage:
                    metadata["tokens"] = chunk.usage.total_tokens
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                if choice.finish_reason:
                    metadata["finish_reason"] = choice.finish_reason
                if choice.delta and choice.delta.content:
                    yield StreamEvent(type="chunk", content=choice.delta.content)
        except Exception as exc:
            raise BackendError(self._config.name, f"API call failed: {exc}") from exc

        logger.debug("%s stream finished: %s", self._config.name, metadata)
        yield StreamEvent(type="metadata", metadata=metadata)
