"""Anthropic Claude provider using anthropic SDK with native async streaming."""

import logging
import os
from collections.abc import AsyncIterator
from typing import Any

import anthropic as anthropic_sdk

from config.config_loader import BackendConfig
from roundtable.providers.base import AIProvider, BackendError, CompletionRequest, StreamEvent

logger = logging.getLogger(__name__)


class AnthropicProvider(AIProvider):
    """Anthropic Claude provider via anthropic SDK."""

    def __init__(self, config: BackendConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise BackendError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        # Anthropic takes the system prompt as a separate argument.
        system = "\n".join(m["content"] for m in request.messages if m["role"] == "system")
        messages = [m for m in request.messages if m["role"] != "system"]
        kwargs: dict[str, Any] = {
            "model": self._config.model,
            "max_tokens": request.settings.max_tokens,
            "temperature": request.settings.temperature,
            "messages": messages,
        }
        if system:
            kwargs["system"] = system

        metadata: dict[str, Any] = {}
        try:
            async with self._client.messages.stream(**kwargs) as stream:
                async for text in stream.text_stream:
                    if text:
                        yield StreamEvent(type="chunk", content=text)
                final = await stream.get_final_message()
        except Exception as exc:
            raise BackendError(self._config.name, f"API call failed: {exc}") from exc

        if final.usage:
            metadata["tokens"] = final.usage.input_tokens + final.usage.output_tokens
        if final.stop_reason:
            metadata["finish_reason"] = final.stop_reason

        logger.debug("%s stream finished: %s", self._config.name, metadata)
        yield StreamEvent(type="metadata", metadata=metadata)
