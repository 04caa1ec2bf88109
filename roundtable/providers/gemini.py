"""Gemini provider using google-genai SDK with native async streaming."""

import logging
import os
from collections.abc import AsyncIterator
from typing import Any

from google import genai
from google.genai import types as genai_types

from config.config_loader import BackendConfig
from roundtable.providers.base import AIProvider, BackendError, CompletionRequest, StreamEvent

logger = logging.getLogger(__name__)


class GeminiProvider(AIProvider):
    """Google Gemini provider via google-genai SDK."""

    def __init__(self, config: BackendConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise BackendError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = genai.Client(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        system = "\n".join(m["content"] for m in request.messages if m["role"] == "system")
        contents = "\n\n".join(m["content"] for m in request.messages if m["role"] != "system")
        gen_config = genai_types.GenerateContentConfig(
            max_output_tokens=request.settings.max_tokens,
            temperature=request.settings.temperature,
            system_instruction=system or None,
        )

        metadata: dict[str, Any] = {}
        try:
            response = await self._client.aio.models.generate_content_stream(
                model=self._config.model,
                contents=contents,
                config=gen_config,
            )
            async for chunk in response:
                if chunk.usage_metadata and chunk.usage_metadata.total_token_count:
                    metadata["tokens"] = chunk.usage_metadata.total_token_count
                if chunk.text:
                    yield StreamEvent(type="chunk", content=chunk.text)
        except Exception as exc:
            raise BackendError(self._config.name, f"API call failed: {exc}") from exc

        logger.debug("%s stream finished: %s", self._config.name, metadata)
        yield StreamEvent(type="metadata", metadata=metadata)
