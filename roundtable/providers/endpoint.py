"""Provider for a completion endpoint that streams server-sent events over HTTP."""

import json
import logging
import os
from collections.abc import AsyncIterator

import httpx

from config.config_loader import BackendConfig
from roundtable.providers.base import AIProvider, BackendError, CompletionRequest, StreamEvent

logger = logging.getLogger(__name__)


class EndpointProvider(AIProvider):
    """POSTs ``{messages, settings, preferredBackend}`` and reads ``data: {...}`` lines.

    Each data line is ``{"type": "chunk", "content": str}`` or
    ``{"type": "metadata", "metadata": {...}}``. The stream ends when the
    server closes it or sends ``data: [DONE]``.
    """

    def __init__(self, config: BackendConfig, client: httpx.AsyncClient | None = None) -> None:
        if not config.base_url:
            raise BackendError(config.name, "base_url is required for endpoint backends")
        self._config = config
        self._client = client
        self._headers = {"Content-Type": "application/json"}
        if config.api_key_env:
            api_key = os.environ.get(config.api_key_env, "").strip()
            if not api_key:
                raise BackendError(config.name, f"Missing API key: {config.api_key_env}")
            self._headers["Authorization"] = f"Bearer {api_key}"

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        payload = request.to_payload()
        client = self._client or httpx.AsyncClient(timeout=None)
        try:
            async with client.stream(
                "POST", self._config.base_url, headers=self._headers, json=payload
            ) as response:
                if response.is_error:
                    raise BackendError(
                        self._config.name,
                        f"API call failed: HTTP {response.status_code} {response.reason_phrase}",
                    )
                async for line in response.aiter_lines():
                    event = self._parse_line(line)
                    if event is None:
                        continue
                    if event == "done":
                        break
                    yield event
        except httpx.HTTPError as exc:
            raise BackendError(self._config.name, f"API call failed: {exc}") from exc
        finally:
            if self._client is None:
                await client.aclose()

    def _parse_line(self, line: str) -> StreamEvent | str | None:
        if not line.startswith("data: "):
            return None
        data_str = line[6:]
        if data_str == "[DONE]":
            return "done"
        try:
            data = json.loads(data_str)
        except json.JSONDecodeError:
            logger.warning("%s: failed to parse streaming chunk: %r", self._config.name, data_str[:80])
            return None
        if data.get("type") == "chunk" and data.get("content"):
            return StreamEvent(type="chunk", content=data["content"])
        if data.get("type") == "metadata":
            metadata = dict(data.get("metadata") or {})
            if "finishReason" in metadata:
                metadata["finish_reason"] = metadata.pop("finishReason")
            return StreamEvent(type="metadata", metadata=metadata)
        return None
