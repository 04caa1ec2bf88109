"""OpenAI-compatible provider (Groq, xAI, ...) using openai SDK with a custom base_url."""

from openai import AsyncOpenAI

from config.config_loader import BackendConfig
from roundtable.providers.base import BackendError
from roundtable.providers.openai_provider import OpenAIProvider


class OpenAICompatibleProvider(OpenAIProvider):
    """Any backend that speaks the OpenAI chat completions API."""

    def __init__(self, config: BackendConfig) -> None:
        if not config.base_url:
            raise BackendError(config.name, "base_url is required for OpenAI-compatible backends")
        super().__init__(config)

    def _make_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(api_key=api_key, base_url=self._config.base_url)
