"""OpenAI-compatible providers (DeepSeek, xAI Grok, Groq) via the openai SDK."""

from openai import AsyncOpenAI

from config.config_loader import ModelConfig
from quoorum.providers.base import ProviderError
from quoorum.providers.openai_provider import OpenAIProvider


class OpenAICompatibleProvider(OpenAIProvider):
    """Any chat-completions API reachable through a custom base_url."""

    def __init__(self, config: ModelConfig) -> None:
        if not config.base_url:
            raise ProviderError(config.name, f"base_url is required for {config.name}", retryable=False)
        super().__init__(config)

    def _make_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(api_key=api_key, base_url=self._config.base_url)
