"""OpenAI provider using openai SDK with native async."""

import asyncio
import logging
import os
import time

import openai
from openai import AsyncOpenAI

from config.config_loader import ModelConfig
from quoorum.models import Generation, GenerationSettings
from quoorum.providers.base import (
    AIProvider,
    InvalidResponseError,
    ProviderError,
    ProviderTimeoutError,
    RateLimitError,
)

logger = logging.getLogger(__name__)


class OpenAIProvider(AIProvider):
    """OpenAI provider via openai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}", retryable=False)
        self._client = self._make_client(api_key)

    def _make_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def generate(self, prompt: str, settings: GenerationSettings) -> Generation:
        model = settings.model or self._config.model
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=model,
                    messages=[{"role": "user", "content": prompt}],
                    max_tokens=settings.max_tokens,
                    temperature=settings.temperature,
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderTimeoutError(
                self._config.name, f"Request timed out after {self._config.timeout_sec}s"
            ) from exc
        except openai.RateLimitError as exc:
            raise RateLimitError(self._config.name, f"Rate limited: {exc}") from exc
        except openai.AuthenticationError as exc:
            raise ProviderError(self._config.name, f"Authentication failed: {exc}", retryable=False) from exc
        except (openai.BadRequestError, openai.NotFoundError, openai.PermissionDeniedError) as exc:
            raise ProviderError(self._config.name, f"Request rejected: {exc}", retryable=False) from exc
        except (openai.APIConnectionError, openai.InternalServerError) as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}", retryable=False) from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise InvalidResponseError(self._config.name, "Empty response content")

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.total_tokens

        logger.info("%s %s: %.2fs, %s tokens", self._config.name, model, latency, token_count)

        return Generation(text=choice.message.content, tokens_used=token_count, latency_sec=latency)
