"""Anthropic Claude provider using anthropic SDK with native async."""

import asyncio
import logging
import os
import time

import anthropic as anthropic_sdk

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


class AnthropicProvider(AIProvider):
    """Anthropic Claude provider via anthropic SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}", retryable=False)
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def generate(self, prompt: str, settings: GenerationSettings) -> Generation:
        model = settings.model or self._config.model
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.messages.create(
                    model=model,
                    max_tokens=settings.max_tokens,
                    temperature=min(settings.temperature, 1.0),
                    messages=[{"role": "user", "content": prompt}],
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderTimeoutError(
                self._config.name, f"Request timed out after {self._config.timeout_sec}s"
            ) from exc
        except anthropic_sdk.RateLimitError as exc:
            raise RateLimitError(self._config.name, f"Rate limited: {exc}") from exc
        except anthropic_sdk.AuthenticationError as exc:
            raise ProviderError(self._config.name, f"Authentication failed: {exc}", retryable=False) from exc
        except (
            anthropic_sdk.BadRequestError,
            anthropic_sdk.NotFoundError,
            anthropic_sdk.PermissionDeniedError,
        ) as exc:
            raise ProviderError(self._config.name, f"Request rejected: {exc}", retryable=False) from exc
        except (anthropic_sdk.APIConnectionError, anthropic_sdk.InternalServerError) as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}", retryable=False) from exc

        latency = time.monotonic() - start

        text_blocks = [b.text for b in (response.content or []) if b.type == "text"]
        if not text_blocks:
            raise InvalidResponseError(self._config.name, "No text blocks in response")

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.input_tokens + response.usage.output_tokens

        logger.info("Anthropic %s: %.2fs, %s tokens", model, latency, token_count)

        return Generation(text="\n".join(text_blocks), tokens_used=token_count, latency_sec=latency)
