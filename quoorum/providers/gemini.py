"""Gemini provider using google-genai SDK with native async."""

import asyncio
import logging
import os
import time

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

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


class GeminiProvider(AIProvider):
    """Google Gemini provider via google-genai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}", retryable=False)
        self._client = genai.Client(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def generate(self, prompt: str, settings: GenerationSettings) -> Generation:
        model = settings.model or self._config.model
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=model,
                    contents=prompt,
                    config=genai_types.GenerateContentConfig(
                        max_output_tokens=settings.max_tokens,
                        temperature=settings.temperature,
                    ),
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderTimeoutError(
                self._config.name, f"Request timed out after {self._config.timeout_sec}s"
            ) from exc
        except genai_errors.APIError as exc:
            if exc.code == 429:
                raise RateLimitError(self._config.name, f"Rate limited: {exc}") from exc
            raise ProviderError(self._config.name, f"API call failed: {exc}", retryable=bool(exc.code and exc.code >= 500)) from exc
        except httpx.TransportError as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}", retryable=False) from exc

        latency = time.monotonic() - start

        if not response.text:
            raise InvalidResponseError(self._config.name, "Empty response text")

        token_count: int | None = None
        if response.usage_metadata:
            token_count = response.usage_metadata.total_token_count

        logger.info("Gemini %s: %.2fs, %s tokens", model, latency, token_count)

        return Generation(text=response.text, tokens_used=token_count, latency_sec=latency)
