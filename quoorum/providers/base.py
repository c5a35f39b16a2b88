"""Abstract base for all AI model providers, plus the provider error taxonomy."""

from abc import ABC, abstractmethod

from quoorum.models import Generation, GenerationSettings


class ProviderError(Exception):
    """Raised when a provider call fails.

    Transport-level failures are retryable by default; pass retryable=False
    for errors a retry cannot fix (missing key, bad configuration).
    """

    retryable = True

    def __init__(self, provider_name: str, message: str, retryable: bool | None = None) -> None:
        self.provider_name = provider_name
        if retryable is not None:
            self.retryable = retryable
        super().__init__(f"[{provider_name}] {message}")


class RateLimitError(ProviderError):
    """Provider rejected the call with a rate limit (HTTP 429)."""


class ProviderTimeoutError(ProviderError):
    """Call did not finish within its timeout."""


class InvalidResponseError(ProviderError):
    """Provider answered, but with empty or unusable content."""

    retryable = False


class AIProvider(ABC):
    """Abstract base for all AI model providers."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'google', 'anthropic')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the default model identifier string."""
        ...

    @abstractmethod
    async def generate(self, prompt: str, settings: GenerationSettings) -> Generation:
        """Generate text for the given prompt.

        Args:
            prompt: The full prompt text to send.
            settings: Model, temperature and token limit for this call.
                An empty settings.model falls back to model_string().

        Returns:
            Generation with the text and reported token usage.

        Raises:
            ProviderError: On API failure, timeout, or invalid response.
        """
        ...
