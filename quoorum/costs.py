"""Static per-provider pricing and cost estimation helpers.

Prices are USD per million tokens, blended input/output. No budget cap is
enforced here; callers compare estimates against their own limits.
"""

import math
from collections.abc import Iterable, Sequence

from quoorum.models import DebateMessage, Persona

PRICE_PER_MILLION_TOKENS: dict[str, float] = {
    "openai": 0.15,       # gpt-4o-mini
    "anthropic": 3.00,    # claude sonnet
    "google": 0.0,        # gemini flash free tier
    "deepseek": 0.14,
    "groq": 0.05,
    "xai": 2.00,
}
DEFAULT_PRICE_PER_MILLION_TOKENS = 5.00

# Typical panel when no personas are given: three Gemini experts and one OpenAI synthesizer.
DEFAULT_PANEL_PROVIDERS: tuple[str, ...] = ("google", "google", "google", "openai")

_CHARS_PER_TOKEN = 4


def price_per_million(provider: str) -> float:
    return PRICE_PER_MILLION_TOKENS.get(provider, DEFAULT_PRICE_PER_MILLION_TOKENS)


def estimate_tokens(text: str) -> int:
    """Rough token count for providers that report no usage."""
    return math.ceil(len(text) / _CHARS_PER_TOKEN)


def estimate_call_cost(provider: str, tokens: int) -> float:
    return tokens * price_per_million(provider) / 1_000_000


def estimate_agent_cost(persona: Persona, tokens: int) -> float:
    """Cost in USD of `tokens` tokens generated through the persona's provider."""
    return estimate_call_cost(persona.provider, tokens)


def estimate_debate_cost(
    avg_tokens_per_message: int,
    rounds: int,
    personas: Sequence[Persona] | None = None,
) -> float:
    """Projected cost of a debate where every persona speaks once per round.

    Linear in both arguments: doubling rounds doubles the estimate, and zero
    tokens or zero rounds cost nothing.
    """
    providers = [p.provider for p in personas] if personas is not None else list(DEFAULT_PANEL_PROVIDERS)
    price_sum = sum(price_per_million(p) for p in providers)
    return avg_tokens_per_message * rounds * price_sum / 1_000_000


def costs_by_provider(messages: Iterable[DebateMessage]) -> dict[str, float]:
    totals: dict[str, float] = {}
    for msg in messages:
        totals[msg.provider] = totals.get(msg.provider, 0.0) + msg.cost_usd
    return totals
