"""Tests for quoorum/costs.py."""

import pytest

from quoorum.costs import (
    DEFAULT_PRICE_PER_MILLION_TOKENS,
    costs_by_provider,
    estimate_agent_cost,
    estimate_debate_cost,
    estimate_tokens,
    price_per_million,
)
from tests.conftest import make_message, make_persona


def test_known_and_unknown_prices():
    assert price_per_million("openai") == 0.15
    assert price_per_million("google") == 0.0
    assert price_per_million("mystery") == DEFAULT_PRICE_PER_MILLION_TOKENS


def test_estimate_agent_cost():
    persona = make_persona("a", provider="anthropic")
    assert estimate_agent_cost(persona, 1_000_000) == pytest.approx(3.0)
    assert estimate_agent_cost(persona, 0) == 0.0


def test_free_provider_costs_nothing():
    assert estimate_agent_cost(make_persona("g", provider="google"), 50_000) == 0.0


def test_debate_cost_positive_with_default_panel():
    assert estimate_debate_cost(100, 5) > 0


@pytest.mark.parametrize(("tokens", "rounds"), [(100, 5), (837, 3), (1, 1), (4096, 17)])
def test_debate_cost_linear_in_rounds(tokens, rounds):
    assert estimate_debate_cost(tokens, 2 * rounds) == 2 * estimate_debate_cost(tokens, rounds)


@pytest.mark.parametrize("rounds", [1, 4, 9])
def test_debate_cost_linear_in_tokens(rounds):
    assert estimate_debate_cost(600, rounds) == pytest.approx(2 * estimate_debate_cost(300, rounds))


def test_debate_cost_zero_inputs():
    assert estimate_debate_cost(0, 5) == 0
    assert estimate_debate_cost(100, 0) == 0


def test_debate_cost_with_explicit_personas():
    personas = [make_persona("a", provider="openai"), make_persona("b", provider="anthropic")]
    # (0.15 + 3.00) per million, 1000 tokens, 2 rounds
    assert estimate_debate_cost(1000, 2, personas) == pytest.approx(2000 * 3.15 / 1_000_000)


def test_estimate_tokens_rounds_up():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_costs_by_provider_sums_messages():
    messages = [
        make_message("a", "x", cost_usd=0.01, provider="openai"),
        make_message("b", "y", cost_usd=0.02, provider="anthropic"),
        make_message("c", "z", cost_usd=0.03, provider="openai"),
    ]
    totals = costs_by_provider(messages)
    assert totals["openai"] == pytest.approx(0.04)
    assert totals["anthropic"] == pytest.approx(0.02)
