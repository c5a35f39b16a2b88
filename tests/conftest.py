"""Shared pytest fixtures."""

import json
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import AppConfig, DefaultsConfig, ModelConfig, PromptsConfig, SearchConfig
from quoorum.models import (
    AreaWeight,
    DebateMessage,
    Generation,
    GenerationSettings,
    Persona,
    QuestionAnalysis,
    TopicRelevance,
)
from quoorum.providers.base import AIProvider

WALLIE_QUESTION = "¿Debo lanzar Wallie a 29€, 49€ o 79€?"

ANALYSIS_JSON = json.dumps(
    {
        "areas": [
            {"area": "marketing", "weight": 50, "reasoning": "positioning of the price"},
            {"area": "pricing", "weight": 90, "reasoning": "core of the question"},
            {"area": "finance", "weight": 60, "reasoning": "unit economics"},
        ],
        "topics": [
            {"name": "saas pricing", "relevance": 90},
            {"name": "b2b", "relevance": 40},
        ],
        "complexity": 6,
        "decisionType": "strategic",
        "recommendedExperts": ["patrick_campbell"],
        "reasoning": "A SaaS launch price decision.",
    }
)


def make_persona(
    key: str,
    role: str = "expert",
    provider: str = "mock",
    expertise: tuple[str, ...] = (),
    topics: tuple[str, ...] = (),
) -> Persona:
    return Persona(
        key=key,
        name=key.replace("_", " ").title(),
        role=role,
        prompt=f"You are {key}.",
        provider=provider,
        model="mock-model",
        temperature=0.5,
        max_tokens=500,
        expertise=list(expertise),
        topics=list(topics),
    )


def make_message(
    agent_key: str,
    content: str,
    round_number: int = 1,
    cost_usd: float = 0.001,
    provider: str = "mock",
) -> DebateMessage:
    return DebateMessage(
        agent_key=agent_key,
        agent_name=agent_key.title(),
        content=content,
        round_number=round_number,
        tokens_used=100,
        cost_usd=cost_usd,
        provider=provider,
        model="mock-model",
    )


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="test_model",
        sdk="openai",
        model="test-model-1",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
        base_url=None,
    )


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        analysis="Analyze: {question}{context}",
        persona_turn=(
            "{persona}\nYou are {name} ({role}).\nQ: {question}\nCONTEXT: {context}\n"
            "TRANSCRIPT:\n{transcript}\n{intervention}\nROUND {round}"
        ),
        synthesis="Q: {question}\nRanking:\n{ranking}\nTranscript ({rounds} rounds):\n{full_transcript}\nSynthesize:",
        search_query="Search query for: {question}",
        context_synthesis="Summarize for {question}:\n{context}",
    )


@pytest.fixture
def sample_defaults_config(tmp_path: Path) -> DefaultsConfig:
    return DefaultsConfig(
        output_dir=tmp_path / "output",
        synthesizer="anthropic",
        fallback_provider="openai",
    )


@pytest.fixture
def sample_roster() -> list[Persona]:
    return [
        make_persona("april_dunford", expertise=("positioning", "marketing"), topics=("b2b",)),
        make_persona("patrick_campbell", expertise=("pricing", "monetization"), topics=("saas pricing",)),
        make_persona("steli_efti", expertise=("sales",)),
        make_persona("tomasz_tunguz", expertise=("saas metrics", "finance")),
        make_persona("alex_hormozi", expertise=("offers", "pricing"), topics=("pricing psychology",)),
        make_persona("rand_fishkin", expertise=("seo",)),
        make_persona("critic", role="critic", expertise=("risk analysis",)),
        make_persona("christoph_janz", expertise=("unit economics", "finance", "pricing")),
        make_persona("lincoln_murphy", expertise=("customer success",)),
    ]


@pytest.fixture
def sample_app_config(
    sample_defaults_config: DefaultsConfig,
    sample_prompts_config: PromptsConfig,
    sample_roster: list[Persona],
) -> AppConfig:
    model_cfg = ModelConfig(
        name="anthropic",
        sdk="anthropic",
        model="claude-sonnet-4-20250514",
        api_key_env="ANTHROPIC_API_KEY",
        timeout_sec=60,
        max_tokens=4096,
    )
    return AppConfig(
        defaults=sample_defaults_config,
        models={"anthropic": model_cfg},
        prompts=sample_prompts_config,
        utility=GenerationSettings(provider="anthropic", model="claude-sonnet-4-20250514"),
        roster=sample_roster,
        search=SearchConfig(),
        available_providers={"anthropic"},
    )


@pytest.fixture
def wallie_analysis() -> QuestionAnalysis:
    return QuestionAnalysis(
        question=WALLIE_QUESTION,
        areas=[
            AreaWeight("pricing", 90),
            AreaWeight("finance", 60),
            AreaWeight("marketing", 50),
        ],
        topics=[TopicRelevance("saas pricing", 90), TopicRelevance("b2b", 40)],
        complexity=6,
        decision_type="strategic",
        recommended_experts=["patrick_campbell"],
    )


class MockProvider(AIProvider):
    """Test double AIProvider."""

    def __init__(self, provider_name: str = "mock", response_content: str = "Mock response") -> None:
        self._name = provider_name
        self._response_content = response_content
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because generate is defined in the class body below.
        self.generate = AsyncMock(  # type: ignore[assignment]
            return_value=Generation(text=response_content, tokens_used=10, latency_sec=0.1)
        )

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def generate(self, prompt: str, settings: GenerationSettings) -> Generation:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return Generation(text=self._response_content, tokens_used=10, latency_sec=0.1)


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def two_mock_providers() -> list[MockProvider]:
    return [MockProvider("provider_a", "Response from A"), MockProvider("provider_b", "Response from B")]
