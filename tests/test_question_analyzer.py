"""Tests for quoorum/question_analyzer.py."""

import json
from unittest.mock import AsyncMock

import pytest

from quoorum.errors import AnalysisError, ValidationError
from quoorum.models import Generation, GenerationSettings
from quoorum.providers.base import ProviderError
from quoorum.question_analyzer import (
    QuestionAnalyzer,
    estimate_rounds,
    is_high_complexity,
    is_strategic,
    parse_analysis,
    summarize_analysis,
    top_areas,
    top_topics,
)
from tests.conftest import ANALYSIS_JSON, WALLIE_QUESTION, MockProvider

_SETTINGS = GenerationSettings(provider="openai", model="gpt-4o-mini", temperature=0.3, max_tokens=800)


@pytest.fixture
def analyzer_provider() -> MockProvider:
    return MockProvider("openai", ANALYSIS_JSON)


def _analyzer(provider: MockProvider) -> QuestionAnalyzer:
    return QuestionAnalyzer(provider, _SETTINGS, "Analyze: {question}{context}")


def test_parse_analysis_sorts_areas_and_topics():
    analysis = parse_analysis(WALLIE_QUESTION, ANALYSIS_JSON)
    assert [a.area for a in analysis.areas] == ["pricing", "finance", "marketing"]
    assert [t.name for t in analysis.topics] == ["saas pricing", "b2b"]
    assert analysis.complexity == 6
    assert analysis.decision_type == "strategic"
    assert analysis.recommended_experts == ["patrick_campbell"]


def test_parse_analysis_accepts_fenced_json():
    text = f"Here you go:\n```json\n{ANALYSIS_JSON}\n```"
    assert parse_analysis(WALLIE_QUESTION, text).complexity == 6


def test_parse_analysis_clamps_ranges():
    data = json.loads(ANALYSIS_JSON)
    data["complexity"] = 42
    data["areas"][0]["weight"] = 150
    analysis = parse_analysis(WALLIE_QUESTION, json.dumps(data))
    assert analysis.complexity == 10
    assert analysis.areas[0].weight == 100


@pytest.mark.parametrize(
    "text",
    [
        "no json at all",
        '{"areas": [], "complexity": 5, "decisionType": "strategic"}',
        '{"areas": [{"area": "pricing", "weight": 50}], "decisionType": "strategic"}',
        '{"areas": [{"area": "pricing", "weight": 50}], "complexity": 5}',
        '{"areas": [{"area": "pricing"}], "complexity": 5, "decisionType": "strategic"}',
    ],
)
def test_parse_analysis_rejects_incomplete(text):
    with pytest.raises((ValueError, KeyError)):
        parse_analysis(WALLIE_QUESTION, text)


async def test_analyze_success(analyzer_provider):
    analysis = await _analyzer(analyzer_provider).analyze(WALLIE_QUESTION)
    assert analysis.question == WALLIE_QUESTION
    assert analyzer_provider.generate.await_count == 1
    prompt = analyzer_provider.generate.call_args.args[0]
    assert WALLIE_QUESTION in prompt


async def test_analyze_retries_once_then_succeeds(analyzer_provider):
    analyzer_provider.generate = AsyncMock(
        side_effect=[
            Generation(text="sorry, no JSON", tokens_used=5),
            Generation(text=ANALYSIS_JSON, tokens_used=50),
        ]
    )
    analyzer = _analyzer(analyzer_provider)
    analysis = await analyzer.analyze(WALLIE_QUESTION)
    assert analysis.complexity == 6
    assert analyzer_provider.generate.await_count == 2
    assert analysis.tokens_used == 55


async def test_analyze_raises_after_second_failure(analyzer_provider):
    analyzer_provider.generate = AsyncMock(return_value=Generation(text="not json", tokens_used=5))
    with pytest.raises(AnalysisError):
        await _analyzer(analyzer_provider).analyze(WALLIE_QUESTION)
    assert analyzer_provider.generate.await_count == 2


async def test_analyze_provider_error_becomes_analysis_error(analyzer_provider):
    analyzer_provider.generate = AsyncMock(side_effect=ProviderError("openai", "boom"))
    with pytest.raises(AnalysisError, match="boom"):
        await _analyzer(analyzer_provider).analyze(WALLIE_QUESTION)


async def test_analyze_rejects_short_question(analyzer_provider):
    with pytest.raises(ValidationError):
        await _analyzer(analyzer_provider).analyze("Price?")
    analyzer_provider.generate.assert_not_awaited()


async def test_analyze_cost_uses_provider_price(analyzer_provider):
    analyzer = _analyzer(analyzer_provider)
    analysis = await analyzer.analyze(WALLIE_QUESTION)
    # 10 tokens at 0.15 USD per million
    assert analysis.cost_usd == pytest.approx(10 * 0.15 / 1_000_000)


def test_helpers(wallie_analysis):
    assert [a.area for a in top_areas(wallie_analysis, 2)] == ["pricing", "finance"]
    assert len(top_topics(wallie_analysis)) == 2
    assert is_high_complexity(wallie_analysis) is False
    assert is_strategic(wallie_analysis) is True
    assert estimate_rounds(wallie_analysis) == (5, 10)
    assert "complexity 6/10" in summarize_analysis(wallie_analysis)


@pytest.mark.parametrize(("complexity", "expected"), [(1, (3, 5)), (3, (3, 5)), (4, (5, 10)), (7, (10, 20))])
def test_estimate_rounds_by_complexity(wallie_analysis, complexity, expected):
    wallie_analysis.complexity = complexity
    assert estimate_rounds(wallie_analysis) == expected
