"""Question analysis: ask a model for areas, topics and complexity as JSON."""

import json
import logging
import re

from quoorum.costs import estimate_call_cost, estimate_tokens
from quoorum.errors import AnalysisError, ValidationError
from quoorum.models import AreaWeight, GenerationSettings, QuestionAnalysis, TopicRelevance
from quoorum.providers.base import AIProvider, ProviderError

logger = logging.getLogger(__name__)

MIN_QUESTION_CHARS = 10
HIGH_COMPLEXITY = 7
_MAX_ATTEMPTS = 2  # one retry

_JSON_BLOCK = re.compile(r"\{.*\}", re.DOTALL)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def parse_analysis(question: str, text: str) -> QuestionAnalysis:
    """Parse the model's JSON answer.

    Raises:
        ValueError: When no JSON object is found or a required field is
            missing or malformed.
    """
    match = _JSON_BLOCK.search(text)
    if not match:
        raise ValueError("no JSON object in response")
    data = json.loads(match.group(0))
    if not isinstance(data, dict):
        raise ValueError("analysis is not a JSON object")

    raw_areas = data.get("areas")
    if not isinstance(raw_areas, list) or not raw_areas:
        raise ValueError("'areas' must be a non-empty list")
    areas = [
        AreaWeight(
            area=str(a["area"]).strip().lower(),
            weight=_clamp(float(a["weight"]), 0, 100),
            reasoning=str(a.get("reasoning", "")),
        )
        for a in raw_areas
    ]

    raw_topics = data.get("topics", [])
    if not isinstance(raw_topics, list):
        raise ValueError("'topics' must be a list")
    topics = [
        TopicRelevance(name=str(t["name"]).strip().lower(), relevance=_clamp(float(t["relevance"]), 0, 100))
        for t in raw_topics
    ]

    if "complexity" not in data:
        raise ValueError("'complexity' missing")
    decision_type = str(data.get("decisionType") or data.get("decision_type") or "").strip().lower()
    if not decision_type:
        raise ValueError("'decisionType' missing")

    recommended = data.get("recommendedExperts") or data.get("recommended_experts") or []

    return QuestionAnalysis(
        question=question,
        areas=sorted(areas, key=lambda a: -a.weight),
        topics=sorted(topics, key=lambda t: -t.relevance),
        complexity=int(_clamp(round(float(data["complexity"])), 1, 10)),
        decision_type=decision_type,
        recommended_experts=[str(k) for k in recommended],
        reasoning=str(data.get("reasoning", "")),
    )


class QuestionAnalyzer:
    """Wraps the analysis prompt and its single retry."""

    def __init__(self, provider: AIProvider, settings: GenerationSettings, prompt_template: str) -> None:
        self._provider = provider
        self._settings = settings
        self._template = prompt_template

    async def analyze(self, question: str, context: str = "") -> QuestionAnalysis:
        """Analyse a question.

        The returned analysis carries the tokens and cost of its own calls, so
        one analyzer can serve concurrent sessions.

        Raises:
            ValidationError: Question too short.
            AnalysisError: No usable analysis after one retry.
        """
        question = question.strip()
        if len(question) < MIN_QUESTION_CHARS:
            raise ValidationError(f"Question must be at least {MIN_QUESTION_CHARS} characters")

        context_block = f"\nCONTEXT:\n{context}" if context else ""
        prompt = self._template.format(question=question, context=context_block)

        tokens_used = 0
        last_error: Exception | None = None
        for attempt in range(1, _MAX_ATTEMPTS + 1):
            try:
                generation = await self._provider.generate(prompt, self._settings)
                tokens_used += generation.tokens_used or estimate_tokens(prompt + generation.text)
                analysis = parse_analysis(question, generation.text)
            except (ProviderError, ValueError, KeyError, TypeError) as exc:
                last_error = exc
                logger.warning("Question analysis attempt %d failed: %s", attempt, exc)
                continue
            analysis.tokens_used = tokens_used
            analysis.cost_usd = estimate_call_cost(self._settings.provider, tokens_used)
            logger.info("Question analysis: %s", summarize_analysis(analysis))
            return analysis

        raise AnalysisError(f"Could not analyse question: {last_error}") from last_error


def top_areas(analysis: QuestionAnalysis, n: int = 3) -> list[AreaWeight]:
    return analysis.areas[:n]


def top_topics(analysis: QuestionAnalysis, n: int = 5) -> list[TopicRelevance]:
    return analysis.topics[:n]


def is_high_complexity(analysis: QuestionAnalysis) -> bool:
    return analysis.complexity >= HIGH_COMPLEXITY


def is_strategic(analysis: QuestionAnalysis) -> bool:
    return analysis.decision_type == "strategic"


def estimate_rounds(analysis: QuestionAnalysis) -> tuple[int, int]:
    """(min, max) rounds a question of this complexity usually needs."""
    if analysis.complexity <= 3:
        return 3, 5
    if analysis.complexity <= 6:
        return 5, 10
    return 10, 20


def summarize_analysis(analysis: QuestionAnalysis) -> str:
    areas = ", ".join(f"{a.area}={a.weight:.0f}" for a in top_areas(analysis))
    return f"{analysis.decision_type}, complexity {analysis.complexity}/10, areas: {areas}"
