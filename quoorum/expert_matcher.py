"""Select the expert panel for a question from the configured roster.

Deterministic: the same analysis and roster always produce the same panel,
ties broken by roster order.
"""

import logging
from collections.abc import Sequence

from quoorum.errors import ValidationError
from quoorum.models import ExpertMatch, Persona, QuestionAnalysis

logger = logging.getLogger(__name__)

AREA_FACTOR = 0.6
TOPIC_FACTOR = 0.3
RECOMMENDED_BONUS = 20
STRATEGY_BONUS = 10
CRITIC_COMPLEXITY_BONUS = 15
MAX_PRIMARY = 3


def tag_match_strength(term: str, tags: Sequence[str]) -> float:
    """1.0 for an exact tag, 0.5 when one contains the other, else 0."""
    needle = term.strip().lower()
    if not needle:
        return 0.0
    best = 0.0
    for tag in tags:
        if tag == needle:
            return 1.0
        if needle in tag or tag in needle:
            best = 0.5
    return best


def score_expert(expert: Persona, analysis: QuestionAnalysis) -> tuple[int, list[str]]:
    """Relevance of one persona to the analysed question, 0-100, with reasons."""
    score = 0.0
    reasons: list[str] = []

    for area in analysis.areas:
        strength = tag_match_strength(area.area, expert.expertise)
        if strength:
            score += area.weight * strength * AREA_FACTOR
            reasons.append(f"expertise in {area.area} ({area.weight:.0f})")

    topic_tags = [*expert.topics, *expert.expertise]
    for topic in analysis.topics:
        strength = tag_match_strength(topic.name, topic_tags)
        if strength:
            score += topic.relevance * strength * TOPIC_FACTOR
            reasons.append(f"knows {topic.name}")

    if expert.key in analysis.recommended_experts:
        score += RECOMMENDED_BONUS
        reasons.append("recommended by analysis")

    if analysis.decision_type == "strategic" and any("strategy" in t for t in expert.expertise):
        score += STRATEGY_BONUS
        reasons.append("strategic decision")

    if expert.is_critic and analysis.complexity >= 7:
        score += CRITIC_COMPLEXITY_BONUS
        reasons.append("high complexity needs a critic")

    return max(0, min(100, round(score))), reasons


def match_experts(
    analysis: QuestionAnalysis,
    roster: Sequence[Persona],
    min_experts: int = 5,
    max_experts: int = 7,
    min_score: int = 30,
) -> list[ExpertMatch]:
    """Pick between min_experts and max_experts personas, exactly one of them a critic.

    Raises:
        ValidationError: On inconsistent bounds or a roster without a critic.
    """
    if min_experts < 1:
        raise ValidationError(f"min_experts must be >= 1, got {min_experts}")
    if min_experts > max_experts:
        raise ValidationError(f"min_experts ({min_experts}) exceeds max_experts ({max_experts})")

    scored: list[ExpertMatch] = []
    for persona in roster:
        score, reasons = score_expert(persona, analysis)
        scored.append(ExpertMatch(expert=persona, score=score, reasons=reasons))
    # sorted() is stable, so equal scores keep roster order
    scored.sort(key=lambda m: -m.score)

    critics = [m for m in scored if m.expert.is_critic]
    if not critics:
        raise ValidationError("Roster has no critic persona")
    critic = critics[0]
    critic.suggested_role = "critic"
    if not critic.reasons:
        critic.reasons.append("critic always included")

    others = [m for m in scored if not m.expert.is_critic]
    passing = [m for m in others if m.score >= min_score]
    target = min(max(len(passing) + 1, min_experts), max_experts)
    chosen = others[: max(0, target - 1)]

    if len(chosen) + 1 < min_experts:
        logger.warning(
            "Roster too small: %d experts available, %d requested",
            len(chosen) + 1,
            min_experts,
        )

    # half the panel, critic included
    primary_count = min(MAX_PRIMARY, (len(chosen) + 1) // 2)
    for i, match in enumerate(chosen):
        match.suggested_role = "primary" if i < primary_count else "secondary"
        if match.score < min_score:
            match.reasons.append("added to reach minimum panel size")

    matches = sorted([*chosen, critic], key=lambda m: -m.score)
    logger.info("Matched %d experts: %s", len(matches), summarize_matching(matches))
    return matches


def primary_experts(matches: Sequence[ExpertMatch]) -> list[ExpertMatch]:
    return [m for m in matches if m.suggested_role == "primary"]


def secondary_experts(matches: Sequence[ExpertMatch]) -> list[ExpertMatch]:
    return [m for m in matches if m.suggested_role == "secondary"]


def critic_of(matches: Sequence[ExpertMatch]) -> ExpertMatch | None:
    return next((m for m in matches if m.suggested_role == "critic"), None)


def validate_matching(matches: Sequence[ExpertMatch], min_experts: int, max_experts: int) -> list[str]:
    """Problems with a panel, empty when it is sound."""
    problems: list[str] = []
    if not min_experts <= len(matches) <= max_experts:
        problems.append(f"panel size {len(matches)} outside [{min_experts}, {max_experts}]")
    critics = sum(1 for m in matches if m.suggested_role == "critic")
    if critics != 1:
        problems.append(f"expected exactly one critic, found {critics}")
    if not primary_experts(matches):
        problems.append("no primary expert")
    keys = [m.expert.key for m in matches]
    if len(keys) != len(set(keys)):
        problems.append("duplicate experts")
    return problems


def summarize_matching(matches: Sequence[ExpertMatch]) -> str:
    return ", ".join(f"{m.expert.key}={m.score}[{m.suggested_role}]" for m in matches)
