"""Meta-moderation: turn quality issues into interventions for the next round."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from quoorum.models import DebateMessage, ModeratorIntervention, QualityAnalysis, QualityIssue

logger = logging.getLogger(__name__)

EFFECTIVE_OVERALL_GAIN = 10
EFFECTIVE_SUBSCORE_GAIN = 15


@dataclass(frozen=True)
class _Template:
    type: str
    title: str
    instructions: tuple[str, ...]


_TEMPLATES: dict[str, _Template] = {
    "challenge_depth": _Template(
        "challenge_depth",
        "The debate is too superficial.",
        (
            "Back every claim with a concrete number, benchmark or data point.",
            "Compare at least two options explicitly (X versus Y).",
            "Explain the cause and effect behind your recommendation.",
            "Give one real example or precedent from a comparable company.",
            "Drop generic statements that would apply to any business.",
        ),
    ),
    "explore_alternatives": _Template(
        "explore_alternatives",
        "The panel keeps repeating the same ideas.",
        (
            "Propose an option nobody has mentioned yet.",
            "Argue for the strongest version of a position you rejected.",
            "Describe what would have to be true for the current favourite to fail.",
            "Consider a radically cheaper or radically more ambitious path.",
            "Do not restate earlier arguments, build on them or discard them.",
        ),
    ),
    "diversify_perspectives": _Template(
        "diversify_perspectives",
        "Important perspectives are missing.",
        (
            "Address the main risk of your recommendation.",
            "Name the biggest opportunity it opens.",
            "Cite the data or evidence that supports it.",
            "Explain the impact on customers and users.",
            "Speak from your own expertise, not the panel's average view.",
        ),
    ),
    "prevent_premature_consensus": _Template(
        "prevent_premature_consensus",
        "The panel is agreeing too early.",
        (
            "State the strongest objection to the emerging consensus.",
            "Identify the assumption everyone is taking for granted.",
            "Describe a scenario in which the agreed option is the wrong choice.",
            "Say what evidence would change your mind.",
            "Only agree again if the objections have been answered.",
        ),
    ),
    "request_evidence": _Template(
        "request_evidence",
        "Claims are being made without support.",
        (
            "Cite a source, dataset or precedent for each key claim.",
            "Quantify the expected impact with a range.",
            "Separate facts from assumptions explicitly.",
            "Flag any claim you cannot support as a hypothesis.",
            "Propose how the hypothesis could be tested cheaply.",
        ),
    ),
    "challenge_assumptions": _Template(
        "challenge_assumptions",
        "Time to stress-test the reasoning.",
        (
            "List the two assumptions your position depends on most.",
            "Challenge one assumption made by another expert.",
            "Consider what a skeptical investor would ask.",
            "Describe the worst realistic outcome of your recommendation.",
            "Adjust your position if an assumption does not hold.",
        ),
    ),
}

_ISSUE_TO_TEMPLATE: dict[str, str] = {
    "shallow": "challenge_depth",
    "repetitive": "explore_alternatives",
    "lack_of_diversity": "diversify_perspectives",
    "premature_consensus": "prevent_premature_consensus",
    "superficial": "request_evidence",
}

# Issue types whose affected messages identify who should be addressed.
_TARGETABLE_ISSUES = {"shallow", "repetitive"}


def should_intervene(quality: QualityAnalysis) -> bool:
    return quality.needs_moderation


def intervention_frequency(quality: QualityAnalysis) -> int:
    """Minimum number of rounds between two interventions."""
    if quality.overall_quality >= 80:
        return 5
    if quality.overall_quality >= 60:
        return 3
    return 2


def _render(template: _Template, reason: str) -> str:
    lines = [f"MODERATOR: {template.title} {reason}".strip(), "In your next message you must:"]
    lines += [f"{n}. {text}" for n, text in enumerate(template.instructions, start=1)]
    return "\n".join(lines)


def _targets(issue: QualityIssue, messages: Sequence[DebateMessage] | None) -> list[str] | None:
    if not messages or issue.type not in _TARGETABLE_ISSUES or not issue.affected_messages:
        return None
    targets: list[str] = []
    for idx in issue.affected_messages:
        if 0 <= idx < len(messages) and messages[idx].agent_key not in targets:
            targets.append(messages[idx].agent_key)
    participants = {m.agent_key for m in messages}
    if not targets or set(targets) == participants:
        return None
    return targets


def _from_issue(
    issue: QualityIssue,
    messages: Sequence[DebateMessage] | None,
    round_number: int,
) -> ModeratorIntervention:
    template = _TEMPLATES[_ISSUE_TO_TEMPLATE.get(issue.type, "challenge_assumptions")]
    return ModeratorIntervention(
        type=template.type,
        prompt=_render(template, issue.description),
        reason=issue.description,
        severity=issue.severity,
        target_agents=_targets(issue, messages),
        round_number=round_number,
    )


def generate_intervention(
    quality: QualityAnalysis,
    messages: Sequence[DebateMessage] | None = None,
    round_number: int = 0,
) -> ModeratorIntervention:
    """Build the intervention for the most severe issue.

    With no issues recorded, falls back to a generic assumptions challenge.
    """
    if not quality.issues:
        template = _TEMPLATES["challenge_assumptions"]
        reason = f"Overall quality {quality.overall_quality}/100"
        return ModeratorIntervention(
            type=template.type,
            prompt=_render(template, reason),
            reason=reason,
            severity=5,
            round_number=round_number,
        )

    # max() keeps the first of equally severe issues
    worst = max(quality.issues, key=lambda i: i.severity)
    return _from_issue(worst, messages, round_number)


def generate_multiple_interventions(
    quality: QualityAnalysis,
    messages: Sequence[DebateMessage] | None = None,
    round_number: int = 0,
    max_interventions: int = 2,
) -> list[ModeratorIntervention]:
    """One intervention per severe (>=7) issue, most severe first."""
    severe = sorted((i for i in quality.issues if i.severity >= 7), key=lambda i: -i.severity)
    return [_from_issue(i, messages, round_number) for i in severe[:max_interventions]]


def render_intervention_for(intervention: ModeratorIntervention, agent_key: str) -> str | None:
    """Text a given persona should see, or None when it is not addressed."""
    if intervention.target_agents is None:
        return intervention.prompt
    if agent_key not in intervention.target_agents:
        return None
    return f"{intervention.prompt}\n[Directed specifically at: {agent_key}]"


def was_intervention_effective(before: QualityAnalysis, after: QualityAnalysis) -> bool:
    """Offline check: did quality improve enough after an intervention?"""
    if after.overall_quality - before.overall_quality >= EFFECTIVE_OVERALL_GAIN:
        return True
    gains = (
        after.depth_score - before.depth_score,
        after.diversity_score - before.diversity_score,
        after.originality_score - before.originality_score,
    )
    return any(g >= EFFECTIVE_SUBSCORE_GAIN for g in gains)


def summarize_intervention(intervention: ModeratorIntervention) -> str:
    audience = ", ".join(intervention.target_agents) if intervention.target_agents else "all"
    return (
        f"{intervention.type} (severity {intervention.severity}) for round "
        f"{intervention.round_number} -> {audience}: {intervention.reason}"
    )


class MetaModerator:
    """Per-session moderator state: remembers when it last intervened."""

    def __init__(self) -> None:
        self.last_intervention_round: int | None = None
        self.history: list[ModeratorIntervention] = []

    def gate_allows(self, quality: QualityAnalysis, round_number: int) -> bool:
        if self.last_intervention_round is None:
            return True
        return round_number - self.last_intervention_round >= intervention_frequency(quality)

    def maybe_intervene(
        self,
        quality: QualityAnalysis,
        round_number: int,
        messages: Sequence[DebateMessage] | None = None,
    ) -> ModeratorIntervention | None:
        """Intervention for the round after `round_number`, or None."""
        if not should_intervene(quality):
            return None
        if not self.gate_allows(quality, round_number):
            logger.debug(
                "Intervention suppressed after round %d (last at %s, every %d)",
                round_number,
                self.last_intervention_round,
                intervention_frequency(quality),
            )
            return None

        intervention = generate_intervention(quality, messages, round_number=round_number + 1)
        self.last_intervention_round = round_number
        self.history.append(intervention)
        logger.info("Moderator: %s", summarize_intervention(intervention))
        return intervention
