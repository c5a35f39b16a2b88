"""Final synthesis: build transcript, call synthesizer, return DebateResult."""

import dataclasses
import logging

from config.config_loader import PromptsConfig
from quoorum.costs import estimate_call_cost, estimate_tokens
from quoorum.models import DebateResult, DebateRound, GenerationSettings, RankedOption
from quoorum.providers.base import AIProvider

logger = logging.getLogger(__name__)


def _format_full_transcript(rounds: list[DebateRound]) -> str:
    """Format all rounds into a single transcript string for synthesis."""
    parts: list[str] = []
    for rnd in rounds:
        parts.append(f"### Round {rnd.number}")
        for msg in rnd.messages:
            parts.append(f"**{msg.agent_name}**\n{msg.content}")
        parts.append("")  # blank line between rounds
    return "\n\n".join(parts)


def _format_ranking(ranking: list[RankedOption]) -> str:
    if not ranking:
        return "(no explicit options were ranked)"
    return "\n".join(
        f"{i}. {r.option}: score {r.score:.0f}/100, confidence {r.confidence:.0%}"
        for i, r in enumerate(ranking, start=1)
    )


async def synthesize(
    result: DebateResult,
    synthesizer: AIProvider,
    settings: GenerationSettings,
    prompts: PromptsConfig,
) -> DebateResult:
    """Run synthesis and return a copy of the result carrying it.

    The synthesis call is accounted as overhead; total_cost_usd stays the
    sum of the debate messages.

    Raises:
        ProviderError: If synthesizer call fails.
        RuntimeError: If synthesizer returns empty content.
    """
    synthesis_prompt = prompts.synthesis.format(
        rounds=result.total_rounds,
        question=result.question,
        ranking=_format_ranking(result.final_ranking),
        full_transcript=_format_full_transcript(result.rounds),
    )

    logger.info("Running synthesis via %s", synthesizer.name())

    generation = await synthesizer.generate(synthesis_prompt, settings)

    if not generation.text.strip():
        raise RuntimeError(f"Synthesizer {synthesizer.name()} returned empty content")

    tokens = generation.tokens_used or estimate_tokens(synthesis_prompt + generation.text)
    return dataclasses.replace(
        result,
        synthesis=generation.text.strip(),
        synthesizer=synthesizer.name(),
        overhead_cost_usd=result.overhead_cost_usd + estimate_call_cost(settings.provider, tokens),
    )
