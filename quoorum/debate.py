"""Debate orchestration: analysis, expert matching, sequential persona rounds,
quality moderation and consensus detection."""

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from enum import Enum

from config.config_loader import PromptsConfig
from quoorum.consensus import check_consensus, extract_candidate_options
from quoorum.context_loader import ContextLoader
from quoorum.costs import costs_by_provider, estimate_agent_cost, estimate_tokens
from quoorum.errors import PersonaCallError, QuoorumError, ValidationError
from quoorum.expert_matcher import match_experts
from quoorum.models import (
    ConsensusResult,
    ContextRequest,
    DebateMessage,
    DebateOptions,
    DebateResult,
    DebateRound,
    DebateSession,
    DebateStatus,
    ExpertMatch,
    Generation,
    GenerationSettings,
    ModeratorIntervention,
    Persona,
    QualityAnalysis,
    QuestionAnalysis,
)
from quoorum.moderator import MetaModerator, render_intervention_for
from quoorum.providers.base import AIProvider, ProviderError, ProviderTimeoutError
from quoorum.quality_monitor import analyze_debate_quality, summarize_quality
from quoorum.question_analyzer import MIN_QUESTION_CHARS, QuestionAnalyzer

logger = logging.getLogger(__name__)

_SUMMARY_SENTENCE_CHARS = 160


class DebateState(str, Enum):
    INIT = "init"
    ANALYZE = "analyze"
    MATCH = "match"
    LOAD_CONTEXT = "load_context"
    ROUND = "round"
    CHECK_CONSENSUS = "check_consensus"
    INTERVENE = "intervene"
    COMPLETE = "complete"
    MAX_ROUNDS = "max_rounds"
    FAILED = "failed"
    CANCELLED = "cancelled"


class _Cancelled(Exception):
    """Internal signal: cancellation observed at a checkpoint."""


def _first_sentence(text: str, limit: int = _SUMMARY_SENTENCE_CHARS) -> str:
    flat = " ".join(text.split())
    for end in (". ", "! ", "? "):
        idx = flat.find(end)
        if 0 < idx < limit:
            return flat[: idx + 1]
    return flat if len(flat) <= limit else flat[: limit - 3] + "..."


def format_transcript(
    rounds: Sequence[DebateRound],
    current: Sequence[DebateMessage] = (),
    budget_chars: int = 6000,
) -> str:
    """Render the debate so far for a persona prompt.

    Once the verbatim transcript exceeds budget_chars, every round except the
    latest completed one is reduced to one sentence per message, oldest lines
    dropped first if that is still too long.
    """

    def verbatim(rnd_number: int, messages: Sequence[DebateMessage], label: str = "") -> list[str]:
        lines = [f"[Round {rnd_number}{label}]"]
        lines += [f"{m.agent_name}: {m.content}" for m in messages]
        return lines

    recent_lines: list[str] = []
    if rounds:
        recent_lines += verbatim(rounds[-1].number, rounds[-1].messages)
    if current:
        recent_lines += verbatim(current[0].round_number, current, " (in progress)")

    older = rounds[:-1]
    full = [line for rnd in older for line in verbatim(rnd.number, rnd.messages)] + recent_lines
    text = "\n\n".join(full)
    if len(text) <= budget_chars or not older:
        return text

    summary = [
        f"- R{rnd.number} {m.agent_name}: {_first_sentence(m.content)}" for rnd in older for m in rnd.messages
    ]
    recent = "\n\n".join(recent_lines)
    header = "Summary of earlier rounds:"
    while summary and len(header) + len("\n".join(summary)) + len(recent) + 4 > budget_chars:
        summary.pop(0)
    if not summary:
        return recent
    return header + "\n" + "\n".join(summary) + "\n\n" + recent


def build_persona_prompt(
    template: str,
    persona: Persona,
    question: str,
    context: str,
    transcript: str,
    round_number: int,
    intervention: ModeratorIntervention | None = None,
) -> str:
    """Fill the persona turn template for one call."""
    intervention_text = render_intervention_for(intervention, persona.key) if intervention else None
    return template.format(
        persona=persona.prompt,
        name=persona.name,
        role=persona.title or persona.role,
        question=question,
        context=context or "(no additional context)",
        transcript=transcript or "(no messages yet, you open the debate)",
        intervention=f"\n{intervention_text}\n" if intervention_text else "",
        round=round_number,
    )


class DebateRunner:
    """Runs one debate session end to end.

    A runner owns its session exclusively; create one per debate. Callbacks
    are invoked synchronously from the event loop and must not block.
    """

    def __init__(
        self,
        providers: dict[str, AIProvider],
        roster: Sequence[Persona],
        prompts: PromptsConfig,
        analyzer: QuestionAnalyzer,
        context_loader: ContextLoader,
        *,
        on_message_generated: Callable[[DebateMessage], None] | None = None,
        on_round_complete: Callable[[DebateRound], None] | None = None,
        on_quality_check: Callable[[QualityAnalysis], None] | None = None,
        on_intervention: Callable[[ModeratorIntervention], None] | None = None,
    ) -> None:
        self._providers = providers
        self._roster = list(roster)
        self._prompts = prompts
        self._analyzer = analyzer
        self._context_loader = context_loader
        self._on_message_generated = on_message_generated
        self._on_round_complete = on_round_complete
        self._on_quality_check = on_quality_check
        self._on_intervention = on_intervention
        self._cancel_event = asyncio.Event()
        self._moderator = MetaModerator()
        self.state = DebateState.INIT

    def cancel(self) -> None:
        """Request cooperative cancellation. An in-flight call is allowed to finish."""
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def _enter(self, state: DebateState) -> None:
        logger.debug("Debate state: %s -> %s", self.state.value, state.value)
        self.state = state

    def _checkpoint(self) -> None:
        if self._cancel_event.is_set():
            raise _Cancelled()

    def _validate(self, question: str, options: DebateOptions) -> None:
        if len(question.strip()) < MIN_QUESTION_CHARS:
            raise ValidationError(f"Question must be at least {MIN_QUESTION_CHARS} characters")
        if options.min_experts < 1 or options.min_experts > options.max_experts:
            raise ValidationError(
                f"Invalid expert bounds: min={options.min_experts}, max={options.max_experts}"
            )
        if options.max_rounds < 1:
            raise ValidationError(f"max_rounds must be >= 1, got {options.max_rounds}")
        if not 0.0 < options.consensus_threshold <= 1.0:
            raise ValidationError(f"consensus_threshold must be in (0, 1], got {options.consensus_threshold}")
        if options.max_retries < 0:
            raise ValidationError(f"max_retries must be >= 0, got {options.max_retries}")

    def _active_personas(self, matches: Sequence[ExpertMatch]) -> list[Persona]:
        """Matched personas in roster order, the fixed speaking order."""
        chosen = {m.expert.key for m in matches}
        active = [p for p in self._roster if p.key in chosen]
        missing = sorted({p.provider for p in active if p.provider not in self._providers})
        if missing:
            raise ValidationError(f"No provider available for: {', '.join(missing)}")
        return active

    async def _call_persona(self, persona: Persona, prompt: str, options: DebateOptions) -> Generation:
        """Generate one message, retrying transient failures with exponential backoff.

        Raises:
            PersonaCallError: Non-retryable failure or retry budget exhausted.
        """
        provider = self._providers[persona.provider]
        settings = GenerationSettings(
            provider=persona.provider,
            model=persona.model,
            temperature=persona.temperature,
            max_tokens=persona.max_tokens,
        )
        attempts = options.max_retries + 1
        error: ProviderError | None = None

        for attempt in range(1, attempts + 1):
            try:
                return await asyncio.wait_for(
                    provider.generate(prompt, settings),
                    timeout=options.call_timeout_sec,
                )
            except TimeoutError:
                error = ProviderTimeoutError(provider.name(), f"Call timed out after {options.call_timeout_sec}s")
            except ProviderError as exc:
                error = exc

            if not error.retryable:
                raise PersonaCallError(persona.key, attempt, str(error)) from error
            if attempt < attempts:
                delay = options.retry_backoff_sec * 2 ** (attempt - 1)
                logger.warning(
                    "Persona %s attempt %d/%d failed (%s), retrying in %.1fs",
                    persona.key, attempt, attempts, error, delay,
                )
                await asyncio.sleep(delay)

        raise PersonaCallError(persona.key, attempts, str(error)) from error

    async def _run_round(
        self,
        session: DebateSession,
        active: Sequence[Persona],
        round_number: int,
        options: DebateOptions,
        intervention: ModeratorIntervention | None,
    ) -> DebateRound:
        rnd = DebateRound(number=round_number, complete=False)
        session.rounds.append(rnd)

        for persona in active:
            self._checkpoint()
            transcript = format_transcript(session.rounds[:-1], rnd.messages, options.transcript_char_budget)
            prompt = build_persona_prompt(
                self._prompts.persona_turn,
                persona,
                session.question,
                session.context.combined_context,
                transcript,
                round_number,
                intervention,
            )
            generation = await self._call_persona(persona, prompt, options)

            tokens = generation.tokens_used or estimate_tokens(prompt + generation.text)
            message = DebateMessage(
                agent_key=persona.key,
                agent_name=persona.name,
                content=generation.text.strip(),
                round_number=round_number,
                tokens_used=tokens,
                cost_usd=estimate_agent_cost(persona, tokens),
                provider=persona.provider,
                model=persona.model,
            )
            rnd.messages.append(message)
            session.total_cost_usd += message.cost_usd
            if self._on_message_generated:
                self._on_message_generated(message)

        rnd.complete = True
        logger.info("Round %d complete: %d messages, $%.4f so far", round_number, len(rnd.messages), session.total_cost_usd)
        if self._on_round_complete:
            self._on_round_complete(rnd)
        return rnd

    async def run(
        self,
        session_id: str,
        question: str,
        context: ContextRequest | None = None,
        options: DebateOptions | None = None,
    ) -> DebateResult:
        """Run the debate to a terminal state.

        Never raises: validation, analysis and persona failures produce a
        result with status FAILED and the partial transcript; cancellation
        produces status CANCELLED.
        """
        options = options or DebateOptions()
        context = context or ContextRequest()
        session = DebateSession(session_id=session_id, question=question.strip())
        start = time.monotonic()

        analysis: QuestionAnalysis | None = None
        matches: list[ExpertMatch] = []
        quality: QualityAnalysis | None = None
        consensus: ConsensusResult | None = None
        overhead = 0.0
        status = DebateStatus.FAILED
        error: str | None = None

        try:
            self._enter(DebateState.INIT)
            self._validate(question, options)
            self._checkpoint()

            self._enter(DebateState.ANALYZE)
            analysis = await self._analyzer.analyze(session.question)
            overhead += analysis.cost_usd
            self._checkpoint()

            self._enter(DebateState.MATCH)
            matches = match_experts(analysis, self._roster, options.min_experts, options.max_experts)
            active = self._active_personas(matches)
            logger.info("Panel (speaking order): %s", ", ".join(p.key for p in active))
            self._checkpoint()

            self._enter(DebateState.LOAD_CONTEXT)
            session.context = await self._context_loader.load(session.question, context)
            overhead += session.context.cost_usd

            candidate_options = extract_candidate_options(session.question)
            if candidate_options:
                logger.info("Candidate options: %s", ", ".join(candidate_options))
            min_rounds = min(options.min_rounds, options.max_rounds)
            pending: ModeratorIntervention | None = None

            for round_number in range(1, options.max_rounds + 1):
                self._checkpoint()
                self._enter(DebateState.ROUND)
                await self._run_round(session, active, round_number, options, pending)
                pending = None

                messages = [m for rnd in session.rounds for m in rnd.messages]
                if len(messages) >= options.quality.min_messages_before_analysis:
                    quality = analyze_debate_quality(
                        messages,
                        options.quality,
                        expected_participants=len(active),
                        round_number=round_number,
                    )
                    logger.info("Round %d %s", round_number, summarize_quality(quality))
                    if self._on_quality_check:
                        self._on_quality_check(quality)

                self._enter(DebateState.CHECK_CONSENSUS)
                consensus = check_consensus(
                    messages,
                    round_number,
                    participants=len(active),
                    candidate_options=candidate_options,
                )
                session.consensus_score = consensus.score
                logger.info("Round %d consensus %.2f (%s): %s", round_number, consensus.score, consensus.level, consensus.reasoning)

                if consensus.score >= options.consensus_threshold and round_number >= min_rounds:
                    self._enter(DebateState.COMPLETE)
                    status = DebateStatus.COMPLETED
                    break
                if round_number == options.max_rounds:
                    self._enter(DebateState.MAX_ROUNDS)
                    status = DebateStatus.MAX_ROUNDS
                    break

                if quality is not None:
                    pending = self._moderator.maybe_intervene(quality, round_number, messages)
                    if pending is not None:
                        self._enter(DebateState.INTERVENE)
                        if self._on_intervention:
                            self._on_intervention(pending)

        except _Cancelled:
            self._enter(DebateState.CANCELLED)
            status = DebateStatus.CANCELLED
            logger.info("Debate %s cancelled in round %d", session_id, len(session.rounds))
        except QuoorumError as exc:
            self._enter(DebateState.FAILED)
            status = DebateStatus.FAILED
            error = str(exc)
            logger.error("Debate %s failed: %s", session_id, exc)
        except Exception as exc:
            self._enter(DebateState.FAILED)
            status = DebateStatus.FAILED
            error = f"Unexpected error: {exc}"
            logger.exception("Debate %s failed unexpectedly", session_id)

        if session.rounds and not session.rounds[-1].messages:
            session.rounds.pop()
        session.status = status
        all_messages = [m for rnd in session.rounds for m in rnd.messages]
        return DebateResult(
            session_id=session_id,
            question=session.question,
            rounds=session.rounds,
            final_ranking=consensus.ranking if consensus else [],
            consensus_score=session.consensus_score,
            status=status,
            total_cost_usd=sum(m.cost_usd for m in all_messages),
            total_rounds=sum(1 for rnd in session.rounds if rnd.complete),
            consensus_level=consensus.level if consensus else "weak",
            error=error,
            experts=matches,
            analysis=analysis,
            interventions=list(self._moderator.history),
            quality=quality,
            costs_by_provider=costs_by_provider(all_messages),
            overhead_cost_usd=overhead,
            total_duration_sec=time.monotonic() - start,
        )
