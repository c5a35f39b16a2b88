"""Consensus detection and option ranking over the debate transcript.

Pure functions. Combines explicit agreement language with convergence of the
personas' preferred options; never raises on odd input.
"""

import logging
import re
from collections import Counter
from collections.abc import Sequence

from quoorum.models import ConsensusResult, DebateMessage, RankedOption

logger = logging.getLogger(__name__)

# Negated phrases ("not exactly", "no apoyo") do not count as agreement
_AGREEMENT = re.compile(
    r"(?<!\bnot )(?<!\bno )\b(?:i agree|agreed|we agree|exactly|i concur|i support|"
    r"de acuerdo|coincido|exacto|correcto|apoyo|comparto)\b",
    re.IGNORECASE,
)
_DISAGREEMENT = re.compile(
    r"\b(?:disagree|i don't agree|i do not agree|not convinced|i object|"
    r"no estoy de acuerdo|en desacuerdo|discrepo|no coincido)\b",
    re.IGNORECASE,
)
_PREFERENCE = re.compile(
    r"\b(?:recommend|prefer|go with|choose|best option|i'd pick|i would pick|"
    r"recomiendo|prefiero|elegir[ií]a|apuesto por|la mejor opci[oó]n)",
    re.IGNORECASE,
)
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+|\n+")

_AMOUNT = re.compile(
    r"[$€£]\s?\d+(?:[.,]\d+)?|\d+(?:[.,]\d+)?\s?(?:€|\$|£|%|euros?\b|dollars?\b)",
    re.IGNORECASE,
)
_NUMBER = re.compile(r"\d+(?:[.,]\d+)?")
_ALTERNATIVE = re.compile(r"\s+(?:or|o|vs\.?|versus)\s+", re.IGNORECASE)

# (upper bound, level), checked in order
_LEVELS: tuple[tuple[float, str], ...] = (
    (0.5, "weak"),
    (0.7, "moderate"),
    (0.85, "strong"),
)


def consensus_level(score: float) -> str:
    for upper, level in _LEVELS:
        if score < upper:
            return level
    return "very_strong"


def extract_candidate_options(question: str) -> list[str]:
    """Options the question asks the panel to choose between.

    Prices or percentages win when the question names two or more; otherwise
    an "A, B or C" / "A vs B" split is attempted. Returns [] when neither fits.
    """
    amounts: list[str] = []
    for match in _AMOUNT.finditer(question):
        amount = re.sub(r"\s+", "", match.group(0))
        if amount not in amounts:
            amounts.append(amount)
    if len(amounts) >= 2:
        return amounts

    text = question.strip().lstrip("¿¡").rstrip("?!. ")
    separators = list(_ALTERNATIVE.finditer(text))
    if not separators:
        return []
    last = separators[-1]
    left, right = text[: last.start()], text[last.end():].strip()
    if not right:
        return []

    chunks = left.split(",")
    width = len(right.split())
    head_words = chunks[0].split()
    options = [" ".join(head_words[-width:])] + [c.strip() for c in chunks[1:]] + [right]

    result: list[str] = []
    for opt in options:
        if opt and opt not in result:
            result.append(opt)
    return result if len(result) >= 2 else []


def _option_pattern(option: str) -> re.Pattern[str]:
    if _AMOUNT.fullmatch(option):
        number = _NUMBER.search(option)
        if number:
            return re.compile(r"(?<![\d.,])" + re.escape(number.group(0)) + r"(?!\d)")
    return re.compile(r"(?<!\w)" + re.escape(option) + r"(?!\w)", re.IGNORECASE)


def _mention_counts(content: str, patterns: dict[str, re.Pattern[str]]) -> dict[str, float]:
    counts = {opt: 0.0 for opt in patterns}
    for sentence in _SENTENCE_SPLIT.split(content):
        weight = 2.0 if _PREFERENCE.search(sentence) else 1.0
        for opt, pattern in patterns.items():
            counts[opt] += weight * len(pattern.findall(sentence))
    return counts


def preferred_option(content: str, candidate_options: Sequence[str]) -> str | None:
    """Option the message argues for: most (preference-weighted) mentions, earliest on ties."""
    if not candidate_options:
        return None
    patterns = {opt: _option_pattern(opt) for opt in candidate_options}
    counts = _mention_counts(content, patterns)
    best = max(counts.values(), default=0.0)
    if best <= 0:
        return None

    def first_position(opt: str) -> int:
        m = patterns[opt].search(content)
        return m.start() if m else len(content)

    tied = [opt for opt, c in counts.items() if c == best]
    return min(tied, key=first_position)


def _window(messages: Sequence[DebateMessage], participants: int | None) -> list[DebateMessage]:
    if participants:
        return list(messages[-participants:])
    latest = messages[-1].round_number
    return [m for m in messages if m.round_number == latest]


def rank_options(
    messages: Sequence[DebateMessage],
    candidate_options: Sequence[str],
    participants: int | None = None,
) -> list[RankedOption]:
    """Rank candidate options by latest-round votes blended with overall mentions."""
    if not messages or not candidate_options:
        return []

    window = _window(messages, participants)
    patterns = {opt: _option_pattern(opt) for opt in candidate_options}

    supporters: dict[str, list[str]] = {opt: [] for opt in candidate_options}
    for msg in window:
        pick = preferred_option(msg.content, candidate_options)
        if pick is not None and msg.agent_key not in supporters[pick]:
            supporters[pick].append(msg.agent_key)

    mentions: Counter[str] = Counter()
    for msg in messages:
        for opt, pattern in patterns.items():
            mentions[opt] += len(pattern.findall(msg.content))
    total_mentions = sum(mentions.values())

    ranked: list[RankedOption] = []
    for opt in candidate_options:
        vote_share = len(supporters[opt]) / len(window)
        mention_share = mentions[opt] / total_mentions if total_mentions else 0.0
        ranked.append(
            RankedOption(
                option=opt,
                score=round(100 * (0.7 * vote_share + 0.3 * mention_share), 1),
                confidence=round(vote_share, 2),
                reasoning=(
                    f"Preferred by {len(supporters[opt])} of {len(window)} experts in the "
                    f"latest round; mentioned {mentions[opt]} times overall"
                ),
                supporters=supporters[opt],
            )
        )
    # sorted() is stable: ties keep the question's order
    return sorted(ranked, key=lambda r: -r.score)


def check_consensus(
    messages: Sequence[DebateMessage],
    round_number: int,
    *,
    participants: int | None = None,
    candidate_options: Sequence[str] = (),
) -> ConsensusResult:
    """Score agreement in the latest round.

    Args:
        messages: Full transcript.
        round_number: Round just completed (used for reporting).
        participants: Active panel size; the window is the last N messages.
            Defaults to the messages of the latest round.
        candidate_options: Options extracted from the question, if any.
    """
    if not messages:
        return ConsensusResult(score=0.0, level="weak", reasoning="No messages yet")

    window = _window(messages, participants)

    agreeing = disagreeing = 0
    for msg in window:
        if _DISAGREEMENT.search(msg.content):
            disagreeing += 1
        elif _AGREEMENT.search(msg.content):
            agreeing += 1
    agreement = min(1.0, max(0.0, (agreeing - disagreeing) / len(window)))

    ranking = rank_options(messages, candidate_options, participants)

    if ranking:
        picks = [preferred_option(m.content, candidate_options) for m in window]
        votes = Counter(p for p in picks if p is not None)
        convergence = max(votes.values(), default=0) / len(window)
        score = 0.5 * agreement + 0.5 * convergence
        reasoning = (
            f"Round {round_number}: {agreeing} agreeing, {disagreeing} disagreeing of "
            f"{len(window)}; {convergence:.0%} converge on '{ranking[0].option}'"
        )
    else:
        score = agreement
        reasoning = (
            f"Round {round_number}: {agreeing} agreeing, {disagreeing} disagreeing of "
            f"{len(window)}; no explicit options to converge on"
        )

    score = min(1.0, max(0.0, score))
    return ConsensusResult(score=score, level=consensus_level(score), reasoning=reasoning, ranking=ranking)
