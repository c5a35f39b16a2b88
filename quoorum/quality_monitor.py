"""Lexical quality scoring of a debate transcript.

Scores depth (argument substance), diversity (participants and perspectives)
and originality (concept repetition). Pure and deterministic: the same
transcript always yields the same analysis, and nothing here raises.
"""

import logging
import re
from collections.abc import Sequence

from quoorum.models import DebateMessage, MonitoringOptions, QualityAnalysis, QualityIssue

logger = logging.getLogger(__name__)

SHALLOW_DEPTH = 30
SHALLOW_RATIO = 0.4
LOW_DIVERSITY = 50
CONCEPT_OVERLAP = 0.7
REPETITION_RATIO_STRICT = 0.3
REPETITION_RATIO_LENIENT = 0.5
PREMATURE_CONSENSUS_ROUND = 3
PREMATURE_CONSENSUS_WINDOW = 4

# Depth markers, English and Spanish.
_QUANTITATIVE = re.compile(r"\d+(?:[.,]\d+)?\s?(?:%|\$|€|x\b)|[$€]\s?\d+", re.IGNORECASE)
_COMPARATIVE = re.compile(
    r"\b(?:versus|vs\.?|compared (?:to|with)|in contrast|on the other hand|"
    r"comparado con|en contraste|por otro lado)\b",
    re.IGNORECASE,
)
_CAUSAL = re.compile(
    r"\b(?:because|due to|therefore|this means|implies|results in|"
    r"porque|debido a|por lo tanto|esto significa|implica|resulta en)\b",
    re.IGNORECASE,
)
_EXAMPLE = re.compile(
    r"\b(?:for example|for instance|such as|specifically|in the case of|e\.g\.|"
    r"por ejemplo|tal como|específicamente|en el caso de)",
    re.IGNORECASE,
)

_PERSPECTIVES: dict[str, tuple[str, ...]] = {
    "risk": ("risk", "problem", "threat", "downside", "riesgo", "problema", "amenaza"),
    "opportunity": ("opportunit", "benefit", "upside", "oportunidad", "beneficio"),
    "data": ("data", "evidence", "metric", "benchmark", "dato", "evidencia", "métrica"),
    "customer": ("customer", "user", "client", "cliente", "usuario"),
}

_AGREEMENT = re.compile(
    r"\b(?:i agree|agreed|exactly|correct|i concur|i support|"
    r"de acuerdo|correcto|exacto|coincido|apoyo)\b",
    re.IGNORECASE,
)

_PUNCTUATION = re.compile(r"[.,;:!?()\"'¿¡]")

_STOPWORDS = frozenset(
    {
        # English
        "that", "this", "with", "from", "have", "will", "would", "should", "could",
        "about", "there", "their", "they", "them", "what", "which", "when", "where",
        "were", "been", "than", "then", "into", "also", "more", "most", "some",
        "such", "only", "very", "just", "because", "these", "those", "your", "ours",
        # Spanish
        "para", "como", "pero", "porque", "cuando", "donde", "este", "esta", "esto",
        "estos", "estas", "tiene", "tienen", "puede", "pueden", "debe", "deben",
        "sobre", "entre", "desde", "hasta", "también", "muy", "más", "menos",
    }
)

_ISSUE_RECOMMENDATIONS: dict[str, str] = {
    "shallow": "Ask for concrete data, comparisons and causal reasoning behind each claim.",
    "repetitive": "Steer the panel toward alternatives that have not been discussed yet.",
    "lack_of_diversity": "Bring in risk, opportunity, data and customer-impact perspectives.",
    "premature_consensus": "Challenge the emerging agreement before it settles.",
    "superficial": "Request evidence and precedents for the main claims.",
}


def message_depth(content: str) -> int:
    """Depth of one message, 0-100."""
    words = len(content.split())
    score = min(30, words // 5)
    if _QUANTITATIVE.search(content):
        score += 15
    if _COMPARATIVE.search(content):
        score += 15
    if _CAUSAL.search(content):
        score += 20
    if _EXAMPLE.search(content):
        score += 20
    return min(100, score)


def key_concepts(content: str) -> set[str]:
    """Lowercased, punctuation-free tokens longer than 3 chars, minus stopwords."""
    cleaned = _PUNCTUATION.sub(" ", content.lower())
    return {w for w in cleaned.split() if len(w) > 3 and w not in _STOPWORDS}


def _analyze_depth(messages: Sequence[DebateMessage]) -> tuple[int, list[int]]:
    depths = [message_depth(m.content) for m in messages]
    shallow = [i for i, d in enumerate(depths) if d < SHALLOW_DEPTH]
    return round(sum(depths) / len(depths)), shallow


def _analyze_diversity(messages: Sequence[DebateMessage], expected_participants: int) -> int:
    agents = {m.agent_key for m in messages}
    agent_fraction = min(1.0, len(agents) / max(1, expected_participants))

    text = " ".join(m.content.lower() for m in messages)
    found = sum(1 for words in _PERSPECTIVES.values() if any(w in text for w in words))
    perspective_fraction = found / len(_PERSPECTIVES)

    return round((agent_fraction + perspective_fraction) / 2 * 100)


def _analyze_originality(messages: Sequence[DebateMessage]) -> tuple[int, list[int]]:
    seen: set[str] = set()
    repetitive: list[int] = []
    for i, msg in enumerate(messages):
        concepts = key_concepts(msg.content)
        if concepts and len(concepts & seen) / len(concepts) > CONCEPT_OVERLAP:
            repetitive.append(i)
        seen |= concepts
    ratio = len(repetitive) / len(messages)
    return round(100 - ratio * 100), repetitive


def detect_premature_consensus(messages: Sequence[DebateMessage], round_number: int) -> bool:
    """True when every recent message agrees before the debate had time to argue."""
    if round_number >= PREMATURE_CONSENSUS_ROUND or not messages:
        return False
    recent = messages[-PREMATURE_CONSENSUS_WINDOW:]
    return all(_AGREEMENT.search(m.content) for m in recent)


def _recommendations(issues: list[QualityIssue], overall: int, threshold: int) -> list[str]:
    recs: list[str] = []
    for issue in issues:
        rec = _ISSUE_RECOMMENDATIONS.get(issue.type)
        if rec and rec not in recs:
            recs.append(rec)
    if overall < threshold:
        recs.append("Overall quality is low: ask each expert for one specific, falsifiable claim.")
    return recs


def analyze_debate_quality(
    messages: Sequence[DebateMessage],
    options: MonitoringOptions | None = None,
    *,
    expected_participants: int = 4,
    round_number: int | None = None,
) -> QualityAnalysis:
    """Score a transcript and list the issues that call for moderation.

    Args:
        messages: Transcript so far, in order.
        options: Thresholds; defaults to MonitoringOptions().
        expected_participants: Size of the active panel.
        round_number: When given, also checks for premature consensus.
    """
    options = options or MonitoringOptions()

    if len(messages) < options.min_messages_before_analysis:
        return QualityAnalysis(
            overall_quality=100,
            depth_score=100,
            diversity_score=100,
            originality_score=100,
        )

    depth, shallow = _analyze_depth(messages)
    diversity = _analyze_diversity(messages, expected_participants)
    originality, repetitive = _analyze_originality(messages)

    issues: list[QualityIssue] = []

    if len(shallow) / len(messages) > SHALLOW_RATIO:
        issues.append(
            QualityIssue(
                type="shallow",
                severity=8,
                description=f"{len(shallow)} of {len(messages)} messages lack data, examples or reasoning",
                affected_messages=shallow,
            )
        )

    repetition_limit = REPETITION_RATIO_STRICT if options.strict_repetition_detection else REPETITION_RATIO_LENIENT
    if len(repetitive) / len(messages) > repetition_limit:
        issues.append(
            QualityIssue(
                type="repetitive",
                severity=6,
                description=f"{len(repetitive)} messages mostly restate earlier concepts",
                affected_messages=repetitive,
            )
        )

    if diversity < LOW_DIVERSITY:
        issues.append(
            QualityIssue(
                type="lack_of_diversity",
                severity=7,
                description="Few participants or perspectives are represented",
            )
        )

    if round_number is not None and detect_premature_consensus(messages, round_number):
        window = min(PREMATURE_CONSENSUS_WINDOW, len(messages))
        issues.append(
            QualityIssue(
                type="premature_consensus",
                severity=7,
                description=f"Everyone agrees already in round {round_number}",
                affected_messages=list(range(len(messages) - window, len(messages))),
            )
        )

    overall = round((depth + diversity + originality) / 3)
    needs_moderation = overall < options.min_quality_threshold or any(i.severity >= 7 for i in issues)

    return QualityAnalysis(
        overall_quality=overall,
        depth_score=depth,
        diversity_score=diversity,
        originality_score=originality,
        issues=issues,
        recommendations=_recommendations(issues, overall, options.min_quality_threshold),
        needs_moderation=needs_moderation,
    )


def summarize_quality(analysis: QualityAnalysis) -> str:
    issues = ", ".join(f"{i.type}({i.severity})" for i in analysis.issues) or "none"
    return (
        f"quality={analysis.overall_quality} depth={analysis.depth_score} "
        f"diversity={analysis.diversity_score} originality={analysis.originality_score} "
        f"issues={issues} moderate={'yes' if analysis.needs_moderation else 'no'}"
    )
