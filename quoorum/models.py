"""Pure dataclasses for the Quoorum debate pipeline. No logic, no deps."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class DebateStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"      # consensus reached after min_rounds
    MAX_ROUNDS = "max_rounds"    # round ceiling hit without consensus
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class Persona:
    key: str
    name: str
    role: str                    # "expert" or "critic"
    prompt: str                  # base instructions for every turn
    provider: str                # key into config.models
    model: str
    temperature: float = 0.7
    max_tokens: int = 1200
    expertise: list[str] = field(default_factory=list)
    topics: list[str] = field(default_factory=list)
    title: str = ""

    @property
    def is_critic(self) -> bool:
        return self.role == "critic"


@dataclass
class GenerationSettings:
    provider: str
    model: str
    temperature: float = 0.7
    max_tokens: int = 1200


@dataclass
class Generation:
    text: str
    tokens_used: int | None      # None when the provider reports no usage
    latency_sec: float = 0.0


@dataclass(frozen=True)
class DebateMessage:
    agent_key: str
    agent_name: str
    content: str
    round_number: int
    tokens_used: int
    cost_usd: float
    provider: str = ""
    model: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class DebateRound:
    number: int
    messages: list[DebateMessage] = field(default_factory=list)
    complete: bool = True        # False only for the last round of a failed/cancelled session


@dataclass
class ContextRequest:
    manual_context: str = ""
    use_internet: bool = False
    use_repo: bool = False
    repo_path: str | None = None


@dataclass
class ContextSource:
    type: str                    # "manual", "internet" or "repo"
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class LoadedContext:
    sources: list[ContextSource] = field(default_factory=list)
    combined_context: str = ""
    synthesized: bool = False
    tokens_used: int = 0
    cost_usd: float = 0.0


@dataclass
class AreaWeight:
    area: str
    weight: float                # 0-100, independent of the other areas
    reasoning: str = ""


@dataclass
class TopicRelevance:
    name: str
    relevance: float             # 0-100


@dataclass
class QuestionAnalysis:
    question: str
    areas: list[AreaWeight]
    topics: list[TopicRelevance]
    complexity: int              # 1-10
    decision_type: str
    recommended_experts: list[str] = field(default_factory=list)
    reasoning: str = ""
    tokens_used: int = 0         # analysis calls, retry included
    cost_usd: float = 0.0


@dataclass
class ExpertMatch:
    expert: Persona
    score: int                   # 0-100
    reasons: list[str] = field(default_factory=list)
    suggested_role: str = "secondary"   # "primary", "secondary" or "critic"


@dataclass
class QualityIssue:
    type: str                    # shallow, repetitive, premature_consensus, lack_of_diversity, superficial
    severity: int                # 1-10
    description: str
    affected_messages: list[int] = field(default_factory=list)


@dataclass
class QualityAnalysis:
    overall_quality: int
    depth_score: int
    diversity_score: int
    originality_score: int
    issues: list[QualityIssue] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    needs_moderation: bool = False


@dataclass
class MonitoringOptions:
    min_quality_threshold: int = 60
    min_messages_before_analysis: int = 3
    strict_repetition_detection: bool = True


@dataclass
class ModeratorIntervention:
    type: str
    prompt: str
    reason: str
    severity: int
    target_agents: list[str] | None = None   # None broadcasts to every persona
    round_number: int = 0                    # round the intervention applies to


@dataclass
class RankedOption:
    option: str
    score: float                 # 0-100
    confidence: float            # 0-1
    reasoning: str = ""
    supporters: list[str] = field(default_factory=list)


@dataclass
class ConsensusResult:
    score: float                 # 0-1
    level: str                   # weak, moderate, strong, very_strong
    reasoning: str
    ranking: list[RankedOption] = field(default_factory=list)


@dataclass
class DebateOptions:
    min_experts: int = 5
    max_experts: int = 7
    max_rounds: int = 10
    min_rounds: int = 3
    consensus_threshold: float = 0.7
    max_retries: int = 2
    retry_backoff_sec: float = 1.0
    call_timeout_sec: float = 60.0
    transcript_char_budget: int = 6000
    context_synthesis_threshold: int = 2000
    quality: MonitoringOptions = field(default_factory=MonitoringOptions)


@dataclass
class DebateSession:
    session_id: str
    question: str
    context: LoadedContext = field(default_factory=LoadedContext)
    rounds: list[DebateRound] = field(default_factory=list)
    status: DebateStatus = DebateStatus.RUNNING
    consensus_score: float = 0.0
    total_cost_usd: float = 0.0


@dataclass
class DebateResult:
    session_id: str
    question: str
    rounds: list[DebateRound]
    final_ranking: list[RankedOption]
    consensus_score: float
    status: DebateStatus
    total_cost_usd: float        # sum of per-message costs
    total_rounds: int
    consensus_level: str = "weak"
    error: str | None = None
    experts: list[ExpertMatch] = field(default_factory=list)
    analysis: QuestionAnalysis | None = None
    interventions: list[ModeratorIntervention] = field(default_factory=list)
    quality: QualityAnalysis | None = None
    costs_by_provider: dict[str, float] = field(default_factory=dict)
    overhead_cost_usd: float = 0.0   # analysis, context and synthesis calls
    synthesis: str = ""
    synthesizer: str = ""
    total_duration_sec: float = 0.0
