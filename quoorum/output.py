"""Rich console output, markdown transcript and JSON persistence for debate results."""

import dataclasses
import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from quoorum.models import (
    AreaWeight,
    DebateMessage,
    DebateResult,
    DebateRound,
    DebateStatus,
    ExpertMatch,
    ModeratorIntervention,
    Persona,
    QualityAnalysis,
    QualityIssue,
    QuestionAnalysis,
    RankedOption,
    TopicRelevance,
)

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_STATUS_STYLES = {
    DebateStatus.COMPLETED: "bold green",
    DebateStatus.MAX_ROUNDS: "bold yellow",
    DebateStatus.FAILED: "bold red",
    DebateStatus.CANCELLED: "bold magenta",
    DebateStatus.RUNNING: "bold",
}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _message_preview(message: DebateMessage, words: int = 50) -> str:
    """Return first N words of a message."""
    all_words = message.content.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def print_round_summary(rnd: DebateRound) -> None:
    """Print a brief summary of round messages to the console."""
    console.print(Rule(f"[bold cyan]Round {rnd.number} Summary[/bold cyan]"))
    for msg in rnd.messages:
        console.print(
            Panel(
                _message_preview(msg),
                title=f"[bold]{msg.agent_name}[/bold] ({msg.model})",
                subtitle=f"{msg.tokens_used} tok, ${msg.cost_usd:.4f}",
                border_style="dim",
            )
        )


def print_intervention(intervention: ModeratorIntervention) -> None:
    audience = ", ".join(intervention.target_agents) if intervention.target_agents else "all experts"
    console.print(
        Panel(
            intervention.prompt,
            title=f"[bold yellow]Moderator: {intervention.type}[/bold yellow]",
            subtitle=f"round {intervention.round_number}, to {audience}",
            border_style="yellow",
        )
    )


def print_result(result: DebateResult) -> None:
    """Print status, ranking and synthesis of a finished debate."""
    console.print(Rule("[bold green]Debate Outcome[/bold green]"))
    console.print(
        Text(
            f"Status: {result.status.value} | Rounds: {result.total_rounds} | "
            f"Consensus: {result.consensus_score:.2f} ({result.consensus_level}) | "
            f"Cost: ${result.total_cost_usd + result.overhead_cost_usd:.4f} | "
            f"Duration: {result.total_duration_sec:.1f}s",
            style=_STATUS_STYLES.get(result.status, "bold"),
        )
    )
    if result.error:
        console.print(f"[bold red]Error:[/bold red] {result.error}")

    if result.final_ranking:
        table = Table(title="Ranking")
        table.add_column("#", justify="right")
        table.add_column("Option")
        table.add_column("Score", justify="right")
        table.add_column("Confidence", justify="right")
        table.add_column("Supporters")
        for i, opt in enumerate(result.final_ranking, start=1):
            table.add_row(str(i), opt.option, f"{opt.score:.0f}", f"{opt.confidence:.0%}", ", ".join(opt.supporters))
        console.print(table)

    if result.synthesis:
        console.print(Rule(f"[bold green]Synthesis by {result.synthesizer}[/bold green]"))
        console.print(Markdown(result.synthesis))


def render_markdown(result: DebateResult) -> str:
    lines: list[str] = [
        f"# Quoorum Debate: {result.question[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Session:** {result.session_id}",
        f"**Status:** {result.status.value}",
        f"**Rounds:** {result.total_rounds}",
        f"**Consensus:** {result.consensus_score:.2f} ({result.consensus_level})",
        f"**Debate cost:** ${result.total_cost_usd:.4f} (+ ${result.overhead_cost_usd:.4f} overhead)",
        f"**Duration:** {result.total_duration_sec:.1f}s",
    ]
    if result.error:
        lines.append(f"**Error:** {result.error}")
    lines += ["", "---", ""]

    if result.experts:
        lines += ["## Panel", "", "| Expert | Role | Score | Why |", "|---|---|---|---|"]
        for m in result.experts:
            lines.append(f"| {m.expert.name} | {m.suggested_role} | {m.score} | {'; '.join(m.reasons)} |")
        lines.append("")

    if result.final_ranking:
        lines += ["## Ranking", ""]
        for i, opt in enumerate(result.final_ranking, start=1):
            lines.append(f"{i}. **{opt.option}**: {opt.score:.0f}/100, confidence {opt.confidence:.0%}. {opt.reasoning}")
        lines.append("")

    interventions_by_round: dict[int, list[ModeratorIntervention]] = {}
    for iv in result.interventions:
        interventions_by_round.setdefault(iv.round_number, []).append(iv)

    for rnd in result.rounds:
        lines.append(f"## Round {rnd.number}" + ("" if rnd.complete else " (incomplete)"))
        lines.append("")
        for iv in interventions_by_round.get(rnd.number, []):
            lines += [f"> **Moderator ({iv.type}):** {iv.reason}", ""]
        for msg in rnd.messages:
            lines += [
                f"### {msg.agent_name} ({msg.model})",
                "",
                msg.content,
                "",
                f"*Tokens: {msg.tokens_used} | Cost: ${msg.cost_usd:.4f}*",
                "",
            ]

    if result.synthesis:
        lines += [f"## Synthesis (by {result.synthesizer})", "", result.synthesis, ""]

    return "\n".join(lines)


def save_to_file(result: DebateResult, output_dir: Path, slug_override: str | None = None) -> Path:
    """Save the full debate transcript as a markdown file.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(result.question)
    filepath = output_dir / f"{timestamp}_{slug}.md"
    filepath.write_text(render_markdown(result), encoding="utf-8")
    logger.info("Debate saved to: %s", filepath)
    return filepath


def result_to_dict(result: DebateResult) -> dict[str, Any]:
    """JSON-safe dict of a result (datetimes as ISO strings, enums as values)."""
    data = dataclasses.asdict(result)
    data["status"] = result.status.value
    for rnd in data["rounds"]:
        for msg in rnd["messages"]:
            msg["timestamp"] = msg["timestamp"].isoformat()
    return data


def result_from_dict(data: dict[str, Any]) -> DebateResult:
    """Inverse of result_to_dict."""
    rounds = [
        DebateRound(
            number=r["number"],
            messages=[
                DebateMessage(**{**m, "timestamp": datetime.fromisoformat(m["timestamp"])})
                for m in r["messages"]
            ],
            complete=r.get("complete", True),
        )
        for r in data["rounds"]
    ]

    analysis = None
    if data.get("analysis"):
        a = data["analysis"]
        analysis = QuestionAnalysis(
            **{
                **a,
                "areas": [AreaWeight(**x) for x in a["areas"]],
                "topics": [TopicRelevance(**x) for x in a["topics"]],
            }
        )

    quality = None
    if data.get("quality"):
        q = data["quality"]
        quality = QualityAnalysis(**{**q, "issues": [QualityIssue(**i) for i in q["issues"]]})

    return DebateResult(
        session_id=data["session_id"],
        question=data["question"],
        rounds=rounds,
        final_ranking=[RankedOption(**r) for r in data.get("final_ranking", [])],
        consensus_score=data["consensus_score"],
        status=DebateStatus(data["status"]),
        total_cost_usd=data["total_cost_usd"],
        total_rounds=data["total_rounds"],
        consensus_level=data.get("consensus_level", "weak"),
        error=data.get("error"),
        experts=[
            ExpertMatch(**{**m, "expert": Persona(**m["expert"])}) for m in data.get("experts", [])
        ],
        analysis=analysis,
        interventions=[ModeratorIntervention(**i) for i in data.get("interventions", [])],
        quality=quality,
        costs_by_provider=dict(data.get("costs_by_provider", {})),
        overhead_cost_usd=data.get("overhead_cost_usd", 0.0),
        synthesis=data.get("synthesis", ""),
        synthesizer=data.get("synthesizer", ""),
        total_duration_sec=data.get("total_duration_sec", 0.0),
    )


def save_json(result: DebateResult, output_dir: Path, slug_override: str | None = None) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(result.question)
    filepath = output_dir / f"{timestamp}_{slug}.json"
    filepath.write_text(json.dumps(result_to_dict(result), ensure_ascii=False, indent=2), encoding="utf-8")
    logger.info("Debate JSON saved to: %s", filepath)
    return filepath


def load_json(path: Path) -> DebateResult:
    return result_from_dict(json.loads(path.read_text(encoding="utf-8")))
