"""Click CLI: orchestrates config loading, provider selection, debate, and output."""

import asyncio
import dataclasses
import logging
import sys
import uuid
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, load_config
from quoorum.context_loader import ContextLoader
from quoorum.costs import estimate_debate_cost
from quoorum.debate import DebateRunner
from quoorum.healthcheck import run_health_checks
from quoorum.models import (
    ContextRequest,
    DebateMessage,
    DebateOptions,
    DebateResult,
    DebateRound,
    DebateStatus,
    GenerationSettings,
    ModeratorIntervention,
    MonitoringOptions,
    Persona,
)
from quoorum.output import print_intervention, print_result, print_round_summary, save_json, save_to_file
from quoorum.providers.anthropic import AnthropicProvider
from quoorum.providers.base import AIProvider, ProviderError
from quoorum.providers.gemini import GeminiProvider
from quoorum.providers.openai_compatible import OpenAICompatibleProvider
from quoorum.providers.openai_provider import OpenAIProvider
from quoorum.question_analyzer import QuestionAnalyzer
from quoorum.search import SerperSearch
from quoorum.synthesis import synthesize

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

# Keyed by the `sdk` field of each models entry in settings.yaml
PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "google": GeminiProvider,
    "openai_compatible": OpenAICompatibleProvider,
}

_AVG_TOKENS_PER_MESSAGE = 600


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _build_all_providers(config: AppConfig) -> dict[str, AIProvider]:
    """Build all available providers. Returns dict keyed by name."""
    providers: dict[str, AIProvider] = {}
    for name in sorted(config.available_providers):
        model_cfg = config.models[name]
        cls = PROVIDER_CLASSES.get(model_cfg.sdk)
        if cls is None:
            logger.warning("Provider '%s' uses unknown sdk '%s', skipping", name, model_cfg.sdk)
            continue
        try:
            providers[name] = cls(model_cfg)
        except ProviderError as exc:
            logger.warning("Failed to instantiate provider '%s': %s", name, exc)
    return providers


def _rebind_roster(
    roster: list[Persona],
    providers: dict[str, AIProvider],
    fallback: str | None,
) -> list[Persona]:
    """Move personas whose provider is unavailable onto the fallback provider.

    Personas with no usable provider at all are dropped.
    """
    if fallback not in providers:
        fallback = next(iter(providers), None)

    rebound: list[Persona] = []
    for persona in roster:
        if persona.provider in providers:
            rebound.append(persona)
        elif fallback is not None:
            logger.info("Expert %s: %s unavailable, using %s", persona.key, persona.provider, fallback)
            rebound.append(
                dataclasses.replace(persona, provider=fallback, model=providers[fallback].model_string())
            )
        else:
            logger.warning("Expert %s dropped: no provider available", persona.key)
    return rebound


def _utility_settings(config: AppConfig, providers: dict[str, AIProvider]) -> GenerationSettings:
    settings = config.utility
    if settings.provider in providers:
        return settings
    fallback = config.defaults.fallback_provider
    name = fallback if fallback in providers else next(iter(providers))
    logger.info("Utility provider %s unavailable, using %s", settings.provider, name)
    return dataclasses.replace(settings, provider=name, model=providers[name].model_string())


def _pick_synthesizer(
    providers: dict[str, AIProvider],
    preferred: str,
) -> tuple[str, AIProvider]:
    if preferred in providers:
        return preferred, providers[preferred]
    name = next(iter(providers))
    logger.info("Synthesizer %s unavailable, using %s", preferred, name)
    return name, providers[name]


def _build_options(
    config: AppConfig,
    min_experts: int | None,
    max_experts: int | None,
    max_rounds: int | None,
) -> DebateOptions:
    """CLI flags override settings.yaml defaults."""
    d = config.defaults
    return DebateOptions(
        min_experts=min_experts if min_experts is not None else d.min_experts,
        max_experts=max_experts if max_experts is not None else d.max_experts,
        max_rounds=max_rounds if max_rounds is not None else d.max_rounds,
        min_rounds=d.min_rounds,
        consensus_threshold=d.consensus_threshold,
        max_retries=d.max_retries,
        retry_backoff_sec=d.retry_backoff_sec,
        call_timeout_sec=d.call_timeout_sec,
        transcript_char_budget=d.transcript_char_budget,
        context_synthesis_threshold=d.context_synthesis_threshold,
        quality=MonitoringOptions(
            min_quality_threshold=d.min_quality_threshold,
            min_messages_before_analysis=d.min_messages_before_analysis,
            strict_repetition_detection=d.strict_repetition_detection,
        ),
    )


def _read_manual_context(context: str | None, context_file: str | None) -> str:
    parts: list[str] = []
    if context:
        parts.append(context.strip())
    if context_file:
        parts.append(Path(context_file).read_text(encoding="utf-8").strip())
    return "\n\n".join(p for p in parts if p)


def _check_and_filter_providers(
    all_providers: dict[str, AIProvider],
    roster: list[Persona],
    fallback: str | None,
) -> dict[str, AIProvider]:
    """Run health checks, print results, and ask user what to do on failures.

    Returns the filtered dict of working providers. Exits if the user
    declines to continue or no providers pass.
    """
    console.print("\n[bold]Checking providers...[/bold]")
    report = asyncio.run(run_health_checks(all_providers))

    for name in sorted(report.statuses):
        status = report.statuses[name]
        if status.ok:
            console.print(f"  [green]OK  [/green] {name} [dim]({status.latency_sec:.1f}s)[/dim]")
        else:
            short_err = status.error.splitlines()[0][:120] if status.error else "unknown error"
            hint = " [dim](may be temporary)[/dim]" if status.transient else ""
            console.print(f"  [red]FAIL[/red] {name}: {short_err}{hint}")

    if not report.failed:
        console.print()
        return all_providers

    working = {n: p for n, p in all_providers.items() if n in report.working}

    if not working:
        console.print("\n[bold red]Error:[/bold red] No providers passed the health check.")
        sys.exit(1)

    console.print(f"\n[yellow]{len(report.failed)} provider(s) failed:[/yellow] {', '.join(report.failed)}")
    console.print(f"Working providers: {', '.join(report.working)}")
    stranded = report.stranded_personas(roster)
    if stranded:
        target = fallback if fallback in working else next(iter(working))
        console.print(f"Experts moving to {target}: {', '.join(stranded)}")

    if not click.confirm("Continue with working providers only?", default=True):
        sys.exit(0)

    console.print()
    return working


async def _run_debate(
    question: str,
    config: AppConfig,
    providers: dict[str, AIProvider],
    context_request: ContextRequest,
    options: DebateOptions,
    synthesizer_name: str | None,
) -> DebateResult:
    roster = _rebind_roster(config.roster, providers, config.defaults.fallback_provider)
    utility = _utility_settings(config, providers)
    utility_provider = providers[utility.provider]

    analyzer = QuestionAnalyzer(utility_provider, utility, config.prompts.analysis)
    context_loader = ContextLoader(
        config.prompts,
        provider=utility_provider,
        settings=utility,
        search=SerperSearch(config.search),
        search_config=config.search,
        synthesis_threshold=options.context_synthesis_threshold,
    )

    console.print(f"\n[bold cyan]Quoorum[/bold cyan]: up to {options.max_rounds} rounds, "
                  f"{options.min_experts}-{options.max_experts} experts")
    console.print(f"Question: [italic]{question[:80]}{'...' if len(question) > 80 else ''}[/italic]\n")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Analysing question...", total=None)

        def on_message_generated(msg: DebateMessage) -> None:
            progress.update(task, description=f"Round {msg.round_number}: {msg.agent_name} spoke")

        def on_round_complete(rnd: DebateRound) -> None:
            progress.print(f"[green]OK[/green] Round {rnd.number} complete ({len(rnd.messages)} messages)")

        def on_intervention(intervention: ModeratorIntervention) -> None:
            progress.print(f"[yellow]Moderator[/yellow] {intervention.type} for round {intervention.round_number}")

        runner = DebateRunner(
            providers,
            roster,
            config.prompts,
            analyzer,
            context_loader,
            on_message_generated=on_message_generated,
            on_round_complete=on_round_complete,
            on_intervention=on_intervention,
        )
        result = await runner.run(str(uuid.uuid4()), question, context_request, options)

        if synthesizer_name is not None and result.status in (DebateStatus.COMPLETED, DebateStatus.MAX_ROUNDS):
            progress.update(task, description="Running synthesis...")
            name, synthesizer = _pick_synthesizer(providers, synthesizer_name)
            settings = GenerationSettings(provider=name, model=synthesizer.model_string(), temperature=0.3, max_tokens=2000)
            try:
                result = await synthesize(result, synthesizer, settings, config.prompts)
            except (ProviderError, RuntimeError) as exc:
                logger.warning("Synthesis failed, keeping debate result: %s", exc)

    return result


@click.command()
@click.argument("question", required=False)
@click.option("--file", "question_file", type=click.Path(exists=True), help="Read question from a text file")
@click.option("--context", default=None, help="Background information for the experts")
@click.option("--context-file", type=click.Path(exists=True), default=None, help="Read background from a file")
@click.option("--internet", "use_internet", is_flag=True, help="Add web search results to the context")
@click.option("--repo", "repo_path", default=None, help="Add relevant docs from this repository to the context")
@click.option("--min-experts", type=int, default=None, help="Minimum panel size (default: from config)")
@click.option("--max-experts", type=int, default=None, help="Maximum panel size (default: from config)")
@click.option("--max-rounds", type=int, default=None, help="Round ceiling (default: from config)")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--json", "save_as_json", is_flag=True, help="Also save the result as JSON")
@click.option("--synthesizer", default=None, help="Which provider writes the summary (default: from config)")
@click.option("--no-synthesis", is_flag=True, help="Skip the final executive summary")
@click.option("--estimate", is_flag=True, help="Print the projected cost and exit")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--skip-health-check", is_flag=True, default=False, help="Skip the API connectivity check at startup")
def main(
    question: str | None,
    question_file: str | None,
    context: str | None,
    context_file: str | None,
    use_internet: bool,
    repo_path: str | None,
    min_experts: int | None,
    max_experts: int | None,
    max_rounds: int | None,
    output_path: str | None,
    save_as_json: bool,
    synthesizer: str | None,
    no_synthesis: bool,
    estimate: bool,
    verbose: bool,
    skip_health_check: bool,
) -> None:
    """Quoorum -- multi-expert strategic debate.

    \b
    Examples:
      quoorum "¿Debo lanzar Wallie a 29€, 49€ o 79€?"
      quoorum "Should we go PLG or sales-led?" --internet --max-rounds 5
      quoorum --file question.txt --repo . --json
      quoorum "REST or GraphQL?" --estimate
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    if question_file:
        question_text = Path(question_file).read_text(encoding="utf-8").strip()
    elif question:
        question_text = question
    else:
        console.print("[bold red]Error:[/bold red] Provide a QUESTION argument or --file.")
        sys.exit(1)

    options = _build_options(config, min_experts, max_experts, max_rounds)

    if estimate:
        panel = config.roster[: options.max_experts]
        cost = estimate_debate_cost(_AVG_TOKENS_PER_MESSAGE, options.max_rounds, panel)
        console.print(
            f"Estimated cost for {len(panel)} experts x {options.max_rounds} rounds "
            f"(~{_AVG_TOKENS_PER_MESSAGE} tokens/message): [bold]${cost:.4f}[/bold]"
        )
        return

    all_providers = _build_all_providers(config)
    if not all_providers:
        console.print("[bold red]Error:[/bold red] No providers available. Check API keys in .env.")
        sys.exit(1)

    if not skip_health_check:
        all_providers = _check_and_filter_providers(
            all_providers, config.roster, config.defaults.fallback_provider
        )

    context_request = ContextRequest(
        manual_context=_read_manual_context(context, context_file),
        use_internet=use_internet,
        use_repo=repo_path is not None,
        repo_path=repo_path,
    )
    synthesizer_name = None if no_synthesis else (synthesizer or config.defaults.synthesizer)

    result = asyncio.run(
        _run_debate(question_text, config, all_providers, context_request, options, synthesizer_name)
    )

    for rnd in result.rounds:
        print_round_summary(rnd)
    for intervention in result.interventions:
        print_intervention(intervention)
    print_result(result)

    output_dir = Path(output_path) if output_path else config.defaults.output_dir
    saved_path = save_to_file(result, output_dir)
    console.print(f"\n[dim]Saved to: {saved_path}[/dim]")
    if save_as_json:
        console.print(f"[dim]JSON: {save_json(result, output_dir)}[/dim]")

    if result.status == DebateStatus.FAILED:
        sys.exit(1)


if __name__ == "__main__":
    main()
