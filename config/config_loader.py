"""Load settings.yaml into typed dataclasses. Validates API keys at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from quoorum.models import GenerationSettings, Persona

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

_PERSONA_ROLES = {"expert", "critic"}


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    base_url: str | None = None


@dataclass
class PromptsConfig:
    analysis: str
    persona_turn: str
    synthesis: str
    search_query: str = "{question}"
    context_synthesis: str = "{question}\n\n{context}"


@dataclass
class DefaultsConfig:
    output_dir: Path
    synthesizer: str
    min_experts: int = 5
    max_experts: int = 7
    min_rounds: int = 3
    max_rounds: int = 10
    consensus_threshold: float = 0.7
    max_retries: int = 2
    retry_backoff_sec: float = 1.0
    call_timeout_sec: float = 60.0
    transcript_char_budget: int = 6000
    context_synthesis_threshold: int = 2000
    min_quality_threshold: int = 60
    min_messages_before_analysis: int = 3
    strict_repetition_detection: bool = True
    fallback_provider: str | None = None


@dataclass
class SearchConfig:
    api_key_env: str = "SERPER_API_KEY"
    url: str = "https://google.serper.dev/search"
    num_results: int = 5
    timeout_sec: float = 15.0
    repo_globs: list[str] = field(default_factory=lambda: ["README.md", "*.md", "docs/*.md"])
    repo_max_files: int = 3
    repo_max_chars: int = 2000


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    utility: GenerationSettings
    roster: list[Persona] = field(default_factory=list)
    search: SearchConfig = field(default_factory=SearchConfig)
    available_providers: set[str] = field(default_factory=set)


def _load_persona(raw: dict, models: dict[str, ModelConfig]) -> Persona:
    key = str(raw["key"])
    provider = str(raw["provider"])
    if provider not in models:
        raise ValueError(f"Expert '{key}' uses unknown provider '{provider}'")

    role = str(raw.get("role", "expert"))
    if role not in _PERSONA_ROLES:
        raise ValueError(f"Expert '{key}' has invalid role '{role}'")

    temperature = float(raw.get("temperature", 0.7))
    if not 0.0 <= temperature <= 2.0:
        raise ValueError(f"Expert '{key}' temperature {temperature} outside 0-2")

    model_cfg = models[provider]
    return Persona(
        key=key,
        name=str(raw["name"]),
        role=role,
        prompt=str(raw["prompt"]).strip(),
        provider=provider,
        model=str(raw.get("model") or model_cfg.model),
        temperature=temperature,
        max_tokens=int(raw.get("max_tokens", model_cfg.max_tokens)),
        expertise=[str(t).lower() for t in raw.get("expertise", [])],
        topics=[str(t).lower() for t in raw.get("topics", [])],
        title=str(raw.get("title", "")),
    )


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing, ValueError for an
    inconsistent expert roster. Logs missing API keys but does not raise;
    callers check available_providers.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        output_dir=Path(defaults_raw["output_dir"]),
        synthesizer=str(defaults_raw["synthesizer"]),
        min_experts=int(defaults_raw.get("min_experts", 5)),
        max_experts=int(defaults_raw.get("max_experts", 7)),
        min_rounds=int(defaults_raw.get("min_rounds", 3)),
        max_rounds=int(defaults_raw.get("max_rounds", 10)),
        consensus_threshold=float(defaults_raw.get("consensus_threshold", 0.7)),
        max_retries=int(defaults_raw.get("max_retries", 2)),
        retry_backoff_sec=float(defaults_raw.get("retry_backoff_sec", 1.0)),
        call_timeout_sec=float(defaults_raw.get("call_timeout_sec", 60)),
        transcript_char_budget=int(defaults_raw.get("transcript_char_budget", 6000)),
        context_synthesis_threshold=int(defaults_raw.get("context_synthesis_threshold", 2000)),
        min_quality_threshold=int(defaults_raw.get("min_quality_threshold", 60)),
        min_messages_before_analysis=int(defaults_raw.get("min_messages_before_analysis", 3)),
        strict_repetition_detection=bool(defaults_raw.get("strict_repetition_detection", True)),
        fallback_provider=defaults_raw.get("fallback_provider"),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        analysis=prompts_raw["analysis"],
        persona_turn=prompts_raw["persona_turn"],
        synthesis=prompts_raw["synthesis"],
        search_query=prompts_raw.get("search_query", "{question}"),
        context_synthesis=prompts_raw.get("context_synthesis", "{question}\n\n{context}"),
    )

    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for provider_name, model_raw in raw["models"].items():
        model_cfg = ModelConfig(
            name=provider_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            base_url=model_raw.get("base_url"),
        )
        models[provider_name] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s, set %s in .env",
                provider_name,
                model_raw["api_key_env"],
            )

    utility_raw = raw.get("utility", {})
    utility_provider = str(utility_raw.get("provider", next(iter(models))))
    if utility_provider not in models:
        raise ValueError(f"Utility provider '{utility_provider}' is not configured under models")
    utility = GenerationSettings(
        provider=utility_provider,
        model=str(utility_raw.get("model") or models[utility_provider].model),
        temperature=float(utility_raw.get("temperature", 0.3)),
        max_tokens=int(utility_raw.get("max_tokens", 1500)),
    )

    search_raw = raw.get("search", {})
    search = SearchConfig(
        api_key_env=search_raw.get("api_key_env", "SERPER_API_KEY"),
        url=search_raw.get("url", "https://google.serper.dev/search"),
        num_results=int(search_raw.get("num_results", 5)),
        timeout_sec=float(search_raw.get("timeout_sec", 15)),
        repo_globs=list(search_raw.get("repo_globs", ["README.md", "*.md", "docs/*.md"])),
        repo_max_files=int(search_raw.get("repo_max_files", 3)),
        repo_max_chars=int(search_raw.get("repo_max_chars", 2000)),
    )

    roster: list[Persona] = []
    seen_keys: set[str] = set()
    for expert_raw in raw.get("experts", []):
        persona = _load_persona(expert_raw, models)
        if persona.key in seen_keys:
            raise ValueError(f"Duplicate expert key: {persona.key}")
        seen_keys.add(persona.key)
        roster.append(persona)

    logger.debug("Loaded %d experts from %s", len(roster), settings_path)

    return AppConfig(
        defaults=defaults,
        models=models,
        prompts=prompts,
        utility=utility,
        roster=roster,
        search=search,
        available_providers=available_providers,
    )
