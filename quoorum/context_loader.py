"""Background context for a debate: manual notes, web search and repository docs.

Sources are always appended in the order manual, internet, repo. Optional
sources fail soft (logged and skipped); invalid requests raise ValidationError.
"""

import logging
from pathlib import Path

import httpx

from config.config_loader import PromptsConfig, SearchConfig
from quoorum.costs import estimate_call_cost, estimate_tokens
from quoorum.errors import ValidationError
from quoorum.models import ContextRequest, ContextSource, GenerationSettings, LoadedContext
from quoorum.providers.base import AIProvider, ProviderError
from quoorum.quality_monitor import key_concepts
from quoorum.search import SearchHit, SerperSearch

logger = logging.getLogger(__name__)

SOURCE_DIVIDER = "\n\n---\n\n"
TRUNCATION_MARKER = "\n...[truncated]"


class ContextLoader:
    """Loads and optionally compresses context for one debate."""

    def __init__(
        self,
        prompts: PromptsConfig,
        provider: AIProvider | None = None,
        settings: GenerationSettings | None = None,
        search: SerperSearch | None = None,
        search_config: SearchConfig | None = None,
        synthesis_threshold: int = 2000,
    ) -> None:
        self._prompts = prompts
        self._provider = provider
        self._settings = settings
        self._search = search
        self._search_config = search_config or SearchConfig()
        self._synthesis_threshold = synthesis_threshold

    async def load(self, question: str, request: ContextRequest) -> LoadedContext:
        if request.use_repo and not (request.repo_path or "").strip():
            raise ValidationError("Repository context requested without a repo path")

        loaded = LoadedContext()

        manual = request.manual_context.strip()
        if manual:
            loaded.sources.append(ContextSource(type="manual", content=manual))

        if request.use_internet:
            source = await self._load_internet(question, loaded)
            if source is not None:
                loaded.sources.append(source)

        if request.use_repo:
            source = self._load_repo(question, Path(request.repo_path or ""))
            if source is not None:
                loaded.sources.append(source)

        loaded.combined_context = SOURCE_DIVIDER.join(s.content for s in loaded.sources)

        if len(loaded.combined_context) > self._synthesis_threshold:
            await self._synthesize(question, loaded)

        logger.info(
            "Context loaded: %s (%d chars%s)",
            ", ".join(s.type for s in loaded.sources) or "none",
            len(loaded.combined_context),
            ", synthesized" if loaded.synthesized else "",
        )
        return loaded

    async def _generate(self, prompt: str, loaded: LoadedContext) -> str:
        if self._provider is None or self._settings is None:
            raise ProviderError("context", "No utility provider configured", retryable=False)
        generation = await self._provider.generate(prompt, self._settings)
        tokens = generation.tokens_used or estimate_tokens(prompt + generation.text)
        loaded.tokens_used += tokens
        loaded.cost_usd += estimate_call_cost(self._settings.provider, tokens)
        return generation.text.strip()

    async def _load_internet(self, question: str, loaded: LoadedContext) -> ContextSource | None:
        if self._search is None:
            logger.warning("Internet context requested but no search client configured")
            return None
        try:
            reply = await self._generate(self._prompts.search_query.format(question=question), loaded)
            lines = [line.strip().strip("\"'").strip() for line in reply.splitlines()]
            query = next((line for line in lines if line), question)
            hits = await self._search.search(query)
        except (ProviderError, httpx.HTTPError) as exc:
            logger.warning("Internet context skipped: %s", exc)
            return None
        if not hits:
            logger.info("Internet context skipped: no search results")
            return None
        return ContextSource(type="internet", content=format_hits(hits), metadata={"query": query})

    def _load_repo(self, question: str, root: Path) -> ContextSource | None:
        if not root.is_dir():
            logger.warning("Repo context skipped: %s is not a directory", root)
            return None
        cfg = self._search_config
        base = root.resolve()

        candidates: list[Path] = []
        for pattern in cfg.repo_globs:
            for path in sorted(root.glob(pattern)):
                if path.is_file() and path not in candidates:
                    candidates.append(path)

        question_concepts = key_concepts(question)
        scored: list[tuple[int, Path, str]] = []
        for path in candidates:
            resolved = path.resolve()
            if base not in resolved.parents:
                logger.warning("Repo context: refusing %s outside %s", path, base)
                continue
            try:
                text = resolved.read_text(encoding="utf-8", errors="replace")
            except OSError as exc:
                logger.warning("Repo context: cannot read %s: %s", path, exc)
                continue
            scored.append((len(question_concepts & key_concepts(text)), path, text))

        if not scored:
            logger.info("Repo context skipped: no readable files in %s", root)
            return None

        scored.sort(key=lambda item: -item[0])
        parts: list[str] = []
        files: list[str] = []
        for _, path, text in scored[: cfg.repo_max_files]:
            rel = path.relative_to(root).as_posix()
            if len(text) > cfg.repo_max_chars:
                text = text[: cfg.repo_max_chars] + TRUNCATION_MARKER
            parts.append(f"## {rel}\n{text.strip()}")
            files.append(rel)

        return ContextSource(
            type="repo",
            content="\n\n".join(parts),
            metadata={"path": str(root), "files": files},
        )

    async def _synthesize(self, question: str, loaded: LoadedContext) -> None:
        prompt = self._prompts.context_synthesis.format(question=question, context=loaded.combined_context)
        try:
            summary = await self._generate(prompt, loaded)
        except ProviderError as exc:
            logger.warning("Context synthesis failed, keeping raw context: %s", exc)
            return
        if summary:
            loaded.combined_context = summary
            loaded.synthesized = True


def format_hits(hits: list[SearchHit]) -> str:
    lines = []
    for hit in hits:
        line = f"- {hit.title}: {hit.snippet}"
        if hit.link:
            line += f" ({hit.link})"
        lines.append(line)
    return "Web research:\n" + "\n".join(lines)
