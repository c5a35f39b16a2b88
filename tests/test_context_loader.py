"""Tests for quoorum/context_loader.py."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from config.config_loader import SearchConfig
from quoorum.context_loader import SOURCE_DIVIDER, TRUNCATION_MARKER, ContextLoader
from quoorum.errors import ValidationError
from quoorum.models import ContextRequest, Generation, GenerationSettings
from quoorum.providers.base import ProviderError
from quoorum.search import SearchHit
from tests.conftest import WALLIE_QUESTION, MockProvider

_SETTINGS = GenerationSettings(provider="openai", model="gpt-4o-mini")


@pytest.fixture
def search_stub() -> MagicMock:
    search = MagicMock()
    search.search = AsyncMock(
        return_value=[SearchHit("SaaS pricing benchmarks", "Median SMB SaaS price is 49€", "https://example.com")]
    )
    return search


def _loader(prompts, provider=None, search=None, threshold=2000, search_config=None) -> ContextLoader:
    return ContextLoader(
        prompts,
        provider=provider,
        settings=_SETTINGS,
        search=search,
        search_config=search_config,
        synthesis_threshold=threshold,
    )


async def test_no_sources_gives_empty_context(sample_prompts_config):
    loaded = await _loader(sample_prompts_config).load(WALLIE_QUESTION, ContextRequest())
    assert loaded.sources == []
    assert loaded.combined_context == ""
    assert loaded.synthesized is False


async def test_manual_context_only(sample_prompts_config):
    loaded = await _loader(sample_prompts_config).load(
        WALLIE_QUESTION, ContextRequest(manual_context="  We have 200 beta users.  ")
    )
    assert [s.type for s in loaded.sources] == ["manual"]
    assert loaded.combined_context == "We have 200 beta users."


async def test_sources_in_fixed_order(sample_prompts_config, search_stub, tmp_path: Path):
    (tmp_path / "README.md").write_text("Wallie pricing notes: beta users pay 39€.", encoding="utf-8")
    provider = MockProvider("openai", "wallie saas pricing benchmarks")

    loaded = await _loader(sample_prompts_config, provider, search_stub).load(
        WALLIE_QUESTION,
        ContextRequest(manual_context="Manual notes", use_internet=True, use_repo=True, repo_path=str(tmp_path)),
    )

    assert [s.type for s in loaded.sources] == ["manual", "internet", "repo"]
    assert loaded.combined_context == SOURCE_DIVIDER.join(s.content for s in loaded.sources)
    assert loaded.sources[1].metadata["query"] == "wallie saas pricing benchmarks"
    assert loaded.sources[2].metadata["files"] == ["README.md"]
    search_stub.search.assert_awaited_once_with("wallie saas pricing benchmarks")


async def test_repo_without_path_is_validation_error(sample_prompts_config):
    with pytest.raises(ValidationError):
        await _loader(sample_prompts_config).load(WALLIE_QUESTION, ContextRequest(use_repo=True))


async def test_missing_repo_dir_is_skipped(sample_prompts_config, tmp_path: Path):
    loaded = await _loader(sample_prompts_config).load(
        WALLIE_QUESTION,
        ContextRequest(manual_context="notes", use_repo=True, repo_path=str(tmp_path / "nope")),
    )
    assert [s.type for s in loaded.sources] == ["manual"]


async def test_internet_failure_is_soft(sample_prompts_config, search_stub):
    search_stub.search = AsyncMock(side_effect=httpx.ConnectError("offline"))
    provider = MockProvider("openai", "query")
    loaded = await _loader(sample_prompts_config, provider, search_stub).load(
        WALLIE_QUESTION, ContextRequest(manual_context="notes", use_internet=True)
    )
    assert [s.type for s in loaded.sources] == ["manual"]


async def test_internet_query_failure_is_soft(sample_prompts_config, search_stub):
    provider = MockProvider("openai")
    provider.generate = AsyncMock(side_effect=ProviderError("openai", "down"))
    loaded = await _loader(sample_prompts_config, provider, search_stub).load(
        WALLIE_QUESTION, ContextRequest(use_internet=True)
    )
    assert loaded.sources == []
    search_stub.search.assert_not_awaited()


async def test_repo_files_ranked_and_truncated(sample_prompts_config, tmp_path: Path):
    (tmp_path / "README.md").write_text("Unrelated gardening tips.", encoding="utf-8")
    (tmp_path / "PRICING.md").write_text("Wallie pricing research. " + "x" * 50, encoding="utf-8")
    docs = tmp_path / "docs"
    docs.mkdir()
    (docs / "lanzar.md").write_text("Plan para lanzar Wallie.", encoding="utf-8")

    config = SearchConfig(repo_max_files=2, repo_max_chars=30)
    loaded = await _loader(sample_prompts_config, search_config=config).load(
        WALLIE_QUESTION, ContextRequest(use_repo=True, repo_path=str(tmp_path))
    )

    repo = loaded.sources[0]
    assert len(repo.metadata["files"]) == 2
    assert "README.md" not in repo.metadata["files"]
    assert TRUNCATION_MARKER.strip() in repo.content


async def test_long_context_is_synthesized(sample_prompts_config):
    provider = MockProvider("openai", "Short summary with 49€ benchmark.")
    loaded = await _loader(sample_prompts_config, provider, threshold=50).load(
        WALLIE_QUESTION, ContextRequest(manual_context="a" * 200)
    )
    assert loaded.synthesized is True
    assert loaded.combined_context == "Short summary with 49€ benchmark."
    assert loaded.tokens_used == 10
    # raw sources are kept
    assert loaded.sources[0].content == "a" * 200


async def test_short_context_not_synthesized(sample_prompts_config):
    provider = MockProvider("openai", "summary")
    loaded = await _loader(sample_prompts_config, provider, threshold=500).load(
        WALLIE_QUESTION, ContextRequest(manual_context="short notes")
    )
    assert loaded.synthesized is False
    provider.generate.assert_not_awaited()


async def test_synthesis_failure_keeps_raw_context(sample_prompts_config):
    provider = MockProvider("openai")
    provider.generate = AsyncMock(side_effect=ProviderError("openai", "down"))
    loaded = await _loader(sample_prompts_config, provider, threshold=10).load(
        WALLIE_QUESTION, ContextRequest(manual_context="x" * 100)
    )
    assert loaded.synthesized is False
    assert loaded.combined_context == "x" * 100


async def test_synthesis_counts_overhead_tokens(sample_prompts_config):
    provider = MockProvider("openai")
    provider.generate = AsyncMock(return_value=Generation(text="summary", tokens_used=1000))
    loaded = await _loader(sample_prompts_config, provider, threshold=10).load(
        WALLIE_QUESTION, ContextRequest(manual_context="y" * 100)
    )
    assert loaded.tokens_used == 1000
    assert loaded.cost_usd == pytest.approx(1000 * 0.15 / 1_000_000)


@pytest.mark.parametrize("reply", ['""', "\n  \n", "''"])
async def test_blank_search_query_falls_back_to_question(sample_prompts_config, search_stub, reply):
    provider = MockProvider("openai", reply)
    loaded = await _loader(sample_prompts_config, provider, search_stub).load(
        WALLIE_QUESTION, ContextRequest(use_internet=True)
    )
    search_stub.search.assert_awaited_once_with(WALLIE_QUESTION)
    assert [s.type for s in loaded.sources] == ["internet"]


async def test_search_query_uses_first_nonblank_line(sample_prompts_config, search_stub):
    provider = MockProvider("openai", '\n"wallie pricing spain"\nextra line')
    await _loader(sample_prompts_config, provider, search_stub).load(
        WALLIE_QUESTION, ContextRequest(use_internet=True)
    )
    search_stub.search.assert_awaited_once_with("wallie pricing spain")
