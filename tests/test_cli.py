"""Tests for provider selection and option helpers in quoorum/cli.py."""

from pathlib import Path
from unittest.mock import AsyncMock

import click
import pytest
from click.testing import CliRunner

from config.config_loader import ModelConfig
from quoorum.cli import (
    _build_all_providers,
    _build_options,
    _check_and_filter_providers,
    _pick_synthesizer,
    _read_manual_context,
    _rebind_roster,
    _utility_settings,
    main,
)
from quoorum.providers.base import ProviderError
from quoorum.providers.openai_compatible import OpenAICompatibleProvider
from tests.conftest import MockProvider, make_persona


@pytest.fixture
def mock_all_providers() -> dict[str, MockProvider]:
    return {
        "anthropic": MockProvider("anthropic"),
        "google": MockProvider("google"),
        "openai": MockProvider("openai"),
    }


def test_rebind_keeps_available_providers(mock_all_providers):
    roster = [make_persona("a", provider="anthropic"), make_persona("b", provider="google")]
    assert _rebind_roster(roster, mock_all_providers, "openai") == roster


def test_rebind_moves_unavailable_to_fallback(mock_all_providers):
    roster = [make_persona("a", provider="anthropic"), make_persona("b", provider="xai")]
    rebound = _rebind_roster(roster, mock_all_providers, "openai")
    assert [p.provider for p in rebound] == ["anthropic", "openai"]
    assert rebound[1].model == "mock-model"
    assert roster[1].provider == "xai"  # original untouched


def test_rebind_uses_first_provider_when_fallback_missing(mock_all_providers):
    rebound = _rebind_roster([make_persona("b", provider="xai")], mock_all_providers, "groq")
    assert rebound[0].provider == "anthropic"


def test_rebind_drops_personas_without_any_provider():
    assert _rebind_roster([make_persona("b", provider="xai")], {}, "openai") == []


def test_health_check_drops_failing_provider(mock_all_providers, monkeypatch):
    mock_all_providers["google"].generate = AsyncMock(side_effect=ProviderError("google", "bad key", retryable=False))
    monkeypatch.setattr(click, "confirm", lambda *a, **kw: True)
    roster = [make_persona("april_dunford", provider="google"), make_persona("critic", provider="openai", role="critic")]

    working = _check_and_filter_providers(mock_all_providers, roster, "anthropic")

    assert sorted(working) == ["anthropic", "openai"]


def test_health_check_exits_when_nothing_works(mock_all_providers):
    for name, provider in mock_all_providers.items():
        provider.generate = AsyncMock(side_effect=ProviderError(name, "down"))
    with pytest.raises(SystemExit) as exc_info:
        _check_and_filter_providers(mock_all_providers, [], None)
    assert exc_info.value.code == 1


def test_pick_synthesizer_preferred(mock_all_providers):
    name, provider = _pick_synthesizer(mock_all_providers, "openai")
    assert name == "openai"
    assert provider is mock_all_providers["openai"]


def test_pick_synthesizer_falls_back(mock_all_providers):
    name, _ = _pick_synthesizer(mock_all_providers, "deepseek")
    assert name == "anthropic"


def test_utility_settings_fallback(sample_app_config):
    providers = {"openai": MockProvider("openai")}
    settings = _utility_settings(sample_app_config, providers)
    assert settings.provider == "openai"
    assert settings.model == "mock-model"


def test_utility_settings_kept_when_available(sample_app_config):
    settings = _utility_settings(sample_app_config, {"anthropic": MockProvider("anthropic")})
    assert settings == sample_app_config.utility


def test_build_options_flags_override_defaults(sample_app_config):
    options = _build_options(sample_app_config, None, 6, 4)
    assert options.min_experts == sample_app_config.defaults.min_experts
    assert options.max_experts == 6
    assert options.max_rounds == 4
    assert options.quality.min_quality_threshold == sample_app_config.defaults.min_quality_threshold


def test_read_manual_context_combines_sources(tmp_path: Path):
    path = tmp_path / "ctx.md"
    path.write_text("  From file.\n", encoding="utf-8")
    assert _read_manual_context(" Inline. ", str(path)) == "Inline.\n\nFrom file."
    assert _read_manual_context(None, None) == ""


def test_build_all_providers_by_sdk(sample_app_config, monkeypatch):
    monkeypatch.setenv("TEST_DEEPSEEK_KEY", "sk-test")
    sample_app_config.models["deepseek"] = ModelConfig(
        name="deepseek",
        sdk="openai_compatible",
        model="deepseek-chat",
        api_key_env="TEST_DEEPSEEK_KEY",
        timeout_sec=30,
        max_tokens=1024,
        base_url="https://api.deepseek.com",
    )
    sample_app_config.models["weird"] = ModelConfig("weird", "unknown_sdk", "m", "TEST_DEEPSEEK_KEY", 30, 1024)
    sample_app_config.available_providers = {"deepseek", "weird"}

    providers = _build_all_providers(sample_app_config)

    assert set(providers) == {"deepseek"}
    assert isinstance(providers["deepseek"], OpenAICompatibleProvider)


def test_cli_estimate_prints_cost(monkeypatch):
    monkeypatch.setattr("quoorum.cli.load_dotenv", lambda: None)
    result = CliRunner().invoke(main, ["¿Debo lanzar Wallie a 29€, 49€ o 79€?", "--estimate", "--max-rounds", "3"])
    assert result.exit_code == 0
    assert "Estimated cost" in result.output
    assert "3 rounds" in result.output


def test_cli_requires_question(monkeypatch):
    monkeypatch.setattr("quoorum.cli.load_dotenv", lambda: None)
    result = CliRunner().invoke(main, [])
    assert result.exit_code == 1
