"""Integration tests: real API calls, no mocks. Requires .env with at least one API key."""

import os
from pathlib import Path

import pytest
from dotenv import load_dotenv

load_dotenv()

_AVAILABLE_KEYS = [
    k
    for k in ["ANTHROPIC_API_KEY", "OPENAI_API_KEY", "GEMINI_API_KEY", "XAI_API_KEY", "DEEPSEEK_API_KEY", "GROQ_API_KEY"]
    if os.environ.get(k, "").strip()
]
pytestmark = pytest.mark.integration

if not _AVAILABLE_KEYS:
    pytestmark = pytest.mark.skip(reason="No provider API keys set")


async def test_full_debate_pipeline(tmp_path: Path):
    """Run a real one-round debate with whatever providers are configured."""
    from config.config_loader import load_config
    from quoorum.cli import _build_all_providers, _build_options, _run_debate
    from quoorum.models import ContextRequest, DebateStatus
    from quoorum.output import load_json, save_json, save_to_file

    config = load_config()
    providers = _build_all_providers(config)
    assert providers, "No providers could be instantiated"

    options = _build_options(config, min_experts=3, max_experts=4, max_rounds=1)
    result = await _run_debate(
        "¿Debo lanzar Wallie a 29€, 49€ o 79€ al mes para pymes?",
        config,
        providers,
        ContextRequest(manual_context="Wallie is a B2B SaaS for SMB expense tracking."),
        options,
        config.defaults.synthesizer,
    )

    assert result.status in (DebateStatus.COMPLETED, DebateStatus.MAX_ROUNDS), result.error
    assert result.total_rounds == 1
    assert 3 <= len(result.rounds[0].messages) <= 4
    assert all(m.content for m in result.rounds[0].messages)
    assert result.synthesis

    saved = save_to_file(result, tmp_path / "output")
    assert "Quoorum Debate" in saved.read_text(encoding="utf-8")
    assert load_json(save_json(result, tmp_path / "output")).total_rounds == 1
