"""
tests/test_config.py — YAML Configuration Loading
==================================================
"""

from __future__ import annotations

import pytest

from kcbot.config import BotConfig, RateLimitSpec, load_config


def test_missing_file_raises_with_hint(tmp_path):
    with pytest.raises(FileNotFoundError, match="config.yaml.example"):
        load_config(tmp_path / "nope.yaml")


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(path) == BotConfig()


def test_values_and_partial_rate_limits(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "app_name: Test Bot\n"
        "leaderboard_default_limit: 5\n"
        "summary_api_url: http://llm.local/v1/chat/completions\n"
        "rate_limits:\n"
        "  api:\n"
        "    max_requests: 10\n"
        "  summary:\n"
        "    window_seconds: 60\n",
        encoding="utf-8",
    )
    cfg = load_config(path)
    assert cfg.app_name == "Test Bot"
    assert cfg.leaderboard_default_limit == 5
    assert cfg.leaderboard_max_limit == 100
    assert cfg.summary_api_url == "http://llm.local/v1/chat/completions"
    assert cfg.rate_limits.api == RateLimitSpec(10, 60)
    assert cfg.rate_limits.summary == RateLimitSpec(2, 60)
    assert cfg.rate_limits.commands == RateLimitSpec(5, 60)


def test_blank_summary_url_disables_summaries(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text('summary_api_url: ""\n', encoding="utf-8")
    assert load_config(path).summary_api_url is None


def test_secrets_come_from_environment(monkeypatch):
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
    monkeypatch.delenv("SUMMARY_API_TOKEN", raising=False)
    cfg = BotConfig()
    assert cfg.telegram_bot_token == "123:abc"
    assert cfg.summary_api_token is None


def test_api_falls_back_to_defaults(monkeypatch, tmp_path):
    from kcbot.api.deps import get_config

    monkeypatch.setenv("KCBOT_CONFIG", str(tmp_path / "missing.yaml"))
    get_config.cache_clear()
    try:
        assert get_config() == BotConfig()
    finally:
        get_config.cache_clear()
