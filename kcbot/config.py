"""
kcbot.config — YAML Configuration Loader
=========================================

Reads ``config.yaml`` for non-secret settings (app identity, leaderboard
limits, rate limits, summary model endpoint).  Secrets such as
``DATABASE_URL`` and ``TELEGRAM_BOT_TOKEN`` stay in the environment and
are loaded from ``.env`` by the entry points.

Usage::

    from kcbot.config import load_config

    cfg = load_config()              # reads ./config.yaml by default
    print(cfg.app_name)              # "KhmerCoders Bot"
    print(cfg.rate_limits.api)       # RateLimitSpec(max_requests=60, window_seconds=60)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from kcbot import __version__
from kcbot.constants import (
    API_RATE_LIMIT,
    APP_NAME,
    COMMAND_RATE_LIMIT,
    DEFAULT_LEADERBOARD_LIMIT,
    MAX_LEADERBOARD_LIMIT,
    SUMMARY_RATE_LIMIT,
)


# ---------------------------------------------------------------------------
# Typed settings objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RateLimitSpec:
    max_requests: int
    window_seconds: int


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    commands: RateLimitSpec = RateLimitSpec(*COMMAND_RATE_LIMIT)
    summary: RateLimitSpec = RateLimitSpec(*SUMMARY_RATE_LIMIT)
    api: RateLimitSpec = RateLimitSpec(*API_RATE_LIMIT)


@dataclass(frozen=True, slots=True)
class BotConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    app_name: str = APP_NAME
    app_version: str = __version__

    # Leaderboards
    leaderboard_default_limit: int = DEFAULT_LEADERBOARD_LIMIT
    leaderboard_max_limit: int = MAX_LEADERBOARD_LIMIT

    # /summary
    summary_message_limit: int = 200
    summary_api_url: str | None = None
    summary_model: str = "llama-3.3-70b-instruct"

    rate_limits: RateLimitConfig = field(default_factory=RateLimitConfig)

    # Secrets (environment only, never YAML)
    @property
    def telegram_bot_token(self) -> str | None:
        return os.getenv("TELEGRAM_BOT_TOKEN") or None

    @property
    def summary_api_token(self) -> str | None:
        return os.getenv("SUMMARY_API_TOKEN") or None

    @property
    def admin_api_token(self) -> str | None:
        return os.getenv("ADMIN_API_TOKEN") or None


def _rate_limit_spec(raw: dict | None, default: RateLimitSpec) -> RateLimitSpec:
    if not raw:
        return default
    return RateLimitSpec(
        max_requests=int(raw.get("max_requests", default.max_requests)),
        window_seconds=int(raw.get("window_seconds", default.window_seconds)),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> BotConfig:
    """Read *path* and return a :class:`BotConfig` instance.

    Every key is optional; missing keys fall back to the defaults above.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    limits_raw: dict = raw.get("rate_limits") or {}
    defaults = RateLimitConfig()

    return BotConfig(
        app_name=raw.get("app_name", APP_NAME),
        app_version=str(raw.get("app_version", __version__)),
        leaderboard_default_limit=int(
            raw.get("leaderboard_default_limit", DEFAULT_LEADERBOARD_LIMIT)
        ),
        leaderboard_max_limit=int(raw.get("leaderboard_max_limit", MAX_LEADERBOARD_LIMIT)),
        summary_message_limit=int(raw.get("summary_message_limit", 200)),
        summary_api_url=raw.get("summary_api_url") or None,
        summary_model=raw.get("summary_model", "llama-3.3-70b-instruct"),
        rate_limits=RateLimitConfig(
            commands=_rate_limit_spec(limits_raw.get("commands"), defaults.commands),
            summary=_rate_limit_spec(limits_raw.get("summary"), defaults.summary),
            api=_rate_limit_spec(limits_raw.get("api"), defaults.api),
        ),
    )
