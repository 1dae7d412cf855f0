"""
kcbot.constants — Shared Constants & Helpers
=============================================

Single source of truth for platforms, leaderboard periods, limits, and
presentation constants.  Import from here instead of duplicating in
services, routes, and the Discord cog.
"""

from __future__ import annotations

from datetime import UTC, date, datetime

APP_NAME = "KhmerCoders Bot"
APP_DESCRIPTION = "Community Message Tracking & Leaderboards for Telegram & Discord"

# ---------------------------------------------------------------------------
# Domain
# ---------------------------------------------------------------------------
PLATFORMS: tuple[str, ...] = ("telegram", "discord")
PERIODS: tuple[str, ...] = ("daily", "weekly", "monthly", "all")

# Service-level bound; the HTTP API clamps tighter.
MAX_QUERY_LIMIT = 1000
DEFAULT_LEADERBOARD_LIMIT = 10
MAX_LEADERBOARD_LIMIT = 100

WEEK_WINDOW_DAYS = 7

# ---------------------------------------------------------------------------
# Rate limits: (max_requests, window_seconds)
# ---------------------------------------------------------------------------
COMMAND_RATE_LIMIT = (5, 60)
SUMMARY_RATE_LIMIT = (2, 300)
API_RATE_LIMIT = (60, 60)
RATE_LIMIT_CLEANUP_SECONDS = 300

# ---------------------------------------------------------------------------
# Presentation
# ---------------------------------------------------------------------------
RANK_BADGES: list[str] = ["\U0001f947", "\U0001f948", "\U0001f949"]  # 🥇🥈🥉


def utc_today() -> date:
    """Current calendar date in UTC; the day key for chat counters."""
    return datetime.now(UTC).date()


def sanitize_limit(raw: str | int | None, default: int = DEFAULT_LEADERBOARD_LIMIT,
                   maximum: int = MAX_LEADERBOARD_LIMIT) -> int:
    """Parse a user-supplied limit and clamp it into ``[1, maximum]``.

    Missing or non-numeric input falls back to *default*.
    """
    if raw is None or raw == "":
        return default
    try:
        parsed = int(raw)
    except (TypeError, ValueError):
        return default
    return min(max(1, parsed), maximum)


def rank_label(index: int) -> str:
    """Medal for the top three, ``N.`` afterwards (0-based *index*)."""
    if index < len(RANK_BADGES):
        return RANK_BADGES[index]
    return f"{index + 1}."
