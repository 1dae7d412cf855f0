"""
tests/test_stats_service.py — Leaderboards & Statistics
========================================================
All queries take an explicit ``today`` so results don't depend on the
wall clock.
"""

from __future__ import annotations

from datetime import date, timedelta
from unittest.mock import patch

import pytest
from conftest import seed_messages
from sqlalchemy.exc import OperationalError

from kcbot.errors import PersistenceError, ValidationError
from kcbot.services import stats_service
from kcbot.services.stats_service import (
    get_all_time_leaderboard,
    get_daily_leaderboard,
    get_leaderboard,
    get_monthly_leaderboard,
    get_overview,
    get_platform_stats,
    get_user_stats,
    get_weekly_leaderboard,
    month_start,
    week_start,
)

TODAY = date(2026, 3, 14)


@pytest.fixture
def seeded(db_engine):
    """Telegram activity spread over today, this week, this month and last year."""
    tg = "telegram"
    # today
    seed_messages(db_engine, tg, "a", "Alice", [10, 10, 10], TODAY)
    seed_messages(db_engine, tg, "b", "Bopha", [50, 50], TODAY)
    # three days ago
    seed_messages(db_engine, tg, "c", "Chan", [1, 1, 1, 1], TODAY - timedelta(days=3))
    # earlier this month, outside the 7-day window
    seed_messages(db_engine, tg, "b", "Bopha", [5] * 5, date(2026, 3, 2))
    # last year
    seed_messages(db_engine, tg, "d", "Dara", [2] * 20, date(2025, 6, 1))
    # another platform
    seed_messages(db_engine, "discord", "a", "Alice#1", [100] * 9, TODAY)
    return db_engine


def _ids(rows):
    return [r["user_id"] for r in rows]


class TestWindows:
    def test_week_start(self):
        assert week_start(TODAY) == date(2026, 3, 7)

    def test_month_start(self):
        assert month_start(TODAY) == date(2026, 3, 1)


class TestLeaderboards:
    def test_daily(self, seeded):
        rows = get_daily_leaderboard(seeded, "telegram", TODAY)
        assert _ids(rows) == ["a", "b"]
        assert rows[0] == {
            "user_id": "a",
            "display_name": "Alice",
            "message_count": 3,
            "message_length": 30,
        }

    def test_daily_ties_broken_by_length(self, db_engine):
        seed_messages(db_engine, "telegram", "x", "X", [1, 1], TODAY)
        seed_messages(db_engine, "telegram", "y", "Y", [9, 9], TODAY)
        assert _ids(get_daily_leaderboard(db_engine, "telegram", TODAY)) == ["y", "x"]

    def test_weekly(self, seeded):
        rows = get_weekly_leaderboard(seeded, "telegram", today=TODAY)
        assert _ids(rows) == ["c", "a", "b"]
        assert rows[0]["total_messages"] == 4
        assert rows[0]["total_length"] == 4

    def test_monthly(self, seeded):
        rows = get_monthly_leaderboard(seeded, "telegram", today=TODAY)
        assert _ids(rows) == ["b", "c", "a"]
        assert rows[0]["total_messages"] == 7
        assert rows[0]["total_length"] == 125

    def test_all_time(self, seeded):
        rows = get_all_time_leaderboard(seeded, "telegram")
        assert _ids(rows) == ["d", "b", "c", "a"]

    def test_limit_truncates(self, seeded):
        assert len(get_all_time_leaderboard(seeded, "telegram", limit=2)) == 2
        assert len(get_all_time_leaderboard(seeded, "telegram", limit=50)) == 4

    def test_platform_isolation(self, seeded):
        rows = get_all_time_leaderboard(seeded, "discord")
        assert rows == [
            {"user_id": "a", "display_name": "Alice#1", "total_messages": 9, "total_length": 900}
        ]

    def test_empty(self, db_engine):
        assert get_all_time_leaderboard(db_engine, "telegram") == []

    @pytest.mark.parametrize(
        "period, expected",
        [
            ("daily", ["a", "b"]),
            ("weekly", ["c", "a", "b"]),
            ("monthly", ["b", "c", "a"]),
            ("all", ["d", "b", "c", "a"]),
        ],
    )
    def test_dispatch(self, seeded, period, expected):
        assert _ids(get_leaderboard(seeded, "telegram", period, today=TODAY)) == expected


class TestUserStats:
    def test_active_user(self, seeded):
        stats = get_user_stats(seeded, "telegram", "b", today=TODAY)
        assert stats == {"daily": 2, "weekly": 2, "monthly": 7, "all_time": 7, "rank": 2}

    def test_top_ranked(self, seeded):
        assert get_user_stats(seeded, "telegram", "d", today=TODAY)["rank"] == 1

    def test_unknown_user(self, seeded):
        stats = get_user_stats(seeded, "telegram", "nobody", today=TODAY)
        assert stats == {"daily": 0, "weekly": 0, "monthly": 0, "all_time": 0, "rank": None}

    def test_rank_is_per_platform(self, seeded):
        assert get_user_stats(seeded, "discord", "a", today=TODAY)["rank"] == 1


class TestPlatformStats:
    def test_telegram(self, seeded):
        assert get_platform_stats(seeded, "telegram", today=TODAY) == {
            "total_users": 4,
            "total_messages": 34,
            "active_today": 2,
            "active_this_week": 3,
        }

    def test_empty(self, db_engine):
        assert get_platform_stats(db_engine, "discord", today=TODAY) == {
            "total_users": 0,
            "total_messages": 0,
            "active_today": 0,
            "active_this_week": 0,
        }

    def test_idempotent(self, seeded):
        first = get_platform_stats(seeded, "telegram", today=TODAY)
        assert get_platform_stats(seeded, "telegram", today=TODAY) == first

    def test_overview_totals_are_sums(self, seeded):
        data = get_overview(seeded, today=TODAY)
        tg, dc = data["platforms"]["telegram"], data["platforms"]["discord"]
        for key in ("total_users", "total_messages", "active_today", "active_this_week"):
            assert data["total"][key] == tg[key] + dc[key]
        assert data["total"]["total_messages"] == 43


class TestValidation:
    @pytest.mark.parametrize(
        "call",
        [
            lambda e: get_daily_leaderboard(e, "xyz"),
            lambda e: get_weekly_leaderboard(e, "xyz"),
            lambda e: get_all_time_leaderboard(e, "xyz"),
            lambda e: get_user_stats(e, "xyz", "1"),
            lambda e: get_platform_stats(e, "xyz"),
        ],
    )
    def test_invalid_platform_rejected_before_storage(self, call):
        engine = object()  # any storage access would blow up
        with pytest.raises(ValidationError) as excinfo:
            call(engine)
        assert excinfo.value.code == "INVALID_PLATFORM"

    def test_platform_is_case_insensitive(self, seeded):
        assert get_platform_stats(seeded, "TeleGram", today=TODAY)["total_users"] == 4

    @pytest.mark.parametrize("limit", [0, -1, 1001, 2.5, "10", True])
    def test_invalid_limit(self, db_engine, limit):
        with pytest.raises(ValidationError) as excinfo:
            get_all_time_leaderboard(db_engine, "telegram", limit=limit)
        assert excinfo.value.code == "INVALID_LIMIT"

    def test_invalid_period(self, db_engine):
        with pytest.raises(ValidationError) as excinfo:
            get_leaderboard(db_engine, "telegram", "yearly")
        assert excinfo.value.code == "INVALID_PERIOD"

    def test_blank_user_id(self, db_engine):
        with pytest.raises(ValidationError) as excinfo:
            get_user_stats(db_engine, "telegram", "  ")
        assert excinfo.value.code == "MISSING_USER_ID"


def test_storage_failure_is_wrapped(db_engine):
    with patch.object(
        stats_service, "Session",
        side_effect=OperationalError("SELECT", {}, Exception("gone")),
    ):
        with pytest.raises(PersistenceError) as excinfo:
            get_platform_stats(db_engine, "telegram", today=TODAY)
    assert excinfo.value.operation == "get_platform_stats"
