"""
tests/test_formatting.py — Telegram HTML Rendering
===================================================
"""

from __future__ import annotations

from kcbot.constants import rank_label, sanitize_limit
from kcbot.engine.formatting import (
    format_leaderboard_message,
    format_platform_footer,
    format_summary,
    format_user_stats,
)

STATS = {"total_users": 12, "total_messages": 340, "active_today": 4, "active_this_week": 9}


class TestLeaderboardMessage:
    def test_empty(self):
        msg = format_leaderboard_message([], "daily", "telegram")
        assert msg == "<b>📊 Daily Telegram Leaderboard</b>\n\nNo data available yet."

    def test_medals_then_numbers(self):
        rows = [
            {"display_name": f"user{i}", "total_messages": 10 - i, "total_length": 100}
            for i in range(5)
        ]
        msg = format_leaderboard_message(rows, "all", "telegram")
        assert msg.startswith("<b>📊 All-time Telegram Leaderboard</b>")
        assert "🥇 <b>user0</b>" in msg
        assert "🥈 <b>user1</b>" in msg
        assert "🥉 <b>user2</b>" in msg
        assert "4. <b>user3</b>" in msg
        assert "5. <b>user4</b>" in msg
        assert "📝 10 messages (100 chars)" in msg

    def test_daily_rows_use_counter_columns(self):
        rows = [{"display_name": "a", "message_count": 3, "message_length": 42}]
        assert "📝 3 messages (42 chars)" in format_leaderboard_message(rows, "daily", "discord")

    def test_display_names_are_escaped(self):
        rows = [{"display_name": "<b>evil</b> & co", "total_messages": 1, "total_length": 1}]
        msg = format_leaderboard_message(rows, "weekly", "telegram")
        assert "&lt;b&gt;evil&lt;/b&gt; &amp; co" in msg


class TestFooter:
    def test_full_footer(self):
        footer = format_platform_footer(STATS)
        assert footer == (
            "\n<i>📈 Total: 12 users, 340 messages\n"
            "👥 Active today: 4 | This week: 9</i>"
        )

    def test_hint(self):
        assert "Use /daily, /weekly, /monthly" in format_platform_footer(STATS, hint=True)

    def test_today_only(self):
        assert format_platform_footer(STATS, totals=False, week=False) == (
            "\n<i>👥 Active today: 4 users</i>"
        )

    def test_week_only(self):
        assert format_platform_footer(STATS, totals=False, today=False) == (
            "\n<i>👥 Active this week: 9 users</i>"
        )


def test_user_stats_ranked():
    stats = {"daily": 1, "weekly": 2, "monthly": 3, "all_time": 4, "rank": 7}
    msg = format_user_stats("Dara & Sok", stats)
    assert "Personal Statistics for Dara &amp; Sok" in msg
    assert "All Time: <b>4</b>" in msg
    assert "All-time rank: <b>#7</b>" in msg


def test_user_stats_unranked():
    stats = {"daily": 0, "weekly": 0, "monthly": 0, "all_time": 0, "rank": None}
    assert "Not ranked yet" in format_user_stats("x", stats)


def test_summary():
    assert format_summary("hello", "Oct 19, 2026") == (
        "<b>📝 Chat Summary</b> (as of Oct 19, 2026)\n\nhello"
    )


def test_rank_label():
    assert [rank_label(i) for i in range(5)] == ["🥇", "🥈", "🥉", "4.", "5."]


class TestSanitizeLimit:
    def test_default_for_missing_or_garbage(self):
        assert sanitize_limit(None) == 10
        assert sanitize_limit("") == 10
        assert sanitize_limit("abc") == 10

    def test_clamped(self):
        assert sanitize_limit("0") == 1
        assert sanitize_limit("-5") == 1
        assert sanitize_limit("500") == 100
        assert sanitize_limit("25") == 25
