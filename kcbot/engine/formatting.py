"""
kcbot.engine.formatting — Telegram HTML rendering
==================================================

Builds the chat replies for leaderboard and stats commands.  Output uses
Telegram's HTML parse mode, so every user-controlled string is escaped.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from html import escape

from kcbot.constants import rank_label

# Leaderboard kinds as shown to users
KIND_TITLES: dict[str, str] = {
    "daily": "Daily",
    "weekly": "Weekly",
    "monthly": "Monthly",
    "all": "All-time",
}

HELP_TEXT = """<b>🤖 KhmerCoders Bot - Available Commands:</b>

<b>📊 Leaderboard Commands:</b>
• /leaderboard or /top - Show all-time leaderboard
• /daily - Today's leaderboard
• /weekly - This week's leaderboard
• /monthly - This month's leaderboard
• /stats [period] - Show leaderboard (supports all periods)

<b>👤 Personal Stats:</b>
• /mystats or /me - Show your personal statistics

<b>🔧 Utility Commands:</b>
• /summary [prompt] - Summarize recent chat messages
• /ping - Check if the bot is online
• /help - Show this help message

<b>📝 Examples:</b>
• <code>/leaderboard</code> - All-time top users
• <code>/daily</code> - Today's most active users
• <code>/summary what were the main topics?</code> - Custom summary

<i>🏆 Compete with other members and climb the leaderboards!</i>"""


def _entry_totals(entry: Mapping) -> tuple[int, int]:
    """(messages, chars) for either a daily row or an aggregated row."""
    count = entry.get("message_count", entry.get("total_messages")) or 0
    length = entry.get("message_length", entry.get("total_length")) or 0
    return int(count), int(length)


def leaderboard_title(kind: str, platform: str) -> str:
    return f"<b>📊 {KIND_TITLES.get(kind, kind.title())} {platform.title()} Leaderboard</b>"


def format_leaderboard_message(
    rows: Sequence[Mapping], kind: str, platform: str
) -> str:
    """Render leaderboard rows with medals for the top three."""
    header = leaderboard_title(kind, platform)
    if not rows:
        return f"{header}\n\nNo data available yet."

    lines = [header, ""]
    for index, entry in enumerate(rows):
        count, length = _entry_totals(entry)
        lines.append(f"{rank_label(index)} <b>{escape(str(entry['display_name']))}</b>")
        lines.append(f"   📝 {count} messages ({length} chars)")
        lines.append("")
    return "\n".join(lines).rstrip("\n") + "\n"


def format_platform_footer(
    stats: Mapping[str, int],
    *,
    totals: bool = True,
    today: bool = True,
    week: bool = True,
    hint: bool = False,
) -> str:
    """Italic stats footer appended under a leaderboard."""
    parts: list[str] = []
    if totals:
        parts.append(
            f"📈 Total: {stats['total_users']} users, {stats['total_messages']} messages"
        )
    if today and week:
        parts.append(
            f"👥 Active today: {stats['active_today']} | This week: {stats['active_this_week']}"
        )
    elif today:
        parts.append(f"👥 Active today: {stats['active_today']} users")
    elif week:
        parts.append(f"👥 Active this week: {stats['active_this_week']} users")
    if hint:
        parts.append("\nUse /daily, /weekly, /monthly for other periods")
    return "\n<i>" + "\n".join(parts) + "</i>"


def format_user_stats(display_name: str, stats: Mapping[str, int | None]) -> str:
    rank = stats.get("rank")
    rank_line = f"• All-time rank: <b>#{rank}</b>" if rank else "• Not ranked yet"
    return (
        f"<b>📊 Personal Statistics for {escape(display_name)}</b>\n\n"
        "<b>📈 Message Count:</b>\n"
        f"• Today: <b>{stats['daily']}</b> messages\n"
        f"• This Week: <b>{stats['weekly']}</b> messages\n"
        f"• This Month: <b>{stats['monthly']}</b> messages\n"
        f"• All Time: <b>{stats['all_time']}</b> messages\n\n"
        "<b>🏆 Ranking:</b>\n"
        f"{rank_line}\n\n"
        "<i>Keep chatting to climb the leaderboards! 🚀</i>"
    )


def format_summary(summary: str, as_of: str) -> str:
    return f"<b>📝 Chat Summary</b> (as of {as_of})\n\n{summary}"
