"""
kcbot.bot.cogs.tracking — Discord message counting
===================================================

Gates (in order): bot authors, DMs, system messages.  Everything else
counts once through ``track_message``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from kcbot.constants import RANK_BADGES
from kcbot.database.engine import run_db
from kcbot.engine.formatting import KIND_TITLES
from kcbot.engine.security import detect_abuse, log_security_event
from kcbot.errors import BotError
from kcbot.services import stats_service
from kcbot.services.tracking_service import track_message

if TYPE_CHECKING:
    from kcbot.bot.core import KcBot

logger = logging.getLogger(__name__)

PLATFORM = "discord"


def should_track(message: discord.Message) -> bool:
    if message.author.bot:
        return False
    if message.guild is None:
        return False
    return not message.is_system()


def leaderboard_lines(rows: list[dict]) -> list[str]:
    lines = []
    for i, row in enumerate(rows):
        medal = RANK_BADGES[i] if i < len(RANK_BADGES) else f"**{i + 1}.**"
        count = row.get("message_count", row.get("total_messages", 0))
        name = discord.utils.escape_markdown(row["display_name"])
        lines.append(f"{medal} **{name}** — {count:,} messages")
    return lines


class Tracking(commands.Cog, name="Tracking"):
    def __init__(self, bot: KcBot) -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if not should_track(message):
            return
        try:
            await run_db(
                track_message,
                self.bot.engine,
                PLATFORM,
                str(message.author.id),
                message.author.display_name,
                len(message.content),
            )
        except BotError:
            logger.exception("Failed to track message %s from %s", message.id, message.author.id)
            return

        report = detect_abuse(message.content)
        if report.is_spam:
            log_security_event(
                "SPAM_DETECTED", f"Abuse score {report.score}", str(message.author.id), PLATFORM
            )

    @commands.hybrid_command(  # type: ignore[arg-type]
        name="leaderboard",
        description="Most active members on Discord.",
    )
    @app_commands.describe(period="Time window")
    @app_commands.choices(period=[
        app_commands.Choice(name="Today", value="daily"),
        app_commands.Choice(name="This week", value="weekly"),
        app_commands.Choice(name="This month", value="monthly"),
        app_commands.Choice(name="All time", value="all"),
    ])
    async def leaderboard(self, ctx: commands.Context, period: str = "all") -> None:
        try:
            rows = await run_db(
                stats_service.get_leaderboard,
                self.bot.engine,
                PLATFORM,
                period,
                self.bot.cfg.leaderboard_default_limit,
            )
        except BotError as exc:
            await ctx.send(f"❌ {exc.message}", ephemeral=True)
            return

        if not rows:
            await ctx.send("No data available yet.", ephemeral=True)
            return

        embed = discord.Embed(
            title=f"\U0001f4ca {KIND_TITLES[period]} Discord Leaderboard",
            description="\n".join(leaderboard_lines(rows)),
            color=discord.Color.gold(),
        )
        embed.set_footer(text=self.bot.cfg.app_name)
        await ctx.send(embed=embed)


async def setup(bot: KcBot) -> None:
    await bot.add_cog(Tracking(bot))
