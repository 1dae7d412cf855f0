"""
kcbot.services.commands — Telegram chat command handlers
=========================================================

Commands arrive through the Telegram webhook and are answered in the
background after the webhook has been acknowledged.

Command → handler map:

=====================  ===========  ==================================
Command                Handler      Limiter
=====================  ===========  ==================================
/summary [prompt]      summary      summary (2 per 5 minutes)
/ping                  ping         —
/help                  help         —
/stats, /leaderboard   stats        commands (5 per minute)
/mystats, /me          mystats      —
/top, /ranking         top          commands
/daily                 daily        commands
/weekly                weekly       commands
/monthly               monthly      commands
=====================  ===========  ==================================

Every handler is wrapped so that a failure ends in a logged traceback and
a best-effort apology in the chat, never an exception in the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import Engine

from kcbot.constants import DEFAULT_LEADERBOARD_LIMIT
from kcbot.database.engine import run_db
from kcbot.engine import formatting
from kcbot.engine.rate_limit import RateLimiter, RateLimiterRegistry
from kcbot.engine.security import log_security_event, sanitize_input
from kcbot.services import stats_service
from kcbot.services.summary_service import SummaryClient
from kcbot.services.telegram_service import (
    TelegramClient,
    TelegramMessage,
    display_name_for,
    fetch_recent_messages,
)

logger = logging.getLogger(__name__)

PLATFORM = "telegram"

COMMANDS: dict[str, str] = {
    "/summary": "summary",
    "/ping": "ping",
    "/help": "help",
    "/stats": "stats",
    "/leaderboard": "stats",
    "/mystats": "mystats",
    "/me": "mystats",
    "/top": "top",
    "/ranking": "top",
    "/daily": "daily",
    "/weekly": "weekly",
    "/monthly": "monthly",
}

# /stats argument → leaderboard period
STATS_PERIODS: dict[str, str] = {
    "daily": "daily",
    "today": "daily",
    "weekly": "weekly",
    "week": "weekly",
    "monthly": "monthly",
    "month": "monthly",
}

APOLOGIES: dict[str, str] = {
    "summary": "Sorry, an error occurred while generating the summary.",
    "ping": "Sorry, an error occurred while processing your ping.",
    "help": "Sorry, an error occurred while processing your help request.",
    "stats": "Sorry, an error occurred while fetching the leaderboard.",
    "top": "Sorry, an error occurred while fetching the leaderboard.",
    "mystats": "Sorry, an error occurred while fetching your statistics.",
    "daily": "Sorry, an error occurred while fetching today's leaderboard.",
    "weekly": "Sorry, an error occurred while fetching this week's leaderboard.",
    "monthly": "Sorry, an error occurred while fetching this month's leaderboard.",
}

SUMMARY_PROMPT_MAX_LENGTH = 500


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Command:
    name: str
    args: tuple[str, ...] = ()


def parse_command(text: str | None) -> Command | None:
    """Return the :class:`Command` for *text*, or None if it isn't one.

    Only the first word counts; ``/stats@KhmerCodersBot weekly`` parses
    as ``stats`` with args ``("weekly",)``.
    """
    if not text or not text.startswith("/"):
        return None
    head, *rest = text.split()
    name = COMMANDS.get(head.split("@", 1)[0].lower())
    if name is None:
        return None
    return Command(name=name, args=tuple(rest))


@dataclass(slots=True)
class CommandContext:
    chat_id: str
    message_id: int
    text: str
    sender_id: str | None = None
    display_name: str = "Unknown User"
    thread_id: str | None = None
    platform: str = PLATFORM

    @classmethod
    def from_message(cls, message: TelegramMessage) -> CommandContext:
        return cls(
            chat_id=str(message.chat.id),
            message_id=message.message_id,
            text=message.text or "",
            sender_id=str(message.from_.id) if message.from_ else None,
            display_name=display_name_for(message.from_),
            thread_id=str(message.message_thread_id) if message.message_thread_id else None,
        )

    @property
    def limiter_key(self) -> str:
        return self.sender_id or "unknown"


# ---------------------------------------------------------------------------
# Processor
# ---------------------------------------------------------------------------
class CommandProcessor:
    """Runs command handlers against the database and the Telegram API."""

    def __init__(
        self,
        engine: Engine,
        telegram: TelegramClient,
        limiters: RateLimiterRegistry,
        summary: SummaryClient | None = None,
        *,
        leaderboard_limit: int = DEFAULT_LEADERBOARD_LIMIT,
        summary_message_limit: int = 200,
    ) -> None:
        self.engine = engine
        self.telegram = telegram
        self.limiters = limiters
        self.summary = summary
        self.leaderboard_limit = leaderboard_limit
        self.summary_message_limit = summary_message_limit

    async def handle(self, command: Command, ctx: CommandContext) -> None:
        handler = getattr(self, f"_cmd_{command.name}")
        logger.info(
            "Processing /%s for chat %s%s",
            command.name, ctx.chat_id,
            f", thread {ctx.thread_id}" if ctx.thread_id else "",
        )
        try:
            await handler(command, ctx)
        except Exception:
            logger.exception("Error processing /%s in chat %s", command.name, ctx.chat_id)
            await self._apologize(ctx, APOLOGIES[command.name])

    # -- helpers -------------------------------------------------------------
    async def _reply(self, ctx: CommandContext, text: str) -> None:
        await self.telegram.send_message(
            ctx.chat_id, text, thread_id=ctx.thread_id, reply_to_message_id=ctx.message_id
        )

    async def _typing(self, ctx: CommandContext) -> None:
        await self.telegram.send_chat_action(ctx.chat_id, "typing", thread_id=ctx.thread_id)

    async def _apologize(self, ctx: CommandContext, text: str) -> None:
        try:
            await self._reply(ctx, text)
        except Exception:
            logger.exception("Failed to send error reply to chat %s", ctx.chat_id)

    async def _limited(self, limiter: RateLimiter, ctx: CommandContext, reply: str) -> bool:
        """True (after telling the user) when *ctx*'s sender is over *limiter*."""
        key = ctx.limiter_key
        if not limiter.is_rate_limited(key):
            return False
        wait = limiter.get_retry_after(key)
        log_security_event(
            "RATE_LIMITED", f"Command rate limited ({wait}s)", key, ctx.platform
        )
        await self._reply(ctx, reply.format(seconds=wait))
        return True

    async def _command_limited(self, ctx: CommandContext) -> bool:
        return await self._limited(
            self.limiters.commands,
            ctx,
            "⏰ Command rate limit reached. Try again in {seconds} seconds.",
        )

    async def _leaderboard_reply(self, period: str, footer: dict | None) -> str:
        rows = await run_db(
            stats_service.get_leaderboard,
            self.engine, PLATFORM, period, self.leaderboard_limit,
        )
        message = formatting.format_leaderboard_message(rows, period, PLATFORM)
        if footer is None:
            return message
        stats = await run_db(stats_service.get_platform_stats, self.engine, PLATFORM)
        return message + formatting.format_platform_footer(stats, **footer)

    # -- handlers ------------------------------------------------------------
    async def _cmd_ping(self, command: Command, ctx: CommandContext) -> None:
        await self._typing(ctx)
        await self._reply(ctx, "pong")

    async def _cmd_help(self, command: Command, ctx: CommandContext) -> None:
        await self._typing(ctx)
        await self._reply(ctx, formatting.HELP_TEXT)

    async def _cmd_stats(self, command: Command, ctx: CommandContext) -> None:
        if await self._command_limited(ctx):
            return
        await self._typing(ctx)
        period = STATS_PERIODS.get(command.args[0].lower(), "all") if command.args else "all"
        await self._reply(ctx, await self._leaderboard_reply(period, {}))

    async def _cmd_top(self, command: Command, ctx: CommandContext) -> None:
        if await self._command_limited(ctx):
            return
        await self._typing(ctx)
        await self._reply(ctx, await self._leaderboard_reply("all", {"hint": True}))

    async def _cmd_daily(self, command: Command, ctx: CommandContext) -> None:
        if await self._command_limited(ctx):
            return
        await self._typing(ctx)
        footer = {"totals": False, "week": False}
        await self._reply(ctx, await self._leaderboard_reply("daily", footer))

    async def _cmd_weekly(self, command: Command, ctx: CommandContext) -> None:
        if await self._command_limited(ctx):
            return
        await self._typing(ctx)
        footer = {"totals": False, "today": False}
        await self._reply(ctx, await self._leaderboard_reply("weekly", footer))

    async def _cmd_monthly(self, command: Command, ctx: CommandContext) -> None:
        if await self._command_limited(ctx):
            return
        await self._typing(ctx)
        await self._reply(ctx, await self._leaderboard_reply("monthly", None))

    async def _cmd_mystats(self, command: Command, ctx: CommandContext) -> None:
        if ctx.sender_id is None:
            await self._reply(ctx, "Sorry, I couldn't identify you to fetch your statistics.")
            return
        await self._typing(ctx)
        stats = await run_db(
            stats_service.get_user_stats, self.engine, PLATFORM, ctx.sender_id
        )
        await self._reply(ctx, formatting.format_user_stats(ctx.display_name, stats))

    async def _cmd_summary(self, command: Command, ctx: CommandContext) -> None:
        if await self._limited(
            self.limiters.summary,
            ctx,
            "⏰ Please wait {seconds} seconds before requesting another summary.",
        ):
            return
        if self.summary is None:
            await self._reply(ctx, "Chat summaries are not configured for this bot.")
            return

        await self._typing(ctx)
        messages = await run_db(
            fetch_recent_messages,
            self.engine, ctx.chat_id, self.summary_message_limit, ctx.thread_id,
        )
        if not messages:
            await self._reply(ctx, "No messages found to summarize.")
            return
        logger.info("Summarizing %d messages for chat %s", len(messages), ctx.chat_id)

        prompt = sanitize_input(" ".join(command.args), SUMMARY_PROMPT_MAX_LENGTH) or ""
        summary = await self.summary.summarize(messages, prompt)

        now = datetime.now(UTC)
        as_of = f"{now:%b} {now.day}, {now.year}, {now:%I:%M %p} UTC"
        await self._reply(ctx, formatting.format_summary(summary, as_of))
