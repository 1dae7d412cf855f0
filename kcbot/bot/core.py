"""
kcbot.bot.core — Discord relay bot
===================================

A gateway alternative to ``POST /discord/webhook``: instead of a relay
posting JSON to the API, this bot listens to guild messages directly and
writes them through the same ``track_message`` path.

Cogs get the shared config and engine through ``self.bot.cfg`` and
``self.bot.engine``.
"""

from __future__ import annotations

import logging
import os

import discord
from discord.ext import commands
from sqlalchemy import Engine

from kcbot.config import BotConfig

logger = logging.getLogger(__name__)

EXTENSIONS: list[str] = [
    "kcbot.bot.cogs.tracking",
]


class KcBot(commands.Bot):
    """``commands.Bot`` carrying the project config and DB engine."""

    def __init__(self, cfg: BotConfig, engine: Engine) -> None:
        intents = discord.Intents.default()
        intents.message_content = True    # Privileged: message length
        intents.presences = False

        super().__init__(
            command_prefix="!",
            intents=intents,
            description=cfg.app_name,
        )
        self.cfg = cfg
        self.engine = engine

    async def setup_hook(self) -> None:
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        assert self.user is not None
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)

        dev_guild_id = os.getenv("DEV_GUILD_ID")
        if dev_guild_id:
            guild = discord.Object(id=int(dev_guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %d commands to dev guild %s", len(synced), dev_guild_id)
        else:
            synced = await self.tree.sync()
            logger.info("Synced %d commands globally", len(synced))
