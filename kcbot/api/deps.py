"""
kcbot.api.deps — FastAPI dependency injection
==============================================
"""

from __future__ import annotations

import logging
import os
import secrets
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header, Request
from sqlalchemy import Engine

from kcbot.config import BotConfig, load_config
from kcbot.database.engine import create_db_engine
from kcbot.engine.rate_limit import RateLimiterRegistry
from kcbot.errors import AuthError
from kcbot.services.commands import CommandProcessor
from kcbot.services.summary_service import SummaryClient
from kcbot.services.tasks import TaskRunner
from kcbot.services.telegram_service import TelegramClient

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> BotConfig:
    path = os.getenv("KCBOT_CONFIG", "config.yaml")
    try:
        return load_config(path)
    except FileNotFoundError:
        logger.warning("No config file at %s; using built-in defaults", path)
        return BotConfig()


def require_admin(
    authorization: Annotated[str | None, Header()] = None,
    cfg: BotConfig = Depends(get_config),
) -> None:
    """Check ``Authorization: Bearer <ADMIN_API_TOKEN>``.

    Without ``ADMIN_API_TOKEN`` in the environment every request is refused.
    """
    expected = cfg.admin_api_token
    if not expected:
        raise AuthError("Admin access is not configured", forbidden=True)
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthError("Missing token")
    token = authorization.split(" ", 1)[1]
    if not secrets.compare_digest(token.encode(), expected.encode()):
        raise AuthError("Invalid token")


def get_limiters(request: Request) -> RateLimiterRegistry:
    return request.app.state.limiters


def get_tasks(request: Request) -> TaskRunner:
    return request.app.state.tasks


def get_command_processor(
    engine: Annotated[Engine, Depends(get_engine)],
    cfg: Annotated[BotConfig, Depends(get_config)],
    limiters: Annotated[RateLimiterRegistry, Depends(get_limiters)],
) -> CommandProcessor | None:
    """Processor for Telegram commands, or None without a bot token."""
    token = cfg.telegram_bot_token
    if not token:
        return None

    summary = None
    if cfg.summary_api_url:
        summary = SummaryClient(cfg.summary_api_url, cfg.summary_api_token, cfg.summary_model)

    return CommandProcessor(
        engine,
        TelegramClient(token),
        limiters,
        summary,
        leaderboard_limit=cfg.leaderboard_default_limit,
        summary_message_limit=cfg.summary_message_limit,
    )
