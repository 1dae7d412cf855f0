"""
kcbot.api.routes.webhooks — Chat platform ingestion
====================================================

``POST /telegram/webhook`` and ``POST /discord/webhook``.

Both answer HTTP 200 with ``{"success": true|false, ...}`` for anything
they understood, and HTTP 500 ``{"success": false, "error": "Internal
server error"}`` when processing blew up.  Telegram commands are acked
immediately and answered from a background task.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PayloadError
from sqlalchemy import Engine

from kcbot.api.deps import get_command_processor, get_engine, get_tasks
from kcbot.database.engine import run_db
from kcbot.engine.security import detect_abuse, log_security_event
from kcbot.services.commands import CommandContext, CommandProcessor, parse_command
from kcbot.services.tasks import TaskRunner
from kcbot.services.telegram_service import (
    TelegramUpdate,
    display_name_for,
    record_channel_message,
)
from kcbot.services.tracking_service import track_message

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


class DiscordWebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    username: str | None = None
    user_id: str | int | None = None
    content: str | None = None


def _server_error() -> JSONResponse:
    return JSONResponse({"success": False, "error": "Internal server error"}, status_code=500)


def _bad_payload() -> JSONResponse:
    return JSONResponse({"success": False, "error": "Invalid payload"}, status_code=400)


def _flag_abuse(text: str, user_id: str, platform: str) -> None:
    report = detect_abuse(text)
    if report.is_spam:
        log_security_event(
            "SPAM_DETECTED", f"Abuse score {report.score}", user_id, platform
        )


# ---------------------------------------------------------------------------
# POST /telegram/webhook
# ---------------------------------------------------------------------------
@router.post("/telegram/webhook")
async def telegram_webhook(
    request: Request,
    engine: Engine = Depends(get_engine),
    tasks: TaskRunner = Depends(get_tasks),
    processor: CommandProcessor | None = Depends(get_command_processor),
):
    try:
        update = TelegramUpdate.model_validate(await request.json())
    except (ValueError, PayloadError):
        logger.warning("Rejected malformed Telegram update")
        return _bad_payload()

    try:
        message = update.message
        if message is None:
            return {"success": True, "message": "Ignoring non-new messages"}
        if message.is_service_message():
            return {"success": True, "message": "Ignoring service message"}

        command = parse_command(message.text)
        if command is not None:
            if processor is None:
                logger.error("TELEGRAM_BOT_TOKEN is not set; cannot answer /%s", command.name)
            else:
                tasks.spawn(
                    processor.handle(command, CommandContext.from_message(message)),
                    name=f"command-{command.name}-{message.chat.id}",
                )

        sender = message.from_
        if sender is None:
            return {"success": False, "error": "No sender information"}
        if sender.is_bot:
            logger.debug("Ignored message from bot %s", sender.username or sender.first_name)
            return {"success": True, "message": "Ignored bot message"}

        await run_db(record_channel_message, engine, message)

        display_name = display_name_for(sender)
        text = message.text or ""
        await run_db(
            track_message, engine, "telegram", str(sender.id), display_name, len(text)
        )
        _flag_abuse(text, str(sender.id), "telegram")
        logger.info("Tracked Telegram message from %s (%s)", display_name, sender.id)
        return {"success": True}
    except Exception:
        logger.exception("Error processing Telegram webhook")
        return _server_error()


# ---------------------------------------------------------------------------
# POST /discord/webhook
# ---------------------------------------------------------------------------
@router.post("/discord/webhook")
async def discord_webhook(request: Request, engine: Engine = Depends(get_engine)):
    try:
        payload = DiscordWebhookPayload.model_validate(await request.json())
    except (ValueError, PayloadError):
        logger.warning("Rejected malformed Discord webhook payload")
        return _bad_payload()

    username = (payload.username or "").strip()
    user_id = str(payload.user_id or "").strip()
    if not username or not user_id:
        return {"success": False, "error": "No valid message data found"}

    text = payload.content or ""
    try:
        await run_db(track_message, engine, "discord", user_id, username, len(text))
    except Exception:
        logger.exception("Error processing Discord webhook")
        return _server_error()

    _flag_abuse(text, user_id, "discord")
    logger.info("Tracked Discord message from %s (%s)", username, user_id)
    return {"success": True}
