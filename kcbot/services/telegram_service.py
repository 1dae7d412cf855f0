"""
kcbot.services.telegram_service — Telegram message log & Bot API client
========================================================================

* Inbound: parsed webhook models (pydantic) and the append-only
  ``telegram_channel_messages`` log that feeds ``/summary``.
* Outbound: :class:`TelegramClient`, a thin httpx wrapper around
  ``sendMessage`` and ``sendChatAction``.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Engine, select
from sqlalchemy.exc import SQLAlchemyError

from kcbot.constants import MAX_QUERY_LIMIT
from kcbot.database.engine import get_session
from kcbot.database.models import TelegramChannelMessage
from kcbot.errors import PersistenceError, UpstreamError, ValidationError

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org"

# Message fields that mark a service event rather than a chat message.
SERVICE_FIELDS: tuple[str, ...] = (
    "new_chat_member",
    "new_chat_members",
    "left_chat_member",
    "new_chat_title",
    "new_chat_photo",
    "delete_chat_photo",
    "group_chat_created",
    "supergroup_chat_created",
    "channel_chat_created",
    "message_auto_delete_timer_changed",
    "pinned_message",
)

_MEDIA_FIELDS: tuple[str, ...] = ("photo", "video", "document", "audio")


# ---------------------------------------------------------------------------
# Webhook payload models
# ---------------------------------------------------------------------------
class TelegramSender(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    is_bot: bool = False
    first_name: str | None = None
    last_name: str | None = None
    username: str | None = None


class TelegramChat(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    type: str = "private"
    title: str | None = None
    username: str | None = None


class TelegramReply(BaseModel):
    model_config = ConfigDict(extra="allow")

    message_id: int


class TelegramMessage(BaseModel):
    """The subset of Telegram's ``Message`` the bot reads.

    Unknown fields are kept (``extra="allow"``) so service-event detection
    can look at anything Telegram sends.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    message_id: int
    date: int = 0
    chat: TelegramChat
    from_: TelegramSender | None = Field(default=None, alias="from")
    text: str | None = None
    message_thread_id: int | None = None
    reply_to_message: TelegramReply | None = None
    forward_from: TelegramSender | None = None
    forward_from_chat: TelegramChat | None = None

    def is_service_message(self) -> bool:
        extras = self.model_extra or {}
        return any(extras.get(name) for name in SERVICE_FIELDS)

    def media_type(self) -> str | None:
        extras = self.model_extra or {}
        media = None
        for name in _MEDIA_FIELDS:
            if extras.get(name):
                media = name
        return media


class TelegramUpdate(BaseModel):
    model_config = ConfigDict(extra="allow")

    update_id: int | None = None
    message: TelegramMessage | None = None


# ---------------------------------------------------------------------------
# Name helpers
# ---------------------------------------------------------------------------
def display_name_for(sender: TelegramSender | None) -> str:
    """``"First Last"`` → ``"First"`` → ``username`` → ``"Unknown User"``."""
    if sender is None:
        return "Unknown User"
    if sender.first_name:
        if sender.last_name:
            return f"{sender.first_name} {sender.last_name}"
        return sender.first_name
    return sender.username or "Unknown User"


def _forwarded_from(message: TelegramMessage) -> str | None:
    if message.forward_from is not None:
        return display_name_for(message.forward_from)
    chat = message.forward_from_chat
    if chat is not None:
        return chat.title or chat.username or f"Chat {chat.id}"
    return None


# ---------------------------------------------------------------------------
# Message log
# ---------------------------------------------------------------------------
def record_channel_message(engine: Engine, message: TelegramMessage) -> None:
    """Append *message* to ``telegram_channel_messages``."""
    if not message.message_id or message.chat is None:
        raise ValidationError("Invalid message object provided", code="INVALID_MESSAGE")

    row = TelegramChannelMessage(
        message_id=str(message.message_id),
        chat_id=str(message.chat.id),
        chat_type=message.chat.type,
        chat_title=message.chat.title or "Unknown Channel",
        sender_id=str(message.from_.id) if message.from_ else None,
        sender_name=display_name_for(message.from_),
        message_text=message.text or "",
        message_date=datetime.fromtimestamp(message.date, tz=UTC),
        media_type=message.media_type(),
        forwarded_from=_forwarded_from(message),
        reply_to_message_id=(
            str(message.reply_to_message.message_id) if message.reply_to_message else None
        ),
        message_thread_id=(
            str(message.message_thread_id) if message.message_thread_id else None
        ),
    )

    try:
        with get_session(engine) as session:
            session.add(row)
    except SQLAlchemyError as exc:
        logger.exception("Error recording message from chat %s", message.chat.id)
        raise PersistenceError("record_channel_message") from exc

    logger.debug(
        "Recorded %s message from chat %s (%s)",
        message.chat.type, message.chat.title, message.chat.id,
    )


def fetch_recent_messages(
    engine: Engine,
    chat_id: str,
    limit: int = 200,
    thread_id: str | None = None,
) -> list[dict[str, Any]]:
    """Newest-first non-empty messages for *chat_id* (optionally one thread)."""
    if not isinstance(chat_id, str) or not chat_id.strip():
        raise ValidationError("Chat ID is required", code="MISSING_CHAT_ID")
    if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= MAX_QUERY_LIMIT:
        raise ValidationError(
            f"Invalid limit: {limit}. Must be an integer between 1 and {MAX_QUERY_LIMIT}.",
            code="INVALID_LIMIT",
        )

    query = select(TelegramChannelMessage).where(
        TelegramChannelMessage.chat_id == chat_id.strip(),
        TelegramChannelMessage.message_text != "",
    )
    if thread_id and thread_id.strip():
        query = query.where(TelegramChannelMessage.message_thread_id == thread_id.strip())
    query = query.order_by(
        TelegramChannelMessage.message_date.desc(), TelegramChannelMessage.id.desc()
    ).limit(limit)

    try:
        with get_session(engine) as session:
            rows = session.scalars(query).all()
            return [
                {
                    "message_text": r.message_text,
                    "sender_name": r.sender_name,
                    "message_date": r.message_date,
                    "message_thread_id": r.message_thread_id,
                }
                for r in rows
            ]
    except SQLAlchemyError as exc:
        logger.exception("Error fetching messages for chat %s", chat_id)
        raise PersistenceError("fetch_recent_messages") from exc


# ---------------------------------------------------------------------------
# Bot API client
# ---------------------------------------------------------------------------
class TelegramClient:
    """Minimal async Telegram Bot API client.

    A fresh :class:`httpx.AsyncClient` is opened per call; pass
    *transport* to stub the network in tests.
    """

    def __init__(
        self,
        token: str,
        *,
        base_url: str = TELEGRAM_API,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _url(self, method: str) -> str:
        return f"{self.base_url}/bot{self.token}/{method}"

    async def _call(self, method: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.post(self._url(method), json=payload)
        except httpx.HTTPError as exc:
            raise UpstreamError("telegram", f"{method} failed: {exc}") from exc

        if resp.status_code >= 400:
            logger.warning(
                "Telegram %s returned %d: %s", method, resp.status_code, resp.text[:200]
            )
            raise UpstreamError("telegram", f"{method} returned HTTP {resp.status_code}")
        return resp.json()

    async def send_message(
        self,
        chat_id: str | int,
        text: str,
        thread_id: str | int | None = None,
        reply_to_message_id: int | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text, "parse_mode": "HTML"}
        if thread_id:
            payload["message_thread_id"] = thread_id
        if reply_to_message_id:
            payload["reply_to_message_id"] = reply_to_message_id
        return await self._call("sendMessage", payload)

    async def send_chat_action(
        self,
        chat_id: str | int,
        action: str = "typing",
        thread_id: str | int | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"chat_id": chat_id, "action": action}
        if thread_id:
            payload["message_thread_id"] = thread_id
        return await self._call("sendChatAction", payload)
