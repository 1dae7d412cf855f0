"""
kcbot.database.models — SQLAlchemy 2.0 Data Models
===================================================

Tables:
- users                      — One row per (platform, user_id)
- chat_counter               — Per-user per-day message count + total length
- telegram_channel_messages  — Append-only Telegram message log (feeds /summary)
"""

from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all kcbot ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class Platform(enum.StrEnum):
    """Supported chat ecosystems.  Partition key for every table."""
    TELEGRAM = "telegram"
    DISCORD = "discord"


# ---------------------------------------------------------------------------
# Users — one row per platform-scoped member
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    platform: Mapped[str] = mapped_column(String(16), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<User {self.platform}:{self.user_id} name={self.display_name!r}>"


# ---------------------------------------------------------------------------
# ChatCounter — per-user per-day aggregate
# ---------------------------------------------------------------------------
class ChatCounter(Base):
    """Message count and cumulative character length for one user on one
    UTC calendar day.  Only ever incremented."""
    __tablename__ = "chat_counter"

    chat_date: Mapped[date] = mapped_column(Date, primary_key=True)
    platform: Mapped[str] = mapped_column(String(16), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    message_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    message_length: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("message_count >= 0", name="ck_chat_counter_count_nonneg"),
        CheckConstraint("message_length >= 0", name="ck_chat_counter_length_nonneg"),
        Index("ix_chat_counter_platform_date", "platform", "chat_date"),
        Index("ix_chat_counter_platform_user", "platform", "user_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<ChatCounter {self.chat_date} {self.platform}:{self.user_id} "
            f"count={self.message_count}>"
        )


# ---------------------------------------------------------------------------
# TelegramChannelMessage — append-only log
# ---------------------------------------------------------------------------
class TelegramChannelMessage(Base):
    __tablename__ = "telegram_channel_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    message_id: Mapped[str] = mapped_column(String(64), nullable=False)
    chat_id: Mapped[str] = mapped_column(String(64), nullable=False)
    chat_type: Mapped[str] = mapped_column(String(32), nullable=False)
    chat_title: Mapped[str | None] = mapped_column(String(255), default=None)
    sender_id: Mapped[str | None] = mapped_column(String(64), default=None)
    sender_name: Mapped[str | None] = mapped_column(String(255), default=None)
    message_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    message_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    media_type: Mapped[str | None] = mapped_column(String(32), default=None)
    forwarded_from: Mapped[str | None] = mapped_column(String(255), default=None)
    reply_to_message_id: Mapped[str | None] = mapped_column(String(64), default=None)
    message_thread_id: Mapped[str | None] = mapped_column(String(64), default=None)

    __table_args__ = (
        Index("ix_tg_messages_chat_date", "chat_id", "message_date"),
    )

    def __repr__(self) -> str:
        return f"<TelegramChannelMessage chat={self.chat_id} msg={self.message_id}>"
