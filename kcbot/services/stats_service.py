"""
kcbot.services.stats_service — Leaderboards & statistics
=========================================================

Read-side aggregation over ``chat_counter`` joined to ``users``.

Every public function validates its arguments before touching the
database.  Storage failures are logged with full detail and re-raised as
:class:`~kcbot.errors.PersistenceError` naming the operation.

Date windows (all UTC calendar dates):

* daily   — ``chat_date == day``
* weekly  — ``chat_date >= today - 7 days``
* monthly — ``chat_date >= first day of the current month``
* all     — no filter

Reads are plain independent statements; counts may lag concurrent writes.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, timedelta
from typing import Any

from sqlalchemy import Engine, and_, distinct, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kcbot.constants import MAX_QUERY_LIMIT, PERIODS, WEEK_WINDOW_DAYS, utc_today
from kcbot.database.models import ChatCounter, Platform, User
from kcbot.errors import PersistenceError, ValidationError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
def validate_platform(platform: str) -> Platform:
    """Return the :class:`Platform` for *platform* (case-insensitive)."""
    if isinstance(platform, str):
        try:
            return Platform(platform.strip().lower())
        except ValueError:
            pass
    raise ValidationError(
        f"Invalid platform: {platform}. Must be 'telegram' or 'discord'.",
        code="INVALID_PLATFORM",
    )


def validate_limit(limit: int) -> int:
    if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= MAX_QUERY_LIMIT:
        raise ValidationError(
            f"Invalid limit: {limit}. Must be an integer between 1 and {MAX_QUERY_LIMIT}.",
            code="INVALID_LIMIT",
        )
    return limit


def validate_period(period: str) -> str:
    if period not in PERIODS:
        raise ValidationError(
            "Invalid period. Use 'daily', 'weekly', 'monthly', or 'all'",
            code="INVALID_PERIOD",
        )
    return period


def validate_user_id(user_id: str) -> str:
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError("User ID is required", code="MISSING_USER_ID")
    return user_id.strip()


# ---------------------------------------------------------------------------
# Date windows
# ---------------------------------------------------------------------------
def week_start(today: date) -> date:
    return today - timedelta(days=WEEK_WINDOW_DAYS)


def month_start(today: date) -> date:
    return today.replace(day=1)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
@contextmanager
def _read(engine: Engine, operation: str) -> Iterator[Session]:
    """Open a read session; wrap storage failures as PersistenceError."""
    try:
        with Session(engine) as session:
            yield session
    except SQLAlchemyError as exc:
        logger.exception("Database error in %s", operation)
        raise PersistenceError(operation) from exc


def _user_join():
    return and_(
        ChatCounter.platform == User.platform,
        ChatCounter.user_id == User.user_id,
    )


def _aggregated_leaderboard(
    engine: Engine,
    platform: str,
    limit: int,
    since: date | None,
    operation: str,
) -> list[dict[str, Any]]:
    """Per-user sums of count and length, optionally from *since* onwards."""
    plat = validate_platform(platform)
    validate_limit(limit)

    total_messages = func.sum(ChatCounter.message_count).label("total_messages")
    total_length = func.sum(ChatCounter.message_length).label("total_length")
    query = (
        select(ChatCounter.user_id, User.display_name, total_messages, total_length)
        .join(User, _user_join())
        .where(ChatCounter.platform == plat.value)
    )
    if since is not None:
        query = query.where(ChatCounter.chat_date >= since)
    query = (
        query.group_by(ChatCounter.user_id, User.display_name)
        .order_by(total_messages.desc(), total_length.desc())
        .limit(limit)
    )

    with _read(engine, operation) as session:
        rows = session.execute(query).all()

    return [
        {
            "user_id": row.user_id,
            "display_name": row.display_name,
            "total_messages": int(row.total_messages or 0),
            "total_length": int(row.total_length or 0),
        }
        for row in rows
    ]


# ---------------------------------------------------------------------------
# Leaderboards
# ---------------------------------------------------------------------------
def get_daily_leaderboard(
    engine: Engine,
    platform: str,
    day: date | None = None,
    limit: int = 10,
) -> list[dict[str, Any]]:
    """Counters for exactly *day* (default: today UTC)."""
    plat = validate_platform(platform)
    validate_limit(limit)
    target = day or utc_today()

    query = (
        select(
            ChatCounter.user_id,
            User.display_name,
            ChatCounter.message_count,
            ChatCounter.message_length,
        )
        .join(User, _user_join())
        .where(ChatCounter.platform == plat.value, ChatCounter.chat_date == target)
        .order_by(ChatCounter.message_count.desc(), ChatCounter.message_length.desc())
        .limit(limit)
    )
    with _read(engine, "get_daily_leaderboard") as session:
        rows = session.execute(query).all()

    return [
        {
            "user_id": row.user_id,
            "display_name": row.display_name,
            "message_count": row.message_count,
            "message_length": row.message_length,
        }
        for row in rows
    ]


def get_weekly_leaderboard(
    engine: Engine, platform: str, limit: int = 10, today: date | None = None
) -> list[dict[str, Any]]:
    since = week_start(today or utc_today())
    return _aggregated_leaderboard(engine, platform, limit, since, "get_weekly_leaderboard")


def get_monthly_leaderboard(
    engine: Engine, platform: str, limit: int = 10, today: date | None = None
) -> list[dict[str, Any]]:
    since = month_start(today or utc_today())
    return _aggregated_leaderboard(engine, platform, limit, since, "get_monthly_leaderboard")


def get_all_time_leaderboard(
    engine: Engine, platform: str, limit: int = 10
) -> list[dict[str, Any]]:
    return _aggregated_leaderboard(engine, platform, limit, None, "get_all_time_leaderboard")


def get_leaderboard(
    engine: Engine,
    platform: str,
    period: str = "all",
    limit: int = 10,
    today: date | None = None,
) -> list[dict[str, Any]]:
    """Dispatch to the leaderboard for *period* (daily/weekly/monthly/all)."""
    validate_platform(platform)
    validate_period(period)
    validate_limit(limit)

    if period == "daily":
        return get_daily_leaderboard(engine, platform, today, limit)
    if period == "weekly":
        return get_weekly_leaderboard(engine, platform, limit, today)
    if period == "monthly":
        return get_monthly_leaderboard(engine, platform, limit, today)
    return get_all_time_leaderboard(engine, platform, limit)


# ---------------------------------------------------------------------------
# User stats
# ---------------------------------------------------------------------------
def _user_total(session: Session, platform: str, user_id: str, since: date | None) -> int:
    query = select(func.coalesce(func.sum(ChatCounter.message_count), 0)).where(
        ChatCounter.platform == platform, ChatCounter.user_id == user_id
    )
    if since is not None:
        query = query.where(ChatCounter.chat_date >= since)
    return int(session.scalar(query) or 0)


def _user_rank(session: Session, platform: str, user_id: str) -> int | None:
    """All-time position of *user_id* by total messages.

    Full scan + ``ROW_NUMBER()`` per call: O(users) per lookup.  Ties past
    total length have no defined order.
    """
    totals = (
        select(
            ChatCounter.user_id.label("user_id"),
            func.sum(ChatCounter.message_count).label("total_messages"),
            func.sum(ChatCounter.message_length).label("total_length"),
        )
        .where(ChatCounter.platform == platform)
        .group_by(ChatCounter.user_id)
        .subquery()
    )
    ranked = select(
        totals.c.user_id,
        func.row_number()
        .over(order_by=(totals.c.total_messages.desc(), totals.c.total_length.desc()))
        .label("rank"),
    ).subquery()
    rank = session.scalar(select(ranked.c.rank).where(ranked.c.user_id == user_id))
    return int(rank) if rank is not None else None


def get_user_stats(
    engine: Engine, platform: str, user_id: str, today: date | None = None
) -> dict[str, int | None]:
    """Message totals for today/week/month/all-time plus all-time rank."""
    plat = validate_platform(platform).value
    uid = validate_user_id(user_id)
    day = today or utc_today()

    with _read(engine, "get_user_stats") as session:
        daily = session.scalar(
            select(ChatCounter.message_count).where(
                ChatCounter.platform == plat,
                ChatCounter.user_id == uid,
                ChatCounter.chat_date == day,
            )
        )
        return {
            "daily": int(daily or 0),
            "weekly": _user_total(session, plat, uid, week_start(day)),
            "monthly": _user_total(session, plat, uid, month_start(day)),
            "all_time": _user_total(session, plat, uid, None),
            "rank": _user_rank(session, plat, uid),
        }


# ---------------------------------------------------------------------------
# Platform stats
# ---------------------------------------------------------------------------
def get_platform_stats(
    engine: Engine, platform: str, today: date | None = None
) -> dict[str, int]:
    plat = validate_platform(platform).value
    day = today or utc_today()

    with _read(engine, "get_platform_stats") as session:
        total_users = session.scalar(
            select(func.count(distinct(User.user_id))).where(User.platform == plat)
        )
        total_messages = session.scalar(
            select(func.coalesce(func.sum(ChatCounter.message_count), 0)).where(
                ChatCounter.platform == plat
            )
        )
        active_today = session.scalar(
            select(func.count(distinct(ChatCounter.user_id))).where(
                ChatCounter.platform == plat, ChatCounter.chat_date == day
            )
        )
        active_week = session.scalar(
            select(func.count(distinct(ChatCounter.user_id))).where(
                ChatCounter.platform == plat, ChatCounter.chat_date >= week_start(day)
            )
        )

    return {
        "total_users": int(total_users or 0),
        "total_messages": int(total_messages or 0),
        "active_today": int(active_today or 0),
        "active_this_week": int(active_week or 0),
    }


def get_overview(engine: Engine, today: date | None = None) -> dict[str, Any]:
    """Per-platform stats plus their field-wise sum."""
    platforms = {
        plat.value: get_platform_stats(engine, plat.value, today) for plat in Platform
    }
    keys = ("total_users", "total_messages", "active_today", "active_this_week")
    total = {key: sum(stats[key] for stats in platforms.values()) for key in keys}
    return {"total": total, "platforms": platforms}
