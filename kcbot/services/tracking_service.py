"""
kcbot.services.tracking_service — Message tracking write path
==============================================================

``track_message`` is the only writer of ``users`` and ``chat_counter``.

Both writes are single ``INSERT … ON CONFLICT … DO UPDATE`` statements
executed in one transaction, so concurrent messages from the same user on
the same day never lose an increment and a failure never leaves a user
row without its counter update.

Display names are refreshed on every message (latest name wins) so
leaderboards never show stale labels.
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import Engine, text
from sqlalchemy.exc import SQLAlchemyError

from kcbot.constants import utc_today
from kcbot.database.engine import get_session
from kcbot.errors import PersistenceError, ValidationError
from kcbot.services.stats_service import validate_platform

logger = logging.getLogger(__name__)

_UPSERT_USER = text("""
    INSERT INTO users (platform, user_id, display_name)
    VALUES (:platform, :user_id, :display_name)
    ON CONFLICT (platform, user_id)
    DO UPDATE SET display_name = excluded.display_name,
                  updated_at = CURRENT_TIMESTAMP
""")

_UPSERT_COUNTER = text("""
    INSERT INTO chat_counter (chat_date, platform, user_id, message_count, message_length)
    VALUES (:chat_date, :platform, :user_id, 1, :message_length)
    ON CONFLICT (chat_date, platform, user_id)
    DO UPDATE SET message_count = chat_counter.message_count + 1,
                  message_length = chat_counter.message_length + excluded.message_length
""")


def validate_tracking_params(
    platform: str, user_id: str, display_name: str, message_length: int
) -> tuple[str, str, str]:
    """Validate and normalise tracking input.

    Returns ``(platform, user_id, display_name)`` trimmed and lower-cased
    where appropriate.  Raises :class:`ValidationError` on bad input.
    """
    normalized = validate_platform(platform)
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError("User ID is required", code="MISSING_USER_ID")
    if not isinstance(display_name, str) or not display_name.strip():
        raise ValidationError("Display name is required", code="MISSING_DISPLAY_NAME")
    if (
        isinstance(message_length, bool)
        or not isinstance(message_length, int)
        or message_length < 0
    ):
        raise ValidationError(
            f"Invalid message length: {message_length}. Must be a non-negative integer.",
            code="INVALID_MESSAGE_LENGTH",
        )
    return normalized.value, user_id.strip(), display_name.strip()


def track_message(
    engine: Engine,
    platform: str,
    user_id: str,
    display_name: str,
    message_length: int,
    *,
    today: date | None = None,
) -> None:
    """Count one message of *message_length* characters for the user today."""
    platform, user_id, display_name = validate_tracking_params(
        platform, user_id, display_name, message_length
    )
    day = today or utc_today()

    logger.debug(
        "Tracking message for %s (%s) on %s, length=%d",
        display_name, user_id, platform, message_length,
    )

    try:
        with get_session(engine) as session:
            session.execute(
                _UPSERT_USER,
                {"platform": platform, "user_id": user_id, "display_name": display_name},
            )
            session.execute(
                _UPSERT_COUNTER,
                {
                    "chat_date": day.isoformat(),
                    "platform": platform,
                    "user_id": user_id,
                    "message_length": message_length,
                },
            )
    except SQLAlchemyError as exc:
        logger.exception(
            "Error tracking message for user %s on %s", user_id, platform
        )
        raise PersistenceError("track_message") from exc
