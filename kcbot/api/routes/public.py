"""
kcbot.api.routes.public — Read-only statistics endpoints
=========================================================

Mounted under ``/api``.  Every success body carries ``success: true`` and
an ISO-8601 ``timestamp``; failures are rendered by the exception
handlers in :mod:`kcbot.api.main` as the standard error envelope.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy import Engine

from kcbot import __version__
from kcbot.api.deps import get_config, get_engine, require_admin
from kcbot.config import BotConfig
from kcbot.constants import sanitize_limit
from kcbot.errors import ValidationError
from kcbot.services import stats_service
from kcbot.services.log_buffer import get_logs

router = APIRouter(tags=["public"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _now() -> str:
    return datetime.now(UTC).isoformat()


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.title() for part in rest)


def _camelize(stats: dict[str, Any]) -> dict[str, Any]:
    """``{"total_users": 1}`` → ``{"totalUsers": 1}`` (one level deep)."""
    return {_camel(k): v for k, v in stats.items()}


# ---------------------------------------------------------------------------
# GET /health
# ---------------------------------------------------------------------------
@router.get("/health")
def health():
    return {
        "success": True,
        "status": "healthy",
        "timestamp": _now(),
        "version": __version__,
    }


# ---------------------------------------------------------------------------
# GET /overview
# ---------------------------------------------------------------------------
@router.get("/overview")
def overview(engine: Engine = Depends(get_engine)):
    """Combined totals plus the per-platform breakdown."""
    data = stats_service.get_overview(engine)
    return {
        "success": True,
        "total": _camelize(data["total"]),
        "platforms": {name: _camelize(s) for name, s in data["platforms"].items()},
        "timestamp": _now(),
    }


# ---------------------------------------------------------------------------
# GET /stats/{platform}
# ---------------------------------------------------------------------------
@router.get("/stats/{platform}")
def platform_stats(platform: str, engine: Engine = Depends(get_engine)):
    plat = stats_service.validate_platform(platform).value
    return {
        "success": True,
        "platform": plat,
        "stats": _camelize(stats_service.get_platform_stats(engine, plat)),
        "timestamp": _now(),
    }


# ---------------------------------------------------------------------------
# GET /leaderboard/{platform}[/{period}]
# ---------------------------------------------------------------------------
@router.get("/leaderboard/{platform}")
@router.get("/leaderboard/{platform}/{period}")
def leaderboard(
    platform: str,
    period: str = "all",
    limit: str | None = Query(None),
    engine: Engine = Depends(get_engine),
    cfg: BotConfig = Depends(get_config),
):
    """Top users for *period*; ``limit`` is clamped to the configured range."""
    plat = stats_service.validate_platform(platform).value
    stats_service.validate_period(period)
    size = sanitize_limit(
        limit,
        default=cfg.leaderboard_default_limit,
        maximum=cfg.leaderboard_max_limit,
    )
    rows = stats_service.get_leaderboard(engine, plat, period, size)
    return {
        "success": True,
        "platform": plat,
        "period": period,
        "limit": size,
        "leaderboard": rows,
        "count": len(rows),
        "timestamp": _now(),
    }


# ---------------------------------------------------------------------------
# GET /user/{platform}/{user_id}
# ---------------------------------------------------------------------------
@router.get("/user/{platform}/{user_id}")
def user_stats(platform: str, user_id: str, engine: Engine = Depends(get_engine)):
    plat = stats_service.validate_platform(platform).value
    uid = stats_service.validate_user_id(user_id)
    return {
        "success": True,
        "platform": plat,
        "userId": uid,
        "stats": _camelize(stats_service.get_user_stats(engine, plat, uid)),
        "timestamp": _now(),
    }


# ---------------------------------------------------------------------------
# GET /docs
# ---------------------------------------------------------------------------
@router.get("/docs")
def api_docs(cfg: BotConfig = Depends(get_config)):
    api = cfg.rate_limits.api
    return {
        "success": True,
        "title": "KhmerCoders Bot API",
        "version": __version__,
        "endpoints": {
            "GET /api/health": "Health check",
            "GET /api/overview": "Get combined platform statistics",
            "GET /api/stats/:platform": "Get platform-specific statistics",
            "GET /api/leaderboard/:platform/:period?":
                "Get leaderboard (period: daily/weekly/monthly/all)",
            "GET /api/user/:platform/:userId": "Get user statistics",
            "GET /api/logs": "Tail recent server log lines (admin token required)",
            "POST /telegram/webhook": "Telegram webhook endpoint",
            "POST /discord/webhook": "Discord webhook endpoint",
        },
        "parameters": {
            "platform": "telegram or discord",
            "period": "daily, weekly, monthly, or all (default)",
            "limit": (
                f"Number of entries to return (max {cfg.leaderboard_max_limit}, "
                f"default {cfg.leaderboard_default_limit})"
            ),
            "userId": "Platform-specific user ID",
        },
        "rateLimit": (
            f"{api.max_requests} requests per {api.window_seconds} seconds "
            "per IP for API endpoints"
        ),
    }


# ---------------------------------------------------------------------------
# GET /logs
# ---------------------------------------------------------------------------
@router.get("/logs")
def recent_logs(
    tail: int = Query(100, ge=1, le=1000),
    level: str | None = Query(None),
    _admin: None = Depends(require_admin),
):
    """Recent in-memory log lines.  Admin only."""
    try:
        entries = get_logs(tail=tail, level=level)
    except ValueError as exc:
        raise ValidationError(str(exc), code="INVALID_LEVEL") from exc
    return {"success": True, "logs": entries, "count": len(entries), "timestamp": _now()}
