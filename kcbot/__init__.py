"""
KhmerCoders Bot — Community Message Tracking & Leaderboards
============================================================
Receives chat-platform webhooks (Telegram, Discord), records per-user
daily message activity, and serves leaderboard and statistics queries
over a small JSON API.

Package layout::

    kcbot/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Platforms, periods, limits, presentation bits
    ├── errors.py          # ValidationError / RateLimitError / PersistenceError / UpstreamError
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # users, chat_counter, telegram_channel_messages
    ├── engine/
    │   ├── rate_limit.py  # Sliding-window limiter + per-concern registry
    │   ├── security.py    # Input sanitizer + abuse heuristics
    │   └── formatting.py  # Telegram HTML rendering
    ├── services/
    │   ├── tracking_service.py  # trackMessage write path
    │   ├── stats_service.py     # Leaderboards, user & platform stats
    │   ├── telegram_service.py  # Channel log + Bot API client
    │   ├── summary_service.py   # External model client for /summary
    │   ├── commands.py          # Chat command parsing + handlers
    │   ├── tasks.py             # Background task runner
    │   └── log_buffer.py        # In-memory log tail
    ├── bot/
    │   ├── core.py        # Discord relay bot
    │   └── cogs/tracking.py
    └── api/
        ├── main.py        # FastAPI app factory
        ├── deps.py        # Dependency injection
        ├── rate_limit.py  # Per-IP middleware
        └── routes/        # Public stats API + webhooks
"""

__version__ = "1.0.0"
