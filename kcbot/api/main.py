"""
kcbot.api.main — FastAPI application entry point
=================================================

Run with::

    uvicorn kcbot.api.main:app --port 8000

Per-process state lives on ``app.state``:

* ``limiters`` — :class:`~kcbot.engine.rate_limit.RateLimiterRegistry`
* ``tasks``    — :class:`~kcbot.services.tasks.TaskRunner` for command replies

Both can be injected through :func:`create_app` (tests do).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
# httpx logs full request URLs at INFO; Telegram URLs carry the bot token.
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

from kcbot import __version__  # noqa: E402
from kcbot.api.deps import get_config  # noqa: E402
from kcbot.api.rate_limit import api_rate_limit_middleware, rate_limit_response  # noqa: E402
from kcbot.api.routes.public import router as public_router  # noqa: E402
from kcbot.api.routes.webhooks import router as webhooks_router  # noqa: E402
from kcbot.constants import APP_DESCRIPTION, RATE_LIMIT_CLEANUP_SECONDS  # noqa: E402
from kcbot.engine.rate_limit import RateLimiterRegistry  # noqa: E402
from kcbot.errors import BotError, RateLimitError, error_envelope  # noqa: E402
from kcbot.services.log_buffer import install_handler  # noqa: E402
from kcbot.services.tasks import TaskRunner  # noqa: E402

logger = logging.getLogger(__name__)

SHUTDOWN_DRAIN_SECONDS = 10.0


def _cors_origins() -> list[str]:
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]


async def _cleanup_loop(limiters: RateLimiterRegistry, interval: float) -> None:
    """Purge idle rate-limiter keys every *interval* seconds."""
    while True:
        await asyncio.sleep(interval)
        purged = limiters.cleanup_all()
        if purged:
            logger.info("Rate limiter cleanup purged %d keys", purged)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Uvicorn reconfigures logging on startup, so attach the buffer here.
    install_handler()

    cleaner = asyncio.create_task(
        _cleanup_loop(app.state.limiters, RATE_LIMIT_CLEANUP_SECONDS),
        name="rate-limit-cleanup",
    )
    logger.info("KhmerCoders Bot API %s started", __version__)
    yield

    cleaner.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await cleaner
    await app.state.tasks.drain(SHUTDOWN_DRAIN_SECONDS)
    logger.info("KhmerCoders Bot API shutting down")


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------
async def _bot_error_handler(request: Request, exc: BotError) -> JSONResponse:
    if isinstance(exc, RateLimitError):
        return rate_limit_response(exc)
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(exc.to_response(), status_code=exc.status_code)


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    message = first.get("msg", "Invalid request")
    return JSONResponse(error_envelope(message, "VALIDATION_ERROR", 400), status_code=400)


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        error_envelope("Internal server error", "INTERNAL_ERROR", 500), status_code=500
    )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------
def create_app(
    *,
    limiters: RateLimiterRegistry | None = None,
    tasks: TaskRunner | None = None,
) -> FastAPI:
    app = FastAPI(
        title="KhmerCoders Bot API",
        description=APP_DESCRIPTION,
        version=__version__,
        lifespan=lifespan,
    )
    app.state.limiters = (
        limiters if limiters is not None else RateLimiterRegistry(get_config().rate_limits)
    )
    app.state.tasks = tasks if tasks is not None else TaskRunner()

    # Last added runs first: CORS wraps the limiter so 429s carry CORS headers.
    app.middleware("http")(api_rate_limit_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(BotError, _bot_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    app.include_router(public_router, prefix="/api")
    app.include_router(webhooks_router)
    return app


app = create_app()
