"""
kcbot.api.rate_limit — Per-IP API rate limiting
================================================

HTTP middleware guarding every ``/api/*`` route with the process's API
limiter (60 requests per minute per client IP by default).  Over the
limit the request is answered with HTTP 429, a ``Retry-After`` header
and the standard error envelope; it never reaches the route.
"""

from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from kcbot.engine.security import log_security_event
from kcbot.errors import RateLimitError

logger = logging.getLogger(__name__)

API_PREFIX = "/api"


def client_ip(request: Request) -> str:
    """Best-effort caller address.

    ``CF-Connecting-IP`` → first ``X-Forwarded-For`` hop → ``X-Real-IP``
    → socket peer → ``"unknown"``.

    The proxy headers are taken as sent.  Only trust this key when the API
    sits behind a proxy (Cloudflare, nginx) that overwrites them; exposed
    directly, a client can pick a new key per request and never be limited.
    """
    headers = request.headers
    if ip := headers.get("cf-connecting-ip"):
        return ip.strip()
    if forwarded := headers.get("x-forwarded-for"):
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if ip := headers.get("x-real-ip"):
        return ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def rate_limit_response(exc: RateLimitError) -> JSONResponse:
    return JSONResponse(
        exc.to_response(),
        status_code=exc.status_code,
        headers={"Retry-After": str(exc.retry_after)},
    )


async def api_rate_limit_middleware(request: Request, call_next):
    if not request.url.path.startswith(API_PREFIX):
        return await call_next(request)

    limiter = request.app.state.limiters.api
    ip = client_ip(request)
    if limiter.is_rate_limited(ip):
        retry_after = limiter.get_retry_after(ip)
        log_security_event("RATE_LIMITED", f"API rate limit exceeded on {request.url.path}", ip)
        return rate_limit_response(RateLimitError(retry_after))

    response = await call_next(request)
    response.headers["X-RateLimit-Remaining"] = str(limiter.get_remaining_requests(ip))
    return response
