"""
tests/test_rate_limit.py — Sliding-Window Rate Limiter Tests
=============================================================
Covers the in-memory limiter, the per-process registry and the
``/api/*`` rate-limiting middleware.
"""

from __future__ import annotations

import pytest
from fastapi import Request

from kcbot.api.rate_limit import client_ip
from kcbot.config import RateLimitConfig, RateLimitSpec
from kcbot.engine.rate_limit import RateLimiter, RateLimiterRegistry


# ---------------------------------------------------------------------------
# RateLimiter core
# ---------------------------------------------------------------------------
class TestRateLimiter:
    @pytest.fixture(autouse=True)
    def _limiter(self, fake_clock):
        self.clock = fake_clock
        self.limiter = RateLimiter(max_requests=3, window_seconds=60, clock=fake_clock)

    def test_allows_requests_within_limit(self):
        for _ in range(3):
            assert self.limiter.is_rate_limited("user1") is False

    def test_blocks_request_over_limit(self):
        for _ in range(3):
            self.limiter.is_rate_limited("user1")
        assert self.limiter.is_rate_limited("user1") is True

    def test_rejected_calls_are_not_recorded(self):
        for _ in range(3):
            self.limiter.is_rate_limited("user1")
        for _ in range(5):
            assert self.limiter.is_rate_limited("user1")
        # Only the three accepted calls need to age out.
        self.clock.advance(61)
        assert self.limiter.is_rate_limited("user1") is False

    def test_window_expiry_allows_again(self):
        for _ in range(3):
            self.limiter.is_rate_limited("user1")
        self.clock.advance(60.5)
        assert self.limiter.is_rate_limited("user1") is False

    def test_sliding_window_releases_oldest_first(self):
        self.limiter.is_rate_limited("user1")
        self.clock.advance(30)
        self.limiter.is_rate_limited("user1")
        self.limiter.is_rate_limited("user1")
        assert self.limiter.is_rate_limited("user1") is True

        self.clock.advance(31)  # first call is now outside the window
        assert self.limiter.is_rate_limited("user1") is False
        assert self.limiter.is_rate_limited("user1") is True

    def test_keys_are_independent(self):
        for _ in range(3):
            self.limiter.is_rate_limited("user1")
        assert self.limiter.is_rate_limited("user1") is True
        assert self.limiter.is_rate_limited("user2") is False

    def test_remaining_requests(self):
        assert self.limiter.get_remaining_requests("user1") == 3
        self.limiter.is_rate_limited("user1")
        assert self.limiter.get_remaining_requests("user1") == 2
        self.limiter.is_rate_limited("user1")
        self.limiter.is_rate_limited("user1")
        assert self.limiter.get_remaining_requests("user1") == 0

    def test_remaining_requests_does_not_record(self):
        for _ in range(10):
            self.limiter.get_remaining_requests("user1")
        assert self.limiter.is_rate_limited("user1") is False

    def test_reset_time_unknown_key_is_zero(self):
        assert self.limiter.get_reset_time("nobody") == 0

    def test_reset_time_counts_down_in_ms(self):
        self.limiter.is_rate_limited("user1")
        self.clock.advance(15)
        assert self.limiter.get_reset_time("user1") == 45_000

    def test_retry_after_rounds_up(self):
        self.limiter.is_rate_limited("user1")
        self.clock.advance(59.2)
        assert self.limiter.get_retry_after("user1") == 1
        self.clock.advance(-29.2)
        assert self.limiter.get_retry_after("user1") == 30

    def test_cleanup_purges_only_idle_keys(self):
        self.limiter.is_rate_limited("old")
        self.clock.advance(45)
        self.limiter.is_rate_limited("fresh")
        self.clock.advance(20)

        assert self.limiter.cleanup() == 1
        assert len(self.limiter) == 1
        assert self.limiter.get_remaining_requests("fresh") == 2

    def test_reset_single_key(self):
        for _ in range(3):
            self.limiter.is_rate_limited("user1")
            self.limiter.is_rate_limited("user2")
        self.limiter.reset("user1")
        assert self.limiter.is_rate_limited("user1") is False
        assert self.limiter.is_rate_limited("user2") is True

    def test_reset_all(self):
        for _ in range(3):
            self.limiter.is_rate_limited("user1")
        self.limiter.reset()
        assert len(self.limiter) == 0


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
class TestRateLimiterRegistry:
    def test_defaults(self):
        reg = RateLimiterRegistry()
        assert (reg.commands.max_requests, reg.commands.window_seconds) == (5, 60)
        assert (reg.summary.max_requests, reg.summary.window_seconds) == (2, 300)
        assert (reg.api.max_requests, reg.api.window_seconds) == (60, 60)

    def test_from_config(self):
        cfg = RateLimitConfig(commands=RateLimitSpec(1, 10))
        reg = RateLimiterRegistry(cfg)
        assert reg.commands.max_requests == 1
        assert reg.commands.window_seconds == 10

    def test_limiters_do_not_share_state(self, fake_clock):
        reg = RateLimiterRegistry(clock=fake_clock)
        for _ in range(2):
            reg.summary.is_rate_limited("user1")
        assert reg.summary.is_rate_limited("user1") is True
        assert reg.commands.is_rate_limited("user1") is False

    def test_cleanup_all(self, fake_clock):
        reg = RateLimiterRegistry(clock=fake_clock)
        reg.commands.is_rate_limited("a")
        reg.api.is_rate_limited("b")
        fake_clock.advance(120)
        assert reg.cleanup_all() == 2


# ---------------------------------------------------------------------------
# API middleware
# ---------------------------------------------------------------------------
class TestApiRateLimitMiddleware:
    @pytest.fixture
    def limited_client(self, db_engine, tasks, fake_clock):
        from fastapi.testclient import TestClient

        from kcbot.api.deps import get_command_processor, get_config, get_engine
        from kcbot.api.main import create_app
        from kcbot.config import BotConfig

        limiters = RateLimiterRegistry(
            RateLimitConfig(api=RateLimitSpec(3, 60)), clock=fake_clock
        )
        app = create_app(limiters=limiters, tasks=tasks)
        app.dependency_overrides[get_engine] = lambda: db_engine
        app.dependency_overrides[get_config] = lambda: BotConfig()
        app.dependency_overrides[get_command_processor] = lambda: None
        yield TestClient(app, raise_server_exceptions=False), fake_clock
        app.dependency_overrides.clear()

    def test_returns_429_with_envelope(self, limited_client):
        client, _ = limited_client
        for _ in range(3):
            assert client.get("/api/health").status_code == 200

        resp = client.get("/api/health")
        assert resp.status_code == 429
        body = resp.json()
        assert body["statusCode"] == 429
        assert body["error"]["code"] == "RATE_LIMITED"
        assert "timestamp" in body["error"]
        assert resp.headers["Retry-After"] == "60"

    def test_keyed_by_cf_connecting_ip(self, limited_client):
        client, _ = limited_client
        for _ in range(3):
            client.get("/api/health", headers={"cf-connecting-ip": "1.1.1.1"})
        assert client.get(
            "/api/health", headers={"cf-connecting-ip": "1.1.1.1"}
        ).status_code == 429
        assert client.get(
            "/api/health", headers={"cf-connecting-ip": "2.2.2.2"}
        ).status_code == 200

    def test_first_forwarded_hop_is_the_key(self, limited_client):
        client, _ = limited_client
        for i in range(3):
            client.get("/api/health", headers={"x-forwarded-for": f"9.9.9.9, 10.0.0.{i}"})
        resp = client.get("/api/health", headers={"x-forwarded-for": "9.9.9.9"})
        assert resp.status_code == 429

    def test_window_expiry_unblocks(self, limited_client):
        client, clock = limited_client
        for _ in range(4):
            client.get("/api/health")
        clock.advance(61)
        assert client.get("/api/health").status_code == 200

    def test_webhooks_are_not_limited(self, limited_client):
        client, _ = limited_client
        for _ in range(5):
            resp = client.post("/telegram/webhook", json={"update_id": 1})
            assert resp.status_code == 200

    def test_remaining_header(self, limited_client):
        client, _ = limited_client
        resp = client.get("/api/health")
        assert resp.headers["X-RateLimit-Remaining"] == "2"


# ---------------------------------------------------------------------------
# Client IP resolution
# ---------------------------------------------------------------------------
def _request(headers: dict[str, str] | None = None, peer: str | None = "203.0.113.9"):
    return Request({
        "type": "http",
        "method": "GET",
        "path": "/api/health",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": (peer, 50000) if peer else None,
    })


class TestClientIp:
    def test_socket_peer_without_proxy_headers(self):
        assert client_ip(_request()) == "203.0.113.9"

    def test_header_precedence(self):
        headers = {
            "CF-Connecting-IP": "1.1.1.1",
            "X-Forwarded-For": "2.2.2.2, 10.0.0.1",
            "X-Real-IP": "3.3.3.3",
        }
        assert client_ip(_request(headers)) == "1.1.1.1"
        del headers["CF-Connecting-IP"]
        assert client_ip(_request(headers)) == "2.2.2.2"
        del headers["X-Forwarded-For"]
        assert client_ip(_request(headers)) == "3.3.3.3"

    def test_proxy_headers_are_taken_as_sent(self):
        # Any caller can set X-Forwarded-For; only a trusted proxy makes it meaningful.
        assert client_ip(_request({"X-Forwarded-For": "198.51.100.7"})) == "198.51.100.7"

    def test_unknown_without_peer(self):
        assert client_ip(_request(peer=None)) == "unknown"
