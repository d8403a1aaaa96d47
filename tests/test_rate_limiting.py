"""
Tests for the fixed window rate limiting middleware.
"""
import pytest
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport

from middleware.rate_limiting import RateLimitMiddleware, RequestWindow, RATE_LIMIT_MESSAGE


def build_app(max_requests: int = 2, trusted_proxies=("127.0.0.1",)) -> FastAPI:
    app = FastAPI()
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=max_requests,
        window_seconds=60,
        path_prefixes=["/api/"],
        trusted_proxies=trusted_proxies,
    )

    @app.get("/api/ping")
    async def ping():
        return {"pong": True}

    @app.get("/health")
    async def health():
        return {"status": "OK"}

    return app


class TestRequestWindow:
    """Tests for the per client counter."""

    def test_allows_up_to_limit(self):
        window = RequestWindow(max_requests=3, window_seconds=60)

        assert [window.hit() for _ in range(4)] == [True, True, True, False]
        assert window.remaining() == 0

    def test_resets_after_window(self, monkeypatch):
        window = RequestWindow(max_requests=1, window_seconds=10)
        assert window.hit()
        assert not window.hit()

        monkeypatch.setattr(window, "started_at", window.started_at - 11)

        assert window.hit()


class TestRateLimitMiddleware:
    """Tests for the middleware."""

    @pytest.mark.asyncio
    async def test_limits_api_paths(self):
        transport = ASGITransport(app=build_app(max_requests=2))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            first = await client.get("/api/ping")
            second = await client.get("/api/ping")
            third = await client.get("/api/ping")

        assert first.status_code == 200
        assert first.headers["X-RateLimit-Limit"] == "2"
        assert first.headers["X-RateLimit-Remaining"] == "1"
        assert second.status_code == 200
        assert third.status_code == 429
        assert third.json() == {"success": False, "message": RATE_LIMIT_MESSAGE}
        assert int(third.headers["Retry-After"]) >= 1

    @pytest.mark.asyncio
    async def test_other_paths_not_counted(self):
        transport = ASGITransport(app=build_app(max_requests=1))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            for _ in range(3):
                response = await client.get("/health")
                assert response.status_code == 200
            assert (await client.get("/api/ping")).status_code == 200

    @pytest.mark.asyncio
    async def test_clients_counted_separately(self):
        transport = ASGITransport(app=build_app(max_requests=1))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            a = await client.get("/api/ping", headers={"X-Forwarded-For": "10.0.0.1"})
            b = await client.get("/api/ping", headers={"X-Forwarded-For": "10.0.0.2"})
            a_again = await client.get("/api/ping", headers={"X-Forwarded-For": "10.0.0.1"})

        assert a.status_code == 200
        assert b.status_code == 200
        assert a_again.status_code == 429

    @pytest.mark.asyncio
    async def test_forwarded_for_ignored_from_untrusted_peer(self):
        """Rotating X-Forwarded-For does not reset the limit for a direct client."""
        transport = ASGITransport(app=build_app(max_requests=1, trusted_proxies=[]))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            first = await client.get("/api/ping", headers={"X-Forwarded-For": "10.0.0.1"})
            second = await client.get("/api/ping", headers={"X-Forwarded-For": "10.0.0.2"})
            third = await client.get("/api/ping", headers={"X-Forwarded-For": "10.0.0.3"})

        assert first.status_code == 200
        assert second.status_code == 429
        assert third.status_code == 429
