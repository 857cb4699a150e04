"""
tests/test_cors.py -- with_cors() on a throwaway app, and the /session probe
that uses it on the real one.

Allow-Origin must only ever echo an allow-listed origin; the method, header
and credentials headers are set on every response.
"""

from __future__ import annotations

import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from api.cors import ALLOW_HEADERS, ALLOW_METHODS, with_cors
from tests.conftest import seed_business

ALLOWED = "http://localhost:3000"


@pytest.fixture(scope="module")
def cors_client() -> TestClient:
    app = FastAPI()

    async def ping(request: Request) -> JSONResponse:
        return JSONResponse({"pong": True})

    app.add_api_route("/ping", with_cors(ping, [ALLOWED]), methods=["GET"])
    return TestClient(app)


class TestWithCors:
    def test_allowed_origin_is_echoed(self, cors_client: TestClient) -> None:
        resp = cors_client.get("/ping", headers={"Origin": ALLOWED})
        assert resp.status_code == 200
        assert resp.json() == {"pong": True}
        assert resp.headers["access-control-allow-origin"] == ALLOWED
        assert "Origin" in resp.headers["vary"]

    def test_disallowed_origin_gets_no_allow_origin(self, cors_client: TestClient) -> None:
        resp = cors_client.get("/ping", headers={"Origin": "https://evil.example"})
        assert resp.status_code == 200
        assert "access-control-allow-origin" not in resp.headers

    def test_missing_origin_gets_no_allow_origin(self, cors_client: TestClient) -> None:
        resp = cors_client.get("/ping")
        assert "access-control-allow-origin" not in resp.headers

    @pytest.mark.parametrize("origin", [ALLOWED, "https://evil.example", None])
    def test_static_headers_always_set(self, cors_client: TestClient, origin: str | None) -> None:
        headers = {"Origin": origin} if origin else {}
        resp = cors_client.get("/ping", headers=headers)
        assert resp.headers["access-control-allow-methods"] == ALLOW_METHODS
        assert resp.headers["access-control-allow-headers"] == ALLOW_HEADERS
        assert resp.headers["access-control-allow-credentials"] == "true"


class TestSessionProbe:
    def test_without_session_is_401_empty(self, web_client: TestClient) -> None:
        resp = web_client.get("/session", headers={"Origin": ALLOWED})
        assert resp.status_code == 401
        assert resp.json() == {}
        assert resp.headers["access-control-allow-origin"] == ALLOWED

    def test_with_session_returns_payload(self, web_client: TestClient) -> None:
        user = seed_business(web_client, "probe@example.com")
        login = web_client.post("/login", data={"email": "probe@example.com", "password": "Passw0rd!"})
        assert login.status_code == 302

        resp = web_client.get("/session", headers={"Origin": ALLOWED})
        assert resp.status_code == 200
        body = resp.json()
        assert body["userId"] == user.id
        assert isinstance(body["expiresAt"], int)

    def test_disallowed_origin_cannot_read_probe(self, web_client: TestClient) -> None:
        resp = web_client.get("/session", headers={"Origin": "https://evil.example"})
        assert "access-control-allow-origin" not in resp.headers
