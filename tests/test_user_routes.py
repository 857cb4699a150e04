"""
tests/test_user_routes.py -- Integration tests for /api/v1/user/me.

These routes read the exa-session cookie only, so every authenticated test
logs in through the API first and lets the cookie jar carry the session.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from tests.conftest import api_login, bearer, seed_business


class TestGetMe:
    def test_without_session_is_401(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v1/user/me")
        assert resp.status_code == 401
        assert resp.json() == {"message": "Unauthorized"}

    def test_bearer_token_is_not_a_session(self, api_client: TestClient) -> None:
        user = seed_business(api_client, "bearer-only@example.com")
        resp = api_client.get("/api/v1/user/me", headers=bearer(user.id))
        assert resp.status_code == 401

    def test_returns_id_name_email(self, api_client: TestClient) -> None:
        user = seed_business(api_client, "me@example.com")
        api_login(api_client, "me@example.com")
        resp = api_client.get("/api/v1/user/me")
        assert resp.status_code == 200
        assert resp.json() == {"user": {"id": user.id, "name": user.name, "email": "me@example.com"}}

    def test_tampered_cookie_is_401(self, api_client: TestClient) -> None:
        api_client.cookies.set("exa-session", "abc.def.ghi")
        resp = api_client.get("/api/v1/user/me")
        assert resp.status_code == 401

    def test_user_deleted_after_login_is_404(self, api_client: TestClient) -> None:
        user = seed_business(api_client, "ghost@example.com")
        api_login(api_client, "ghost@example.com")
        api_client.app.state.user_store.delete_user(user.id)
        resp = api_client.get("/api/v1/user/me")
        assert resp.status_code == 404
        assert resp.json() == {"message": "User not found"}


class TestUpdateMe:
    def test_updates_name_and_phone(self, api_client: TestClient) -> None:
        seed_business(api_client, "rename@example.com")
        api_login(api_client, "rename@example.com")
        resp = api_client.put("/api/v1/user/me", json={"name": "Ama Mensah", "phone": "+233200000000"})
        assert resp.status_code == 200
        assert resp.json()["user"]["name"] == "Ama Mensah"

    def test_duplicate_email_is_409(self, api_client: TestClient) -> None:
        seed_business(api_client, "taken@example.com")
        seed_business(api_client, "mover@example.com")
        api_login(api_client, "mover@example.com")
        resp = api_client.put("/api/v1/user/me", json={"email": "TAKEN@example.com"})
        assert resp.status_code == 409
        assert resp.json()["message"] == "Email is already in use"

    def test_empty_body_is_400(self, api_client: TestClient) -> None:
        seed_business(api_client, "noop@example.com")
        api_login(api_client, "noop@example.com")
        resp = api_client.put("/api/v1/user/me", json={})
        assert resp.status_code == 400


class TestDeleteMe:
    def test_without_session_is_401_and_touches_nothing(
        self, api_client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        delete_user = MagicMock()
        monkeypatch.setattr(api_client.app.state.user_store, "delete_user", delete_user)
        resp = api_client.delete("/api/v1/user/me")
        assert resp.status_code == 401
        assert resp.json() == {"message": "Unauthorized"}
        delete_user.assert_not_called()

    def test_deletes_user_and_clears_cookie(self, api_client: TestClient) -> None:
        user = seed_business(api_client, "leaver@example.com")
        api_login(api_client, "leaver@example.com")

        resp = api_client.delete("/api/v1/user/me")
        assert resp.status_code == 200
        assert resp.json() == {"message": "Account deleted successfully"}
        cleared = [h for h in resp.headers.get_list("set-cookie") if h.startswith("exa-session=")]
        assert cleared and "Max-Age=0" in cleared[0]
        assert api_client.app.state.user_store.get_by_id(user.id) is None

        # The cookie is gone from the jar, so the next call is anonymous.
        follow_up = api_client.get("/api/v1/user/me")
        assert follow_up.status_code == 401
        assert follow_up.json() == {"message": "Unauthorized"}

    def test_persistence_error_is_500(self, api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        seed_business(api_client, "stuck@example.com")
        api_login(api_client, "stuck@example.com")
        failing = MagicMock(side_effect=OperationalError("DELETE", {}, Exception("disk I/O error")))
        monkeypatch.setattr(api_client.app.state.user_store, "delete_user", failing)

        resp = api_client.delete("/api/v1/user/me")
        assert resp.status_code == 500
        assert resp.json() == {"message": "Something went wrong"}
