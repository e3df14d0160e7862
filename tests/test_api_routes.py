"""
tests/test_api_routes.py -- Integration tests for auth and user routes.

These tests exercise the full stack: FastAPI routing -> auth dependency
injection -> stores -> response model serialization -> error envelope.

Coverage:
  - Auth failures: 401 on protected routes without a token, bad token
  - Register/login/logout/me/change-password
  - User administration: role gates, ultra_admin visibility, privilege rules
  - End-to-end: register a user, login, create systems as a scoped admin

Fixtures used (from conftest.py):
  - api_client: (client, token, uid) -- super_admin "root@example.org"
  - user_factory: make(role, categories, subcategories) -> (uid, headers)

Logging in through the client stores an access_token cookie, which takes
precedence over Bearer headers. Tests that log in clear cookies afterwards.
"""

from __future__ import annotations

from unittest.mock import patch

from fastapi.testclient import TestClient

from core.config import get_settings

ApiClient = tuple[TestClient, str, int]


def _root(api_client: ApiClient) -> tuple[TestClient, dict[str, str], int]:
    client, token, uid = api_client
    return client, {"Authorization": f"Bearer {token}"}, uid


class TestApiAuthFailure:
    """Unauthenticated requests to protected API routes must return 401."""

    def test_get_me_unauthenticated(self, api_client: ApiClient) -> None:
        client, _token, _uid = api_client
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401, f"Expected 401, got {resp.status_code}"
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_list_systems_unauthenticated(self, api_client: ApiClient) -> None:
        client, _token, _uid = api_client
        assert client.get("/api/v1/systems").status_code == 401

    def test_list_users_unauthenticated(self, api_client: ApiClient) -> None:
        client, _token, _uid = api_client
        assert client.get("/api/v1/users").status_code == 401

    def test_garbage_token(self, api_client: ApiClient) -> None:
        client, _token, _uid = api_client
        resp = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401


class TestApiAuthRoutes:
    def test_register_returns_token_and_user(self, api_client: ApiClient) -> None:
        client, _token, _uid = api_client
        resp = client.post(
            "/api/v1/auth/register",
            json={"email": "new@example.org", "password": "secret123", "full_name": "New Person"},
        )
        client.cookies.clear()
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["access_token"]
        assert data["user"]["role"] == "user"
        assert data["user"]["allowed_categories"] == []
        assert "hashed_password" not in data["user"]
        assert resp.headers["Cache-Control"] == "no-store"

    def test_register_duplicate_email(self, api_client: ApiClient) -> None:
        client, _token, _uid = api_client
        resp = client.post("/api/v1/auth/register", json={"email": "root@example.org", "password": "secret123"})
        client.cookies.clear()
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "conflict"

    def test_register_rejects_ultra_admin(self, api_client: ApiClient) -> None:
        client, _token, _uid = api_client
        resp = client.post(
            "/api/v1/auth/register",
            json={"email": "sneaky@example.org", "password": "secret123", "role": "ultra_admin"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"

    def test_register_filters_categories(self, api_client: ApiClient) -> None:
        client, _token, _uid = api_client
        resp = client.post(
            "/api/v1/auth/register",
            json={
                "email": "cats@example.org",
                "password": "secret123",
                "allowed_categories": ["network", "bogus_cat"],
            },
        )
        client.cookies.clear()
        assert resp.status_code == 201
        assert resp.json()["user"]["allowed_categories"] == ["network"]

    def test_register_short_password(self, api_client: ApiClient) -> None:
        client, _token, _uid = api_client
        resp = client.post("/api/v1/auth/register", json={"email": "short@example.org", "password": "123"})
        assert resp.status_code == 422

    def test_register_disabled(self, api_client: ApiClient) -> None:
        client, _token, _uid = api_client
        with patch.object(get_settings(), "self_registration_enabled", False):
            resp = client.post(
                "/api/v1/auth/register", json={"email": "closed@example.org", "password": "secret123"}
            )
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "registration_disabled"

    def test_login_valid_credentials(self, api_client: ApiClient) -> None:
        client, _token, uid = api_client
        resp = client.post("/api/v1/auth/login", json={"email": "root@example.org", "password": "testpass123"})
        assert resp.status_code == 200, resp.text
        assert "access_token" in resp.cookies
        client.cookies.clear()
        data = resp.json()
        assert data["user"]["id"] == uid
        assert data["token_type"] == "bearer"
        assert data["user"]["last_login"]
        assert resp.headers["Cache-Control"] == "no-store"

    def test_login_invalid_password(self, api_client: ApiClient) -> None:
        client, _token, _uid = api_client
        resp = client.post("/api/v1/auth/login", json={"email": "root@example.org", "password": "wrong"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "bad_credentials"

    def test_login_unknown_email_same_error(self, api_client: ApiClient) -> None:
        client, _token, _uid = api_client
        wrong_pw = client.post("/api/v1/auth/login", json={"email": "root@example.org", "password": "wrong"})
        no_user = client.post("/api/v1/auth/login", json={"email": "ghost@example.org", "password": "wrong"})
        assert no_user.status_code == wrong_pw.status_code == 401
        assert no_user.json() == wrong_pw.json()

    def test_login_cookie_authenticates(self, api_client: ApiClient) -> None:
        client, _token, uid = api_client
        client.post("/api/v1/auth/login", json={"email": "root@example.org", "password": "testpass123"})
        resp = client.get("/api/v1/auth/me")
        client.cookies.clear()
        assert resp.status_code == 200
        assert resp.json()["id"] == uid

    def test_logout_clears_cookie(self, api_client: ApiClient) -> None:
        client, _token, _uid = api_client
        client.post("/api/v1/auth/login", json={"email": "root@example.org", "password": "testpass123"})
        resp = client.post("/api/v1/auth/logout")
        assert resp.status_code == 200
        assert client.get("/api/v1/auth/me").status_code == 401
        client.cookies.clear()

    def test_me(self, api_client: ApiClient) -> None:
        client, headers, uid = _root(api_client)
        resp = client.get("/api/v1/auth/me", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["email"] == "root@example.org"

    def test_update_profile(self, api_client: ApiClient, user_factory) -> None:
        client, _token, _uid = api_client
        _uid2, headers = user_factory("user")
        resp = client.patch("/api/v1/auth/me", json={"full_name": "  Renamed  "}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["full_name"] == "Renamed"

    def test_change_password(self, api_client: ApiClient, user_factory) -> None:
        client, _token, _uid = api_client
        uid, headers = user_factory("user", email="changer@example.org")

        wrong = client.post(
            "/api/v1/auth/change-password",
            json={"current_password": "nope", "new_password": "brandnew1"},
            headers=headers,
        )
        assert wrong.status_code == 400

        same = client.post(
            "/api/v1/auth/change-password",
            json={"current_password": "testpass123", "new_password": "testpass123"},
            headers=headers,
        )
        assert same.status_code == 400

        ok = client.post(
            "/api/v1/auth/change-password",
            json={"current_password": "testpass123", "new_password": "brandnew1"},
            headers=headers,
        )
        assert ok.status_code == 200

        login = client.post("/api/v1/auth/login", json={"email": "changer@example.org", "password": "brandnew1"})
        client.cookies.clear()
        assert login.status_code == 200

        actions = [a["action"] for a in client.get("/api/v1/activities/me", headers=headers).json()]
        assert "PASSWORD_CHANGED" in actions
        assert "PASSWORD_CHANGE_FAILED" in actions


class TestUserAdministration:
    def test_list_requires_top_tier(self, api_client: ApiClient, user_factory) -> None:
        client, _token, _uid = api_client
        _aid, admin_headers = user_factory("admin", ["network"])
        resp = client.get("/api/v1/users", headers=admin_headers)
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_ultra_admin_hidden_from_super_admin(self, api_client: ApiClient, user_factory) -> None:
        client, headers, _uid = _root(api_client)
        ultra_id, ultra_headers = user_factory("ultra_admin")

        listed = [u["id"] for u in client.get("/api/v1/users", headers=headers).json()]
        assert ultra_id not in listed
        assert client.get(f"/api/v1/users/{ultra_id}", headers=headers).status_code == 404

        listed_by_ultra = [u["id"] for u in client.get("/api/v1/users", headers=ultra_headers).json()]
        assert ultra_id in listed_by_ultra

    def test_create_user_schedules_welcome_email(self, api_client: ApiClient) -> None:
        client, headers, _uid = _root(api_client)
        notifier = client.app.state.email_notifier
        with patch.object(notifier, "send_welcome_email", return_value={"success": True}) as send:
            resp = client.post(
                "/api/v1/users",
                json={
                    "email": "hire@example.org",
                    "password": "initial99",
                    "full_name": "New Hire",
                    "role": "admin",
                    "allowed_categories": ["database"],
                },
                headers=headers,
            )
        assert resp.status_code == 201, resp.text
        assert resp.json()["role"] == "admin"
        send.assert_called_once_with("hire@example.org", "New Hire", "initial99")

    def test_create_user_email_failure_keeps_user(self, api_client: ApiClient) -> None:
        client, headers, _uid = _root(api_client)
        notifier = client.app.state.email_notifier
        with patch.object(notifier, "send_welcome_email", return_value={"success": False, "error": "down"}):
            resp = client.post(
                "/api/v1/users",
                json={"email": "still@example.org", "password": "initial99"},
                headers=headers,
            )
        assert resp.status_code == 201
        assert client.get(f"/api/v1/users/{resp.json()['id']}", headers=headers).status_code == 200

    def test_super_admin_cannot_grant_ultra_admin(self, api_client: ApiClient) -> None:
        client, headers, _uid = _root(api_client)
        resp = client.post(
            "/api/v1/users",
            json={"email": "promo@example.org", "password": "initial99", "role": "ultra_admin"},
            headers=headers,
        )
        assert resp.status_code == 403

    def test_ultra_admin_can_grant_ultra_admin(self, api_client: ApiClient, user_factory) -> None:
        client, _token, _uid = api_client
        _ultra_id, ultra_headers = user_factory("ultra_admin")
        resp = client.post(
            "/api/v1/users",
            json={
                "email": "second-ultra@example.org",
                "password": "initial99",
                "role": "ultra_admin",
                "send_welcome_email": False,
            },
            headers=ultra_headers,
        )
        assert resp.status_code == 201

    def test_self_view_and_update(self, api_client: ApiClient, user_factory) -> None:
        client, _token, _uid = api_client
        uid, headers = user_factory("user", ["network"])
        assert client.get(f"/api/v1/users/{uid}", headers=headers).status_code == 200
        resp = client.put(f"/api/v1/users/{uid}", json={"full_name": "Me Myself"}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["full_name"] == "Me Myself"

    def test_user_cannot_view_others(self, api_client: ApiClient, user_factory) -> None:
        client, _token, root_id = api_client
        _uid, headers = user_factory("user")
        assert client.get(f"/api/v1/users/{root_id}", headers=headers).status_code == 403

    def test_user_cannot_escalate_self(self, api_client: ApiClient, user_factory) -> None:
        client, _token, _uid = api_client
        uid, headers = user_factory("user")
        for body in ({"role": "admin"}, {"allowed_categories": ["database"]}):
            resp = client.put(f"/api/v1/users/{uid}", json=body, headers=headers)
            assert resp.status_code == 403, body

    def test_super_admin_updates_grants(self, api_client: ApiClient, user_factory) -> None:
        client, headers, _uid = _root(api_client)
        uid, _h = user_factory("user")
        resp = client.put(
            f"/api/v1/users/{uid}",
            json={"role": "admin", "allowed_categories": ["database", "bogus_cat"]},
            headers=headers,
        )
        assert resp.status_code == 200
        assert resp.json()["role"] == "admin"
        assert resp.json()["allowed_categories"] == ["database"]

    def test_delete_user(self, api_client: ApiClient, user_factory) -> None:
        client, headers, _uid = _root(api_client)
        uid, _h = user_factory("user")
        assert client.delete(f"/api/v1/users/{uid}", headers=headers).status_code == 200
        assert client.get(f"/api/v1/users/{uid}", headers=headers).status_code == 404

    def test_ultra_admin_not_deletable(self, api_client: ApiClient, user_factory) -> None:
        client, _token, _uid = api_client
        ultra_id, ultra_headers = user_factory("ultra_admin")
        assert client.delete(f"/api/v1/users/{ultra_id}", headers=ultra_headers).status_code == 404
        assert client.get(f"/api/v1/users/{ultra_id}", headers=ultra_headers).status_code == 200


class TestEndToEnd:
    def test_register_login_and_scoped_admin(self, api_client: ApiClient, user_factory) -> None:
        client, _token, _uid = api_client

        reg = client.post("/api/v1/auth/register", json={"email": "a@example.org", "password": "a-password"})
        assert reg.status_code == 201
        client.cookies.clear()

        login = client.post("/api/v1/auth/login", json={"email": "a@example.org", "password": "a-password"})
        assert login.status_code == 200
        client.cookies.clear()
        a_headers = {"Authorization": f"Bearer {login.json()['access_token']}"}

        assert client.get("/api/v1/systems", headers=a_headers).json() == []

        _bid, b_headers = user_factory("admin", ["database"])
        created = client.post(
            "/api/v1/systems",
            json={"name": "Warehouse DB", "category": "database", "password": "db-secret"},
            headers=b_headers,
        )
        assert created.status_code == 201, created.text
        visible = [s["id"] for s in client.get("/api/v1/systems", headers=b_headers).json()]
        assert created.json()["id"] in visible

        denied = client.post(
            "/api/v1/systems",
            json={"name": "Core Switch", "category": "network"},
            headers=b_headers,
        )
        assert denied.status_code == 403
        assert denied.json()["error"]["code"] == "unauthorized"

        # A still sees nothing: no category grants.
        assert client.get("/api/v1/systems", headers=a_headers).json() == []
