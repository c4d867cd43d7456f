"""
tests/test_users_api.py -- Integration tests for the /api/users routes.

These tests exercise the full stack: FastAPI routing -> request validation ->
auth gate dependency -> UserStore/TokenIssuer -> error envelope. Unit testing
the route functions would miss middleware, dependency injection and the
exception handlers that decide every status code here.

Fixtures used (from conftest.py):
  - api_client: (client, store, issuer) over an isolated shared-memory DB
  - register:   helper that POSTs Ann / a@x.com / secret with overrides
"""

from __future__ import annotations

from sqlalchemy import text

from api.limiter import limiter
from auth.validation import PASSWORD_TOO_LONG


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestRegister:
    def test_register_returns_user_and_token(self, api_client, register) -> None:
        """POST /api/users with a valid body -> 201 {user, token}, no password in the user."""
        client, store, issuer = api_client
        resp = register()

        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["user"]["name"] == "Ann"
        assert data["user"]["email"] == "a@x.com"
        assert "password" not in data["user"]
        assert "password_hash" not in data["user"]
        assert "tokens" not in data["user"]
        assert issuer.verify(data["token"]) == data["user"]["id"]
        assert store.get_tokens(data["user"]["id"]) == [data["token"]]

    def test_register_stores_hash_not_plaintext(self, api_client, register) -> None:
        client, store, _issuer = api_client
        register()
        assert store.get_by_email("a@x.com").password_hash != "secret"

    def test_register_with_gender(self, api_client, register) -> None:
        resp = register(gender="female")
        assert resp.status_code == 201
        assert resp.json()["user"]["gender"] == "female"

    def test_password_mismatch(self, api_client, register) -> None:
        client, store, _issuer = api_client
        resp = register(password2="different")

        assert resp.status_code == 500
        assert resp.json()["error"]["code"] == "password_mismatch"
        assert store.get_by_email("a@x.com") is None

    def test_duplicate_email(self, api_client, register) -> None:
        assert register().status_code == 201
        resp = register(name="Other Ann")

        assert resp.status_code == 500
        assert resp.json()["error"] == {"code": "user_exists", "message": "User already exists"}

    def test_validation_errors_are_field_level(self, api_client, register) -> None:
        resp = register(name="", email="not-an-email", password1="123", password2="123")

        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "validation_error"
        messages = {f["field"]: f["message"] for f in error["fields"]}
        assert messages["name"] == "Name is required"
        assert messages["email"] == "Please include a valid email"
        assert messages["password1"] == "Please enter a password with 6 or more characters"

    def test_missing_field(self, api_client) -> None:
        client, _store, _issuer = api_client
        resp = client.post("/api/users", json={"name": "Ann", "email": "a@x.com"})

        assert resp.status_code == 400
        fields = {f["field"] for f in resp.json()["error"]["fields"]}
        assert {"password1", "password2"} <= fields


class TestLogin:
    def test_login_appends_a_token(self, api_client, register) -> None:
        client, store, issuer = api_client
        user_id = register().json()["user"]["id"]
        before = len(store.get_tokens(user_id))

        resp = client.post("/api/users/login", json={"email": "a@x.com", "password": "secret"})

        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["msg"] == "User logged in successfully!"
        assert data["user"]["id"] == user_id
        assert issuer.verify(data["token"]) == user_id
        assert len(store.get_tokens(user_id)) == before + 1
        assert resp.headers["Cache-Control"] == "no-store"

    def test_login_email_is_case_insensitive(self, api_client, register) -> None:
        client, _store, _issuer = api_client
        register()
        resp = client.post("/api/users/login", json={"email": "A@X.com", "password": "secret"})
        assert resp.status_code == 200

    def test_wrong_password(self, api_client, register) -> None:
        client, store, _issuer = api_client
        user_id = register().json()["user"]["id"]
        before = store.get_tokens(user_id)

        resp = client.post("/api/users/login", json={"email": "a@x.com", "password": "wrong-password"})

        assert resp.status_code == 500
        assert resp.json()["error"]["code"] == "bad_credentials"
        assert store.get_tokens(user_id) == before

    def test_unknown_email_looks_like_wrong_password(self, api_client, register) -> None:
        client, _store, _issuer = api_client
        register()

        wrong_password = client.post("/api/users/login", json={"email": "a@x.com", "password": "wrong-password"})
        unknown_email = client.post("/api/users/login", json={"email": "nobody@x.com", "password": "secret"})

        assert wrong_password.status_code == unknown_email.status_code
        assert wrong_password.json() == unknown_email.json()

    def test_login_validation(self, api_client) -> None:
        client, _store, _issuer = api_client
        resp = client.post("/api/users/login", json={"email": "nope", "password": ""})

        assert resp.status_code == 400
        messages = {f["field"]: f["message"] for f in resp.json()["error"]["fields"]}
        assert messages["email"] == "Please include a valid email"
        assert messages["password"] == "Password is required"

    def test_login_rate_limited(self, api_client, register) -> None:
        """Eleven attempts in a minute from one client -> the last is 429."""
        client, _store, _issuer = api_client
        register()
        limiter.enabled = True
        try:
            statuses = [
                client.post("/api/users/login", json={"email": "a@x.com", "password": "wrong-password"}).status_code
                for _ in range(11)
            ]
        finally:
            limiter.enabled = False
            limiter.reset()

        assert statuses[:10] == [500] * 10
        assert statuses[10] == 429


class TestMe:
    def test_me_with_token(self, api_client, register) -> None:
        client, _store, _issuer = api_client
        token = register().json()["token"]

        resp = client.get("/api/users", headers=_auth(token))

        assert resp.status_code == 200
        data = resp.json()
        assert data["email"] == "a@x.com"
        assert "password_hash" not in data

    def test_me_without_token(self, api_client) -> None:
        client, _store, _issuer = api_client
        resp = client.get("/api/users")

        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"
        assert resp.headers["WWW-Authenticate"] == "Bearer"

    def test_me_with_garbage_token(self, api_client) -> None:
        client, _store, _issuer = api_client
        resp = client.get("/api/users", headers=_auth("not.a.token"))
        assert resp.status_code == 401

    def test_me_with_wrong_scheme(self, api_client, register) -> None:
        client, _store, _issuer = api_client
        token = register().json()["token"]
        resp = client.get("/api/users", headers={"Authorization": f"Basic {token}"})
        assert resp.status_code == 401


class TestLogout:
    def test_logout_revokes_only_the_presented_token(self, api_client, register) -> None:
        """Logout with the newest token -> it stops working; the older one still does."""
        client, store, _issuer = api_client
        first = register().json()["token"]
        newest = client.post("/api/users/login", json={"email": "a@x.com", "password": "secret"}).json()["token"]

        resp = client.post("/api/users/logout", headers=_auth(newest))

        assert resp.status_code == 200
        assert resp.json() == {"msg": "User logged out successfully!"}
        assert client.get("/api/users", headers=_auth(newest)).status_code == 401
        assert client.get("/api/users", headers=_auth(first)).status_code == 200
        user_id = store.get_by_email("a@x.com").id
        assert store.get_tokens(user_id) == [first]

    def test_logout_twice_with_same_token(self, api_client, register) -> None:
        """The second logout is rejected at the auth gate; the token list is untouched."""
        client, store, _issuer = api_client
        token = register().json()["token"]
        client.post("/api/users/logout", headers=_auth(token))

        resp = client.post("/api/users/logout", headers=_auth(token))

        assert resp.status_code == 401
        assert store.get_tokens(store.get_by_email("a@x.com").id) == []

    def test_logout_requires_token(self, api_client) -> None:
        client, _store, _issuer = api_client
        resp = client.post("/api/users/logout")
        assert resp.status_code == 401


class TestPasswordsAsTyped:
    """Passwords reach the store byte for byte; only name, email and gender are trimmed."""

    def test_register_then_login_with_surrounding_spaces(self, api_client, register) -> None:
        client, store, _issuer = api_client
        assert register(password1=" secret1 ", password2=" secret1 ").status_code == 201

        resp = client.post("/api/users/login", json={"email": "a@x.com", "password": " secret1 "})

        assert resp.status_code == 200, resp.text
        assert store.find_by_credentials("a@x.com", " secret1 ").email == "a@x.com"
        trimmed = client.post("/api/users/login", json={"email": "a@x.com", "password": "secret1"})
        assert trimmed.status_code == 500

    def test_spaces_count_toward_minimum_length(self, api_client, register) -> None:
        resp = register(password1="  abcd  ", password2="  abcd  ")
        assert resp.status_code == 201, resp.text

    def test_store_created_user_logs_in_with_exact_password(self, api_client) -> None:
        client, store, _issuer = api_client
        store.create_user("Ann", "a@x.com", " secret1 ")

        resp = client.post("/api/users/login", json={"email": "a@x.com", "password": " secret1 "})

        assert resp.status_code == 200, resp.text

    def test_name_and_email_are_trimmed(self, api_client, register) -> None:
        resp = register(name="  Ann  ", email="  A@X.com ")
        assert resp.status_code == 201
        assert resp.json()["user"]["name"] == "Ann"
        assert resp.json()["user"]["email"] == "a@x.com"


class TestPasswordByteLimit:
    def test_register_over_72_bytes(self, api_client, register) -> None:
        """40 two-byte characters pass a character count but are 80 bytes."""
        client, store, _issuer = api_client
        resp = register(password1="é" * 40, password2="é" * 40)

        assert resp.status_code == 400
        messages = {f["field"]: f["message"] for f in resp.json()["error"]["fields"]}
        assert messages["password1"] == PASSWORD_TOO_LONG
        assert store.get_by_email("a@x.com") is None

    def test_register_at_72_bytes(self, api_client, register) -> None:
        resp = register(password1="é" * 36, password2="é" * 36)
        assert resp.status_code == 201, resp.text

    def test_login_over_72_bytes(self, api_client, register) -> None:
        client, _store, _issuer = api_client
        register()

        resp = client.post("/api/users/login", json={"email": "a@x.com", "password": "é" * 40})

        assert resp.status_code == 400
        messages = {f["field"]: f["message"] for f in resp.json()["error"]["fields"]}
        assert messages["password"] == PASSWORD_TOO_LONG


class TestRegisterIsAtomic:
    def test_failed_token_write_leaves_no_account(self, api_client, register) -> None:
        """If the first token cannot be stored, the user row is rolled back too."""
        client, store, _issuer = api_client
        with store.engine.connect() as conn:
            conn.execute(text("DROP TABLE user_tokens"))
            conn.commit()

        resp = register()

        assert resp.status_code == 500
        assert resp.json()["error"]["code"] == "internal_error"
        with store.engine.connect() as conn:
            assert conn.execute(text("SELECT COUNT(*) FROM users")).scalar() == 0
