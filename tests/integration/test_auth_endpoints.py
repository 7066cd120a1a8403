"""
Integration tests for the /auth endpoints.

Runs the full FastAPI app with a fresh in-memory store per test. Provider
redirects are exercised through fastapi-sso with the network-facing step
(`verify_and_process`) patched out.
"""

import pytest
from fastapi_sso.sso.base import OpenID, SSOLoginError
from fastapi_sso.sso.facebook import FacebookSSO
from fastapi_sso.sso.google import GoogleSSO

from app.core.config import settings
from app.services import apple

AUTH = "/api/v1/auth"


def register(client, email="joker@example.com", password="knock-knock", **extra):
    return client.post(f"{AUTH}/register", data={"email": email, "password": password, **extra})


@pytest.fixture
def google_enabled(monkeypatch):
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_ID", "test-client.apps.googleusercontent.com")
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_SECRET", "test-google-secret")


@pytest.fixture
def facebook_enabled(monkeypatch):
    monkeypatch.setattr(settings, "FACEBOOK_CLIENT_ID", "1234567890")
    monkeypatch.setattr(settings, "FACEBOOK_CLIENT_SECRET", "test-facebook-secret")


@pytest.fixture
def apple_enabled(monkeypatch):
    monkeypatch.setattr(settings, "APPLE_CLIENT_ID", "com.funnyjoke.web")


@pytest.fixture
def providers_disabled(monkeypatch):
    for key in (
        "GOOGLE_CLIENT_ID",
        "GOOGLE_CLIENT_SECRET",
        "FACEBOOK_CLIENT_ID",
        "FACEBOOK_CLIENT_SECRET",
        "APPLE_CLIENT_ID",
    ):
        monkeypatch.setattr(settings, key, "")


def patch_openid(monkeypatch, sso_class, openid=None, error=None):
    async def fake_verify_and_process(self, request, **kwargs):
        if error:
            raise error
        return openid

    monkeypatch.setattr(sso_class, "verify_and_process", fake_verify_and_process)


class TestLocalAccounts:
    def test_register_signs_in(self, client):
        response = register(client, name="Joker")

        assert response.status_code == 201
        body = response.json()
        assert body["ok"] is True
        assert body["redirect"] == "/profile"
        assert body["user"]["email"] == "joker@example.com"
        assert body["user"]["name"] == "Joker"
        assert "password_hash" not in body["user"]

        me = client.get(f"{AUTH}/me")
        assert me.status_code == 200
        assert me.json()["id"] == body["user"]["id"]

    def test_register_duplicate_email_conflicts(self, client):
        register(client)

        response = register(client, email="JOKER@example.com")

        assert response.status_code == 409
        assert response.json() == {"ok": False, "detail": "An account with that email already exists"}

    def test_register_validation_message(self, client):
        response = register(client, password="short")

        assert response.status_code == 400
        assert response.json()["detail"] == "Password must be at least 8 characters"

    def test_login_and_logout(self, client):
        register(client)
        client.post(f"{AUTH}/logout")
        assert client.get(f"{AUTH}/me").status_code == 401

        response = client.post(
            f"{AUTH}/login",
            data={"email": " Joker@Example.com", "password": "knock-knock", "returnTo": "/jokes/42"},
        )

        assert response.status_code == 200
        assert response.json()["redirect"] == "/jokes/42"
        assert client.get(f"{AUTH}/me").json()["email"] == "joker@example.com"

        logout = client.post(f"{AUTH}/logout")
        assert logout.json() == {"ok": True, "redirect": "/"}
        assert client.get(f"{AUTH}/me").status_code == 401

    def test_login_failures_are_indistinguishable(self, client, memory_repo):
        register(client)
        memory_repo.create(email="social@example.com", google_id="g-1")
        client.post(f"{AUTH}/logout")

        responses = [
            client.post(f"{AUTH}/login", data={"email": "joker@example.com", "password": "wrong-pass"}),
            client.post(f"{AUTH}/login", data={"email": "nobody@example.com", "password": "knock-knock"}),
            client.post(f"{AUTH}/login", data={"email": "social@example.com", "password": "knock-knock"}),
        ]

        assert {r.status_code for r in responses} == {401}
        assert {r.json()["detail"] for r in responses} == {"Invalid email or password"}

    @pytest.mark.parametrize("payload, detail", [
        ({"email": "", "password": "x"}, "Email and password are required"),
        ({"email": "not-an-email", "password": "x"}, "Please enter a valid email address"),
    ])
    def test_login_input_errors(self, client, payload, detail):
        response = client.post(f"{AUTH}/login", data=payload)

        assert response.status_code == 400
        assert response.json()["detail"] == detail

    def test_offsite_return_to_is_dropped(self, client):
        response = register(client, returnTo="https://evil.example.com/phish")

        assert response.json()["redirect"] == "/profile"

    def test_modal_multipart_form_post(self, client):
        # The login modal sends FormData, which browsers encode as multipart
        fields = {"email": (None, "modal@example.com"), "password": (None, "longpassword")}

        registered = client.post(f"{AUTH}/register", files=fields, headers={"Accept": "application/json"})
        client.post(f"{AUTH}/logout")
        logged_in = client.post(f"{AUTH}/login", files=fields, headers={"Accept": "application/json"})

        assert registered.status_code == 201
        assert logged_in.status_code == 200
        assert logged_in.json()["user"]["email"] == "modal@example.com"

    def test_missing_form_fields_get_service_message(self, client):
        response = client.post(f"{AUTH}/register", data={"email": "only@example.com"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Email and password are required"

    def test_me_after_account_deleted_clears_session(self, client, memory_repo):
        user = register(client).json()["user"]
        memory_repo._users = [u for u in memory_repo._users if u["id"] != user["id"]]

        assert client.get(f"{AUTH}/me").status_code == 401


class TestGoogleSignIn:
    def test_login_redirects_to_google(self, client, google_enabled):
        response = client.get(f"{AUTH}/google/login", follow_redirects=False)

        assert response.status_code in (302, 303, 307)
        assert response.headers["location"].startswith("https://accounts.google.com/")

    def test_callback_creates_account_and_session(self, client, google_enabled, monkeypatch):
        patch_openid(monkeypatch, GoogleSSO, OpenID(
            id="g-100",
            email="Gina@Example.com",
            display_name="Gina",
            picture="https://lh3.googleusercontent.com/a/abc=s50-c",
            provider="google",
        ))

        response = client.get(f"{AUTH}/google/callback", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "/profile"
        me = client.get(f"{AUTH}/me").json()
        assert me["email"] == "gina@example.com"
        assert me["avatar_url"] == "https://lh3.googleusercontent.com/a/abc=s96-c"

    def test_callback_returns_to_remembered_page(self, client, google_enabled, monkeypatch):
        patch_openid(monkeypatch, GoogleSSO, OpenID(id="g-100", email="g@x.com", provider="google"))

        client.get(f"{AUTH}/google/login", params={"returnTo": "/jokes/7"}, follow_redirects=False)
        response = client.get(f"{AUTH}/google/callback", follow_redirects=False)

        assert response.headers["location"] == "/jokes/7"

    def test_provider_error_redirects_to_login(self, client, google_enabled, monkeypatch):
        patch_openid(monkeypatch, GoogleSSO, error=SSOLoginError(400, "state mismatch"))

        response = client.get(f"{AUTH}/google/callback", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "/?auth=login&error=authentication_failed"
        assert client.get(f"{AUTH}/me").status_code == 401


class TestFacebookSignIn:
    def test_second_provider_links_to_same_account(self, client, google_enabled, facebook_enabled, monkeypatch):
        patch_openid(monkeypatch, GoogleSSO, OpenID(id="g-1", email="both@x.com", provider="google"))
        client.get(f"{AUTH}/google/callback", follow_redirects=False)
        first = client.get(f"{AUTH}/me").json()

        patch_openid(monkeypatch, FacebookSSO, OpenID(id="fb-1", email="both@x.com", provider="facebook"))
        client.get(f"{AUTH}/facebook/callback", follow_redirects=False)
        second = client.get(f"{AUTH}/me").json()

        assert second["id"] == first["id"]
        assert second["avatar_url"].startswith("https://graph.facebook.com/fb-1/picture?")

    def test_emailless_facebook_account(self, client, facebook_enabled, monkeypatch, memory_repo):
        patch_openid(monkeypatch, FacebookSSO, OpenID(id="fb-2", display_name="No Mail", provider="facebook"))

        response = client.get(f"{AUTH}/facebook/callback", follow_redirects=False)

        assert response.status_code == 302
        me = client.get(f"{AUTH}/me").json()
        assert me["email"] is None
        assert me["name"] == "No Mail"


class TestAppleSignIn:
    def test_login_redirect_carries_signed_state(self, client, apple_enabled):
        response = client.get(f"{AUTH}/apple/login", params={"returnTo": "/jokes/1"}, follow_redirects=False)

        assert response.status_code == 302
        location = response.headers["location"]
        assert location.startswith("https://appleid.apple.com/auth/authorize?")
        assert "response_mode=form_post" in location

    def test_form_post_callback(self, client, apple_enabled, monkeypatch):
        monkeypatch.setattr(
            apple, "verify_identity_token", lambda token: {"sub": "apple-1", "email": "a@privaterelay.appleid.com"}
        )

        response = client.post(
            f"{AUTH}/apple/callback",
            data={
                "id_token": "header.payload.signature",
                "state": apple.sign_state("/jokes/1"),
                "user": '{"name": {"firstName": "Ada", "lastName": "L"}}',
            },
            follow_redirects=False,
        )

        assert response.status_code == 303
        assert response.headers["location"] == "/jokes/1"
        me = client.get(f"{AUTH}/me").json()
        assert me["name"] == "Ada L"
        assert me["avatar_url"] is None

    def test_forged_state_rejected(self, client, apple_enabled, monkeypatch):
        monkeypatch.setattr(apple, "verify_identity_token", lambda token: {"sub": "apple-1"})

        response = client.post(
            f"{AUTH}/apple/callback",
            data={"id_token": "t", "state": "forged"},
            follow_redirects=False,
        )

        assert response.headers["location"] == "/?auth=login&error=authentication_failed"
        assert client.get(f"{AUTH}/me").status_code == 401


class TestDisabledProviders:
    @pytest.mark.parametrize("path", [
        "/google/login",
        "/google/callback",
        "/facebook/login",
        "/facebook/callback",
        "/apple/login",
    ])
    def test_unconfigured_provider_is_not_found(self, client, providers_disabled, path):
        response = client.get(f"{AUTH}{path}", follow_redirects=False)

        assert response.status_code == 404
