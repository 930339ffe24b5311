"""Shared fixtures: settings, a fake Kinde provider and wired-up clients."""

import json
import time
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi.testclient import TestClient
from jose import jwt

from kinde_portal.config import Settings
from kinde_portal.auth.oidc import KindeClient
from kinde_portal.auth.session import SessionManager
from kinde_portal.main import create_app

DOMAIN = "https://acme.kinde.com"
CLIENT_ID = "client-123"


def make_token(claims: dict) -> str:
    """Mint an HS256 token; the app only reads claims, never the signature."""
    return jwt.encode(claims, "test-signing-key", algorithm="HS256")


def query_of(url: str) -> dict[str, list[str]]:
    return parse_qs(urlparse(url).query)


class FakeKinde:
    """Stub of the Kinde token and user profile endpoints."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.nonce: str | None = None
        self.permissions = ["read:reports"]
        self.include_id_token = True
        self.token_response: tuple[int, object] | None = None
        self.userinfo_response: tuple[int, object] | None = None
        self.raise_on_request: Exception | None = None

    def id_token(self) -> str:
        claims = {
            "iss": DOMAIN,
            "aud": [CLIENT_ID],
            "sub": "kp_user_1",
            "given_name": "Ada",
            "family_name": "Lovelace",
            "email": "ada@example.com",
            "picture": "https://img.example.com/ada.png",
            "iat": int(time.time()),
            "exp": int(time.time()) + 3600,
        }
        if self.nonce:
            claims["nonce"] = self.nonce
        return make_token(claims)

    def access_token(self) -> str:
        return make_token(
            {
                "sub": "kp_user_1",
                "org_code": "org_acme",
                "permissions": self.permissions,
                "exp": int(time.time()) + 3600,
            }
        )

    def default_token_body(self) -> dict:
        body = {
            "access_token": self.access_token(),
            "refresh_token": "refresh-abc",
            "expires_in": 3600,
            "token_type": "bearer",
        }
        if self.include_id_token:
            body["id_token"] = self.id_token()
        return body

    def _respond(self, configured, default) -> httpx.Response:
        status, body = configured if configured is not None else (200, default)
        if isinstance(body, (dict, list)):
            return httpx.Response(status, content=json.dumps(body), headers={"Content-Type": "application/json"})
        return httpx.Response(status, content=body, headers={"Content-Type": "text/html"})

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raise_on_request is not None:
            raise self.raise_on_request
        if request.url.path == "/oauth2/token":
            return self._respond(self.token_response, self.default_token_body())
        if request.url.path == "/oauth2/v2/user_profile":
            return self._respond(
                self.userinfo_response,
                {
                    "sub": "kp_user_1",
                    "given_name": "Ada",
                    "family_name": "Lovelace",
                    "email": "ada@example.com",
                },
            )
        return httpx.Response(404, json={"error": "not_found"})


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        domain="acme.kinde.com/",
        client_id=CLIENT_ID,
        client_secret="shh-secret",
        redirect_url="http://testserver/auth/callback",
        post_logout_redirect_url="http://testserver/",
    )


@pytest.fixture
def fake_kinde() -> FakeKinde:
    return FakeKinde()


@pytest.fixture
def http_client(fake_kinde: FakeKinde) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_kinde.handle))


@pytest.fixture
def session_manager(settings: Settings) -> SessionManager:
    return SessionManager(settings)


@pytest.fixture
def kinde_client(settings, session_manager, http_client) -> KindeClient:
    return KindeClient(settings, session_manager, http_client=http_client)


@pytest.fixture
def app(settings, http_client):
    return create_app(settings=settings, http_client=http_client)


@pytest.fixture
def web(app) -> TestClient:
    with TestClient(app, follow_redirects=False) as client:
        yield client
