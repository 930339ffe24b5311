"""OIDC authorization code flow against a Kinde business domain."""

import logging
import secrets
from collections.abc import Mapping
from contextlib import asynccontextmanager
from typing import Any
from urllib.parse import urlencode

import httpx
from jose import jwt, JWTError
from pydantic import ValidationError

from kinde_portal.config import Settings
from kinde_portal.exceptions import (
    AuthErrorKind,
    MalformedResponseError,
    MissingCodeError,
    NetworkFailureError,
    ProviderRejectedError,
    StateMismatchError,
)
from kinde_portal.auth.models import (
    AuthIntent,
    AuthRequestState,
    IdentityClaims,
    Profile,
    Session,
    TokenSet,
    utcnow,
)
from kinde_portal.auth.oidc_config import ProviderEndpoints
from kinde_portal.auth.session import SessionManager

logger = logging.getLogger(__name__)

# Parameters the flow itself controls; extra params cannot replace them.
PROTOCOL_PARAMS = frozenset(
    {"response_type", "client_id", "redirect_uri", "scope", "state", "nonce", "start_page"}
)


class KindeClient:
    """
    Authorization code flow client for one Kinde application.

    The client never keeps per-user state itself. Everything it learns about
    a user (state, tokens, profile) is written through the SessionManager.
    """

    def __init__(
        self,
        settings: Settings,
        session_manager: SessionManager,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings
        self.sessions = session_manager
        self.endpoints = ProviderEndpoints.from_settings(settings)
        self._http_client = http_client

    @asynccontextmanager
    async def _client(self):
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self.settings.http_timeout_seconds) as client:
            yield client

    # ------------------------------------------------------------------
    # Authorization request
    # ------------------------------------------------------------------

    async def build_authorization_url(
        self,
        session_id: str,
        intent: AuthIntent = AuthIntent.LOGIN,
        extra_params: Mapping[str, str] | None = None,
    ) -> str:
        """Build the hosted login/registration URL and bind a new state to the session."""
        auth_request = AuthRequestState(
            state=secrets.token_urlsafe(32),
            nonce=secrets.token_urlsafe(32),
        )
        await self.sessions.save_auth_request(session_id, auth_request)

        params: dict[str, str] = {
            key: value
            for key, value in (extra_params or {}).items()
            if key not in PROTOCOL_PARAMS and value is not None
        }
        params.update(
            {
                "response_type": "code",
                "client_id": self.settings.client_id,
                "redirect_uri": self.settings.redirect_url,
                "scope": self.settings.scopes,
                "state": auth_request.state,
                "nonce": auth_request.nonce,
                "start_page": intent.value,
            }
        )

        return f"{self.endpoints.authorization_endpoint}?{urlencode(params)}"

    # ------------------------------------------------------------------
    # Callback and token exchange
    # ------------------------------------------------------------------

    async def handle_callback(self, session_id: str, params: Mapping[str, str]) -> TokenSet:
        """Process the raw callback query of the redirect back from Kinde."""
        if params.get("error"):
            raise ProviderRejectedError(params["error"], params.get("error_description"))

        code = params.get("code")
        if not code:
            raise MissingCodeError()

        return await self.exchange_code_for_tokens(session_id, code, params.get("state"))

    async def exchange_code_for_tokens(self, session_id: str, code: str, state: str | None) -> TokenSet:
        """
        Exchange an authorization code for tokens.

        The stored state is consumed before the network call, so a code and
        state pair can only ever be redeemed once. Do not retry on failure.
        """
        auth_request = await self.sessions.consume_auth_request(session_id, state)
        if auth_request is None:
            raise StateMismatchError()

        data = {
            "grant_type": "authorization_code",
            "client_id": self.settings.client_id,
            "client_secret": self.settings.client_secret,
            "code": code,
            "redirect_uri": self.settings.redirect_url,
        }

        try:
            async with self._client() as client:
                resp = await client.post(
                    self.endpoints.token_endpoint,
                    data=data,
                    headers={
                        "Content-Type": "application/x-www-form-urlencoded",
                        "Accept": "application/json",
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"Token exchange transport failure: {e!r}")
            raise NetworkFailureError(f"Could not reach token endpoint: {e}") from e

        body = self._json_body(resp)
        if body is None:
            raise MalformedResponseError(f"Token endpoint returned non-JSON body (HTTP {resp.status_code})")

        if "error" in body:
            logger.warning(f"Token exchange rejected: {body.get('error')}")
            raise ProviderRejectedError(str(body["error"]), body.get("error_description"))

        if not resp.is_success:
            raise ProviderRejectedError("server_error", f"Token endpoint returned HTTP {resp.status_code}")

        try:
            tokens = TokenSet.from_token_response(body)
        except (KeyError, TypeError, ValueError, OverflowError, ValidationError) as e:
            raise MalformedResponseError(f"Unusable token response: {e}") from e

        profile = None
        if tokens.id_token:
            claims = self.validate_id_token(tokens.id_token, auth_request.nonce)
            profile = Profile.from_claims(claims)

        await self.sessions.store_tokens(session_id, tokens, profile)
        logger.info(f"Token exchange succeeded for user {profile.id if profile else 'unknown'}")
        return tokens

    def validate_id_token(self, id_token: str, nonce: str | None) -> IdentityClaims:
        """
        Decode ID token claims and check issuer, audience, nonce and expiry.

        The token arrives straight from the token endpoint over TLS, so the
        claims are checked but the signature is not.
        """
        try:
            claims = IdentityClaims(**jwt.get_unverified_claims(id_token))
        except (JWTError, ValidationError, TypeError) as e:
            raise MalformedResponseError(f"Invalid ID token: {e}") from e

        if claims.iss.rstrip("/") != self.endpoints.issuer:
            raise MalformedResponseError(f"ID token issuer mismatch: {claims.iss}")
        if self.settings.client_id not in claims.audiences:
            raise MalformedResponseError("ID token audience does not include this client")
        if nonce and not (claims.nonce and secrets.compare_digest(claims.nonce, nonce)):
            raise MalformedResponseError("ID token nonce missing or mismatched")
        if claims.exp is not None and claims.exp <= utcnow().timestamp():
            raise MalformedResponseError("ID token has expired")

        return claims

    @staticmethod
    def _json_body(resp: httpx.Response) -> dict[str, Any] | None:
        try:
            body = resp.json()
        except ValueError:
            return None
        return body if isinstance(body, dict) else None

    # ------------------------------------------------------------------
    # Session queries
    # ------------------------------------------------------------------

    def is_authenticated(self, session: Session | None) -> bool:
        """True if the session holds an access token that has not expired. No I/O."""
        return session is not None and session.has_valid_token

    async def get_user_profile(self, session_id: str) -> Profile | None:
        """
        Return the signed-in user's profile.

        Falls back to the userinfo endpoint when no claims are cached.
        Unauthenticated sessions and failed fetches both yield None.
        """
        session = await self.sessions.get_session(session_id)
        if not self.is_authenticated(session):
            return None
        if session.profile:
            return session.profile

        try:
            async with self._client() as client:
                resp = await client.get(
                    self.endpoints.userinfo_endpoint,
                    headers={
                        "Authorization": f"Bearer {session.access_token}",
                        "Accept": "application/json",
                    },
                )
            resp.raise_for_status()
            profile = Profile.from_userinfo(resp.json())
        except (httpx.HTTPError, ValueError, TypeError, ValidationError) as e:
            logger.warning(f"{AuthErrorKind.PROFILE_FETCH_FAILED.value}: {e!r}")
            return None

        await self.sessions.store_profile(session_id, profile)
        return profile

    def _access_token_claims(self, session: Session) -> dict[str, Any]:
        return jwt.get_unverified_claims(session.access_token)

    async def has_permission(self, session_id: str, permission: str) -> bool:
        """Check a permission key against the access token's `permissions` claim."""
        session = await self.sessions.get_session(session_id)
        if not self.is_authenticated(session):
            return False

        try:
            permissions = self._access_token_claims(session).get("permissions")
            return isinstance(permissions, list) and permission in permissions
        except (JWTError, AttributeError) as e:
            logger.warning(f"{AuthErrorKind.PERMISSION_CHECK_FAILED.value}: {e!r}")
            return False

    async def get_permissions(self, session_id: str) -> dict[str, Any]:
        """All permissions granted in the current organization."""
        empty = {"org_code": None, "permissions": []}
        session = await self.sessions.get_session(session_id)
        if not self.is_authenticated(session):
            return empty

        try:
            claims = self._access_token_claims(session)
        except JWTError as e:
            logger.warning(f"{AuthErrorKind.PERMISSION_CHECK_FAILED.value}: {e!r}")
            return empty

        permissions = claims.get("permissions")
        return {
            "org_code": claims.get("org_code"),
            "permissions": list(permissions) if isinstance(permissions, list) else [],
        }

    async def get_claim(self, session_id: str, name: str, token: str = "access_token") -> Any:
        """Read a single claim from the access or ID token. None when unavailable."""
        if token not in ("access_token", "id_token"):
            raise ValueError(f"Unknown token type: {token}")

        session = await self.sessions.get_session(session_id)
        if not self.is_authenticated(session):
            return None
        raw = getattr(session, token)
        if not raw:
            return None
        try:
            return jwt.get_unverified_claims(raw).get(name)
        except JWTError:
            return None

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    async def build_logout_url(self, session_id: str) -> str:
        """Build the Kinde logout URL and drop the local tokens immediately."""
        await self.sessions.clear_tokens(session_id)
        query = urlencode({"redirect": self.settings.post_logout_redirect_url})
        return f"{self.endpoints.logout_endpoint}?{query}"
