"""Authentication data models."""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Longest access token lifetime accepted from the token endpoint
MAX_EXPIRES_IN = 366 * 24 * 3600


class AuthIntent(str, Enum):
    """Which hosted page the provider should open first."""

    LOGIN = "login"
    REGISTER = "registration"


class AuthRequestState(BaseModel):
    """Anti-forgery values for one login attempt."""

    state: str
    nonce: str
    created_at: datetime = Field(default_factory=utcnow)


class TokenSet(BaseModel):
    """Tokens returned by the provider's token endpoint."""

    access_token: str
    refresh_token: str | None = None
    id_token: str | None = None
    expires_at: datetime
    token_type: str = "Bearer"

    @classmethod
    def from_token_response(cls, body: dict[str, Any], default_expires_in: int = 3600) -> "TokenSet":
        expires_in = int(body.get("expires_in", default_expires_in))
        if not 0 < expires_in <= MAX_EXPIRES_IN:
            raise ValueError(f"expires_in out of range: {expires_in}")
        return cls(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token"),
            id_token=body.get("id_token"),
            expires_at=utcnow() + timedelta(seconds=expires_in),
            token_type=body.get("token_type", "Bearer"),
        )


class IdentityClaims(BaseModel):
    """ID token claims used by this application."""

    sub: str = Field(..., description="Subject (Kinde user ID)")
    iss: str = Field(..., description="Issuer")
    aud: str | list[str] = Field(..., description="Audience (client ID)")
    exp: int | None = Field(None, description="Expiration timestamp")
    iat: int | None = Field(None, description="Issued at timestamp")
    nonce: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    email: str | None = None
    picture: str | None = None

    @property
    def audiences(self) -> list[str]:
        return [self.aud] if isinstance(self.aud, str) else list(self.aud)


class Profile(BaseModel):
    """Identity snapshot shown to the signed-in user."""

    id: str
    given_name: str | None = None
    family_name: str | None = None
    email: str | None = None
    picture: str | None = None

    @property
    def full_name(self) -> str:
        parts = [p for p in (self.given_name, self.family_name) if p]
        return " ".join(parts) or self.email or self.id

    @classmethod
    def from_claims(cls, claims: IdentityClaims) -> "Profile":
        return cls(
            id=claims.sub,
            given_name=claims.given_name,
            family_name=claims.family_name,
            email=claims.email,
            picture=claims.picture,
        )

    @classmethod
    def from_userinfo(cls, data: dict[str, Any]) -> "Profile":
        """Accept both the OIDC-style v2 payload and the legacy Kinde one."""
        if not isinstance(data, dict):
            raise ValueError(f"userinfo payload is not an object: {type(data).__name__}")
        user_id = data.get("sub") or data.get("id")
        if not user_id:
            raise ValueError("userinfo payload has no subject")
        return cls(
            id=user_id,
            given_name=data.get("given_name") or data.get("first_name"),
            family_name=data.get("family_name") or data.get("last_name"),
            email=data.get("email") or data.get("preferred_email"),
            picture=data.get("picture"),
        )


class Session(BaseModel):
    """Per-browser session record stored server-side."""

    session_id: str
    access_token: str | None = None
    refresh_token: str | None = None
    id_token: str | None = None
    token_expires_at: datetime | None = None
    profile: Profile | None = None
    auth_request: AuthRequestState | None = None
    intended_url: str | None = None
    notices: dict[str, str] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_token_expired(self) -> bool:
        return self.token_expires_at is None or utcnow() >= self.token_expires_at

    @property
    def has_valid_token(self) -> bool:
        return bool(self.access_token) and not self.is_token_expired
