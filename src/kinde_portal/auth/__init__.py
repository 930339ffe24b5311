"""Authentication module for the Kinde portal."""

from kinde_portal.auth.models import (
    AuthIntent,
    AuthRequestState,
    IdentityClaims,
    Profile,
    Session,
    TokenSet,
)
from kinde_portal.auth.oidc import KindeClient
from kinde_portal.auth.oidc_config import ProviderEndpoints
from kinde_portal.auth.session import InMemorySessionStore, SessionManager, SessionStore
from kinde_portal.auth.middleware import (
    AuthenticatedSession,
    AuthGateRejection,
    SessionCookieMiddleware,
    expects_json,
    require_authenticated,
)
from kinde_portal.auth.routes import router as auth_router

__all__ = [
    # Models
    "AuthIntent",
    "AuthRequestState",
    "IdentityClaims",
    "Profile",
    "Session",
    "TokenSet",
    # Provider
    "KindeClient",
    "ProviderEndpoints",
    # Session
    "SessionStore",
    "InMemorySessionStore",
    "SessionManager",
    # Middleware
    "AuthenticatedSession",
    "AuthGateRejection",
    "SessionCookieMiddleware",
    "expects_json",
    "require_authenticated",
    # Routes
    "auth_router",
]
