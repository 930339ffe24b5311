"""Session cookie middleware and the route gate for FastAPI."""

import logging
from typing import Annotated

from fastapi import Depends, Request, status
from fastapi.responses import JSONResponse, RedirectResponse, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from kinde_portal.config import Settings
from kinde_portal.auth.models import Session
from kinde_portal.auth.oidc import KindeClient
from kinde_portal.auth.session import SessionManager

logger = logging.getLogger(__name__)

LOGIN_NOTICE = "Please log in to access this page."


class SessionCookieMiddleware(BaseHTTPMiddleware):
    """
    Make sure every request carries a live session.

    Unknown or expired cookies are replaced by a fresh session. Routes that
    end the session set `request.state.session_ended` and the cookie is
    removed on the way out.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        settings: Settings = request.app.state.settings
        session_manager: SessionManager = request.app.state.session_manager

        cookie_value = request.cookies.get(settings.session_cookie_name)
        session = await session_manager.get_or_create_session(cookie_value)
        request.state.session_id = session.session_id

        response = await call_next(request)

        if getattr(request.state, "session_ended", False):
            response.delete_cookie(settings.session_cookie_name)
        elif session.session_id != cookie_value:
            response.set_cookie(
                key=settings.session_cookie_name,
                value=session.session_id,
                httponly=True,
                secure=settings.is_production,
                samesite="lax",
                max_age=settings.session_ttl_seconds,
            )
        return response


class AuthGateRejection(Exception):
    """Raised by the gate; carries the response to send instead of the route's."""

    def __init__(self, response: Response):
        self.response = response


async def auth_gate_exception_handler(request: Request, exc: AuthGateRejection) -> Response:
    return exc.response


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def get_kinde_client(request: Request) -> KindeClient:
    return request.app.state.kinde_client


def get_session_id(request: Request) -> str:
    return request.state.session_id


async def get_current_session(
    session_id: Annotated[str, Depends(get_session_id)],
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> Session | None:
    return await session_manager.get_session(session_id)


def expects_json(request: Request) -> bool:
    """True if the caller wants a machine-readable response rather than a page."""
    if request.headers.get("x-requested-with", "").lower() == "xmlhttprequest":
        return True
    accept = request.headers.get("accept", "").lower()
    return "/json" in accept or "+json" in accept


async def require_authenticated(
    request: Request,
    session: Annotated[Session | None, Depends(get_current_session)],
    session_id: Annotated[str, Depends(get_session_id)],
    kinde_client: Annotated[KindeClient, Depends(get_kinde_client)],
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> Session:
    """Admit authenticated sessions; redirect browsers to login and reject API callers."""
    if kinde_client.is_authenticated(session):
        return session

    if expects_json(request):
        raise AuthGateRejection(
            JSONResponse({"error": "Unauthenticated"}, status_code=status.HTTP_401_UNAUTHORIZED)
        )

    if request.method == "GET":
        intended = request.url.path
        if request.url.query:
            intended = f"{intended}?{request.url.query}"
        await session_manager.set_intended_url(session_id, intended)

    await session_manager.flash(session_id, "error", LOGIN_NOTICE)
    logger.info(f"Unauthenticated request to {request.url.path}, redirecting to login")
    raise AuthGateRejection(
        RedirectResponse(url=str(request.url_for("auth_login")), status_code=status.HTTP_302_FOUND)
    )


# Type aliases for dependency injection
AuthenticatedSession = Annotated[Session, Depends(require_authenticated)]
CurrentSession = Annotated[Session | None, Depends(get_current_session)]
SessionId = Annotated[str, Depends(get_session_id)]
Client = Annotated[KindeClient, Depends(get_kinde_client)]
Sessions = Annotated[SessionManager, Depends(get_session_manager)]
AppSettings = Annotated[Settings, Depends(get_settings)]
