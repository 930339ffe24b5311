"""Authentication routes for the Kinde login/logout flow."""

import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import RedirectResponse

from kinde_portal.exceptions import AuthError, AuthErrorKind, ProviderRejectedError
from kinde_portal.auth.models import AuthIntent
from kinde_portal.auth.middleware import AuthenticatedSession, Client, SessionId, Sessions

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])

# Query parameters forwarded from /auth/login and /auth/register to Kinde
PASSTHROUGH_PARAMS = ("org_code", "login_hint", "lang")

LOGIN_SUCCESS_NOTICE = "Successfully logged in!"
LOGIN_FAILED_NOTICE = "Failed to authenticate. Please try again."
MISSING_CODE_NOTICE = "No authorization code received"


def _passthrough(request: Request) -> dict[str, str]:
    return {key: request.query_params[key] for key in PASSTHROUGH_PARAMS if request.query_params.get(key)}


@router.get("/login", name="auth_login")
async def login(request: Request, session_id: SessionId, kinde_client: Client):
    """Redirect to the Kinde hosted login page."""
    auth_url = await kinde_client.build_authorization_url(
        session_id, AuthIntent.LOGIN, _passthrough(request)
    )
    return RedirectResponse(url=auth_url, status_code=status.HTTP_302_FOUND)


@router.get("/register", name="auth_register")
async def register(request: Request, session_id: SessionId, kinde_client: Client):
    """Redirect to the Kinde hosted registration page."""
    auth_url = await kinde_client.build_authorization_url(
        session_id, AuthIntent.REGISTER, _passthrough(request)
    )
    return RedirectResponse(url=auth_url, status_code=status.HTTP_302_FOUND)


@router.get("/callback", name="auth_callback")
async def auth_callback(
    request: Request,
    session_id: SessionId,
    kinde_client: Client,
    session_manager: Sessions,
):
    """
    Kinde redirect target.

    Exchanges the authorization code for tokens, then sends the user to the
    page they originally asked for, or the dashboard. Failures go home with a
    notice; the specific error kind is only logged.
    """
    home = str(request.url_for("home"))

    try:
        await kinde_client.handle_callback(session_id, request.query_params)
    except ProviderRejectedError as e:
        logger.warning(f"Login failed ({e.kind.value}): {e.message}")
        if "error" in request.query_params:
            notice = f"Authentication error: {e.error} - {e.error_description}"
        else:
            notice = LOGIN_FAILED_NOTICE
        await session_manager.flash(session_id, "error", notice)
        return RedirectResponse(url=home, status_code=status.HTTP_302_FOUND)
    except AuthError as e:
        logger.warning(f"Login failed ({e.kind.value}): {e.message}")
        notice = MISSING_CODE_NOTICE if e.kind is AuthErrorKind.MISSING_CODE else LOGIN_FAILED_NOTICE
        await session_manager.flash(session_id, "error", notice)
        return RedirectResponse(url=home, status_code=status.HTTP_302_FOUND)

    redirect_to = await session_manager.pull_intended_url(session_id) or str(request.url_for("dashboard"))
    # Drop notices left over from before the login, e.g. the gate's prompt
    await session_manager.pull_notices(session_id)
    await session_manager.flash(session_id, "success", LOGIN_SUCCESS_NOTICE)
    return RedirectResponse(url=redirect_to, status_code=status.HTTP_302_FOUND)


@router.get("/logout", name="auth_logout")
async def logout(
    request: Request,
    session_id: SessionId,
    kinde_client: Client,
    session_manager: Sessions,
):
    """Log out locally and at Kinde."""
    logout_url = await kinde_client.build_logout_url(session_id)
    await session_manager.delete_session(session_id)
    request.state.session_ended = True
    return RedirectResponse(url=logout_url, status_code=status.HTTP_302_FOUND)


@router.get("/me")
async def get_current_user(session: AuthenticatedSession, kinde_client: Client):
    """Profile and permissions of the signed-in user."""
    profile = await kinde_client.get_user_profile(session.session_id)
    permissions = await kinde_client.get_permissions(session.session_id)
    return {
        "profile": profile.model_dump() if profile else None,
        "org_code": permissions["org_code"],
        "permissions": permissions["permissions"],
        "token_expires_at": session.token_expires_at.isoformat(),
    }
