"""Home and dashboard pages."""

import logging
from dataclasses import dataclass, field
from html import escape
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse

from kinde_portal.auth.models import Profile
from kinde_portal.auth.middleware import (
    AuthenticatedSession,
    Client,
    CurrentSession,
    SessionId,
    Sessions,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["pages"])


@dataclass
class PageContext:
    """Auth data every page gets, computed fresh for each request."""

    is_authenticated: bool
    auth_user: Profile | None
    notices: dict[str, str] = field(default_factory=dict)


async def page_context(
    session: CurrentSession,
    session_id: SessionId,
    kinde_client: Client,
    session_manager: Sessions,
) -> PageContext:
    is_authenticated = kinde_client.is_authenticated(session)
    auth_user = await kinde_client.get_user_profile(session_id) if is_authenticated else None
    return PageContext(
        is_authenticated=is_authenticated,
        auth_user=auth_user,
        notices=await session_manager.pull_notices(session_id),
    )


Context = Annotated[PageContext, Depends(page_context)]


def _layout(ctx: PageContext, title: str, body: str) -> str:
    notices = "".join(
        f'<div class="notice notice-{escape(level)}">{escape(message)}</div>'
        for level, message in ctx.notices.items()
    )
    if ctx.is_authenticated:
        name = escape(ctx.auth_user.full_name) if ctx.auth_user else "there"
        nav = f'<span>Signed in as {name}</span> <a href="/dashboard">Dashboard</a> <a href="/auth/logout">Sign out</a>'
    else:
        nav = '<a href="/auth/login">Sign in</a> <a href="/auth/register">Sign up</a>'
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="utf-8">
    <title>{escape(title)} - Kinde Portal</title>
</head>
<body>
    <nav>{nav}</nav>
    {notices}
    <main>{body}</main>
</body>
</html>"""


@router.get("/", name="home")
async def home(
    request: Request,
    session: CurrentSession,
    session_id: SessionId,
    kinde_client: Client,
    session_manager: Sessions,
):
    """Welcome page for guests; signed-in users go straight to the dashboard."""
    # Redirect before building the context so pending notices survive
    if kinde_client.is_authenticated(session):
        return RedirectResponse(url=str(request.url_for("dashboard")), status_code=status.HTTP_302_FOUND)

    ctx = await page_context(session, session_id, kinde_client, session_manager)
    body = """
        <h1>Welcome</h1>
        <p>Sign in or create an account to continue.</p>
        <p><a href="/auth/login">Sign in</a> or <a href="/auth/register">Sign up</a></p>
    """
    return HTMLResponse(_layout(ctx, "Welcome", body))


@router.get("/dashboard", name="dashboard")
async def dashboard(session: AuthenticatedSession, ctx: Context):
    """Profile of the signed-in user."""
    profile = ctx.auth_user
    if profile is None:
        body = "<h1>Dashboard</h1><p>Your profile could not be loaded.</p>"
        return HTMLResponse(_layout(ctx, "Dashboard", body))

    picture = ""
    if profile.picture:
        picture = f'<img src="{escape(profile.picture)}" alt="Profile picture" width="96" height="96">'
    body = f"""
        <h1>Dashboard</h1>
        {picture}
        <dl>
            <dt>Name</dt><dd>{escape(profile.full_name)}</dd>
            <dt>Email</dt><dd>{escape(profile.email or "")}</dd>
            <dt>User ID</dt><dd>{escape(profile.id)}</dd>
        </dl>
    """
    return HTMLResponse(_layout(ctx, "Dashboard", body))
