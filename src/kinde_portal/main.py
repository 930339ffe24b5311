"""Main FastAPI application for the Kinde portal."""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from kinde_portal.config import Settings, load_settings
from kinde_portal.auth.middleware import (
    AuthGateRejection,
    SessionCookieMiddleware,
    auth_gate_exception_handler,
)
from kinde_portal.auth.oidc import KindeClient
from kinde_portal.auth.routes import router as auth_router
from kinde_portal.auth.session import SessionManager, SessionStore
from kinde_portal.pages import router as pages_router

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app(
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
    session_store: SessionStore | None = None,
) -> FastAPI:
    """
    Build the application.

    Settings are loaded from the environment when not given; a missing
    required variable raises ConfigInvalidError and the app is never built.
    """
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    session_manager = SessionManager(settings, store=session_store)
    kinde_client = KindeClient(settings, session_manager, http_client=http_client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Kinde portal...")
        logger.info(f"Kinde domain: {settings.domain}")
        logger.info(f"Redirect URL: {settings.redirect_url}")
        yield
        logger.info("Shutting down Kinde portal...")

    app = FastAPI(
        title="Kinde Portal",
        description="Demo web application signing users in through Kinde",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.session_manager = session_manager
    app.state.kinde_client = kinde_client

    app.add_middleware(SessionCookieMiddleware)
    app.add_exception_handler(AuthGateRejection, auth_gate_exception_handler)

    app.include_router(pages_router)
    app.include_router(auth_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "kinde-portal"}

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("kinde_portal.main:create_app", factory=True, host="127.0.0.1", port=8000, reload=True)
