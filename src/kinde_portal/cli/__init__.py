"""CLI for running and checking the Kinde portal."""

import argparse
import asyncio
import sys

from kinde_portal.config import Settings, load_settings
from kinde_portal.exceptions import ConfigInvalidError
from kinde_portal.auth.models import AuthIntent
from kinde_portal.auth.oidc import KindeClient
from kinde_portal.auth.oidc_config import ProviderEndpoints
from kinde_portal.auth.session import SessionManager


def _load() -> Settings | None:
    try:
        return load_settings()
    except ConfigInvalidError as e:
        print(f"✗ {e}", file=sys.stderr)
        return None


def check_config() -> bool:
    """Validate configuration and show the derived Kinde endpoints."""
    settings = _load()
    if settings is None:
        return False

    endpoints = ProviderEndpoints.from_settings(settings)
    print("✓ Configuration valid")
    print(f"  Domain:         {settings.domain}")
    print(f"  Client ID:      {settings.client_id}")
    print(f"  Client Secret:  {'*' * 10} (loaded)")
    print(f"  Redirect URL:   {settings.redirect_url}")
    print(f"  Logout URL:     {settings.post_logout_redirect_url}")
    print(f"  Scopes:         {settings.scopes}")
    print(f"\n  Authorize:      {endpoints.authorization_endpoint}")
    print(f"  Token:          {endpoints.token_endpoint}")
    print(f"  User profile:   {endpoints.userinfo_endpoint}")
    print(f"  Logout:         {endpoints.logout_endpoint}")
    return True


async def print_login_url(register: bool = False) -> bool:
    """Print an authorization URL for a throwaway session."""
    settings = _load()
    if settings is None:
        return False

    session_manager = SessionManager(settings)
    session = await session_manager.create_session()
    client = KindeClient(settings, session_manager)
    intent = AuthIntent.REGISTER if register else AuthIntent.LOGIN
    print(await client.build_authorization_url(session.session_id, intent))
    return True


def serve(host: str | None, port: int | None, reload: bool) -> bool:
    settings = _load()
    if settings is None:
        return False

    import uvicorn
    uvicorn.run(
        "kinde_portal.main:create_app",
        factory=True,
        host=host or settings.server_host,
        port=port or settings.server_port,
        reload=reload,
    )
    return True


def main(argv: list[str] | None = None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Kinde portal CLI",
        prog="kinde-portal",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the web application")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: KINDE_SERVER_HOST)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port (default: KINDE_SERVER_PORT)")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    subparsers.add_parser("check-config", help="Validate Kinde configuration")

    login_parser = subparsers.add_parser("login-url", help="Print an authorization URL")
    login_parser.add_argument(
        "--register",
        action="store_true",
        help="Open the registration page instead of login",
    )

    args = parser.parse_args(argv)

    if args.command == "serve":
        success = serve(args.host, args.port, args.reload)
        sys.exit(0 if success else 1)

    elif args.command == "check-config":
        success = check_config()
        sys.exit(0 if success else 1)

    elif args.command == "login-url":
        success = asyncio.run(print_login_url(args.register))
        sys.exit(0 if success else 1)

    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
