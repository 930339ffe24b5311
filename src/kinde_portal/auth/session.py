"""Session management for browser sessions."""

import asyncio
import logging
import secrets
import weakref
from abc import ABC, abstractmethod
from datetime import datetime, timedelta

from kinde_portal.config import Settings
from kinde_portal.auth.models import (
    AuthRequestState,
    Profile,
    Session,
    TokenSet,
    utcnow,
)

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """Abstract base class for session storage."""

    @abstractmethod
    async def save_session(self, session: Session, ttl_seconds: int) -> None:
        pass

    @abstractmethod
    async def get_session(self, session_id: str) -> Session | None:
        pass

    @abstractmethod
    async def delete_session(self, session_id: str) -> None:
        pass


class InMemorySessionStore(SessionStore):
    """In-memory session store. Records live for the lifetime of the process."""

    def __init__(self, sweep_interval_seconds: int = 60):
        self._sessions: dict[str, tuple[Session, datetime]] = {}
        self._sweep_interval = timedelta(seconds=sweep_interval_seconds)
        self._last_sweep = utcnow()

    def sweep_expired(self) -> int:
        """Drop every expired record. Returns how many were removed."""
        now = utcnow()
        expired = [sid for sid, (_, expires_at) in self._sessions.items() if now > expires_at]
        for sid in expired:
            del self._sessions[sid]
        self._last_sweep = now
        return len(expired)

    async def save_session(self, session: Session, ttl_seconds: int) -> None:
        # Records that are never read again would otherwise stay forever
        if utcnow() - self._last_sweep >= self._sweep_interval:
            removed = self.sweep_expired()
            if removed:
                logger.debug(f"Swept {removed} expired sessions")

        expires_at = utcnow() + timedelta(seconds=ttl_seconds)
        # Store a copy so callers cannot mutate stored state without saving
        self._sessions[session.session_id] = (session.model_copy(deep=True), expires_at)

    async def get_session(self, session_id: str) -> Session | None:
        if session_id not in self._sessions:
            return None

        session, expires_at = self._sessions[session_id]
        if utcnow() > expires_at:
            del self._sessions[session_id]
            return None

        return session.model_copy(deep=True)

    async def delete_session(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)


class SessionManager:
    """
    Owns all Session records.

    Every read-modify-write on one session id runs under that session's
    lock, so updates to a session are never lost. Locks are never held
    while talking to the identity provider.
    """

    def __init__(self, settings: Settings, store: SessionStore | None = None):
        self.settings = settings
        self._store = store or InMemorySessionStore()
        # Entries vanish once no coroutine holds or waits on the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    @property
    def ttl_seconds(self) -> int:
        return self.settings.session_ttl_seconds

    def generate_session_id(self) -> str:
        """Generate a secure random session ID."""
        return secrets.token_urlsafe(32)

    async def create_session(self) -> Session:
        """Create and persist an empty session."""
        session = Session(session_id=self.generate_session_id())
        await self._store.save_session(session, self.ttl_seconds)
        logger.debug(f"Created session {session.session_id}")
        return session

    async def get_session(self, session_id: str) -> Session | None:
        """Retrieve a session by ID."""
        return await self._store.get_session(session_id)

    async def get_or_create_session(self, session_id: str | None) -> Session:
        if session_id:
            session = await self.get_session(session_id)
            if session:
                return session
        return await self.create_session()

    async def delete_session(self, session_id: str) -> None:
        """Delete a session (logout)."""
        async with self._lock(session_id):
            await self._store.delete_session(session_id)
        logger.info("Deleted session")

    async def _update(self, session_id: str, mutate) -> Session | None:
        async with self._lock(session_id):
            session = await self._store.get_session(session_id)
            if session is None:
                return None
            mutate(session)
            await self._store.save_session(session, self.ttl_seconds)
            return session

    # Authorization request state

    async def save_auth_request(self, session_id: str, auth_request: AuthRequestState) -> None:
        """Bind a fresh state/nonce pair to the session, replacing any previous one."""
        def apply(session: Session) -> None:
            session.auth_request = auth_request

        if await self._update(session_id, apply) is None:
            raise KeyError(f"Unknown session {session_id}")

    async def consume_auth_request(self, session_id: str, state: str | None) -> AuthRequestState | None:
        """
        Compare `state` with the stored value and clear it if they match.

        Returns the stored request on a match, None otherwise. A mismatch
        leaves the stored value in place.
        """
        async with self._lock(session_id):
            session = await self._store.get_session(session_id)
            if session is None or session.auth_request is None or not state:
                return None
            if not secrets.compare_digest(session.auth_request.state, state):
                return None
            auth_request = session.auth_request
            session.auth_request = None
            await self._store.save_session(session, self.ttl_seconds)
            return auth_request

    # Tokens and identity

    async def store_tokens(self, session_id: str, tokens: TokenSet, profile: Profile | None = None) -> None:
        def apply(session: Session) -> None:
            session.access_token = tokens.access_token
            session.refresh_token = tokens.refresh_token
            session.id_token = tokens.id_token
            session.token_expires_at = tokens.expires_at
            session.profile = profile

        await self._update(session_id, apply)

    async def store_profile(self, session_id: str, profile: Profile) -> None:
        def apply(session: Session) -> None:
            session.profile = profile

        await self._update(session_id, apply)

    async def clear_tokens(self, session_id: str) -> None:
        def apply(session: Session) -> None:
            session.access_token = None
            session.refresh_token = None
            session.id_token = None
            session.token_expires_at = None
            session.profile = None
            session.auth_request = None

        await self._update(session_id, apply)

    # Intended URL slot

    async def set_intended_url(self, session_id: str, url: str) -> None:
        def apply(session: Session) -> None:
            session.intended_url = url

        await self._update(session_id, apply)

    async def pull_intended_url(self, session_id: str) -> str | None:
        """Return the intended URL and clear it."""
        pulled: list[str | None] = []

        def apply(session: Session) -> None:
            pulled.append(session.intended_url)
            session.intended_url = None

        await self._update(session_id, apply)
        return pulled[0] if pulled else None

    # Flash notices

    async def flash(self, session_id: str, level: str, message: str) -> None:
        def apply(session: Session) -> None:
            session.notices[level] = message

        await self._update(session_id, apply)

    async def pull_notices(self, session_id: str) -> dict[str, str]:
        pulled: dict[str, str] = {}

        def apply(session: Session) -> None:
            pulled.update(session.notices)
            session.notices = {}

        await self._update(session_id, apply)
        return pulled
