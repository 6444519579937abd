"""Authentication collaborator interface and the in-memory implementation.

Remix Studio does not own identity.  It consumes an auth provider through a
five-operation capability and only ever asks one question of it: which user,
if any, does this request's access token belong to?

Operations
----------
- ``sign_up(email, password, name)``
- ``login(email, password)``
- ``sign_in_with_google(id_token=None)``
- ``get_current_user(access_token)``
- ``logout(access_token)``

The three sign-in operations return an
:class:`~remixstudio.core.models.AuthSession` carrying the user and a bearer
token.  Clients send that token back on every request; a server hosting
many clients never has a process-wide "current user".  Failures raise
:class:`AuthError` with a human-readable reason.  Observers can subscribe to
sign-in/sign-out notifications with ``on_auth_state_change``.

Provider Selection
------------------
The implementation is chosen once at process start by
:func:`create_auth_provider` from ``config.auth_provider``:

- ``memory``: :class:`InMemoryAuthProvider`, a local stand-in for
  development and tests.
- ``supabase``: :class:`~remixstudio.core.supabase_auth.SupabaseAuthProvider`.
"""

from __future__ import annotations

import logging
import secrets
import threading
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from .config import RemixConfig
from .models import AuthSession, AuthUser

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"

AuthStateCallback = Callable[[str, AuthUser | None], None]


class AuthError(Exception):
    """An auth operation failed; the message is shown to the user."""

    pass


class AuthRequiredError(Exception):
    """The attempted action needs a signed-in user.

    This is not a failure state: callers redirect to a sign-in prompt and
    the action is abandoned without side effects.
    """

    def __init__(self, message: str = "Please sign in to continue.") -> None:
        super().__init__(message)


class AuthProviderBase(ABC):
    """Abstract auth collaborator.

    Subclasses implement the five operations; listener bookkeeping and
    notification live here so every provider notifies the same way.
    """

    name: str = "base"

    def __init__(self) -> None:
        self._listeners: list[AuthStateCallback] = []
        self._listeners_lock = threading.Lock()

    @abstractmethod
    def sign_up(self, email: str, password: str, name: str) -> AuthSession:
        pass

    @abstractmethod
    def login(self, email: str, password: str) -> AuthSession:
        pass

    @abstractmethod
    def sign_in_with_google(self, id_token: str | None = None) -> AuthSession:
        pass

    @abstractmethod
    def get_current_user(self, access_token: str | None) -> AuthUser | None:
        """Resolve ``access_token`` to its user, or ``None`` if it is not valid."""
        pass

    @abstractmethod
    def logout(self, access_token: str | None) -> None:
        pass

    def is_authenticated(self, access_token: str | None) -> bool:
        return self.get_current_user(access_token) is not None

    def on_auth_state_change(self, callback: AuthStateCallback) -> Callable[[], None]:
        """Register a passive observer of sign-in/sign-out events.

        Args:
            callback: Called with ``(event, user)`` where event is
                ``SIGNED_IN`` or ``SIGNED_OUT``.

        Returns:
            A callable that unsubscribes ``callback``.
        """
        with self._listeners_lock:
            self._listeners.append(callback)

        def unsubscribe() -> None:
            with self._listeners_lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, event: str, user: AuthUser | None) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for callback in listeners:
            try:
                callback(event, user)
            except Exception as e:
                logger.error(f"Auth state listener failed on {event}: {e}", exc_info=True)


@dataclass
class _StoredUser:
    user: AuthUser
    password: str


class InMemoryAuthProvider(AuthProviderBase):
    """Process-local auth provider.

    Users live in a dict keyed by email and issued tokens in a dict keyed by
    token; nothing is persisted.  Google sign-in produces a generated
    account and ignores the ID token.
    """

    name = "memory"

    def __init__(self, min_password_length: int = 6) -> None:
        super().__init__()
        self.min_password_length = min_password_length
        self._users: dict[str, _StoredUser] = {}
        self._tokens: dict[str, AuthUser] = {}
        self._lock = threading.Lock()

    def _issue(self, user: AuthUser) -> AuthSession:
        # Caller holds self._lock.
        token = secrets.token_urlsafe(32)
        self._tokens[token] = user
        return AuthSession(user=user, access_token=token)

    def sign_up(self, email: str, password: str, name: str) -> AuthSession:
        email = (email or "").strip().lower()
        if not email or not password or not (name or "").strip():
            raise AuthError("Please provide email, password, and name")
        if len(password) < self.min_password_length:
            raise AuthError(f"Password must be at least {self.min_password_length} characters")

        with self._lock:
            if email in self._users:
                raise AuthError("User with this email already exists")
            user = AuthUser(
                id=uuid.uuid4().hex,
                email=email,
                name=name.strip(),
                created_at=datetime.now(timezone.utc),
            )
            self._users[email] = _StoredUser(user=user, password=password)
            session = self._issue(user)

        logger.info(f"Signed up user {user.id}")
        self._notify(SIGNED_IN, user)
        return session

    def login(self, email: str, password: str) -> AuthSession:
        email = (email or "").strip().lower()
        if not email or not password:
            raise AuthError("Please provide email and password")

        with self._lock:
            stored = self._users.get(email)
            if stored is None or not secrets.compare_digest(stored.password, password):
                raise AuthError("Invalid email or password")
            session = self._issue(stored.user)

        logger.info(f"Logged in user {stored.user.id}")
        self._notify(SIGNED_IN, stored.user)
        return session

    def sign_in_with_google(self, id_token: str | None = None) -> AuthSession:
        user = AuthUser(
            id=uuid.uuid4().hex,
            email=f"user{secrets.token_hex(3)}@gmail.com",
            name="Google User",
            created_at=datetime.now(timezone.utc),
        )
        with self._lock:
            session = self._issue(user)

        logger.info(f"Signed in Google user {user.id}")
        self._notify(SIGNED_IN, user)
        return session

    def get_current_user(self, access_token: str | None) -> AuthUser | None:
        if not access_token:
            return None
        with self._lock:
            return self._tokens.get(access_token)

    def logout(self, access_token: str | None) -> None:
        """Revoke ``access_token``; other tokens, even the same user's, stay valid."""
        if not access_token:
            return
        with self._lock:
            user = self._tokens.pop(access_token, None)
        if user is not None:
            logger.info(f"Logged out user {user.id}")
            self._notify(SIGNED_OUT, None)


def create_auth_provider(config: RemixConfig) -> AuthProviderBase:
    """Select the auth implementation configured for this process.

    Raises:
        ValueError: If the supabase provider is selected without URL/key.
    """
    if config.auth_provider == "supabase":
        if not config.supabase_url or not config.supabase_key:
            raise ValueError(
                "auth_provider is 'supabase' but REMIX_SUPABASE_URL / REMIX_SUPABASE_KEY are not set"
            )
        from .supabase_auth import SupabaseAuthProvider

        logger.info("Using Supabase auth provider")
        return SupabaseAuthProvider(config.supabase_url, config.supabase_key)

    logger.info("Using in-memory auth provider")
    return InMemoryAuthProvider(min_password_length=config.min_password_length)
