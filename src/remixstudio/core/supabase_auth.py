"""Supabase-backed auth provider.

Wraps the ``supabase`` client's auth API behind
:class:`~remixstudio.core.auth.AuthProviderBase`.  Supabase errors are
re-raised as :class:`~remixstudio.core.auth.AuthError` with the service's
own message so the user sees the real reason (e.g. "Invalid login
credentials").

One client is shared by every request, so the provider never relies on the
session the client keeps internally: sign-in hands the Supabase access
token (a JWT) back to the caller, and ``get_current_user`` / ``logout``
verify or revoke exactly the token they are given.

Google sign-in on a server has no popup to drive, so it takes the Google ID
token obtained by the front-end and exchanges it with
``sign_in_with_id_token``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from supabase import Client, create_client

from .auth import SIGNED_IN, SIGNED_OUT, AuthError, AuthProviderBase
from .models import AuthSession, AuthUser

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def _to_auth_user(user, fallback_name: str = "") -> AuthUser:
    metadata = getattr(user, "user_metadata", None) or {}
    name = metadata.get("full_name") or metadata.get("name") or fallback_name

    created = getattr(user, "created_at", None)
    if isinstance(created, str):
        created = datetime.fromisoformat(created.replace("Z", "+00:00"))
    if not isinstance(created, datetime):
        created = datetime.now(timezone.utc)

    return AuthUser(
        id=str(user.id),
        email=getattr(user, "email", None) or "",
        name=name,
        created_at=created,
    )


def _to_auth_session(response, fallback_name: str = "") -> AuthSession:
    session = getattr(response, "session", None)
    return AuthSession(
        user=_to_auth_user(response.user, fallback_name=fallback_name),
        access_token=getattr(session, "access_token", None) if session is not None else None,
    )


def _error_message(exc: Exception, fallback: str) -> str:
    return getattr(exc, "message", None) or str(exc) or fallback


class SupabaseAuthProvider(AuthProviderBase):
    """Auth provider delegating to a Supabase project."""

    name = "supabase"

    def __init__(self, url: str, key: str, client: Client | None = None) -> None:
        super().__init__()
        self._client = client if client is not None else create_client(url, key)

    def sign_up(self, email: str, password: str, name: str) -> AuthSession:
        """Create an account.

        When the project requires email confirmation Supabase returns no
        session, so the returned ``access_token`` is ``None`` until the user
        confirms and logs in.
        """
        if not email or not password or not name:
            raise AuthError("All fields are required")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise AuthError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        try:
            response = self._client.auth.sign_up(
                {
                    "email": email,
                    "password": password,
                    "options": {"data": {"full_name": name}},
                }
            )
        except Exception as e:
            raise AuthError(_error_message(e, "Sign up failed")) from e

        if response.user is None:
            raise AuthError("Sign up failed")

        session = _to_auth_session(response, fallback_name=name)
        logger.info(f"Signed up Supabase user {session.user.id}")
        if session.access_token is not None:
            self._notify(SIGNED_IN, session.user)
        return session

    def login(self, email: str, password: str) -> AuthSession:
        if not email or not password:
            raise AuthError("Please provide email and password")

        try:
            response = self._client.auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        except Exception as e:
            raise AuthError(_error_message(e, "Login failed")) from e

        if response.user is None:
            raise AuthError("Login failed")

        session = _to_auth_session(response)
        logger.info(f"Logged in Supabase user {session.user.id}")
        self._notify(SIGNED_IN, session.user)
        return session

    def sign_in_with_google(self, id_token: str | None = None) -> AuthSession:
        if not id_token:
            raise AuthError("Google sign in requires an ID token")

        try:
            response = self._client.auth.sign_in_with_id_token(
                {"provider": "google", "token": id_token}
            )
        except Exception as e:
            raise AuthError(_error_message(e, "Google sign in failed")) from e

        if response.user is None:
            raise AuthError("Google sign in failed")

        session = _to_auth_session(response)
        logger.info(f"Signed in Supabase Google user {session.user.id}")
        self._notify(SIGNED_IN, session.user)
        return session

    def get_current_user(self, access_token: str | None) -> AuthUser | None:
        """Verify ``access_token`` with Supabase.

        An invalid or expired token is treated as signed out; the failure is
        logged, not raised.
        """
        if not access_token:
            return None
        try:
            response = self._client.auth.get_user(access_token)
        except Exception as e:
            logger.warning(f"Supabase rejected access token: {e}")
            return None

        if response is None or response.user is None:
            return None
        return _to_auth_user(response.user)

    def logout(self, access_token: str | None) -> None:
        if not access_token:
            return
        try:
            self._client.auth.admin.sign_out(access_token, "local")
        except Exception as e:
            raise AuthError(_error_message(e, "Logout failed")) from e
        logger.info("Logged out Supabase session")
        self._notify(SIGNED_OUT, None)
