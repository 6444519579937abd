"""Process-local registry of remix sessions.

Sessions are kept in memory only; restarting the server forgets them.  The
registry is bounded two ways, both enforced on every ``create`` and ``get``:

- sessions untouched for ``ttl_seconds`` are dropped;
- beyond ``max_sessions`` the least recently used session is dropped.

Sessions with a request in flight are never evicted.

Each session remembers its owner.  Looking up a session owned by someone
else behaves as if it did not exist.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable

from remixstudio.core.auth import AuthRequiredError
from remixstudio.core.backends import GenerationBackendBase
from remixstudio.core.models import AuthUser, Stack, Template
from remixstudio.ui.models import RemixSession, RemixStatus
from remixstudio.ui.state import RemixController

logger = logging.getLogger(__name__)


class SessionStore:
    """Creates and looks up :class:`RemixController` instances by session id.

    Args:
        backend: Generation backend handed to every controller.
        max_sessions: Upper bound on the number of live sessions.
        ttl_seconds: Idle lifetime of a session.
        clock: Monotonic time source, replaceable in tests.
    """

    def __init__(
        self,
        backend: GenerationBackendBase,
        max_sessions: int = 200,
        ttl_seconds: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.backend = backend
        self.max_sessions = max_sessions
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        # session id -> (controller, last access time), least recent first
        self._controllers: OrderedDict[str, tuple[RemixController, float]] = OrderedDict()
        self._lock = threading.Lock()

    def create(
        self,
        template: Template,
        stack: Stack,
        owner: AuthUser | None = None,
    ) -> RemixController:
        """Open a session, owned by ``owner`` when one is signed in."""
        session = RemixSession(
            template=template,
            stack=stack,
            owner_id=owner.id if owner is not None else None,
        )
        controller = RemixController(session, backend=self.backend)
        with self._lock:
            now = self._clock()
            self._expire(now)
            self._controllers[session.id] = (controller, now)
            self._shrink(keep=session.id)
        logger.info(f"Created session {session.id} for template '{template.id}'")
        return controller

    def get(self, session_id: str, user: AuthUser | None = None) -> RemixController:
        """Return the controller for ``session_id`` and mark it as used.

        Raises:
            KeyError: If the session does not exist, has expired, or belongs
                to a user other than ``user``.
            AuthRequiredError: If the session has an owner and nobody is
                signed in.
        """
        with self._lock:
            now = self._clock()
            self._expire(now)
            entry = self._controllers.get(session_id)
            if entry is None:
                raise KeyError(f"Unknown session: {session_id}")
            controller = entry[0]

            owner_id = controller.session.owner_id
            if owner_id is not None:
                if user is None:
                    raise AuthRequiredError()
                if user.id != owner_id:
                    logger.warning(f"User {user.id} denied access to session {session_id}")
                    raise KeyError(f"Unknown session: {session_id}")

            self._controllers[session_id] = (controller, now)
            self._controllers.move_to_end(session_id)
        return controller

    def discard(self, session_id: str) -> None:
        with self._lock:
            self._controllers.pop(session_id, None)

    def clear(self) -> None:
        with self._lock:
            self._controllers.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._controllers)

    def _expire(self, now: float) -> None:
        # Caller holds self._lock.
        expired = [
            session_id
            for session_id, (controller, last_used) in self._controllers.items()
            if now - last_used >= self.ttl_seconds
            and controller.session.status != RemixStatus.SUBMITTING
        ]
        for session_id in expired:
            del self._controllers[session_id]
        if expired:
            logger.info(f"Expired {len(expired)} idle session(s)")

    def _shrink(self, keep: str) -> None:
        # Caller holds self._lock.
        while len(self._controllers) > self.max_sessions:
            victim = next(
                (
                    session_id
                    for session_id, (controller, _) in self._controllers.items()
                    if session_id != keep
                    and controller.session.status != RemixStatus.SUBMITTING
                ),
                None,
            )
            if victim is None:
                logger.warning("Session limit exceeded but every session is busy")
                return
            del self._controllers[victim]
            logger.info(f"Evicted least recently used session {victim}")
