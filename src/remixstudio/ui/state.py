"""Remix session controller.

:class:`RemixController` is the single accessor for a :class:`RemixSession`.
Every event (picker upload, drop, page-wide paste, remix, retry, start over,
download) goes through it and reads the session state as it is at the moment
the event is handled, so a paste handler registered once always routes by
the latest slots and focus.

State Machine
-------------
::

    IDLE --submit--> SUBMITTING --images--> SUCCEEDED | PARTIALLY_SUCCEEDED
      ^                  |
      |                  +--error / empty--> FAILED --retry--> SUBMITTING
      |
      +--------------reset (start over)---- any terminal state

- ``assign``, ``paste``, ``submit`` and ``retry`` take the requesting user.
  Without one they raise :class:`AuthRequiredError` and change nothing.  The
  first signed-in user to act on a session becomes its owner; anyone else
  gets :class:`SessionAccessError`.
- ``submit`` with a required image missing goes straight to FAILED with a
  validation error; the backend is not called.
- ``submit`` while SUBMITTING is ignored: one request in flight per session.
- ``retry`` replays the last request sent, unchanged.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import NamedTuple

from remixstudio.core.auth import AuthRequiredError
from remixstudio.core.backends import EMPTY_RESULT_MESSAGE, BackendError, GenerationBackendBase
from remixstudio.core.config import config
from remixstudio.core.imaging import DOWNLOAD_FORMATS, download_filename, normalize_format, reencode
from remixstudio.core.models import AssetRole, AuthUser, ImageAsset, RemixRequest, RemixResult

from .acquisition import route_pasted_asset, select_clipboard_image
from .models import ErrorKind, RemixSession, RemixStatus
from .validation import ValidationError, build_remix_request, validate_image

logger = logging.getLogger(__name__)


class StateTransitionError(Exception):
    """The requested action is not available in the current state."""

    pass


class SessionAccessError(Exception):
    """The session belongs to a different user."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Unknown session: {session_id}")


class DownloadFile(NamedTuple):
    filename: str
    data: bytes
    media_type: str


class RemixController:
    """Drives one remix session through its state machine.

    Args:
        session: Session state to mutate.
        backend: Generation backend used for submissions.
    """

    def __init__(self, session: RemixSession, backend: GenerationBackendBase) -> None:
        self.session = session
        self.backend = backend
        self._lock = threading.Lock()

    # -- Guards ---------------------------------------------------------------

    def _require_user(self, user: AuthUser | None) -> AuthUser:
        if user is None:
            logger.info(f"Session {self.session.id}: action requires sign-in")
            raise AuthRequiredError()
        return user

    def _claim(self, user: AuthUser) -> None:
        # Caller holds self._lock.
        if self.session.owner_id is None:
            self.session.owner_id = user.id
            logger.info(f"Session {self.session.id}: claimed by user {user.id}")
        elif self.session.owner_id != user.id:
            raise SessionAccessError(self.session.id)

    # -- Input acquisition ----------------------------------------------------

    def focus(self, zone: AssetRole | None) -> None:
        """Record which drop zone the pointer is over (``None`` when none)."""
        with self._lock:
            self.session.focused_zone = zone

    def assign(self, user: AuthUser | None, role: AssetRole, asset: ImageAsset) -> RemixSession:
        """Put a picked or dropped image into an explicit slot.

        Raises:
            AuthRequiredError: If nobody is signed in.
            SessionAccessError: If the session belongs to another user.
            ValidationError: If the image is rejected, or the template has no
                secondary slot.
            StateTransitionError: While submitting or showing results.
        """
        user = self._require_user(user)
        accepted = validate_image(asset)

        with self._lock:
            self._claim(user)
            if not self.session.accepts_input:
                raise StateTransitionError("Images cannot be changed right now. Start over first.")
            if role == AssetRole.SECONDARY and not self.session.requires_secondary:
                raise ValidationError("This template only uses one image.")
            self._set_slot(role, accepted)
        return self.session

    def paste(
        self,
        user: AuthUser | None,
        files: Iterable[ImageAsset] | None,
        items: Iterable[ImageAsset] | None = None,
    ) -> AssetRole | None:
        """Handle a page-wide paste.

        Pastes are ignored while submitting or showing results, and when
        they carry no image.

        Returns:
            The slot the image went to, or ``None`` if the paste was ignored.

        Raises:
            AuthRequiredError: If nobody is signed in.
            SessionAccessError: If the session belongs to another user.
            ValidationError: If the pasted image is rejected.
        """
        user = self._require_user(user)

        with self._lock:
            self._claim(user)
            if not self.session.accepts_input:
                logger.debug(f"Session {self.session.id}: paste ignored in {self.session.status.value}")
                return None

        candidate = select_clipboard_image(files, items)
        if candidate is None:
            logger.debug(f"Session {self.session.id}: paste carried no image")
            return None
        accepted = validate_image(candidate)

        with self._lock:
            if not self.session.accepts_input:
                return None
            role = route_pasted_asset(
                self.session.focused_zone,
                has_primary=self.session.primary is not None,
                has_secondary=self.session.secondary is not None,
                requires_secondary=self.session.requires_secondary,
            )
            self._set_slot(role, accepted)
        return role

    def _set_slot(self, role: AssetRole, asset: ImageAsset) -> None:
        if role == AssetRole.PRIMARY:
            self.session.primary = asset
        else:
            self.session.secondary = asset
        logger.info(
            f"Session {self.session.id}: {role.value} image set "
            f"({asset.mime_type}, {asset.size} bytes)"
        )

    # -- Submission -----------------------------------------------------------

    def submit(self, user: AuthUser | None) -> RemixSession:
        """Remix the current images.

        Raises:
            AuthRequiredError: If nobody is signed in (state unchanged).
            SessionAccessError: If the session belongs to another user.
            StateTransitionError: If results are showing; start over first.
        """
        user = self._require_user(user)

        with self._lock:
            self._claim(user)
            if self.session.status == RemixStatus.SUBMITTING:
                logger.warning(f"Session {self.session.id}: submit ignored, request in flight")
                return self.session
            if not self.session.accepts_input:
                raise StateTransitionError("Start over before remixing again.")

            try:
                request = build_remix_request(
                    self.session.template,
                    self.session.stack,
                    self.session.primary,
                    self.session.secondary,
                )
            except ValidationError as e:
                logger.warning(f"Session {self.session.id}: {e}")
                self._fail(str(e), ErrorKind.VALIDATION)
                return self.session

            self._begin(request)

        return self._run(request)

    def retry(self, user: AuthUser | None) -> RemixSession:
        """Replay the last request after a failure.

        With no previous request (the failure was a validation error) this
        behaves like :meth:`submit` on the current images.

        Raises:
            AuthRequiredError: If nobody is signed in (state unchanged).
            SessionAccessError: If the session belongs to another user.
            StateTransitionError: If the session is not in FAILED.
        """
        user = self._require_user(user)

        with self._lock:
            self._claim(user)
            if self.session.status == RemixStatus.SUBMITTING:
                logger.warning(f"Session {self.session.id}: retry ignored, request in flight")
                return self.session
            if self.session.status != RemixStatus.FAILED:
                raise StateTransitionError("There is nothing to retry.")

            request = self.session.last_request
            if request is not None:
                self._begin(request)

        if request is None:
            return self.submit(user)
        return self._run(request)

    def _begin(self, request: RemixRequest) -> None:
        session = self.session
        session.status = RemixStatus.SUBMITTING
        session.result = None
        session.error = None
        session.error_kind = None
        session.last_request = request
        logger.info(f"Session {session.id}: submitting template '{request.template.id}'")

    def _run(self, request: RemixRequest) -> RemixSession:
        try:
            images = self.backend.generate(request.template, request.primary, request.secondary)
        except BackendError as e:
            with self._lock:
                self._fail(str(e), ErrorKind.BACKEND)
            return self.session
        except Exception as e:
            logger.error(f"Session {self.session.id}: unexpected backend failure: {e}", exc_info=True)
            with self._lock:
                self._fail(str(e) or "An unknown error occurred.", ErrorKind.BACKEND)
            return self.session

        result = RemixResult(images=tuple(images), expected_count=request.expected_count)

        with self._lock:
            if not result.images:
                self._fail(EMPTY_RESULT_MESSAGE, ErrorKind.BACKEND)
            else:
                self.session.result = result
                self.session.status = (
                    RemixStatus.PARTIALLY_SUCCEEDED if result.partial else RemixStatus.SUCCEEDED
                )
                logger.info(
                    f"Session {self.session.id}: {self.session.status.value} "
                    f"with {len(result)} image(s)"
                )
        return self.session

    def _fail(self, message: str, kind: ErrorKind) -> None:
        self.session.status = RemixStatus.FAILED
        self.session.result = None
        self.session.error = message
        self.session.error_kind = kind
        logger.info(f"Session {self.session.id}: failed ({kind.value}): {message}")

    # -- Start over -----------------------------------------------------------

    def reset(self) -> RemixSession:
        """Start over: clear both slots, any result and any error.

        Raises:
            StateTransitionError: While a request is in flight.
        """
        with self._lock:
            if self.session.status == RemixStatus.SUBMITTING:
                raise StateTransitionError("Cannot start over while a remix is in progress.")
            session = self.session
            session.primary = None
            session.secondary = None
            session.result = None
            session.error = None
            session.error_kind = None
            session.last_request = None
            session.status = RemixStatus.IDLE
            logger.info(f"Session {session.id}: reset")
        return self.session

    # -- Downloads ------------------------------------------------------------

    def download(self, index: int, fmt: str = "png") -> DownloadFile:
        """Re-encode one result image for download; never calls the backend.

        Raises:
            StateTransitionError: If there is no result to download.
            IndexError: If ``index`` is outside the result.
            ValueError: If ``fmt`` is not png/jpeg.
        """
        key = normalize_format(fmt)
        with self._lock:
            result = self.session.result
            template_id = self.session.template.id
        if result is None:
            raise StateTransitionError("There are no results to download.")
        if not 0 <= index < len(result.images):
            raise IndexError(f"Result image {index} does not exist")

        data = reencode(result.images[index], key, jpeg_quality=config.jpeg_quality)
        return DownloadFile(
            filename=download_filename(template_id, index, key),
            data=data,
            media_type=DOWNLOAD_FORMATS[key],
        )
