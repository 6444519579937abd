"""Remix session layer: input acquisition, validation and the state machine."""

from remixstudio.ui.models import ErrorKind, RemixSession, RemixStatus
from remixstudio.ui.state import (
    DownloadFile,
    RemixController,
    SessionAccessError,
    StateTransitionError,
)
from remixstudio.ui.validation import ValidationError

__all__ = [
    "DownloadFile",
    "ErrorKind",
    "RemixController",
    "RemixSession",
    "RemixStatus",
    "SessionAccessError",
    "StateTransitionError",
    "ValidationError",
]
