"""Data models for remix session state."""

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum

from remixstudio.core.models import (
    AssetRole,
    ImageAsset,
    RemixRequest,
    RemixResult,
    Stack,
    Template,
)

logger = logging.getLogger(__name__)


class RemixStatus(str, Enum):
    """States of the remix state machine."""

    IDLE = "idle"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    PARTIALLY_SUCCEEDED = "partially_succeeded"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset(
    {RemixStatus.SUCCEEDED, RemixStatus.PARTIALLY_SUCCEEDED, RemixStatus.FAILED}
)


class ErrorKind(str, Enum):
    """Where a failure came from, for display placement."""

    VALIDATION = "validation"
    BACKEND = "backend"


@dataclass
class RemixSession:
    """Per-user state for one template page.

    Each user session gets its own RemixSession, mutated only through
    :class:`~remixstudio.ui.state.RemixController`.

    Attributes
    ----------
    template : Template
        Template being remixed
    stack : Stack
        Category of the template (decides required assets)
    primary : ImageAsset | None
        Main image slot
    secondary : ImageAsset | None
        Second image slot (two-image categories only)
    focused_zone : AssetRole | None
        Drop zone currently under the pointer, used for paste routing
    status : RemixStatus
        Current state machine state
    result : RemixResult | None
        Latest result, replaced wholesale on each attempt
    error : str | None
        User-facing error message for the FAILED state
    error_kind : ErrorKind | None
        Category of ``error``
    last_request : RemixRequest | None
        Most recent request sent to the backend, replayed by retry
    owner_id : str | None
        Id of the user the session belongs to; ``None`` until a signed-in
        user first touches it
    """

    template: Template
    stack: Stack
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    owner_id: str | None = None

    # Asset slots
    primary: ImageAsset | None = None
    secondary: ImageAsset | None = None
    focused_zone: AssetRole | None = None

    # State machine
    status: RemixStatus = RemixStatus.IDLE
    result: RemixResult | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    last_request: RemixRequest | None = None

    @property
    def requires_secondary(self) -> bool:
        return self.stack.requires_secondary

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def accepts_input(self) -> bool:
        """Whether the upload zones are shown (not submitting, no results)."""
        return self.status in (RemixStatus.IDLE, RemixStatus.FAILED)

    @property
    def ready_to_submit(self) -> bool:
        """Whether the remix button is enabled."""
        if self.status == RemixStatus.SUBMITTING or self.primary is None:
            return False
        return not (self.requires_secondary and self.secondary is None)

    def slot(self, role: AssetRole) -> ImageAsset | None:
        return self.primary if role == AssetRole.PRIMARY else self.secondary

    def __repr__(self) -> str:
        return (
            f"RemixSession(id={self.id}, template={self.template.id}, owner={self.owner_id}, "
            f"status={self.status.value}, primary={self.primary is not None}, "
            f"secondary={self.secondary is not None})"
        )
