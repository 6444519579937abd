"""Domain types shared by the remix pipeline.

Everything here is immutable reference or payload data.  Mutable session
state lives in :mod:`remixstudio.ui.models`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

PARTIAL_RESULTS_NOTICE = (
    "Some results may have been blocked due to our safety policy. For more "
    "complete results, please try using different photos that are suitable "
    "for all audiences."
)


class AssetRole(str, Enum):
    """Slot an uploaded image is assigned to."""

    PRIMARY = "primary"
    SECONDARY = "secondary"


@dataclass(frozen=True)
class Stack:
    """A category of templates.

    Attributes:
        id: Stable identifier (e.g. ``"fitit"``).
        name: Display name.
        image_url: Cover image for the category.
        requires_secondary: Whether templates in this category compose two
            images (a primary photo plus a secondary wearable).
        expected_results: Fixed number of results the category expects from
            one generation, or ``None`` when any non-zero count is complete.
    """

    id: str
    name: str
    image_url: str = ""
    requires_secondary: bool = False
    expected_results: int | None = None


@dataclass(frozen=True)
class Template:
    """A named style preset that parameterizes a generation request."""

    id: str
    name: str
    stack_id: str
    image_url: str = ""
    prompt: str = ""
    aspect_ratio: str | None = None


@dataclass(frozen=True)
class ImageAsset:
    """Binary image payload with its declared MIME type."""

    data: bytes = field(repr=False)
    mime_type: str
    filename: str = ""

    @property
    def size(self) -> int:
        """Size of the payload in bytes."""
        return len(self.data)


@dataclass(frozen=True)
class RemixRequest:
    """The unit submitted to a generation backend.

    A request can only exist with every asset its category requires.

    Raises:
        ValueError: On construction when a required asset is missing.
    """

    template: Template
    stack: Stack
    primary: ImageAsset | None
    secondary: ImageAsset | None = None

    def __post_init__(self) -> None:
        if self.primary is None:
            raise ValueError("Please upload all required images.")
        if self.stack.requires_secondary and self.secondary is None:
            raise ValueError("Please upload all required images.")

    @property
    def expected_count(self) -> int | None:
        return self.stack.expected_results


@dataclass(frozen=True)
class RemixResult:
    """Ordered images returned by one generation attempt.

    Attributes:
        images: Generated images in the backend's candidate order.
        expected_count: Number of images the category expects, or ``None``
            when the category has no fixed maximum.
    """

    images: tuple[ImageAsset, ...]
    expected_count: int | None = None

    @property
    def partial(self) -> bool:
        """True when fewer images than expected came back (but some did)."""
        if self.expected_count is None:
            return False
        return 0 < len(self.images) < self.expected_count

    @property
    def notice(self) -> str | None:
        """Non-blocking policy notice for partial results."""
        return PARTIAL_RESULTS_NOTICE if self.partial else None

    def __len__(self) -> int:
        return len(self.images)


@dataclass(frozen=True)
class AuthUser:
    """User record returned by the auth collaborator."""

    id: str
    email: str
    name: str
    created_at: datetime


@dataclass(frozen=True)
class AuthSession:
    """A signed-in user together with the bearer token that identifies them.

    ``access_token`` is ``None`` when the provider created the account but
    did not start a session (e.g. email confirmation is pending).
    """

    user: AuthUser
    access_token: str | None = field(default=None, repr=False)
