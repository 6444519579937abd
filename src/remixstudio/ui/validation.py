"""Validation utilities for remix session inputs."""

import logging

from remixstudio.core.config import config
from remixstudio.core.models import ImageAsset, RemixRequest, Stack, Template

logger = logging.getLogger(__name__)

INVALID_TYPE_MESSAGE = "Invalid file type. Please upload a JPG, PNG, or WebP file."
MISSING_ASSETS_MESSAGE = "Please upload all required images."


class ValidationError(Exception):
    """User-friendly validation error.

    This exception is raised when user input fails validation.
    The message is intended to be displayed directly to the user.
    """

    pass


def _size_limit_message(max_bytes: int) -> str:
    return f"File size exceeds {max_bytes // (1024 * 1024)}MB. Please choose a smaller file."


def validate_image(
    asset: ImageAsset,
    max_bytes: int | None = None,
    allowed_types: tuple[str, ...] | None = None,
) -> ImageAsset:
    """Check an incoming image against the type and size constraints.

    Validation reads only the declared MIME type and the byte size; it never
    mutates session state, so a rejected file leaves every slot untouched.
    Re-validating an already accepted asset returns the same outcome.

    Args:
        asset: Candidate image.
        max_bytes: Size limit (default: ``config.max_upload_bytes``).
        allowed_types: MIME allow-list (default: ``config.allowed_mime_types``).

    Returns:
        The accepted asset, unchanged.

    Raises:
        ValidationError: If the type is not allowed or the file is too large.
    """
    max_bytes = config.max_upload_bytes if max_bytes is None else max_bytes
    allowed_types = config.allowed_mime_types if allowed_types is None else allowed_types

    mime_type = (asset.mime_type or "").strip().lower()
    if mime_type not in allowed_types:
        logger.warning(f"Rejected upload '{asset.filename}': type {asset.mime_type!r}")
        raise ValidationError(INVALID_TYPE_MESSAGE)

    if asset.size > max_bytes:
        logger.warning(f"Rejected upload '{asset.filename}': {asset.size} bytes")
        raise ValidationError(_size_limit_message(max_bytes))

    return asset


def validate_required_assets(
    stack: Stack,
    primary: ImageAsset | None,
    secondary: ImageAsset | None,
) -> None:
    """Ensure every asset the category requires is present.

    Raises:
        ValidationError: If the primary asset is missing, or the category
            composes two images and the secondary asset is missing.
    """
    if primary is None or (stack.requires_secondary and secondary is None):
        raise ValidationError(MISSING_ASSETS_MESSAGE)


def build_remix_request(
    template: Template,
    stack: Stack,
    primary: ImageAsset | None,
    secondary: ImageAsset | None,
) -> RemixRequest:
    """Construct a :class:`RemixRequest` with user-friendly errors.

    The secondary asset is only attached when the category uses it.

    Raises:
        ValidationError: If a required asset is missing.
    """
    validate_required_assets(stack, primary, secondary)
    try:
        return RemixRequest(
            template=template,
            stack=stack,
            primary=primary,
            secondary=secondary if stack.requires_secondary else None,
        )
    except ValueError as e:
        raise ValidationError(str(e)) from e
