"""Input acquisition: picking clipboard images and routing them to a slot.

Images reach a remix session from three sources: the file picker, drag and
drop onto a zone, and a page-wide paste.  Picker and drop always name their
target zone.  Paste does not, so its target is decided by
:func:`route_pasted_asset` from the zone the pointer is over (if any) and the
current slot contents.

Everything here is a pure function of its arguments.
"""

from __future__ import annotations

from collections.abc import Iterable

from remixstudio.core.models import AssetRole, ImageAsset


def _first_image(candidates: Iterable[ImageAsset] | None) -> ImageAsset | None:
    for candidate in candidates or ():
        if (candidate.mime_type or "").lower().startswith("image/"):
            return candidate
    return None


def select_clipboard_image(
    files: Iterable[ImageAsset] | None,
    items: Iterable[ImageAsset] | None = None,
) -> ImageAsset | None:
    """Pick the image to use from a paste event.

    Copied files are checked first (copying a file in a file manager), then
    raw clipboard items (screenshots, "copy image" in a browser).  The first
    entry with an ``image/*`` type wins; its exact type is validated later.

    Returns:
        The chosen entry, or ``None`` when the paste carried no image.
    """
    return _first_image(files) or _first_image(items)


def route_pasted_asset(
    focused_zone: AssetRole | None,
    has_primary: bool,
    has_secondary: bool,
    requires_secondary: bool,
) -> AssetRole:
    """Decide which slot a pasted image goes to.

    Rules, first match wins:

    1. Pointer over the secondary zone and the category uses one: secondary.
    2. Pointer over the primary zone: primary.
    3. Otherwise fill the first empty slot (primary, then secondary when the
       category uses one), and overwrite primary when both are full.

    Args:
        focused_zone: Zone currently hovered/focused, or ``None``.
        has_primary: Whether the primary slot holds an image.
        has_secondary: Whether the secondary slot holds an image.
        requires_secondary: Whether the category composes two images.

    Returns:
        The slot to assign.
    """
    if focused_zone == AssetRole.SECONDARY and requires_secondary:
        return AssetRole.SECONDARY
    if focused_zone == AssetRole.PRIMARY:
        return AssetRole.PRIMARY

    if not has_primary:
        return AssetRole.PRIMARY
    if requires_secondary and not has_secondary:
        return AssetRole.SECONDARY
    return AssetRole.PRIMARY
