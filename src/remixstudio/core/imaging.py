"""Local image encoding helpers.

Nothing in this module talks to a generation backend.  Downloads are a pure
re-presentation of bytes that were already fetched:

- ``png`` is the lossless re-encoding.
- ``jpeg`` is the lossy re-encoding; transparent pixels are flattened onto
  white because JPEG has no alpha channel.

Data URLs (``data:<mime>;base64,<payload>``) are how images cross the JSON
boundary of the stateless generate endpoint.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
import re

from PIL import Image

from .models import ImageAsset

logger = logging.getLogger(__name__)

DOWNLOAD_FORMATS = {
    "png": "image/png",
    "jpeg": "image/jpeg",
}

_DATA_URL_RE = re.compile(r"^data:([^;,]+);base64,(.*)$", re.DOTALL)

# Modes Pillow can write to PNG without conversion.
_PNG_MODES = {"1", "L", "LA", "P", "RGB", "RGBA", "I", "I;16"}


def encode_data_url(asset: ImageAsset) -> str:
    """Encode an asset as a base64 data URL."""
    payload = base64.b64encode(asset.data).decode("ascii")
    return f"data:{asset.mime_type};base64,{payload}"


def decode_data_url(url: str | None, filename: str = "") -> ImageAsset | None:
    """Decode a base64 data URL into an :class:`ImageAsset`.

    Args:
        url: Data URL string.
        filename: Optional name to attach to the asset.

    Returns:
        The decoded asset, or ``None`` when ``url`` is empty, is not a base64
        data URL, or carries an undecodable payload.
    """
    if not url:
        return None
    match = _DATA_URL_RE.match(url.strip())
    if not match:
        return None
    mime_type, payload = match.groups()
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        logger.warning(f"Rejected data URL with invalid base64 payload ({mime_type})")
        return None
    return ImageAsset(data=data, mime_type=mime_type.strip().lower(), filename=filename)


def normalize_format(fmt: str) -> str:
    """Map a user-supplied format name onto a key of ``DOWNLOAD_FORMATS``.

    Raises:
        ValueError: For formats other than png/jpeg/jpg.
    """
    key = fmt.strip().lower()
    if key == "jpg":
        key = "jpeg"
    if key not in DOWNLOAD_FORMATS:
        raise ValueError(f"Unsupported download format: {fmt} (expected png or jpeg)")
    return key


def download_filename(template_id: str, index: int, fmt: str) -> str:
    """Deterministic download name for the ``index``-th result image."""
    return f"remix-{template_id}-{index}.{normalize_format(fmt)}"


def reencode(asset: ImageAsset, fmt: str, jpeg_quality: int = 92) -> bytes:
    """Re-encode an image asset as PNG or JPEG.

    Args:
        asset: Image to re-encode.
        fmt: ``"png"`` or ``"jpeg"`` (``"jpg"`` accepted).
        jpeg_quality: Quality for the lossy encoding.

    Returns:
        Encoded image bytes.

    Raises:
        ValueError: If the format is unsupported or the payload is not a
            decodable image.
    """
    key = normalize_format(fmt)

    try:
        with Image.open(io.BytesIO(asset.data)) as img:
            img.load()
            out = _prepare_for(img, key)
    except (OSError, Image.DecompressionBombError) as e:
        raise ValueError(f"Could not decode image: {e}") from e

    buffer = io.BytesIO()
    if key == "png":
        out.save(buffer, format="PNG")
    else:
        out.save(buffer, format="JPEG", quality=jpeg_quality)
    return buffer.getvalue()


def _prepare_for(img: Image.Image, key: str) -> Image.Image:
    if key == "png":
        return img.copy() if img.mode in _PNG_MODES else img.convert("RGBA")

    has_alpha = img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info)
    if not has_alpha:
        return img.convert("RGB")

    rgba = img.convert("RGBA")
    flattened = Image.new("RGB", rgba.size, (255, 255, 255))
    flattened.paste(rgba, mask=rgba.getchannel("A"))
    return flattened
