"""Pillow helpers: encoding, thumbnails and data URLs."""

from __future__ import annotations

import base64
import binascii
import io

from PIL import Image

THUMBNAIL_FORMAT = "JPEG"
THUMBNAIL_QUALITY = 85


def image_to_bytes(image: Image.Image, fmt: str = "PNG") -> bytes:
    """Convert PIL Image to bytes."""
    buf = io.BytesIO()
    if fmt.upper() in ("JPEG", "JPG") and image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    image.save(buf, format=fmt)
    return buf.getvalue()


def make_thumbnail(image: Image.Image, max_size: int) -> bytes:
    """Downscale to fit in a max_size square, keeping aspect ratio; returns JPEG bytes.

    The source image is not modified.
    """
    thumb = image.copy()
    thumb.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)
    buf = io.BytesIO()
    thumb.convert("RGB").save(buf, format=THUMBNAIL_FORMAT, quality=THUMBNAIL_QUALITY)
    return buf.getvalue()


def to_data_url(data: bytes, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def image_to_data_url(image: Image.Image) -> str:
    return to_data_url(image_to_bytes(image, "PNG"), "image/png")


def decode_data_url(url: str) -> tuple[str, bytes]:
    """Split a base64 data URL into (mime_type, bytes). Raises ValueError."""
    if not url.startswith("data:"):
        raise ValueError("not a data URL")
    header, sep, payload = url[5:].partition(",")
    if not sep or not header.endswith(";base64"):
        raise ValueError("only base64 data URLs are supported")
    mime_type = header[: -len(";base64")] or "application/octet-stream"
    try:
        return mime_type, base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("invalid base64 payload") from exc


def guess_extension(mime_type: str) -> str:
    return {
        "image/jpeg": "jpg",
        "image/png": "png",
        "image/webp": "webp",
        "image/gif": "gif",
    }.get(mime_type, "bin")
