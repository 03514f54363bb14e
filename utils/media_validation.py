"""Validation helpers for artwork image references and payloads."""

from typing import Optional
from urllib.parse import urlparse

ALLOWED_IMAGE_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/pjpeg",
    "image/png",
    "image/webp",
    "image/gif",
    "image/bmp",
}


def normalize_content_type(content_type: Optional[str]) -> str:
    """Strip MIME parameters (e.g. 'image/png; charset=binary') and lowercase."""
    return (content_type or "").lower().split(";", 1)[0].strip()


def image_format_for_content_type(content_type: Optional[str]) -> str:
    """Return the Pillow format used to re-encode an image.

    PNG sources stay PNG so transparency survives; every other type, including
    a missing or unknown one, is encoded as JPEG.
    """
    if normalize_content_type(content_type) == "image/png":
        return "PNG"
    return "JPEG"


def is_supported_image_type(content_type: Optional[str]) -> bool:
    """Return True when the content type is missing or a known image type.

    Some static hosts omit the header or send `application/octet-stream`; those
    are left for the decoder to judge.
    """
    mime = normalize_content_type(content_type)
    if not mime or mime == "application/octet-stream":
        return True
    return mime in ALLOWED_IMAGE_TYPES


def validate_image_reference(reference: Optional[str]) -> Optional[str]:
    """Return a cleaned http(s) image URL, or None when no image is set.

    Raises:
        ValueError: If the reference is set but is not an absolute http(s) URL.
    """
    if reference is None or not reference.strip():
        return None
    cleaned = reference.strip()
    parsed = urlparse(cleaned)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Image reference must be an absolute http(s) URL: {cleaned!r}")
    return cleaned
