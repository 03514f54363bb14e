"""Inline image encoder service.

Provides a small OOP wrapper around Pillow that turns fetched artwork image
bytes into a base64 data URL suitable for an `input_image` content block.
The image is bounded to `max_size` (aspect ratio preserved) and re-encoded
as PNG or JPEG depending on the source content type.

Public class: `ImageEncoder`

Example:
    encoder = ImageEncoder(max_size=(1024, 1024))
    data_url = encoder.to_data_url(raw_bytes, "image/png")
"""
from __future__ import annotations

import base64
import io
from typing import Tuple

from PIL import Image, UnidentifiedImageError

from utils.media_validation import image_format_for_content_type


class ImageEncoder:
    """Transcode image bytes into a transport-safe data URL.

    Args:
        max_size: Maximum width and height of the encoded image. Defaults to (1024, 1024).
        background: Background color used when flattening alpha for JPEG output.
        jpeg_quality: JPEG quality passed to Pillow.
    """

    def __init__(
        self,
        max_size: Tuple[int, int] = (1024, 1024),
        background: Tuple[int, int, int] | None = None,
        jpeg_quality: int = 85,
    ):
        self.max_size = max_size
        self.background = background or (255, 255, 255)
        self.jpeg_quality = jpeg_quality

    def encode(self, data: bytes, content_type: str | None) -> Tuple[str, bytes]:
        """Re-encode image bytes.

        Args:
            data: Raw image bytes as fetched.
            content_type: Content type reported by the image source.

        Returns:
            A `(mime_type, encoded_bytes)` tuple.

        Raises:
            ValueError: If the bytes are empty or cannot be opened as an image.
        """
        if not data:
            raise ValueError("Image payload is empty")

        try:
            src = Image.open(io.BytesIO(data))
            src.load()
        except (UnidentifiedImageError, OSError) as exc:
            raise ValueError("Fetched bytes are not a supported image format") from exc

        fmt = image_format_for_content_type(content_type)
        src.thumbnail(self.max_size, Image.LANCZOS)

        if fmt == "PNG":
            if src.mode not in ("RGB", "RGBA", "L", "LA", "P"):
                src = src.convert("RGBA")
            out = src
        else:
            # JPEG has no alpha; flatten against the background color
            rgba = src.convert("RGBA")
            out = Image.new("RGB", rgba.size, self.background)
            out.paste(rgba, mask=rgba.split()[3])

        out_io = io.BytesIO()
        if fmt == "PNG":
            out.save(out_io, format="PNG", optimize=True)
        else:
            out.save(out_io, format="JPEG", quality=self.jpeg_quality)
        return f"image/{fmt.lower()}", out_io.getvalue()

    def to_data_url(self, data: bytes, content_type: str | None) -> str:
        """Return `data:<mime>;base64,<payload>` for the re-encoded image."""
        mime_type, encoded = self.encode(data, content_type)
        return f"data:{mime_type};base64,{base64.b64encode(encoded).decode('utf-8')}"
