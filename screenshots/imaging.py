"""Image encoding for captured screenshots."""

from __future__ import annotations

import io

from PIL import Image

# Hard limit of the WebP container on either dimension.
WEBP_MAX_DIMENSION = 16383


class CaptureError(RuntimeError):
    """Raised when a captured screenshot cannot be encoded or persisted."""


def encode_webp(image_bytes: bytes, *, quality: int = 80) -> bytes:
    """Re-encode raw browser screenshot bytes (PNG/JPEG) as WebP."""

    if not image_bytes:
        raise CaptureError("Browser returned an empty screenshot")
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            width, height = img.size
            if width > WEBP_MAX_DIMENSION or height > WEBP_MAX_DIMENSION:
                img = img.crop((0, 0, min(width, WEBP_MAX_DIMENSION), min(height, WEBP_MAX_DIMENSION)))
            if img.mode not in ("RGB", "RGBA"):
                img = img.convert("RGB")
            buffer = io.BytesIO()
            img.save(buffer, format="WEBP", quality=quality)
    except (OSError, ValueError) as exc:
        raise CaptureError(f"Failed to encode screenshot as WebP: {exc}") from exc
    return buffer.getvalue()
