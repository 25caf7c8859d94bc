"""
Helpers for turning an uploaded payload into the JPEG bytes we store.
"""

from __future__ import annotations

import base64
import binascii
import io
import re

from PIL import Image, UnidentifiedImageError

from muzac.errors import ValidationFailure

DATA_URL_PREFIX = re.compile(r"^data:[\w/+.-]+;base64,")


def decode_image_data(image_data: str) -> bytes:
    """Decode a base64 payload, accepting the ``data:`` URL a canvas produces."""
    payload = DATA_URL_PREFIX.sub("", image_data.strip(), count=1)
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationFailure("Invalid image data", envelope_key="message") from exc


def compress_image(data: bytes, max_dimension: int = 1920, quality: int = 80) -> bytes:
    """
    Resize so the longest side is at most ``max_dimension`` and re-encode as JPEG.

    Images already within bounds are only re-encoded, never upscaled.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.thumbnail((max_dimension, max_dimension))
            if img.mode != "RGB":
                img = img.convert("RGB")
            out = io.BytesIO()
            img.save(out, format="JPEG", quality=quality)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise ValidationFailure("Invalid image data", envelope_key="message") from exc
    return out.getvalue()
