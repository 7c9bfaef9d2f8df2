"""
Contact photo helpers.

Thumbnails are derived from the full photo: center-cropped to a square and
downsampled, the way address books show them in lists.
"""

import io
import logging
from typing import Optional

from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger(__name__)

THUMBNAIL_SIZE = 96
THUMBNAIL_QUALITY = 85


def make_thumbnail(photo: bytes, size: int = THUMBNAIL_SIZE) -> Optional[bytes]:
    """
    Derive a square JPEG thumbnail from photo bytes.

    Args:
        photo: Encoded image (any format Pillow reads)
        size: Edge length in pixels

    Returns:
        JPEG bytes, or None if the photo cannot be decoded
    """
    try:
        with Image.open(io.BytesIO(photo)) as img:
            fitted = ImageOps.fit(img.convert("RGB"), (size, size), Image.Resampling.LANCZOS)
    except (UnidentifiedImageError, OSError) as e:
        logger.warning(f"Could not derive thumbnail from photo ({len(photo)} bytes): {e}")
        return None

    buffer = io.BytesIO()
    fitted.save(buffer, format="JPEG", quality=THUMBNAIL_QUALITY)
    return buffer.getvalue()
