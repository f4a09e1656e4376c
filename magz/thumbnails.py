"""Thumbnail generation for Magz.

Turns a decoded cover page into an embeddable JPEG data URI. Nothing is
written to disk; callers store the string in the cache.
"""

from __future__ import annotations

import base64
import threading
from io import BytesIO
from pathlib import Path
from typing import Tuple

from PIL import Image

from .archive import ContainerKind, decode_image, read_page
from .exceptions import EncodeFailed, InvalidDimensions

THUMBNAIL_QUALITY = 85
THUMBNAIL_MEDIA_TYPE = "image/jpeg"
DATA_URI_PREFIX = f"data:{THUMBNAIL_MEDIA_TYPE};base64,"


def scaled_size(width: int, height: int, max_size: int) -> Tuple[int, int]:
    """Target size where the larger side is exactly ``max_size``.

    The other side keeps the aspect ratio (rounded, at least 1px).
    """
    if width <= 0 or height <= 0:
        raise InvalidDimensions(f"Invalid image dimensions: {width}x{height}")
    if width >= height:
        return max_size, max(1, round(height * max_size / width))
    return max(1, round(width * max_size / height)), max_size


def make_thumbnail(image: Image.Image, max_size: int) -> str:
    """Resize and encode ``image`` as a ``data:image/jpeg;base64,...`` string.

    Raises InvalidDimensions for zero-sized sources and EncodeFailed on
    encoder errors.
    """
    target = scaled_size(image.width, image.height, max_size)
    try:
        im = image.convert("RGB")
        im = im.resize(target, Image.Resampling.LANCZOS)
        buffer = BytesIO()
        im.save(buffer, format="JPEG", quality=THUMBNAIL_QUALITY, optimize=True)
    except (OSError, ValueError) as exc:
        raise EncodeFailed(f"Failed to encode thumbnail: {exc}") from exc
    return DATA_URI_PREFIX + base64.b64encode(buffer.getvalue()).decode("ascii")


def decode_data_uri(value: str) -> bytes:
    """Inverse of the embedding step, for callers serving the raw JPEG."""
    if not value.startswith(DATA_URI_PREFIX):
        raise ValueError("Not a thumbnail data URI")
    return base64.b64decode(value[len(DATA_URI_PREFIX):])


def generate_cover_thumbnail(
    path: Path,
    kind: ContainerKind,
    page_id: str,
    max_size: int,
    gate: threading.BoundedSemaphore,
) -> str:
    """Read one page and build its thumbnail.

    The page is read before taking a gate slot; only decode, resize and encode
    run while the slot is held. Raises ContainerError or ThumbnailError.
    """
    data = read_page(path, kind, page_id).data
    with gate:
        return make_thumbnail(decode_image(data), max_size)
