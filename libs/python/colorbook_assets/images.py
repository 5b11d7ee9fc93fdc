"""Image normalisation applied before page images are stored."""

from __future__ import annotations

import io

import numpy as np
from PIL import Image, UnidentifiedImageError

from .exceptions import AssetImageError

PRINT_THRESHOLD = 200


def to_print_safe_png(image_bytes: bytes, threshold: int = PRINT_THRESHOLD) -> bytes:
    """Collapse an image to pure black and white and re-encode it as PNG.

    Transparent pixels become white; any pixel darker than ``threshold`` becomes
    black. Gray anti-aliasing and stray color are removed so printed pages show
    only crisp outlines.
    """

    try:
        image = Image.open(io.BytesIO(image_bytes))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise AssetImageError("Asset bytes are not a readable image") from exc

    rgba = image.convert("RGBA")
    flattened = Image.alpha_composite(Image.new("RGBA", rgba.size, (255, 255, 255, 255)), rgba)
    gray = np.asarray(flattened.convert("L"), dtype=np.uint8)
    binary = np.where(gray < threshold, 0, 255).astype(np.uint8)

    buffer = io.BytesIO()
    Image.fromarray(binary).save(buffer, format="PNG", optimize=True)
    return buffer.getvalue()
