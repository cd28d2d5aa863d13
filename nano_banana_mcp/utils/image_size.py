from __future__ import annotations

import re

from ..exceptions import InvalidImageSizeError
from ..shard.enums import ImageSizeTier

_DIMENSIONS_RE = re.compile(r"^(\d{2,5})\s*x\s*(\d{2,5})$", re.IGNORECASE)
_SINGLE_RE = re.compile(r"^(\d{2,5})$")

_ACCEPTED_FORMS = "1K, 2K, 4K, <width>x<height> (e.g. 1024x1024) or a single pixel count (e.g. 2048)"


def _tier_for_pixels(pixels: int, raw: str) -> ImageSizeTier:
    tier = ImageSizeTier.for_pixels(pixels)
    if tier is None:
        largest = max(t.max_pixels for t in ImageSizeTier)
        raise InvalidImageSizeError(f"Unsupported image_size '{raw}': {pixels}px exceeds the largest tier ({largest}px, 4K).")
    return tier


def normalize_image_size(value: str | None) -> ImageSizeTier | None:
    """Map a free-form size hint onto a size tier.

    Returns None when no hint was given, so callers omit the size entirely.
    Tier names pass through case-insensitively; ``WxH`` uses the larger side;
    a bare number is read as pixels. Raises ``InvalidImageSizeError`` for
    anything else or for sizes beyond 4096px.
    """
    if value is None:
        return None
    raw = value.strip()
    if not raw:
        return None

    upper = raw.upper()
    if upper in {tier.value for tier in ImageSizeTier}:
        return ImageSizeTier(upper)

    match = _DIMENSIONS_RE.match(raw)
    if match:
        width, height = int(match.group(1)), int(match.group(2))
        return _tier_for_pixels(max(width, height), raw)

    match = _SINGLE_RE.match(raw)
    if match:
        return _tier_for_pixels(int(match.group(1)), raw)

    raise InvalidImageSizeError(f"Invalid image_size '{raw}'. Accepted forms: {_ACCEPTED_FORMS}.")


__all__ = ["normalize_image_size"]
