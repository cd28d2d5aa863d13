from __future__ import annotations

import base64
import binascii
import os
import re

from loguru import logger

from ..exceptions import DataUrlError, OutputLocationError
from ..shard import constants as C

_DATA_URL_RE = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)

_EXTENSIONS_BY_MIME: dict[str, str] = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
}


# --------------------------- data URL decoding ---------------------------- #
def decode_data_url(data_url: str | None) -> tuple[bytes, str]:
    """Decode ``data:<mime>;base64,<payload>`` into (bytes, mime).

    The MIME type is returned verbatim. Whitespace inside the payload is
    tolerated; anything else the base64 decoder rejects raises ``DataUrlError``.
    """
    match = _DATA_URL_RE.match(data_url or "")
    if not match:
        raise DataUrlError("Expected a base64 data URL (data:<mime>;base64,...) in OpenRouter response.")
    mime, payload = match.group(1), match.group(2)
    try:
        data = base64.b64decode(payload)
    except (binascii.Error, ValueError) as e:
        raise DataUrlError(f"Cannot decode base64 image payload: {e}") from e
    return data, mime


def extension_for_mime(mime: str | None) -> str:
    """Guess file extension (without dot) from MIME type; unknown types map to png."""
    return _EXTENSIONS_BY_MIME.get((mime or "").lower(), C.DEFAULT_EXTENSION)


# ------------------------------ filesystem -------------------------------- #
def ensure_directory(directory: str) -> str:
    """Create ``directory`` (and parents) if missing. Returns the absolute path."""
    abs_directory = os.path.abspath(directory)
    try:
        os.makedirs(abs_directory, exist_ok=True)
    except OSError as e:
        raise OutputLocationError(f"Cannot create directory {abs_directory}: {e}") from e
    return abs_directory


def save_image_bytes(image_bytes: bytes, directory: str, filename: str) -> str:
    """Write image bytes to ``directory/filename`` in one go.

    Creates the directory first. Returns the absolute path of the file.
    Existing files with the same name are overwritten.
    """
    target_dir = ensure_directory(directory)
    file_path = os.path.join(target_dir, filename)
    try:
        with open(file_path, "wb") as f:
            f.write(image_bytes)
    except OSError as e:
        raise OutputLocationError(f"Cannot write image to {file_path}: {e}") from e

    logger.debug(f"Wrote {len(image_bytes)} bytes to {file_path}")
    return file_path


__all__ = [
    "decode_data_url",
    "extension_for_mime",
    "ensure_directory",
    "save_image_bytes",
]
