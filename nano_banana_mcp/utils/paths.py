"""Output location rules for generated images.

Files are named ``<timestamp>_<slug>.<ext>``. The timestamp is a UTC ISO-8601
instant with ``:`` and ``.`` replaced by ``-`` so names sort chronologically
and stay valid on every filesystem. Uniqueness is best-effort: two calls with
the same prompt in the same millisecond produce the same name and the later
write wins.
"""

from __future__ import annotations

import os
import re
from datetime import datetime, timezone

from ..exceptions import OutputLocationError
from ..shard import constants as C
from .image_utils import extension_for_mime

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def safe_slug(text: str | None) -> str:
    """Lowercase, collapse non-alphanumeric runs to '-', trim and truncate."""
    base = (text or "").strip().lower()
    base = _NON_ALNUM_RE.sub("-", base).strip("-")
    return base[: C.SLUG_MAX_LENGTH] or C.SLUG_FALLBACK


def timestamp_token(now: datetime | None = None) -> str:
    """Filesystem-safe UTC timestamp, e.g. ``2025-01-31T09-15-42-123Z``."""
    moment = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    iso = moment.strftime("%Y-%m-%dT%H:%M:%S") + f".{moment.microsecond // 1000:03d}Z"
    return iso.replace(":", "-").replace(".", "-")


def build_filename(prompt: str, mime: str, now: datetime | None = None) -> str:
    return f"{timestamp_token(now)}_{safe_slug(prompt)}.{extension_for_mime(mime)}"


def resolve_output_dir(
    output_dir: str | None = None,
    project_path: str | None = None,
    images_subdir: str | None = None,
) -> str:
    """Return the absolute directory that should receive the image.

    ``output_dir`` wins and is resolved against the working directory.
    Otherwise ``images_subdir`` (default ``public/images``) is resolved
    against ``project_path``. Nothing is created here.
    """
    if output_dir:
        return os.path.abspath(output_dir)
    if project_path:
        return os.path.abspath(os.path.join(project_path, images_subdir or C.DEFAULT_IMAGES_SUBDIR))
    raise OutputLocationError(
        "Provide either 'output_dir' (absolute or relative) or 'project_path' (and optionally 'images_subdir')."
    )


def derive_public_path(file_path: str, project_path: str | None) -> str | None:
    """Map a file under ``<project_path>/public`` to a site-relative URL path.

    Returns None when no project was given or when the file lies outside
    the public subtree.
    """
    if not project_path:
        return None

    public_dir = os.path.abspath(os.path.join(project_path, C.PUBLIC_DIR_NAME))
    try:
        rel = os.path.relpath(os.path.abspath(file_path), public_dir)
    except ValueError:
        # Different drives on Windows
        return None

    if rel == os.pardir or rel.startswith(os.pardir + os.sep) or os.path.isabs(rel):
        return None
    return "/" + rel.replace(os.sep, "/")


__all__ = [
    "safe_slug",
    "timestamp_token",
    "build_filename",
    "resolve_output_dir",
    "derive_public_path",
]
