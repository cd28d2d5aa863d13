"""Project constants for the stdio protocol layer and the image tool.

Protocol literals, defaults for the single exposed tool, and the filename
rules used when persisting generated images live here. Provider-specific
values (endpoint, response key paths) belong in the engine adapter.
"""

from __future__ import annotations

from typing import Final

# ------------------------------- Protocol ---------------------------------- #

# Required value of the envelope's ``jsonrpc`` tag; anything else is dropped.
JSONRPC_VERSION: Final[str] = "2.0"

# Negotiated protocol version when the client does not request one.
DEFAULT_PROTOCOL_VERSION: Final[str] = "2024-11-05"

SERVER_NAME: Final[str] = "nano-banana-mcp"

TOOL_NAME: Final[str] = "nano_banana_generate_image"

# ------------------------------ Tool defaults ------------------------------ #

DEFAULT_MODEL: Final[str] = "google/gemini-3-pro-image-preview"

# Relative to ``project_path`` when ``output_dir`` is not given.
DEFAULT_IMAGES_SUBDIR: Final[str] = "public/images"

# Subtree of ``project_path`` whose files can be addressed by URL path.
PUBLIC_DIR_NAME: Final[str] = "public"

# Output modalities requested from the chat-completions endpoint.
MODALITIES: Final[tuple[str, ...]] = ("image", "text")

# ------------------------------- Filenames --------------------------------- #

DEFAULT_EXTENSION: Final[str] = "png"

SLUG_MAX_LENGTH: Final[int] = 60
SLUG_FALLBACK: Final[str] = "image"
