"""Error taxonomy for the image tool.

Every failure raised while handling ``tools/call`` derives from
``ImageGenerationError``. The dispatcher reports these as execution failures
(code -32000) using ``user_message``; anything else is treated as unexpected
and logged with its traceback.
"""

from __future__ import annotations

from typing import Any


class ImageGenerationError(Exception):
    """Base class for failures surfaced to the caller of the image tool."""

    def __init__(self, message: str, *, user_message: str | None = None, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.user_message = user_message or message
        self.details = details or {}


class ToolInputError(ImageGenerationError):
    """Raised when tool arguments are missing or malformed."""


class InvalidImageSizeError(ToolInputError):
    """Raised when an ``image_size`` hint cannot be mapped to a size tier."""


class ConfigurationError(ImageGenerationError):
    """Raised when required configuration (the API credential) is missing."""


class OutputLocationError(ImageGenerationError):
    """Raised when no output directory can be resolved or written."""


class ProviderError(ImageGenerationError):
    """Raised when the remote API call fails or returns an unusable body."""


class NoImagesGeneratedError(ProviderError):
    """Raised when the remote response carries no image entry."""


class DataUrlError(ImageGenerationError):
    """Raised when the image payload is not a decodable base64 data URL."""


__all__ = [
    "ImageGenerationError",
    "ToolInputError",
    "InvalidImageSizeError",
    "ConfigurationError",
    "OutputLocationError",
    "ProviderError",
    "NoImagesGeneratedError",
    "DataUrlError",
]
