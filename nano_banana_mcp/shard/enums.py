from __future__ import annotations

from enum import IntEnum, StrEnum
from typing import Self


class Method(StrEnum):
    """Inbound JSON-RPC methods served by the dispatcher."""

    INITIALIZE = "initialize"
    TOOLS_LIST = "tools/list"
    TOOLS_CALL = "tools/call"

    @classmethod
    def from_str(cls, value: object) -> Self | None:
        if not isinstance(value, str):
            return None
        try:
            return cls(value)
        except ValueError:
            return None


class OpenRouterEndpoint(StrEnum):
    """OpenRouter API endpoints."""

    BASE = "https://openrouter.ai/api/v1"


class ErrorCode(IntEnum):
    """Numbered JSON-RPC error codes emitted by the server."""

    METHOD_NOT_FOUND = -32601
    UNKNOWN_TOOL = -32602
    TOOL_EXECUTION_FAILED = -32000


class ImageSizeTier(StrEnum):
    """Canonical image size buckets forwarded to the remote API.

    Each tier covers every image whose larger side is at most ``max_pixels``.
    """

    ONE_K = "1K"
    TWO_K = "2K"
    FOUR_K = "4K"

    @property
    def max_pixels(self) -> int:
        return _TIER_MAX_PIXELS[self]

    @classmethod
    def for_pixels(cls, pixels: int) -> Self | None:
        """Return the smallest tier that fits ``pixels``, or None if none does."""
        for tier in cls:
            if pixels <= tier.max_pixels:
                return tier
        return None


_TIER_MAX_PIXELS: dict[ImageSizeTier, int] = {
    ImageSizeTier.ONE_K: 1024,
    ImageSizeTier.TWO_K: 2048,
    ImageSizeTier.FOUR_K: 4096,
}


__all__ = ["Method", "OpenRouterEndpoint", "ErrorCode", "ImageSizeTier"]
