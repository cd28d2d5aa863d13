from __future__ import annotations

import json
from typing import Any, Self

from loguru import logger
from openai import APIConnectionError, APIStatusError, AsyncOpenAI
from pydantic import Field

from ..exceptions import ConfigurationError, NoImagesGeneratedError, ProviderError
from ..schema import ImageGenerateRequest
from ..settings import Settings
from ..shard import constants as C
from ..shard.enums import OpenRouterEndpoint
from ..utils.error_helpers import augment_with_credential_tip
from .base_engine import ImageEngine

# Key paths tried in order to locate the image data URL in a response.
IMAGE_URL_PATHS: tuple[tuple[str | int, ...], ...] = (
    ("choices", 0, "message", "images", 0, "image_url", "url"),
    ("choices", 0, "message", "images", 0, "url"),
)


def _format_path(path: tuple[str | int, ...]) -> str:
    out = ""
    for part in path:
        out += f"[{part}]" if isinstance(part, int) else (f".{part}" if out else part)
    return out


def _dig(node: Any, path: tuple[str | int, ...]) -> tuple[Any, str | None]:
    """Follow ``path`` into ``node``. Returns (value, None) or (None, missing_prefix)."""
    for depth, part in enumerate(path):
        if isinstance(part, int):
            if not isinstance(node, list) or len(node) <= part:
                return None, _format_path(path[: depth + 1])
            node = node[part]
        else:
            if not isinstance(node, dict) or node.get(part) is None:
                return None, _format_path(path[: depth + 1])
            node = node[part]
    return node, None


# OpenRouter engine


class OpenRouterEngine(ImageEngine):
    """OpenRouter adapter for Gemini image models.

    Talks to OpenRouter's OpenAI-compatible chat completions endpoint with
    ``modalities=["image", "text"]`` and pulls the generated image out of the
    first choice as a data URL. One request per call, with no retries and no
    client-side timeout.
    """

    api_key: str
    base_url: str = OpenRouterEndpoint.BASE.value
    extra_headers: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Settings) -> Self:
        if not settings.openrouter_api_key:
            raise ConfigurationError("OPENROUTER_API_KEY environment variable is not set.")
        return cls(
            name="openrouter",
            api_key=settings.openrouter_api_key,
            base_url=settings.openrouter_base_url,
            extra_headers=settings.attribution_headers,
        )

    # HTTP client operations
    def _client(self) -> AsyncOpenAI:
        """Return configured AsyncOpenAI client routed to the OpenRouter base URL."""
        return AsyncOpenAI(
            base_url=self.base_url,
            api_key=self.api_key,
            default_headers=self.extra_headers or None,
            max_retries=0,
            timeout=None,
        )

    def _build_payload(self, req: ImageGenerateRequest) -> dict[str, Any]:
        """Build Chat Completions kwargs; OpenRouter-only fields travel in extra_body."""
        extra_body: dict[str, Any] = {"modalities": list(C.MODALITIES)}
        if req.image_size is not None:
            extra_body["image_config"] = {"image_size": req.image_size.value}
        return {
            "model": req.model,
            "messages": [{"role": "user", "content": req.prompt}],
            "extra_body": extra_body,
        }

    # Response processing helpers
    @staticmethod
    def extract_data_url(resp_json: Any) -> str:
        """Return the first image data URL, or raise naming the missing key path."""
        missing: list[str] = []
        for path in IMAGE_URL_PATHS:
            value, missing_at = _dig(resp_json, path)
            if isinstance(value, str) and value:
                return value
            missing.append(missing_at or _format_path(path))

        keys = ", ".join(resp_json.keys()) if isinstance(resp_json, dict) else ""
        raise NoImagesGeneratedError(
            f"OpenRouter response did not include {_format_path(IMAGE_URL_PATHS[0])} "
            f"(missing at {' / '.join(missing)}). Response keys: {keys}",
            details={"missing_paths": missing, "response_keys": list(resp_json) if isinstance(resp_json, dict) else []},
        )

    # API operations
    async def generate(self, req: ImageGenerateRequest) -> str:
        """Generate one image via OpenRouter and return its data URL."""
        payload = self._build_payload(req)
        logger.debug(f"POST {self.base_url}/chat/completions model={req.model} image_size={req.image_size}")

        async with self._client() as client:
            try:
                raw = await client.chat.completions.with_raw_response.create(**payload)
            except APIStatusError as e:
                message = f"OpenRouter error {e.status_code}: {e.response.text}"
                raise ProviderError(
                    message,
                    user_message=augment_with_credential_tip(message),
                    details={"status": e.status_code},
                ) from e
            except APIConnectionError as e:
                raise ProviderError(f"OpenRouter request failed: {e}") from e

        text = raw.http_response.text
        try:
            resp_json = json.loads(text)
        except json.JSONDecodeError as e:
            raise ProviderError(f"Failed to parse OpenRouter response as JSON: {text}") from e

        return self.extract_data_url(resp_json)


__all__ = ["OpenRouterEngine", "IMAGE_URL_PATHS"]
