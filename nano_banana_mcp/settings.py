from __future__ import annotations

from functools import lru_cache
from typing import ClassVar

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .shard import constants as C
from .shard.enums import OpenRouterEndpoint


class Settings(BaseSettings):
    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(env_file=".env", extra="ignore")

    openrouter_api_key: str | None = Field(default=None, description="API key for OpenRouter")
    openrouter_http_referer: str | None = Field(default=None, description="Optional HTTP-Referer attribution header")
    openrouter_x_title: str | None = Field(default=None, description="Optional X-Title attribution header")
    openrouter_base_url: str = Field(default=OpenRouterEndpoint.BASE.value, description="Base URL for the OpenRouter API")
    openrouter_image_model: str = Field(default=C.DEFAULT_MODEL, description="Model used when a call does not name one")

    log_level: str = Field(default="INFO", description="Log level for the stderr sink")
    expose_error_traces: bool = Field(default=True, description="Attach tracebacks to tool execution errors")

    @property
    def use_openrouter(self) -> bool:
        """Determine if OpenRouter can be called based on available credentials."""
        return bool(self.openrouter_api_key)

    @property
    def attribution_headers(self) -> dict[str, str]:
        """Request-attribution headers that have a non-empty value."""
        headers = {
            "HTTP-Referer": self.openrouter_http_referer,
            "X-Title": self.openrouter_x_title,
        }
        return {k: v for k, v in headers.items() if v}


@lru_cache
def get_settings() -> Settings:
    return Settings()
