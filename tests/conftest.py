from __future__ import annotations

import base64
import os
import sys

import pytest

# Add repository root to sys.path for `import nano_banana_mcp.*` in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from nano_banana_mcp.settings import Settings  # noqa: E402

# Minimal PNG-looking payload; only the bytes matter to the server
SAMPLE_PNG_BYTES = b"\x89PNG\r\n\x1a\n" + bytes(range(32))
SAMPLE_PNG_B64 = base64.b64encode(SAMPLE_PNG_BYTES).decode("ascii")
SAMPLE_DATA_URL = f"data:image/png;base64,{SAMPLE_PNG_B64}"

_ENV_VARS = [
    "OPENROUTER_API_KEY",
    "OPENROUTER_HTTP_REFERER",
    "OPENROUTER_X_TITLE",
    "OPENROUTER_BASE_URL",
    "OPENROUTER_IMAGE_MODEL",
    "EXPOSE_ERROR_TRACES",
    "LOG_LEVEL",
]


class RecordingEngine:
    """Engine stand-in that records each factory call and request."""

    def __init__(self, data_url: str = SAMPLE_DATA_URL) -> None:
        self.data_url = data_url
        self.factory_calls = 0
        self.requests: list = []

    def factory(self, settings: Settings) -> RecordingEngine:
        self.factory_calls += 1
        return self

    async def generate(self, req) -> str:
        self.requests.append(req)
        return self.data_url


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, openrouter_api_key="test-key")


@pytest.fixture
def engine() -> RecordingEngine:
    return RecordingEngine()
