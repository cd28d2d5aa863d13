from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Protocol

from pydantic import BaseModel

from ..schema import ImageGenerateRequest
from ..settings import Settings


class ImageEngine(ABC, BaseModel):
    """Abstract base for remote image engines."""

    name: str

    @abstractmethod
    async def generate(self, req: ImageGenerateRequest) -> str:
        """Generate one image and return it as a ``data:<mime>;base64,...`` URL."""
        raise NotImplementedError


class EngineFactory(Protocol):
    def __call__(self, settings: Settings) -> ImageEngine:  # pragma: no cover - interface
        ...
