from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from loguru import logger
from pydantic import ValidationError

from .engines.base_engine import EngineFactory
from .engines.openrouter import OpenRouterEngine
from .exceptions import ConfigurationError, ToolInputError
from .schema import GENERATE_IMAGE_TOOL, GenerateImageArguments, GenerationResult, ImageGenerateRequest, ToolDescriptor
from .settings import Settings
from .utils.image_size import normalize_image_size
from .utils.image_utils import decode_data_url, save_image_bytes
from .utils.paths import build_filename, derive_public_path, resolve_output_dir


def _parse_arguments(arguments: Any) -> GenerateImageArguments:
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, Mapping):
        raise ToolInputError("Tool arguments must be an object.")

    prompt = arguments.get("prompt")
    if not prompt or not isinstance(prompt, str):
        raise ToolInputError("'prompt' is required and must be a string.")

    try:
        return GenerateImageArguments.model_validate(dict(arguments))
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ToolInputError(f"Invalid tool arguments ({fields}); all arguments must be strings.") from e


class GenerateImageTool:
    """Generate one image from a prompt and save it to disk.

    Stages run strictly in order and any failure aborts the rest: argument
    checks, credential check, output directory resolution and size
    normalization all happen before the remote call, so invalid input never
    reaches the network. The directory is created right before the write.
    """

    descriptor: ToolDescriptor = GENERATE_IMAGE_TOOL

    def __init__(
        self,
        settings: Settings,
        engine_factory: EngineFactory | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings
        self._engine_factory: EngineFactory = engine_factory or OpenRouterEngine.from_settings
        self._clock = clock

    @property
    def name(self) -> str:
        return self.descriptor.name

    async def __call__(self, arguments: Any) -> GenerationResult:
        args = _parse_arguments(arguments)
        prompt = args.prompt or ""

        if not self.settings.openrouter_api_key:
            raise ConfigurationError("OPENROUTER_API_KEY environment variable is not set.")

        model = args.model or self.settings.openrouter_image_model
        base_dir = resolve_output_dir(args.output_dir, args.project_path, args.images_subdir)
        image_size = normalize_image_size(args.image_size)

        logger.info(f"Generating image model={model} image_size={image_size} dir={base_dir}")
        engine = self._engine_factory(self.settings)
        data_url = await engine.generate(ImageGenerateRequest(prompt=prompt, model=model, image_size=image_size))

        image_bytes, mime = decode_data_url(data_url)
        filename = build_filename(prompt, mime, self._clock() if self._clock else None)

        # Blocking write runs in a worker thread so other calls keep flowing
        file_path = await asyncio.to_thread(save_image_bytes, image_bytes, base_dir, filename)
        public_path = derive_public_path(file_path, args.project_path)

        logger.info(f"Saved image {file_path} ({len(image_bytes)} bytes, {mime})")
        return GenerationResult(
            model=model,
            mime=mime,
            bytes=len(image_bytes),
            file_path=file_path,
            public_path=public_path,
        )


__all__ = ["GenerateImageTool"]
