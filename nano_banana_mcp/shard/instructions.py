from __future__ import annotations

from .constants import DEFAULT_IMAGES_SUBDIR, DEFAULT_MODEL

# Tool description advertised through tools/list. Keep short and clear.
TOOL_DESCRIPTION: str = (
    f"Generate an image via OpenRouter ({DEFAULT_MODEL}) and save it into a project's public images folder."
)

# Per-argument descriptions for the advertised input schema.
ARGUMENT_DESCRIPTIONS: dict[str, str] = {
    "prompt": "Text description of the desired image.",
    "project_path": (
        f"Project root. If provided, image will be saved under <project_path>/<images_subdir> (default {DEFAULT_IMAGES_SUBDIR})."
    ),
    "images_subdir": f"Relative path inside project_path to store images. Defaults to {DEFAULT_IMAGES_SUBDIR}.",
    "output_dir": "Override output directory (absolute or relative). If set, project_path is optional.",
    "image_size": "Optional image size: 1K | 2K | 4K, or pixels such as 1024x1024 or 2048 (mapped to the nearest tier).",
    "model": f"Optional OpenRouter model id. Defaults to {DEFAULT_MODEL}.",
}


# Short server instructions returned from initialize.
SERVER_INSTRUCTIONS: str = (
    "Nano Banana image server. One tool: nano_banana_generate_image.\n"
    "Pass a prompt plus either output_dir or project_path (images land in <project_path>/public/images by default). "
    "The result reports the saved file_path and, when the file sits under <project_path>/public, "
    "a public_path usable as a site-relative URL."
)


__all__ = ["TOOL_DESCRIPTION", "ARGUMENT_DESCRIPTIONS", "SERVER_INSTRUCTIONS"]
