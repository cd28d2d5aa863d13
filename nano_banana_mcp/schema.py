from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .shard import constants as C
from .shard.enums import ImageSizeTier
from .shard.instructions import ARGUMENT_DESCRIPTIONS, TOOL_DESCRIPTION

# ------------------------------ JSON-RPC envelopes ------------------------------ #


class JsonRpcRequest(BaseModel):
    """Inbound envelope. Only the ``jsonrpc`` tag is enforced.

    ``id`` is echoed verbatim, so it stays untyped. Whether the message is a
    notification depends on the key being present, not on its value: an
    explicit ``"id": null`` still expects a response.
    """

    model_config = ConfigDict(extra="allow")

    jsonrpc: Literal["2.0"]
    id: Any = None
    method: Any = None
    params: Any = None

    @property
    def is_notification(self) -> bool:
        return "id" not in self.model_fields_set

    @property
    def params_dict(self) -> dict[str, Any]:
        return self.params if isinstance(self.params, dict) else {}


class JsonRpcError(BaseModel):
    """Error member of a response envelope."""

    code: int = Field(description="JSON-RPC error code, e.g. -32601.")
    message: str = Field(description="Human-readable error message.")
    data: Any | None = Field(default=None, description="Optional debug details (e.g. a formatted traceback).")


class JsonRpcResponse(BaseModel):
    """Outbound envelope carrying exactly one of ``result`` or ``error``."""

    jsonrpc: Literal["2.0"] = C.JSONRPC_VERSION
    id: Any = None
    result: Any | None = None
    error: JsonRpcError | None = None

    @classmethod
    def success(cls, request_id: Any, result: Any) -> JsonRpcResponse:
        return cls(id=request_id, result=result)

    @classmethod
    def failure(cls, request_id: Any, code: int, message: str, data: Any | None = None) -> JsonRpcResponse:
        return cls(id=request_id, error=JsonRpcError(code=code, message=message, data=data))

    def to_wire(self) -> dict[str, Any]:
        """Serialize keeping ``id`` even when null and omitting the unused member."""
        payload: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            payload["error"] = self.error.model_dump(exclude_none=True)
        else:
            payload["result"] = self.result
        return payload


# --------------------------------- Tool listing --------------------------------- #


class ToolDescriptor(BaseModel):
    """Static description of the exposed tool as advertised by tools/list."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    description: str
    input_schema: dict[str, Any] = Field(alias="inputSchema")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def _string_property(field: str) -> dict[str, str]:
    return {"type": "string", "description": ARGUMENT_DESCRIPTIONS[field]}


GENERATE_IMAGE_TOOL = ToolDescriptor(
    name=C.TOOL_NAME,
    description=TOOL_DESCRIPTION,
    inputSchema={
        "type": "object",
        "additionalProperties": False,
        "properties": {
            field: _string_property(field)
            for field in ("prompt", "project_path", "images_subdir", "output_dir", "image_size", "model")
        },
        "required": ["prompt"],
    },
)


class InitializeResult(BaseModel):
    """Result of the initialize handshake."""

    protocolVersion: str
    capabilities: dict[str, Any] = Field(default_factory=lambda: {"tools": {}})
    serverInfo: dict[str, str]
    instructions: str | None = None


# ---------------------------------- Tool call ----------------------------------- #


class GenerateImageArguments(BaseModel):
    """Arguments accepted by the image tool.

    Every field is optional at this layer so that the handler can report the
    missing prompt with its own message. Unknown keys are ignored.
    """

    model_config = ConfigDict(extra="ignore")

    prompt: str | None = Field(default=None, description=ARGUMENT_DESCRIPTIONS["prompt"])
    project_path: str | None = Field(default=None, description=ARGUMENT_DESCRIPTIONS["project_path"])
    images_subdir: str | None = Field(default=None, description=ARGUMENT_DESCRIPTIONS["images_subdir"])
    output_dir: str | None = Field(default=None, description=ARGUMENT_DESCRIPTIONS["output_dir"])
    image_size: str | None = Field(default=None, description=ARGUMENT_DESCRIPTIONS["image_size"])
    model: str | None = Field(default=None, description=ARGUMENT_DESCRIPTIONS["model"])


class ImageGenerateRequest(BaseModel):
    """Normalized request handed to an image engine."""

    prompt: str
    model: str
    image_size: ImageSizeTier | None = Field(default=None, description="Size tier; omitted from the remote call when None.")


class GenerationResult(BaseModel):
    """Outcome of one successful tool invocation."""

    model_config = ConfigDict(frozen=True)

    model: str = Field(description="Model id used for generation.")
    mime: str = Field(description="MIME type reported in the returned data URL.")
    bytes: int = Field(description="Size of the written file in bytes.")
    file_path: str = Field(description="Absolute path of the written file.")
    public_path: str | None = Field(default=None, description="Site-relative URL path when the file sits under <project_path>/public.")

    def summary(self) -> str:
        if self.public_path:
            return f"Saved image to {self.file_path} (public: {self.public_path})"
        return f"Saved image to {self.file_path}"


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ToolCallResult(BaseModel):
    """tools/call result: a readable summary plus the structured payload."""

    content: list[TextContent]
    structuredContent: GenerationResult

    @classmethod
    def from_generation(cls, result: GenerationResult) -> ToolCallResult:
        return cls(content=[TextContent(text=result.summary())], structuredContent=result)


__all__ = [
    "JsonRpcRequest",
    "JsonRpcError",
    "JsonRpcResponse",
    "ToolDescriptor",
    "GENERATE_IMAGE_TOOL",
    "InitializeResult",
    "GenerateImageArguments",
    "ImageGenerateRequest",
    "GenerationResult",
    "TextContent",
    "ToolCallResult",
]
