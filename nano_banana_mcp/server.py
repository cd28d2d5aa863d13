"""Line-delimited JSON-RPC server over stdio.

Inbound bytes are split into lines, each line is decoded into a request
envelope and dispatched to one of three methods. Lines that are not JSON or
that lack ``"jsonrpc": "2.0"`` are dropped without a reply since there is no
id to answer. Notifications (no ``id`` key) never get a reply either, even
when handling them fails.
"""

from __future__ import annotations

import asyncio
import codecs
import json
import sys
from collections.abc import Callable
from typing import Any

from loguru import logger
from pydantic import ValidationError

from . import __version__
from .exceptions import ImageGenerationError
from .schema import InitializeResult, JsonRpcRequest, JsonRpcResponse, ToolCallResult
from .settings import Settings
from .shard import constants as C
from .shard.enums import ErrorCode, Method
from .shard.instructions import SERVER_INSTRUCTIONS
from .tool import GenerateImageTool
from .utils.error_helpers import build_error_data

_READ_CHUNK_SIZE = 64 * 1024


class LineFramer:
    """Reassemble an arbitrarily chunked text stream into trimmed, non-empty lines."""

    def __init__(self) -> None:
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Text received after the last newline."""
        return self._buffer

    def feed(self, chunk: str) -> list[str]:
        self._buffer += chunk
        lines: list[str] = []
        while True:
            idx = self._buffer.find("\n")
            if idx == -1:
                break
            line = self._buffer[:idx].strip()
            self._buffer = self._buffer[idx + 1 :]
            if line:
                lines.append(line)
        return lines


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-standard JSON constant {name}")


def decode_message(line: str) -> JsonRpcRequest | None:
    """Parse one line into a request envelope, or None if it must be dropped.

    Parsing is strict: NaN and Infinity literals are rejected like any other
    invalid JSON.
    """
    try:
        obj = json.loads(line, parse_constant=_reject_constant)
    except ValueError:
        logger.debug(f"Dropping non-JSON line: {line[:200]}")
        return None
    if not isinstance(obj, dict):
        logger.debug("Dropping JSON line that is not an object")
        return None
    try:
        return JsonRpcRequest.model_validate(obj)
    except ValidationError:
        logger.debug(f"Dropping message without jsonrpc {C.JSONRPC_VERSION} tag")
        return None


def encode_message(response: JsonRpcResponse) -> str:
    # ASCII-only output keeps lone surrogates echoed from a request encodable
    return json.dumps(response.to_wire(), allow_nan=False, separators=(",", ":"))


def _write_stdout(line: str) -> None:
    sys.stdout.buffer.write((line + "\n").encode("utf-8"))
    sys.stdout.buffer.flush()


class McpServer:
    """Dispatches decoded requests and writes correlated responses."""

    def __init__(
        self,
        tool: GenerateImageTool,
        settings: Settings,
        write: Callable[[str], None] | None = None,
    ) -> None:
        self.tool = tool
        self.settings = settings
        self._write = write or _write_stdout
        self._tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Method handlers
    # ------------------------------------------------------------------
    def _initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        requested = params.get("protocolVersion")
        result = InitializeResult(
            protocolVersion=requested if isinstance(requested, str) and requested else C.DEFAULT_PROTOCOL_VERSION,
            serverInfo={"name": C.SERVER_NAME, "version": __version__},
            instructions=SERVER_INSTRUCTIONS,
        )
        return result.model_dump(exclude_none=True)

    def _list_tools(self) -> dict[str, Any]:
        return {"tools": [self.tool.descriptor.to_wire()]}

    async def _call_tool(self, request: JsonRpcRequest) -> JsonRpcResponse:
        params = request.params_dict
        tool_name = params.get("name")
        if tool_name != self.tool.name:
            return JsonRpcResponse.failure(request.id, ErrorCode.UNKNOWN_TOOL, f"Unknown tool: {tool_name}")

        try:
            result = await self.tool(params.get("arguments"))
        except ImageGenerationError as e:
            logger.warning(f"Tool call failed: {type(e).__name__}: {e.message}")
            return self._execution_failure(request.id, e, e.user_message)
        except Exception as e:
            logger.exception(f"Unexpected error in {self.tool.name}")
            return self._execution_failure(request.id, e, str(e) or "Unknown error")

        return JsonRpcResponse.success(request.id, ToolCallResult.from_generation(result).model_dump())

    def _execution_failure(self, request_id: Any, exc: Exception, message: str) -> JsonRpcResponse:
        data = build_error_data(exc, include_trace=self.settings.expose_error_traces)
        return JsonRpcResponse.failure(request_id, ErrorCode.TOOL_EXECUTION_FAILED, message, data)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    async def dispatch(self, request: JsonRpcRequest) -> JsonRpcResponse | None:
        """Route a request by method. Returns None when nothing must be sent."""
        method = Method.from_str(request.method)
        logger.debug(f"Dispatching method={request.method!r} id={request.id!r}")

        if method is Method.INITIALIZE:
            response = JsonRpcResponse.success(request.id, self._initialize(request.params_dict))
        elif method is Method.TOOLS_LIST:
            response = JsonRpcResponse.success(request.id, self._list_tools())
        elif method is Method.TOOLS_CALL:
            response = await self._call_tool(request)
        else:
            response = JsonRpcResponse.failure(request.id, ErrorCode.METHOD_NOT_FOUND, f"Method not found: {request.method}")

        if request.is_notification:
            return None
        return response

    async def handle_line(self, line: str) -> None:
        request = decode_message(line)
        if request is None:
            return
        try:
            response = await self.dispatch(request)
        except Exception as e:
            logger.exception(f"Failed to handle {request.method!r}")
            if request.is_notification:
                return
            response = self._execution_failure(request.id, e, str(e) or "Unknown error")
        if response is None:
            return
        try:
            self._write(encode_message(response))
        except (ValueError, OSError):
            logger.exception(f"Failed to write response for id={request.id!r}")

    # ------------------------------------------------------------------
    # Stream loop
    # ------------------------------------------------------------------
    def _schedule(self, line: str) -> None:
        task = asyncio.create_task(self.handle_line(line))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def serve(self, reader: asyncio.StreamReader) -> None:
        """Consume ``reader`` until EOF, handling each line as its own task.

        In-flight calls are awaited before returning.
        """
        framer = LineFramer()
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await reader.read(_READ_CHUNK_SIZE)
            if not chunk:
                break
            for line in framer.feed(decoder.decode(chunk)):
                self._schedule(line)

        framer.feed(decoder.decode(b"", final=True))
        if framer.pending.strip():
            logger.debug("Discarding trailing data without newline at end of input")
        if self._tasks:
            await asyncio.gather(*self._tasks)

    async def serve_stdio(self) -> None:
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader()
        protocol = asyncio.StreamReaderProtocol(reader)
        await loop.connect_read_pipe(lambda: protocol, sys.stdin)
        logger.info(f"{C.SERVER_NAME} {__version__} listening on stdio")
        await self.serve(reader)
        logger.info("stdin closed, shutting down")


__all__ = ["LineFramer", "decode_message", "encode_message", "McpServer"]
