from __future__ import annotations

import asyncio
import io
import json
import os
import sys

import pytest
from conftest import SAMPLE_PNG_BYTES, RecordingEngine

from nano_banana_mcp.exceptions import ProviderError
from nano_banana_mcp.server import LineFramer, McpServer, decode_message, encode_message
from nano_banana_mcp.settings import Settings
from nano_banana_mcp.shard import constants as C
from nano_banana_mcp.tool import GenerateImageTool


def _make_server(settings: Settings, engine: RecordingEngine) -> tuple[McpServer, list[dict]]:
    sent: list[dict] = []
    tool = GenerateImageTool(settings, engine_factory=engine.factory)
    server = McpServer(tool=tool, settings=settings, write=lambda line: sent.append(json.loads(line)))
    return server, sent


def _line(**envelope) -> str:
    return json.dumps({"jsonrpc": "2.0", **envelope})


class TestLineFramer:
    def test_reassembles_lines_across_chunks(self):
        framer = LineFramer()
        assert framer.feed('{"a":') == []
        assert framer.feed(' 1}\n{"b"') == ['{"a": 1}']
        assert framer.feed(": 2}\n") == ['{"b": 2}']
        assert framer.pending == ""

    def test_trims_and_skips_blank_lines(self):
        framer = LineFramer()
        assert framer.feed("  first  \r\n\n   \nsecond\n") == ["first", "second"]

    def test_keeps_partial_tail(self):
        framer = LineFramer()
        assert framer.feed("one\ntwo") == ["one"]
        assert framer.pending == "two"


class TestDecodeMessage:
    @pytest.mark.parametrize(
        "line",
        [
            "not json",
            "{broken",
            "[1, 2, 3]",
            '"just a string"',
            '{"id": 1, "method": "tools/list"}',
            '{"jsonrpc": "1.0", "id": 1, "method": "tools/list"}',
            '{"jsonrpc": 2.0, "id": 1, "method": "tools/list"}',
            '{"jsonrpc": "2.0", "id": NaN, "method": "tools/list"}',
            '{"jsonrpc": "2.0", "id": Infinity, "method": "tools/list"}',
            '{"jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {"x": -Infinity}}',
        ],
    )
    def test_drops_unrecognized_lines(self, line):
        assert decode_message(line) is None

    def test_accepts_tagged_envelope(self):
        req = decode_message('{"jsonrpc": "2.0", "id": 7, "method": "tools/list"}')
        assert req is not None
        assert req.id == 7
        assert req.method == "tools/list"
        assert not req.is_notification

    def test_missing_id_is_notification_but_null_id_is_not(self):
        assert decode_message('{"jsonrpc": "2.0", "method": "x"}').is_notification
        assert not decode_message('{"jsonrpc": "2.0", "id": null, "method": "x"}').is_notification


class TestDispatch:
    @pytest.mark.asyncio
    async def test_untagged_json_produces_no_output(self, settings, engine):
        server, sent = _make_server(settings, engine)
        await server.handle_line('{"id": 1, "method": "initialize"}')
        await server.handle_line("garbage")
        assert sent == []

    @pytest.mark.asyncio
    async def test_non_finite_id_produces_no_output(self, settings, engine):
        server, sent = _make_server(settings, engine)
        await server.handle_line('{"jsonrpc": "2.0", "id": NaN, "method": "tools/list"}')
        await server.handle_line('{"jsonrpc": "2.0", "id": -Infinity, "method": "initialize"}')
        assert sent == []

    @pytest.mark.asyncio
    async def test_initialize_echoes_requested_version(self, settings, engine):
        server, sent = _make_server(settings, engine)
        await server.handle_line(_line(id=1, method="initialize", params={"protocolVersion": "2025-06-18"}))
        (resp,) = sent
        assert resp["id"] == 1
        assert resp["result"]["protocolVersion"] == "2025-06-18"
        assert resp["result"]["capabilities"] == {"tools": {}}
        assert resp["result"]["serverInfo"]["name"] == C.SERVER_NAME
        assert "error" not in resp

    @pytest.mark.asyncio
    async def test_initialize_defaults_version(self, settings, engine):
        server, sent = _make_server(settings, engine)
        await server.handle_line(_line(id="init", method="initialize"))
        assert sent[0]["id"] == "init"
        assert sent[0]["result"]["protocolVersion"] == C.DEFAULT_PROTOCOL_VERSION

    @pytest.mark.asyncio
    async def test_tools_list(self, settings, engine):
        server, sent = _make_server(settings, engine)
        await server.handle_line(_line(id=2, method="tools/list"))
        tools = sent[0]["result"]["tools"]
        assert len(tools) == 1
        assert tools[0]["name"] == C.TOOL_NAME
        schema = tools[0]["inputSchema"]
        assert schema["required"] == ["prompt"]
        assert set(schema["properties"]) == {"prompt", "project_path", "images_subdir", "output_dir", "image_size", "model"}

    @pytest.mark.asyncio
    async def test_unknown_method_with_id(self, settings, engine):
        server, sent = _make_server(settings, engine)
        await server.handle_line(_line(id=3, method="resources/list"))
        assert sent == [{"jsonrpc": "2.0", "id": 3, "error": {"code": -32601, "message": "Method not found: resources/list"}}]

    @pytest.mark.asyncio
    async def test_unknown_method_notification_is_silent(self, settings, engine):
        server, sent = _make_server(settings, engine)
        await server.handle_line(_line(method="notifications/initialized"))
        assert sent == []

    @pytest.mark.asyncio
    async def test_null_id_is_answered(self, settings, engine):
        server, sent = _make_server(settings, engine)
        await server.handle_line(_line(id=None, method="tools/list"))
        assert len(sent) == 1
        assert sent[0]["id"] is None
        assert "result" in sent[0]

    @pytest.mark.asyncio
    async def test_unknown_tool(self, settings, engine, tmp_path):
        server, sent = _make_server(settings, engine)
        await server.handle_line(
            _line(id=4, method="tools/call", params={"name": "other_tool", "arguments": {"prompt": "x", "output_dir": str(tmp_path)}})
        )
        (resp,) = sent
        assert resp["id"] == 4
        assert resp["error"]["code"] == -32602
        assert "other_tool" in resp["error"]["message"]
        assert engine.factory_calls == 0
        assert os.listdir(tmp_path) == []

    @pytest.mark.asyncio
    async def test_tool_call_end_to_end(self, settings, engine, tmp_path):
        server, sent = _make_server(settings, engine)
        out_dir = tmp_path / "x"
        await server.handle_line(
            _line(id=5, method="tools/call", params={"name": C.TOOL_NAME, "arguments": {"prompt": "sunset", "output_dir": str(out_dir)}})
        )
        (resp,) = sent
        assert resp["id"] == 5
        assert "error" not in resp
        structured = resp["result"]["structuredContent"]
        assert structured["mime"] == "image/png"
        assert structured["bytes"] == len(SAMPLE_PNG_BYTES)
        assert structured["public_path"] is None
        assert structured["model"] == C.DEFAULT_MODEL
        with open(structured["file_path"], "rb") as f:
            assert f.read() == SAMPLE_PNG_BYTES
        assert resp["result"]["content"] == [{"type": "text", "text": f"Saved image to {structured['file_path']}"}]

    @pytest.mark.asyncio
    async def test_tool_call_mentions_public_path(self, settings, engine, tmp_path):
        server, sent = _make_server(settings, engine)
        await server.handle_line(
            _line(id=6, method="tools/call", params={"name": C.TOOL_NAME, "arguments": {"prompt": "logo", "project_path": str(tmp_path)}})
        )
        structured = sent[0]["result"]["structuredContent"]
        assert structured["public_path"].startswith("/images/")
        assert sent[0]["result"]["content"][0]["text"].endswith(f"(public: {structured['public_path']})")

    @pytest.mark.asyncio
    async def test_missing_credential_is_execution_error_without_side_effects(self, engine, tmp_path, monkeypatch):
        calls: list = []
        monkeypatch.setattr("nano_banana_mcp.tool.save_image_bytes", lambda *a, **k: calls.append(a))
        server, sent = _make_server(Settings(_env_file=None, openrouter_api_key=None), engine)

        await server.handle_line(
            _line(id=7, method="tools/call", params={"name": C.TOOL_NAME, "arguments": {"prompt": "x", "output_dir": str(tmp_path / "out")}})
        )
        (resp,) = sent
        assert resp["id"] == 7
        assert resp["error"]["code"] == -32000
        assert "OPENROUTER_API_KEY" in resp["error"]["message"]
        assert "stack" in resp["error"]["data"]
        assert engine.factory_calls == 0
        assert engine.requests == []
        assert calls == []
        assert not (tmp_path / "out").exists()

    @pytest.mark.asyncio
    async def test_error_traces_can_be_disabled(self, engine):
        settings = Settings(_env_file=None, openrouter_api_key="k", expose_error_traces=False)
        server, sent = _make_server(settings, engine)
        await server.handle_line(_line(id=8, method="tools/call", params={"name": C.TOOL_NAME, "arguments": {}}))
        assert sent[0]["error"] == {"code": -32000, "message": "'prompt' is required and must be a string."}

    @pytest.mark.asyncio
    async def test_failing_notification_is_silent(self, settings, engine):
        server, sent = _make_server(settings, engine)
        await server.handle_line(_line(method="tools/call", params={"name": C.TOOL_NAME, "arguments": {}}))
        await server.handle_line(_line(method="tools/call", params={"name": "nope"}))
        assert sent == []

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_reported(self, settings, tmp_path):
        class Boom(RecordingEngine):
            async def generate(self, req):
                raise RuntimeError("kaboom")

        server, sent = _make_server(settings, Boom())
        await server.handle_line(
            _line(id=9, method="tools/call", params={"name": C.TOOL_NAME, "arguments": {"prompt": "x", "output_dir": str(tmp_path)}})
        )
        assert sent[0]["error"]["code"] == -32000
        assert sent[0]["error"]["message"] == "kaboom"
        assert "RuntimeError" in sent[0]["error"]["data"]["stack"]

    @pytest.mark.asyncio
    async def test_provider_error_reports_user_message(self, settings, tmp_path):
        class Unauthorized(RecordingEngine):
            async def generate(self, req):
                raise ProviderError("OpenRouter error 401: denied", user_message="OpenRouter error 401: denied Tip: check the key.")

        server, sent = _make_server(settings, Unauthorized())
        await server.handle_line(
            _line(id=10, method="tools/call", params={"name": C.TOOL_NAME, "arguments": {"prompt": "x", "output_dir": str(tmp_path)}})
        )
        assert sent[0]["error"]["code"] == -32000
        assert sent[0]["error"]["message"] == "OpenRouter error 401: denied Tip: check the key."


class TestServeLoop:
    @pytest.mark.asyncio
    async def test_one_response_per_request_in_stream(self, settings, engine, tmp_path):
        server, sent = _make_server(settings, engine)
        lines = [
            _line(id=1, method="initialize"),
            "not json at all",
            json.dumps({"id": 99, "method": "tools/list"}),
            _line(method="notifications/initialized"),
            _line(id=2, method="tools/list"),
            _line(id=3, method="tools/call", params={"name": C.TOOL_NAME, "arguments": {"prompt": "café au lait", "output_dir": str(tmp_path)}}),
            _line(id=4, method="bogus"),
        ]
        reader = asyncio.StreamReader()
        reader.feed_data(("\n".join(lines) + "\n").encode("utf-8"))
        reader.feed_eof()

        await server.serve(reader)

        by_id = {resp["id"]: resp for resp in sent}
        assert sorted(by_id) == [1, 2, 3, 4]
        assert len(sent) == 4
        for resp in sent:
            assert ("result" in resp) != ("error" in resp)
        assert by_id[3]["result"]["structuredContent"]["file_path"].endswith("_caf-au-lait.png")
        assert by_id[4]["error"]["code"] == -32601

    @pytest.mark.asyncio
    async def test_trailing_line_without_newline_is_ignored(self, settings, engine):
        server, sent = _make_server(settings, engine)
        reader = asyncio.StreamReader()
        reader.feed_data(_line(id=1, method="tools/list").encode("utf-8"))
        reader.feed_eof()

        await server.serve(reader)
        assert sent == []


def test_encode_message_is_single_compact_line():
    from nano_banana_mcp.schema import JsonRpcResponse

    text = encode_message(JsonRpcResponse.success(1, {"text": "naïve\nline"}))
    assert "\n" not in text
    assert json.loads(text) == {"jsonrpc": "2.0", "id": 1, "result": {"text": "naïve\nline"}}
    assert text.isascii()


class TestStdoutWriter:
    @pytest.fixture
    def stdout(self, monkeypatch) -> io.BytesIO:
        raw = io.BytesIO()
        monkeypatch.setattr(sys, "stdout", io.TextIOWrapper(raw, encoding="utf-8"))
        return raw

    def _server(self, settings: Settings, engine: RecordingEngine) -> McpServer:
        return McpServer(tool=GenerateImageTool(settings, engine_factory=engine.factory), settings=settings)

    @pytest.mark.asyncio
    async def test_lone_surrogate_in_method_is_still_answered(self, settings, engine, stdout):
        server = self._server(settings, engine)
        await server.handle_line('{"jsonrpc":"2.0","id":1,"method":"\\ud800"}')

        lines = stdout.getvalue().decode("utf-8").splitlines()
        assert len(lines) == 1
        resp = json.loads(lines[0])
        assert resp["id"] == 1
        assert resp["error"]["code"] == -32601
        assert resp["error"]["message"] == "Method not found: \ud800"

    @pytest.mark.asyncio
    async def test_lone_surrogate_id_is_echoed(self, settings, engine, stdout):
        server = self._server(settings, engine)
        await server.handle_line('{"jsonrpc":"2.0","id":"\\udc80","method":"tools/list"}')

        (line,) = stdout.getvalue().decode("utf-8").splitlines()
        resp = json.loads(line)
        assert resp["id"] == "\udc80"
        assert "result" in resp

    @pytest.mark.asyncio
    async def test_write_failure_does_not_escape(self, settings, engine):
        def broken_pipe(line: str) -> None:
            raise BrokenPipeError("stdout closed")

        server = McpServer(tool=GenerateImageTool(settings, engine_factory=engine.factory), settings=settings, write=broken_pipe)
        await server.handle_line(_line(id=1, method="tools/list"))
