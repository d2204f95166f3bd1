from __future__ import annotations

from typing import Any, BinaryIO

from toolpipe import __version__
from toolpipe.core.errors import MalformedMessageError
from toolpipe.core.types import ToolCallRequest
from toolpipe.observability.logging import get_logger
from toolpipe.protocol.jsonrpc import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    PROTOCOL_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    JsonRpcMessage,
    Notification,
    Request,
    Response,
    decode_message,
    encode_message,
)

from .registry import ToolRegistry


class ToolServer:
    """Protocol front of a ToolRegistry.

    `handle()` is pure request -> response; transport concerns live in
    `serve_stdio()`. Calls are dispatched one at a time in arrival order, so
    handlers may share state without locking.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        name: str = "toolpipe-server",
        version: str = __version__,
        instructions: str | None = None,
    ) -> None:
        self._registry = registry
        self._name = name
        self._version = version
        self._instructions = instructions
        self._initialized = False
        self._log = get_logger("toolpipe.server")

    @property
    def initialized(self) -> bool:
        return self._initialized

    def handle(self, message: JsonRpcMessage) -> Response | None:
        if isinstance(message, Notification):
            self._log.debug("notification", method=message.method)
            return None
        if isinstance(message, Response):
            # This server never issues requests.
            self._log.warning("unexpected_response", request_id=message.id)
            return None

        params = message.params or {}
        if message.method == "initialize":
            return self._initialize(message.id, params)
        if message.method == "ping":
            return Response(id=message.id, result={})
        if message.method not in ("tools/list", "tools/call"):
            return Response.failure(message.id, METHOD_NOT_FOUND, f"method not found: {message.method}")
        if not self._initialized:
            return Response.failure(message.id, INVALID_REQUEST, "server not initialized")
        if message.method == "tools/list":
            return Response(id=message.id, result={"tools": [d.to_wire() for d in self._registry.list()]})
        return self._call_tool(message.id, params)

    def _initialize(self, request_id: Any, params: dict[str, Any]) -> Response:
        requested = params.get("protocolVersion")
        version = requested if requested in SUPPORTED_PROTOCOL_VERSIONS else PROTOCOL_VERSION
        client = params.get("clientInfo") if isinstance(params.get("clientInfo"), dict) else {}
        self._initialized = True
        self._log.info(
            "server_initialized",
            client=client.get("name"),
            requested_version=requested,
            protocol_version=version,
        )

        result: dict[str, Any] = {
            "protocolVersion": version,
            "capabilities": {"tools": {}},
            "serverInfo": {"name": self._name, "version": self._version},
        }
        if self._instructions:
            result["instructions"] = self._instructions
        return Response(id=request_id, result=result)

    def _call_tool(self, request_id: Any, params: dict[str, Any]) -> Response:
        name = params.get("name")
        arguments = params.get("arguments", {})
        if arguments is None:
            arguments = {}
        if not isinstance(name, str) or not name:
            return Response.failure(request_id, INVALID_PARAMS, "tools/call requires a string 'name'")
        if not isinstance(arguments, dict):
            return Response.failure(request_id, INVALID_PARAMS, "tools/call 'arguments' must be an object")

        result = self._registry.dispatch(ToolCallRequest(id=request_id, name=name, arguments=arguments))
        return Response(id=request_id, result=result.to_wire())


def serve_stdio(server: ToolServer, stdin: BinaryIO, stdout: BinaryIO) -> None:
    """Blocking serve loop: one JSON-RPC message per line until EOF."""

    log = get_logger("toolpipe.server")
    log.info("server_listening")

    for line in stdin:
        if not line.strip():
            continue

        try:
            message = decode_message(line)
        except MalformedMessageError as e:
            log.warning("malformed_frame", error=e.message)
            code = PARSE_ERROR if e.message.startswith("invalid JSON") else INVALID_REQUEST
            _write(stdout, Response.failure(None, code, e.message))
            continue

        try:
            reply = server.handle(message)
        except Exception as e:  # noqa: BLE001
            log.exception("handler_crashed")
            if not isinstance(message, Request):
                continue
            reply = Response.failure(message.id, INTERNAL_ERROR, f"internal error: {e}")

        if reply is not None:
            _write(stdout, reply)

    log.info("server_stdin_closed")


def _write(stdout: BinaryIO, message: Response) -> None:
    stdout.write(encode_message(message))
    stdout.flush()
