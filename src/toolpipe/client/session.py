from __future__ import annotations

import asyncio
import itertools
from typing import Any

from toolpipe import __version__
from toolpipe.core.errors import (
    DisconnectedError,
    MalformedMessageError,
    ProtocolError,
    RemoteError,
    RequestTimeoutError,
    VersionMismatchError,
    WriteFailedError,
)
from toolpipe.core.types import ServerInfo, ToolCallResult, ToolDescriptor
from toolpipe.observability import bind_server, get_logger
from toolpipe.protocol.jsonrpc import (
    METHOD_NOT_FOUND,
    PROTOCOL_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    Notification,
    Request,
    RequestId,
    Response,
)
from toolpipe.transport.base import Transport
from toolpipe.transport.stdio import StdioTransport
from toolpipe.transport.types import StdioServerConfig

from .pending import PendingTable

# How long shutdown waits for the read loop to observe EOF before cancelling it.
_READER_DRAIN_S = 1.0


class Session:
    """One protocol connection to one tool server.

    A background read task drains the transport and resolves pending requests
    by id, so any number of `call()`s can be in flight and complete in any
    order. Typical use::

        async with await Session.connect(cfg) as session:
            await session.list_tools()
            result = await session.call("add", {"a": 1, "b": 2})
    """

    def __init__(
        self,
        transport: Transport,
        *,
        request_timeout_s: float = 30.0,
        client_name: str = "toolpipe",
        client_version: str = __version__,
    ) -> None:
        self._transport = transport
        self._timeout_s = float(request_timeout_s)
        self._client_info = {"name": client_name, "version": client_version}
        self._pending = PendingTable()
        self._ids = itertools.count(1)
        self._tools: tuple[ToolDescriptor, ...] = ()
        self._server_info: ServerInfo | None = None
        self._reader: asyncio.Task[None] | None = None
        self._closed = False
        self._shutting_down = False
        self._log = get_logger("toolpipe.session")

    @classmethod
    async def connect(cls, cfg: StdioServerConfig) -> "Session":
        """Spawn the server, start reading and run the handshake."""

        transport = await StdioTransport.spawn(cfg)
        session = cls(transport, request_timeout_s=cfg.timeout_s)
        session.start()
        try:
            await session.initialize()
        except BaseException:
            await session.shutdown()
            raise
        return session

    @property
    def server_info(self) -> ServerInfo | None:
        return self._server_info

    @property
    def tools(self) -> tuple[ToolDescriptor, ...]:
        """Catalog snapshot from the last `list_tools()`."""
        return self._tools

    @property
    def is_open(self) -> bool:
        return not self._closed

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def start(self) -> None:
        if self._reader is None:
            self._reader = asyncio.create_task(self._read_loop(), name="toolpipe-session-reader")

    async def initialize(self) -> ServerInfo:
        result = await self._request(
            "initialize",
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": dict(self._client_info),
            },
        )

        offered = result.get("protocolVersion")
        if offered not in SUPPORTED_PROTOCOL_VERSIONS:
            raise VersionMismatchError(requested=PROTOCOL_VERSION, offered=offered)

        raw_info = result.get("serverInfo")
        server = raw_info if isinstance(raw_info, dict) else {}
        capabilities = result.get("capabilities")
        instructions = result.get("instructions")
        info = ServerInfo(
            name=str(server.get("name", "")),
            version=str(server.get("version", "")),
            protocol_version=str(offered),
            instructions=instructions if isinstance(instructions, str) else None,
            capabilities=dict(capabilities) if isinstance(capabilities, dict) else {},
        )

        await self.notify("notifications/initialized")
        self._server_info = info
        bind_server(info.name)
        self._log.info(
            "session_initialized",
            server=info.name,
            server_version=info.version,
            protocol_version=info.protocol_version,
        )
        return info

    async def list_tools(self) -> list[ToolDescriptor]:
        """Fetch the full catalog (following pagination) and replace the cache."""

        self._require_initialized()

        tools: list[ToolDescriptor] = []
        cursor: str | None = None
        while True:
            result = await self._request("tools/list", {"cursor": cursor} if cursor else {})
            raw_tools = result.get("tools")
            if not isinstance(raw_tools, list):
                raise ProtocolError("tools/list result has no 'tools' list")
            for obj in raw_tools:
                if not isinstance(obj, dict) or not isinstance(obj.get("name"), str):
                    raise ProtocolError("tools/list returned a tool without a name")
                tools.append(ToolDescriptor.from_wire(obj))

            next_cursor = result.get("nextCursor")
            if not isinstance(next_cursor, str) or not next_cursor:
                break
            cursor = next_cursor

        self._tools = tuple(tools)
        self._log.info("tools_discovered", tools=[t.name for t in self._tools])
        return list(self._tools)

    async def call(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        *,
        timeout_s: float | None = None,
    ) -> ToolCallResult:
        """Invoke one tool.

        Raises RequestTimeoutError when the deadline passes,
        DisconnectedError when the server goes away and MalformedMessageError
        when the answer cannot be decoded. A JSON-RPC error answer is returned
        as an `is_error` result: it concerns this call only.
        """

        if not isinstance(name, str) or not name:
            raise ValueError("tool name must be a non-empty string")
        if arguments is not None and not isinstance(arguments, dict):
            raise ValueError("tool arguments must be a dict")
        self._require_initialized()

        request_id = self._next_id()
        args = dict(arguments or {})
        try:
            result = await self._request(
                "tools/call",
                {"name": name, "arguments": args},
                timeout_s=timeout_s,
                request_id=request_id,
            )
        except RemoteError as e:
            self._log.warning("tool_call_rejected", tool=name, request_id=request_id, code=e.code, error=e.message)
            return ToolCallResult.from_text(request_id, e.message, is_error=True)

        out = ToolCallResult.from_wire(request_id, result)
        self._log.info("tool_call_done", tool=name, request_id=request_id, is_error=out.is_error)
        return out

    async def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        self._ensure_open()
        await self._transport.send(Notification(method=method, params=params))

    async def shutdown(self) -> None:
        """Fail all pending requests, close the transport, stop the reader."""

        if self._shutting_down:
            return
        self._shutting_down = True
        self._closed = True

        cancelled = self._pending.fail_all(DisconnectedError("session shut down"))
        if cancelled:
            self._log.warning("pending_requests_cancelled", count=cancelled)

        try:
            await self._transport.close()
        finally:
            reader = self._reader
            if reader is not None:
                if not reader.done():
                    await asyncio.wait({reader}, timeout=_READER_DRAIN_S)
                if not reader.done():
                    reader.cancel()
                await asyncio.gather(reader, return_exceptions=True)
            self._log.info("session_closed")

    async def __aenter__(self) -> "Session":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    def _next_id(self) -> int:
        return next(self._ids)

    def _ensure_open(self) -> None:
        if self._closed:
            raise DisconnectedError("session is closed")

    def _require_initialized(self) -> None:
        self._ensure_open()
        if self._server_info is None:
            raise ProtocolError("session is not initialized; call initialize() first")

    async def _request(
        self,
        method: str,
        params: dict[str, Any] | None,
        *,
        timeout_s: float | None = None,
        request_id: RequestId | None = None,
    ) -> dict[str, Any]:
        self._ensure_open()
        self.start()

        timeout = self._timeout_s if timeout_s is None else float(timeout_s)
        rid = request_id if request_id is not None else self._next_id()
        entry = self._pending.add(rid, method=method, timeout_s=timeout)

        try:
            # The entry's deadline bounds the write as well as the wait.
            async with asyncio.timeout_at(entry.deadline):
                await self._transport.send(Request(id=rid, method=method, params=params))
                return await entry.future
        except TimeoutError as e:
            self._log.warning("request_timeout", method=method, request_id=rid, timeout_s=timeout)
            raise RequestTimeoutError(method=method, timeout_s=timeout) from e
        finally:
            self._pending.discard(rid)

    async def _read_loop(self) -> None:
        reason = "server closed the connection"
        try:
            async for item in self._transport.receive():
                if isinstance(item, MalformedMessageError):
                    self._on_malformed(item)
                elif isinstance(item, Response):
                    self._on_response(item)
                elif isinstance(item, Request):
                    await self._on_server_request(item)
                else:
                    self._log.debug("server_notification", method=item.method)
        except asyncio.CancelledError:
            reason = "session shut down"
            raise
        except Exception as e:  # noqa: BLE001
            reason = f"read loop failed: {e}"
            self._log.exception("read_loop_failed")
        finally:
            self._closed = True
            failed = self._pending.fail_all(DisconnectedError(reason))
            if failed:
                self._log.warning("pending_requests_disconnected", count=failed, reason=reason)

    def _on_malformed(self, error: MalformedMessageError) -> None:
        failed = error.request_id is not None and self._pending.fail(error.request_id, error)
        self._log.warning(
            "malformed_frame",
            error=error.message,
            request_id=error.request_id,
            request_failed=failed,
            **error.details,
        )

    def _on_response(self, response: Response) -> None:
        if response.error is not None:
            matched = self._pending.fail(
                response.id,
                RemoteError(code=response.error.code, message=response.error.message),
            )
        else:
            matched = self._pending.resolve(response.id, response.result or {})

        if not matched:
            # Late (timed out) or never issued; must not touch other entries.
            self._log.warning("unsolicited_response", request_id=response.id)

    async def _on_server_request(self, request: Request) -> None:
        if request.method == "ping":
            reply = Response(id=request.id, result={})
        else:
            reply = Response.failure(request.id, METHOD_NOT_FOUND, f"method not supported by client: {request.method}")
        try:
            await self._transport.send(reply)
        except WriteFailedError as e:
            self._log.warning("server_request_reply_failed", method=request.method, error=e.message)
