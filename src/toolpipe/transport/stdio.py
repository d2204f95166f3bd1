from __future__ import annotations

import asyncio
import os
from typing import AsyncIterator, Callable

from toolpipe.core.errors import MalformedMessageError, SpawnError, WriteFailedError
from toolpipe.observability.logging import get_logger
from toolpipe.protocol.jsonrpc import JsonRpcMessage, decode_message, encode_message

from .base import Incoming
from .types import StdioServerConfig

# Upper bound for a single line on the child's stdout.
MAX_FRAME_BYTES = 16 * 1024 * 1024


class StdioTransport:
    """Newline-delimited JSON-RPC over a child process's stdin/stdout.

    The transport owns the process: `close()` (or leaving `async with`) always
    reaps it, escalating from stdin EOF to SIGTERM to SIGKILL.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        *,
        command: str,
        shutdown_timeout_s: float = 5.0,
    ) -> None:
        self._process = process
        self._command = command
        self._shutdown_timeout_s = float(shutdown_timeout_s)
        self._write_lock = asyncio.Lock()
        self._closed = False
        self._log = get_logger("toolpipe.transport")

    @classmethod
    async def spawn(cls, cfg: StdioServerConfig) -> "StdioTransport":
        env = {**os.environ, **cfg.env} if cfg.env else None
        try:
            process = await asyncio.create_subprocess_exec(
                cfg.command,
                *cfg.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                # stderr is inherited so server logs reach the terminal.
                stderr=None,
                env=env,
                cwd=cfg.cwd,
                limit=MAX_FRAME_BYTES,
            )
        except (OSError, ValueError) as e:
            raise SpawnError(command=cfg.command, reason=str(e)) from e

        log = get_logger("toolpipe.transport")
        log.info("server_spawned", command=cfg.command, args=list(cfg.args), pid=process.pid)
        return cls(process, command=cfg.command, shutdown_timeout_s=cfg.shutdown_timeout_s)

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    @property
    def is_closing(self) -> bool:
        return self._closed

    async def send(self, message: JsonRpcMessage) -> None:
        frame = encode_message(message)
        async with self._write_lock:
            stdin = self._process.stdin
            if self._closed or stdin is None or stdin.is_closing():
                raise WriteFailedError("transport is closed")
            try:
                stdin.write(frame)
                await stdin.drain()
            except (ConnectionError, OSError) as e:
                raise WriteFailedError(f"write to server failed: {e}", details={"exc": type(e).__name__}) from e

    async def receive(self) -> AsyncIterator[Incoming]:
        """Yield decoded messages until the child's stdout reaches EOF.

        Frames that fail to decode are yielded as MalformedMessageError
        instances; the stream continues with the next line.
        """

        stdout = self._process.stdout
        if stdout is None:
            return

        while True:
            try:
                line = await stdout.readline()
            except ValueError:
                # StreamReader drops the oversized data and raises.
                yield MalformedMessageError(f"frame exceeds {MAX_FRAME_BYTES} bytes")
                continue
            except (ConnectionError, OSError) as e:
                self._log.warning("server_read_failed", error=str(e))
                return

            if not line:
                self._log.info("server_eof", pid=self._process.pid, returncode=self._process.returncode)
                return
            if not line.strip():
                continue

            item: Incoming
            try:
                item = decode_message(line)
            except MalformedMessageError as e:
                item = e
            yield item

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        proc = self._process
        try:
            if proc.stdin is not None and not proc.stdin.is_closing():
                proc.stdin.close()

            if proc.returncode is None:
                try:
                    await asyncio.wait_for(proc.wait(), timeout=self._shutdown_timeout_s)
                except TimeoutError:
                    self._log.warning("server_terminate", pid=proc.pid)
                    _signal(proc.terminate)
                    try:
                        await asyncio.wait_for(proc.wait(), timeout=self._shutdown_timeout_s)
                    except TimeoutError:
                        self._log.warning("server_kill", pid=proc.pid)
                        _signal(proc.kill)
                        await proc.wait()
        finally:
            # Reached with the process still alive only when teardown itself was
            # cancelled or failed.
            if proc.returncode is None:
                _signal(proc.kill)

        self._log.info("server_closed", pid=proc.pid, returncode=proc.returncode)

    async def __aenter__(self) -> "StdioTransport":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


def _signal(fn: Callable[[], None]) -> None:
    try:
        fn()
    except ProcessLookupError:
        pass
