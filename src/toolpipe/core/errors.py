from __future__ import annotations


class ToolpipeError(RuntimeError):
    """Base exception for this project.

    Every failure carries a stable `error_type` plus free-form `details` so
    callers (and logs) can branch on the kind of failure without parsing the
    message.
    """

    error_type = "toolpipe_error"

    def __init__(self, message: str, *, details: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigError(ToolpipeError):
    """Raised when configuration is invalid or incomplete."""

    error_type = "config_error"

    def __init__(self, message: str, *, path: str | None = None):
        super().__init__(f"{path}: {message}" if path else message, details={"path": path} if path else None)
        self.path = path


class SpawnError(ToolpipeError):
    error_type = "spawn_failed"

    def __init__(self, *, command: str, reason: str) -> None:
        super().__init__(
            f"Failed to start {command!r}: {reason}",
            details={"command": command, "reason": reason},
        )
        self.command = command


class TransportError(ToolpipeError):
    """The pipe to the child process is unusable. Fatal to the session."""

    error_type = "transport_error"


class WriteFailedError(TransportError):
    error_type = "write_failed"


class DisconnectedError(TransportError):
    error_type = "disconnected"


class ProtocolError(ToolpipeError):
    error_type = "protocol_error"


class MalformedMessageError(ProtocolError):
    """A single frame could not be decoded. The channel stays usable.

    `request_id` is set when the frame is a broken response whose id could
    still be read, so the waiting request can be failed at once.
    """

    error_type = "malformed"

    def __init__(
        self,
        message: str,
        *,
        frame: bytes | None = None,
        request_id: int | str | None = None,
    ) -> None:
        preview = frame[:200].decode("utf-8", errors="replace") if frame else ""
        super().__init__(message, details={"frame": preview} if preview else None)
        self.frame = frame
        self.request_id = request_id


class VersionMismatchError(ProtocolError):
    error_type = "version_mismatch"

    def __init__(self, *, requested: str, offered: object) -> None:
        super().__init__(
            f"Server offered unsupported protocol version {offered!r} (requested {requested!r})",
            details={"requested": requested, "offered": str(offered)},
        )
        self.requested = requested
        self.offered = offered


class RemoteError(ProtocolError):
    """The server answered a request with a JSON-RPC error object."""

    error_type = "remote_error"

    def __init__(self, *, code: int, message: str, method: str | None = None) -> None:
        details = {"code": str(code)}
        if method:
            details["method"] = method
        super().__init__(message, details=details)
        self.code = code


class RequestTimeoutError(ToolpipeError):
    error_type = "timeout"

    def __init__(self, *, method: str, timeout_s: float) -> None:
        super().__init__(
            f"{method} timed out after {timeout_s}s",
            details={"method": method, "timeout_s": str(timeout_s)},
        )
        self.timeout_s = timeout_s


class ToolError(ToolpipeError):
    """Raise in a tool handler to report a domain failure (division by zero, ...).

    The dispatcher turns it into an `is_error` result; it never crosses the
    process boundary as an exception.
    """

    error_type = "tool_error"


class ArgumentValidationError(ToolpipeError):
    error_type = "invalid_arguments"


class ProviderError(ToolpipeError):
    """The model provider call failed."""

    error_type = "provider_error"


class LoopLimitExceeded(ToolpipeError):
    error_type = "loop_limit_exceeded"

    def __init__(self, *, max_rounds: int) -> None:
        super().__init__(
            f"Model requested more than {max_rounds} tool round(s) in one turn",
            details={"max_rounds": str(max_rounds)},
        )
        self.max_rounds = max_rounds
