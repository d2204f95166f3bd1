"""JSON-RPC 2.0 records and the newline-delimited frame codec.

One message is one line of compact UTF-8 JSON. Method names follow MCP
(`initialize`, `tools/list`, `tools/call`, `notifications/initialized`).
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union

from toolpipe.core.errors import MalformedMessageError

JSONRPC_VERSION = "2.0"

PROTOCOL_VERSION = "2024-11-05"
SUPPORTED_PROTOCOL_VERSIONS = ("2024-11-05", "2025-03-26", "2025-06-18")

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

RequestId = Union[int, str]


@dataclass(frozen=True, slots=True)
class ErrorObject:
    code: int
    message: str
    data: Any = None

    def to_wire(self) -> dict[str, Any]:
        out: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            out["data"] = self.data
        return out


@dataclass(frozen=True, slots=True)
class Request:
    id: RequestId
    method: str
    params: dict[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class Notification:
    method: str
    params: dict[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class Response:
    id: RequestId | None
    result: dict[str, Any] | None = None
    error: ErrorObject | None = None

    @classmethod
    def failure(cls, id: RequestId | None, code: int, message: str) -> "Response":  # noqa: A002
        return cls(id=id, error=ErrorObject(code=code, message=message))


JsonRpcMessage = Union[Request, Notification, Response]


def encode_message(msg: JsonRpcMessage) -> bytes:
    obj: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION}
    if isinstance(msg, Request):
        obj["id"] = msg.id
        obj["method"] = msg.method
        if msg.params is not None:
            obj["params"] = msg.params
    elif isinstance(msg, Notification):
        obj["method"] = msg.method
        if msg.params is not None:
            obj["params"] = msg.params
    elif isinstance(msg, Response):
        obj["id"] = msg.id
        if msg.error is not None:
            obj["error"] = msg.error.to_wire()
        else:
            obj["result"] = msg.result if msg.result is not None else {}
    else:
        raise TypeError(f"not a JSON-RPC message: {type(msg).__name__}")

    return json.dumps(obj, ensure_ascii=False, separators=(",", ":")).encode("utf-8") + b"\n"


def _valid_id(v: Any) -> bool:
    return isinstance(v, (int, str)) and not isinstance(v, bool)


def decode_message(frame: bytes) -> JsonRpcMessage:
    """Decode one frame (with or without the trailing newline).

    Raises MalformedMessageError for anything that is not a well-formed
    JSON-RPC 2.0 request, notification or response.
    """

    try:
        obj = json.loads(frame.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedMessageError(f"invalid JSON: {e}", frame=frame) from e

    if not isinstance(obj, dict):
        raise MalformedMessageError("frame is not a JSON object", frame=frame)
    if obj.get("jsonrpc") != JSONRPC_VERSION:
        raise MalformedMessageError("missing or unsupported 'jsonrpc' version", frame=frame)

    params = obj.get("params")
    if params is not None and not isinstance(params, dict):
        raise MalformedMessageError("'params' must be an object", frame=frame)

    if "method" in obj:
        method = obj["method"]
        if not isinstance(method, str) or not method:
            raise MalformedMessageError("'method' must be a non-empty string", frame=frame)
        if "id" not in obj:
            return Notification(method=method, params=params)
        if not _valid_id(obj["id"]):
            raise MalformedMessageError("request 'id' must be a string or integer", frame=frame)
        return Request(id=obj["id"], method=method, params=params)

    rid = obj.get("id")
    if rid is not None and not _valid_id(rid):
        raise MalformedMessageError("response 'id' must be a string, integer or null", frame=frame)

    has_result = "result" in obj
    has_error = "error" in obj
    if has_result == has_error:
        raise MalformedMessageError(
            "response must carry exactly one of 'result' or 'error'", frame=frame, request_id=rid
        )

    if has_error:
        err = obj["error"]
        if not isinstance(err, dict) or not isinstance(err.get("code"), int):
            raise MalformedMessageError(
                "'error' must be an object with an integer 'code'", frame=frame, request_id=rid
            )
        return Response(
            id=rid,
            error=ErrorObject(code=err["code"], message=str(err.get("message", "")), data=err.get("data")),
        )

    result = obj["result"]
    if not isinstance(result, dict):
        raise MalformedMessageError("'result' must be an object", frame=frame, request_id=rid)
    return Response(id=rid, result=result)
