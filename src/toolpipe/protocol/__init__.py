from __future__ import annotations

from .jsonrpc import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    PROTOCOL_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    ErrorObject,
    JsonRpcMessage,
    Notification,
    Request,
    Response,
    decode_message,
    encode_message,
)

__all__ = [
    "INTERNAL_ERROR",
    "INVALID_PARAMS",
    "INVALID_REQUEST",
    "METHOD_NOT_FOUND",
    "PARSE_ERROR",
    "PROTOCOL_VERSION",
    "SUPPORTED_PROTOCOL_VERSIONS",
    "ErrorObject",
    "JsonRpcMessage",
    "Notification",
    "Request",
    "Response",
    "decode_message",
    "encode_message",
]
