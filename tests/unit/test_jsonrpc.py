from __future__ import annotations

import json

import pytest

from toolpipe.core.errors import MalformedMessageError
from toolpipe.protocol import (
    ErrorObject,
    Notification,
    Request,
    Response,
    decode_message,
    encode_message,
)


def test_encode_is_one_compact_line() -> None:
    frame = encode_message(Request(id=1, method="tools/call", params={"name": "add", "arguments": {"a": 1}}))

    assert frame.endswith(b"\n")
    assert frame.count(b"\n") == 1
    assert json.loads(frame) == {
        "jsonrpc": "2.0",
        "id": 1,
        "method": "tools/call",
        "params": {"name": "add", "arguments": {"a": 1}},
    }


def test_encode_error_response() -> None:
    frame = encode_message(Response.failure(7, -32601, "method not found: x"))
    obj = json.loads(frame)
    assert obj == {"jsonrpc": "2.0", "id": 7, "error": {"code": -32601, "message": "method not found: x"}}


def test_decode_kinds() -> None:
    assert decode_message(b'{"jsonrpc":"2.0","id":"a","method":"ping"}') == Request(id="a", method="ping")
    assert decode_message(b'{"jsonrpc":"2.0","method":"notifications/initialized"}\n') == Notification(
        method="notifications/initialized"
    )
    assert decode_message(b'{"jsonrpc":"2.0","id":3,"result":{"tools":[]}}') == Response(
        id=3, result={"tools": []}
    )
    assert decode_message(b'{"jsonrpc":"2.0","id":4,"error":{"code":-32602,"message":"bad"}}') == Response(
        id=4, error=ErrorObject(code=-32602, message="bad")
    )


def test_decode_invalid_json() -> None:
    with pytest.raises(MalformedMessageError) as ei:
        decode_message(b"this is not json")
    assert ei.value.message.startswith("invalid JSON")
    assert ei.value.details["frame"] == "this is not json"


@pytest.mark.parametrize(
    "frame",
    [
        b"[1, 2, 3]",
        b'{"id":1,"method":"ping"}',
        b'{"jsonrpc":"1.0","id":1,"method":"ping"}',
        b'{"jsonrpc":"2.0","id":1,"method":"ping","params":[1]}',
        b'{"jsonrpc":"2.0","id":true,"method":"ping"}',
        b'{"jsonrpc":"2.0","id":1}',
        b'{"jsonrpc":"2.0","id":1,"result":{},"error":{"code":1}}',
        b'{"jsonrpc":"2.0","id":1,"error":{"message":"no code"}}',
        b'{"jsonrpc":"2.0","id":1,"result":5}',
    ],
)
def test_decode_rejects_malformed(frame: bytes) -> None:
    with pytest.raises(MalformedMessageError):
        decode_message(frame)


def test_broken_response_keeps_readable_id() -> None:
    with pytest.raises(MalformedMessageError) as ei:
        decode_message(b'{"jsonrpc":"2.0","id":5,"result":[1,2]}')
    assert ei.value.request_id == 5

    with pytest.raises(MalformedMessageError) as ei:
        decode_message(b"not json")
    assert ei.value.request_id is None
