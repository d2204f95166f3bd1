from __future__ import annotations

from typing import AsyncIterator, Protocol, Union

from toolpipe.core.errors import MalformedMessageError
from toolpipe.protocol.jsonrpc import JsonRpcMessage

Incoming = Union[JsonRpcMessage, MalformedMessageError]


class Transport(Protocol):
    """Smallest channel surface the Session needs.

    Socket or HTTP transports can be dropped in as long as they keep the same
    contract: serialized sends, ordered receives, EOF ends `receive()`.
    """

    async def send(self, message: JsonRpcMessage) -> None:
        """Write one message. Raises WriteFailedError when the channel is gone."""
        ...

    def receive(self) -> AsyncIterator[Incoming]: ...

    async def close(self) -> None: ...
