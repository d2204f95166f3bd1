from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from toolpipe.protocol.jsonrpc import RequestId


@dataclass(slots=True)
class PendingRequest:
    id: RequestId
    method: str
    deadline: float
    future: asyncio.Future[Any]


class PendingTable:
    """Request id -> in-flight request.

    Only touched from the event loop thread, and no method awaits, so every
    operation is atomic with respect to the read loop and callers.
    """

    def __init__(self) -> None:
        self._entries: dict[RequestId, PendingRequest] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._entries

    def add(self, request_id: RequestId, *, method: str, timeout_s: float) -> PendingRequest:
        if request_id in self._entries:
            raise RuntimeError(f"request id {request_id!r} is already pending")
        loop = asyncio.get_running_loop()
        entry = PendingRequest(
            id=request_id,
            method=method,
            deadline=loop.time() + timeout_s,
            future=loop.create_future(),
        )
        self._entries[request_id] = entry
        return entry

    def resolve(self, request_id: RequestId | None, value: Any) -> bool:
        """Complete a pending request. Returns False for unknown ids."""

        entry = self._entries.pop(request_id, None) if request_id is not None else None
        if entry is None:
            return False
        if not entry.future.done():
            entry.future.set_result(value)
        return True

    def fail(self, request_id: RequestId | None, exc: BaseException) -> bool:
        entry = self._entries.pop(request_id, None) if request_id is not None else None
        if entry is None:
            return False
        if not entry.future.done():
            entry.future.set_exception(exc)
        return True

    def discard(self, request_id: RequestId) -> None:
        """Remove an entry if still present. Double removal is a no-op."""

        entry = self._entries.pop(request_id, None)
        if entry is not None and not entry.future.done():
            entry.future.cancel()

    def fail_all(self, exc: BaseException) -> int:
        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            if not entry.future.done():
                entry.future.set_exception(exc)
        return len(entries)
