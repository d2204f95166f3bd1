"""Per-task logging context.

Values set here are merged into every JSON log record emitted from the same
asyncio task (and tasks created after the value was set).
"""

from __future__ import annotations

from contextvars import ContextVar
from typing import Any

_trace_id: ContextVar[str | None] = ContextVar("trace_id", default=None)
_session_id: ContextVar[str | None] = ContextVar("session_id", default=None)
_turn_id: ContextVar[int | None] = ContextVar("turn_id", default=None)
_state: ContextVar[str | None] = ContextVar("state", default=None)
_server: ContextVar[str | None] = ContextVar("server", default=None)
_errors: ContextVar[tuple[str, ...]] = ContextVar("errors", default=())

_SCALARS: tuple[tuple[str, ContextVar[Any]], ...] = (
    ("trace_id", _trace_id),
    ("session_id", _session_id),
    ("turn_id", _turn_id),
    ("state", _state),
    ("server", _server),
)


def bind_context(*, trace_id: str, session_id: str, turn_id: int) -> None:
    """Start a new turn: fresh trace id, error list reset."""

    _trace_id.set(trace_id)
    _session_id.set(session_id)
    _turn_id.set(turn_id)
    _errors.set(())


def bind_server(name: str) -> None:
    _server.set(name or None)


def set_state(state: str) -> None:
    _state.set(state)


def add_error(error_type: str) -> None:
    _errors.set(_errors.get() + (error_type,))


def snapshot() -> dict[str, object]:
    out: dict[str, object] = {k: v for k, var in _SCALARS if (v := var.get()) is not None}
    if errs := _errors.get():
        out["errors"] = list(errs)
    return out
