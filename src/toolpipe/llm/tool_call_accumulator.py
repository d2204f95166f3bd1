"""Streaming tool-call argument accumulator.

OpenAI-compatible streaming delivers tool-call JSON arguments split across
chunks. Only the first fragment of a call carries its `id` and `name`; later
fragments carry just the `index`, so fragments are grouped by index.

All parsing is best-effort: invalid tool calls should not crash the process.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ToolCall:
    """A fully parsed tool call."""

    id: str
    name: str
    args: dict[str, Any]
    raw_args: str


@dataclass(frozen=True)
class InvalidToolCall:
    """A tool call that could not be parsed into JSON args."""

    id: str
    name: str | None
    raw_args: str
    error: str


class ToolCallAccumulator:
    """Accumulate streamed tool-call chunks into parsed ToolCall objects."""

    def __init__(self) -> None:
        self._buffers: dict[str, str] = {}
        self._names: dict[str, str] = {}
        self._ids: dict[str, str] = {}
        self._seen_order: list[str] = []

    def add_chunk(self, chunk: dict[str, Any]) -> None:
        """Consume a single tool-call delta.

        Expected keys (best-effort):
        - index: int
        - id: str (first fragment only)
        - name: str (first fragment only)
        - args: str (fragment)
        """

        idx = chunk.get("index")
        if idx is not None:
            key = f"index_{idx}"
        else:
            key = str(chunk.get("id") or "index_unknown")

        if key not in self._buffers:
            self._buffers[key] = ""
            self._seen_order.append(key)

        tool_call_id = chunk.get("id")
        if tool_call_id and key not in self._ids:
            self._ids[key] = str(tool_call_id)

        name = chunk.get("name")
        if name and key not in self._names:
            self._names[key] = name

        args_fragment = chunk.get("args")
        if isinstance(args_fragment, str) and args_fragment:
            self._buffers[key] += args_fragment

    def add_chunks(self, chunks: list[dict[str, Any]]) -> None:
        for ch in chunks:
            if isinstance(ch, dict):
                self.add_chunk(ch)

    def finalize(self) -> tuple[list[ToolCall], list[InvalidToolCall]]:
        """Finalize all known tool calls, in the order they first appeared.

        Returns:
            (tool_calls, invalid_tool_calls)
        """

        tool_calls: list[ToolCall] = []
        invalid: list[InvalidToolCall] = []

        for key in self._seen_order:
            raw = self._buffers.get(key, "")
            name = self._names.get(key)
            tool_call_id = self._ids.get(key, key)

            try:
                parsed = json.loads(raw) if raw else {}
                if not isinstance(parsed, dict):
                    raise ValueError("tool args must be a JSON object")
                if not name:
                    raise ValueError("missing tool name")

                tool_calls.append(ToolCall(id=tool_call_id, name=name, args=parsed, raw_args=raw))
            except ValueError as exc:
                invalid.append(
                    InvalidToolCall(
                        id=tool_call_id,
                        name=name,
                        raw_args=raw,
                        error=str(exc),
                    )
                )

        return tool_calls, invalid

    def reset(self) -> None:
        self._buffers.clear()
        self._names.clear()
        self._ids.clear()
        self._seen_order.clear()
