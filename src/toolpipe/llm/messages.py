from __future__ import annotations

import json
from typing import Any, Sequence

from toolpipe.core.types import Message, TextBlock, ToolDescriptor, ToolResultBlock, ToolUseBlock


def to_openai_tools(tools: Sequence[ToolDescriptor]) -> list[dict[str, Any]]:
    """Tool catalog in OpenAI-compatible `function` format."""

    out: list[dict[str, Any]] = []
    for t in tools:
        parameters = t.input_schema if t.input_schema.get("type") == "object" else {"type": "object", "properties": {}}
        out.append(
            {
                "type": "function",
                "function": {
                    "name": t.name,
                    "description": t.description,
                    "parameters": parameters,
                },
            }
        )
    return out


def to_openai_messages(history: Sequence[Message], *, system_prompt: str | None = None) -> list[dict[str, Any]]:
    """Flatten block-structured history into chat-completions messages.

    - assistant tool-use blocks become `tool_calls` on the assistant message;
    - each tool-result block becomes its own `role: "tool"` message;
    - text blocks are concatenated.
    """

    out: list[dict[str, Any]] = []
    if system_prompt:
        out.append({"role": "system", "content": system_prompt})

    for msg in history:
        text = "".join(b.text for b in msg.content if isinstance(b, TextBlock))

        if msg.role == "assistant":
            uses = [b for b in msg.content if isinstance(b, ToolUseBlock)]
            entry: dict[str, Any] = {"role": "assistant", "content": text or None}
            if uses:
                entry["tool_calls"] = [
                    {
                        "id": u.id,
                        "type": "function",
                        "function": {"name": u.name, "arguments": json.dumps(u.arguments, ensure_ascii=False)},
                    }
                    for u in uses
                ]
            out.append(entry)
            continue

        for b in msg.content:
            if isinstance(b, ToolResultBlock):
                content = f"Error: {b.text}" if b.is_error else b.text
                out.append({"role": "tool", "tool_call_id": b.tool_use_id, "content": content})
        if text:
            out.append({"role": "user", "content": text})

    return out
