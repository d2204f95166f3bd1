from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Union

from pydantic import BaseModel


@dataclass(frozen=True, slots=True)
class ToolDescriptor:
    """A tool as published by the server: name, description, JSON Schema."""

    name: str
    description: str
    input_schema: dict[str, Any]

    @classmethod
    def from_model(cls, name: str, description: str, model: type[BaseModel]) -> "ToolDescriptor":
        return cls(name=name, description=description, input_schema=model.model_json_schema())

    @classmethod
    def from_wire(cls, obj: dict[str, Any]) -> "ToolDescriptor":
        schema = obj.get("inputSchema")
        return cls(
            name=str(obj["name"]),
            description=str(obj.get("description") or ""),
            input_schema=dict(schema) if isinstance(schema, dict) else {"type": "object", "properties": {}},
        )

    def to_wire(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description, "inputSchema": self.input_schema}


@dataclass(frozen=True, slots=True)
class ToolCallRequest:
    id: int | str
    name: str
    arguments: dict[str, Any]


@dataclass(frozen=True, slots=True)
class ToolCallResult:
    id: int | str
    content: list[dict[str, Any]]
    is_error: bool = False

    @classmethod
    def from_text(cls, id: int | str, text: str, *, is_error: bool = False) -> "ToolCallResult":  # noqa: A002
        return cls(id=id, content=[{"type": "text", "text": text}], is_error=is_error)

    @classmethod
    def from_wire(cls, id: int | str, obj: dict[str, Any]) -> "ToolCallResult":  # noqa: A002
        content = obj.get("content") or []
        blocks = [dict(b) for b in content if isinstance(b, dict)] if isinstance(content, list) else []
        return cls(id=id, content=blocks, is_error=bool(obj.get("isError", False)))

    @property
    def text(self) -> str:
        """Concatenated text blocks; non-text blocks are ignored."""

        parts = [b["text"] for b in self.content if b.get("type") == "text" and isinstance(b.get("text"), str)]
        return "\n".join(parts)

    def to_wire(self) -> dict[str, Any]:
        return {"content": list(self.content), "isError": self.is_error}


@dataclass(frozen=True, slots=True)
class ServerInfo:
    name: str
    version: str
    protocol_version: str
    instructions: str | None = None
    capabilities: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class TextBlock:
    text: str
    type: Literal["text"] = "text"


@dataclass(frozen=True, slots=True)
class ToolUseBlock:
    id: str
    name: str
    arguments: dict[str, Any]
    type: Literal["tool_use"] = "tool_use"


@dataclass(frozen=True, slots=True)
class ToolResultBlock:
    tool_use_id: str
    text: str
    is_error: bool = False
    type: Literal["tool_result"] = "tool_result"


ContentBlock = Union[TextBlock, ToolUseBlock, ToolResultBlock]


@dataclass(frozen=True, slots=True)
class Message:
    role: Literal["user", "assistant"]
    content: tuple[ContentBlock, ...]

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role="user", content=(TextBlock(text=text),))

    @classmethod
    def assistant(cls, *blocks: ContentBlock) -> "Message":
        return cls(role="assistant", content=tuple(blocks))

    @property
    def text(self) -> str:
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.content if isinstance(b, ToolUseBlock)]
