from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from toolpipe.core.types import Message, TextBlock, ToolDescriptor, ToolResultBlock


@dataclass(frozen=True, slots=True)
class ProviderRequest:
    history: tuple[Message, ...]
    tool_names: tuple[str, ...]


class ScriptedProvider:
    """Offline stub for running the agent loop without network/API.

    Returns the queued replies in order. Once the script is exhausted it
    answers with plain text echoing the latest tool result (or user text),
    which ends the turn.
    """

    def __init__(self, replies: Iterable[Message] = ()) -> None:
        self._replies = list(replies)
        self.requests: list[ProviderRequest] = []

    async def complete(self, history: Sequence[Message], tools: Sequence[ToolDescriptor]) -> Message:
        self.requests.append(ProviderRequest(history=tuple(history), tool_names=tuple(t.name for t in tools)))
        if self._replies:
            return self._replies.pop(0)
        return Message.assistant(TextBlock(text=f"(fake) {_last_text(history)}"))


def _last_text(history: Sequence[Message]) -> str:
    for msg in reversed(history):
        for block in reversed(msg.content):
            if isinstance(block, ToolResultBlock):
                return block.text
            if isinstance(block, TextBlock) and msg.role == "user":
                return block.text
    return ""
