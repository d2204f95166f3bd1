"""OpenAI-compatible model provider.

Uses the official `openai` SDK against any chat-completions endpoint
(`base_url`), always streaming; tool-call argument fragments are merged by
ToolCallAccumulator.
"""

from __future__ import annotations

import time
from typing import Any, Protocol, Sequence

import openai
from openai import AsyncOpenAI

from toolpipe.core.config import ProviderConfig
from toolpipe.core.errors import ProviderError
from toolpipe.core.types import ContentBlock, Message, TextBlock, ToolDescriptor, ToolUseBlock
from toolpipe.observability.ids import new_tool_use_id
from toolpipe.observability.logging import get_logger

from .messages import to_openai_messages, to_openai_tools
from .tool_call_accumulator import ToolCallAccumulator


class ModelProvider(Protocol):
    async def complete(self, history: Sequence[Message], tools: Sequence[ToolDescriptor]) -> Message:
        """Return the next assistant message for `history`."""
        ...


def _get(obj: Any, key: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


class OpenAIChatProvider:
    def __init__(self, cfg: ProviderConfig, *, client: AsyncOpenAI | None = None) -> None:
        self._cfg = cfg
        self._client = client or AsyncOpenAI(
            api_key=cfg.api_key,
            base_url=cfg.base_url,
            timeout=cfg.timeout_s,
            max_retries=cfg.max_retries,
        )
        self._log = get_logger("toolpipe.provider")

    async def complete(self, history: Sequence[Message], tools: Sequence[ToolDescriptor]) -> Message:
        request: dict[str, Any] = {
            "model": self._cfg.model,
            "messages": to_openai_messages(history, system_prompt=self._cfg.system_prompt),
            "max_tokens": self._cfg.max_tokens,
            "stream": True,
        }
        if tools:
            request["tools"] = to_openai_tools(tools)
            request["tool_choice"] = "auto"

        acc = ToolCallAccumulator()
        text_parts: list[str] = []
        t0 = time.perf_counter()

        try:
            stream = await self._client.chat.completions.create(**request)
            async for ev in stream:
                choices = _get(ev, "choices") or []
                if not choices:
                    continue
                delta = _get(choices[0], "delta")
                if delta is None:
                    continue

                content = _get(delta, "content")
                if isinstance(content, str) and content:
                    text_parts.append(content)

                for tc in _get(delta, "tool_calls") or []:
                    fn = _get(tc, "function")
                    acc.add_chunk(
                        {
                            "index": _get(tc, "index"),
                            "id": _get(tc, "id"),
                            "name": _get(fn, "name") if fn is not None else None,
                            "args": _get(fn, "arguments") if fn is not None else None,
                        }
                    )
        except openai.OpenAIError as e:
            self._log.error("provider_failed", model=self._cfg.model, error=str(e), exc=type(e).__name__)
            raise ProviderError(f"model provider request failed: {e}", details={"exc": type(e).__name__}) from e

        tool_calls, invalid = acc.finalize()
        for bad in invalid:
            self._log.warning("invalid_tool_call_dropped", tool_call_id=bad.id, tool=bad.name, error=bad.error)

        blocks: list[ContentBlock] = []
        text = "".join(text_parts)
        if text:
            blocks.append(TextBlock(text=text))
        for tc in tool_calls:
            tool_use_id = tc.id if not tc.id.startswith("index_") else new_tool_use_id()
            blocks.append(ToolUseBlock(id=tool_use_id, name=tc.name, arguments=tc.args))

        self._log.info(
            "provider_complete",
            model=self._cfg.model,
            latency_ms=round((time.perf_counter() - t0) * 1000, 2),
            assistant_text_len=len(text),
            tool_calls=len(tool_calls),
        )
        return Message.assistant(*blocks)
