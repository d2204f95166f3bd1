from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import pytest

from toolpipe.core.errors import DisconnectedError, LoopLimitExceeded, RequestTimeoutError
from toolpipe.core.types import Message, TextBlock, ToolCallResult, ToolDescriptor, ToolResultBlock, ToolUseBlock
from toolpipe.llm.fake import ScriptedProvider
from toolpipe.orchestrator.agent_loop import AgentLoop, LoopState

Handler = Callable[[str, dict[str, Any]], Awaitable[ToolCallResult]]


async def _sum(name: str, arguments: dict[str, Any]) -> ToolCallResult:
    return ToolCallResult.from_text(1, str(arguments.get("a", 0) + arguments.get("b", 0)))


class FakeSession:
    def __init__(self, handler: Handler = _sum) -> None:
        self._handler = handler
        self.calls: list[tuple[str, dict[str, Any]]] = []

    @property
    def tools(self) -> tuple[ToolDescriptor, ...]:
        return (ToolDescriptor(name="add", description="Add two numbers", input_schema={"type": "object"}),)

    async def call(
        self, name: str, arguments: dict[str, Any] | None = None, *, timeout_s: float | None = None
    ) -> ToolCallResult:
        self.calls.append((name, dict(arguments or {})))
        return await self._handler(name, dict(arguments or {}))


def _use(id: str, name: str = "add", **arguments: Any) -> ToolUseBlock:  # noqa: A002
    return ToolUseBlock(id=id, name=name, arguments=arguments)


def _results(msg: Message) -> list[ToolResultBlock]:
    return [b for b in msg.content if isinstance(b, ToolResultBlock)]


def test_plain_answer_needs_no_tools() -> None:
    provider = ScriptedProvider([Message.assistant(TextBlock(text="hello"))])
    session = FakeSession()
    loop = AgentLoop(provider=provider, session=session)

    out = asyncio.run(loop.run_turn("hi"))

    assert out.text == "hello"
    assert out.rounds == 0
    assert loop.state is LoopState.DONE
    assert [m.role for m in loop.history] == ["user", "assistant"]
    assert session.calls == []


def test_single_tool_round() -> None:
    provider = ScriptedProvider([Message.assistant(_use("call_1", a=15, b=27))])
    session = FakeSession()
    loop = AgentLoop(provider=provider, session=session)

    out = asyncio.run(loop.run_turn("What is 15 + 27?"))

    assert session.calls == [("add", {"a": 15, "b": 27})]
    assert out.rounds == 1
    assert out.text == "(fake) 42"
    assert loop.state is LoopState.DONE

    history = loop.history
    assert [m.role for m in history] == ["user", "assistant", "user", "assistant"]
    assert _results(history[2]) == [ToolResultBlock(tool_use_id="call_1", text="42")]

    assert provider.requests[0].tool_names == ("add",)
    assert len(provider.requests[1].history) == 3


def test_round_limit_stops_the_turn() -> None:
    provider = ScriptedProvider(
        [
            Message.assistant(_use("call_1", a=1, b=1)),
            Message.assistant(_use("call_2", a=2, b=2)),
        ]
    )
    session = FakeSession()
    loop = AgentLoop(provider=provider, session=session, max_rounds=1)

    with pytest.raises(LoopLimitExceeded):
        asyncio.run(loop.run_turn("loop forever"))

    assert loop.state is LoopState.ERROR
    assert len(session.calls) == 1
    # The unanswered tool request is not kept.
    assert [m.role for m in loop.history] == ["user", "assistant", "user"]


def test_tool_errors_are_fed_back_to_the_model() -> None:
    async def divide(name: str, arguments: dict[str, Any]) -> ToolCallResult:
        return ToolCallResult.from_text(1, "Division by zero is not allowed", is_error=True)

    provider = ScriptedProvider([Message.assistant(_use("call_1", "divide", a=1, b=0))])
    loop = AgentLoop(provider=provider, session=FakeSession(divide))

    out = asyncio.run(loop.run_turn("1/0?"))

    assert loop.state is LoopState.DONE
    assert out.tool_results[0].is_error is True
    assert _results(loop.history[2]) == [
        ToolResultBlock(tool_use_id="call_1", text="Division by zero is not allowed", is_error=True)
    ]


def test_timeout_becomes_error_result() -> None:
    async def slow(name: str, arguments: dict[str, Any]) -> ToolCallResult:
        raise RequestTimeoutError(method="tools/call", timeout_s=0.5)

    provider = ScriptedProvider([Message.assistant(_use("call_1"))])
    loop = AgentLoop(provider=provider, session=FakeSession(slow))

    asyncio.run(loop.run_turn("go"))

    [block] = _results(loop.history[2])
    assert block.is_error is True
    assert block.text == "tool call timed out after 0.5s"
    assert loop.state is LoopState.DONE


def test_disconnect_ends_turn_in_error() -> None:
    async def gone(name: str, arguments: dict[str, Any]) -> ToolCallResult:
        raise DisconnectedError("server closed the connection")

    provider = ScriptedProvider([Message.assistant(_use("call_1"))])
    loop = AgentLoop(provider=provider, session=FakeSession(gone))

    with pytest.raises(DisconnectedError):
        asyncio.run(loop.run_turn("go"))
    assert loop.state is LoopState.ERROR


def test_parallel_results_keep_invocation_order() -> None:
    async def staggered(name: str, arguments: dict[str, Any]) -> ToolCallResult:
        # The first call finishes last.
        await asyncio.sleep(0.05 if arguments["a"] == 1 else 0)
        return await _sum(name, arguments)

    provider = ScriptedProvider(
        [Message.assistant(_use("call_a", a=1, b=0), _use("call_b", a=2, b=0), _use("call_c", a=3, b=0))]
    )
    loop = AgentLoop(provider=provider, session=FakeSession(staggered))

    asyncio.run(loop.run_turn("three at once"))

    blocks = _results(loop.history[2])
    assert [(b.tool_use_id, b.text) for b in blocks] == [("call_a", "1"), ("call_b", "2"), ("call_c", "3")]


def test_serial_mode_runs_one_call_at_a_time() -> None:
    active = 0
    peak = 0

    async def tracked(name: str, arguments: dict[str, Any]) -> ToolCallResult:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return await _sum(name, arguments)

    provider = ScriptedProvider([Message.assistant(_use("c1", a=1), _use("c2", a=2))])
    loop = AgentLoop(provider=provider, session=FakeSession(tracked), parallel_tool_calls=False)

    asyncio.run(loop.run_turn("one by one"))
    assert peak == 1


def test_history_carries_over_between_turns() -> None:
    provider = ScriptedProvider()
    loop = AgentLoop(provider=provider, session=FakeSession())

    asyncio.run(loop.run_turn("first"))
    asyncio.run(loop.run_turn("second"))

    assert [m.text for m in loop.history] == ["first", "(fake) first", "second", "(fake) second"]
    assert len(provider.requests[1].history) == 3


def test_max_rounds_must_be_positive() -> None:
    with pytest.raises(ValueError):
        AgentLoop(provider=ScriptedProvider(), session=FakeSession(), max_rounds=0)


def test_single_round_allowed_at_limit_one() -> None:
    provider = ScriptedProvider(
        [
            Message.assistant(_use("call_1", a=15, b=27)),
            Message.assistant(TextBlock(text="The answer is 42.")),
        ]
    )
    loop = AgentLoop(provider=provider, session=FakeSession(), max_rounds=1)

    out = asyncio.run(loop.run_turn("What is 15 + 27?"))

    assert out.text == "The answer is 42."
    assert out.rounds == 1
    assert loop.state is LoopState.DONE
    assert [m.role for m in loop.history] == ["user", "assistant", "user", "assistant"]


def test_failed_round_leaves_no_unanswered_tool_use() -> None:
    async def gone(name: str, arguments: dict[str, Any]) -> ToolCallResult:
        raise DisconnectedError("server closed the connection")

    provider = ScriptedProvider([Message.assistant(_use("call_1"))])
    loop = AgentLoop(provider=provider, session=FakeSession(gone))

    with pytest.raises(DisconnectedError):
        asyncio.run(loop.run_turn("go"))

    assert [m.role for m in loop.history] == ["user"]
    assert not any(m.tool_uses for m in loop.history)
