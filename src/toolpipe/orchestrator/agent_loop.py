from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, Sequence

from toolpipe.core.errors import LoopLimitExceeded, RequestTimeoutError, ToolpipeError
from toolpipe.core.types import Message, ToolCallResult, ToolDescriptor, ToolResultBlock, ToolUseBlock
from toolpipe.llm.client import ModelProvider
from toolpipe.observability import add_error, bind_context, get_logger, set_state
from toolpipe.observability.ids import new_session_id, new_trace_id


class LoopState(str, Enum):
    AWAITING_USER_INPUT = "AWAITING_USER_INPUT"
    AWAITING_MODEL_RESPONSE = "AWAITING_MODEL_RESPONSE"
    EXECUTING_TOOLS = "EXECUTING_TOOLS"
    DONE = "DONE"
    ERROR = "ERROR"


class ToolCaller(Protocol):
    """The part of Session the loop depends on."""

    @property
    def tools(self) -> tuple[ToolDescriptor, ...]: ...

    async def call(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        *,
        timeout_s: float | None = None,
    ) -> ToolCallResult: ...


@dataclass(slots=True)
class TurnOutput:
    text: str
    rounds: int
    tool_results: list[ToolCallResult] = field(default_factory=list)


class AgentLoop:
    """USER → MODEL → TOOLS → MODEL … → DONE | ERROR.

    History is append-only and owned here. Tool failures reported by the
    server (`is_error` results, per-call timeouts) go back to the model as
    content; transport, protocol and provider failures end the turn.
    """

    def __init__(
        self,
        *,
        provider: ModelProvider,
        session: ToolCaller,
        max_rounds: int = 8,
        parallel_tool_calls: bool = True,
    ) -> None:
        if max_rounds < 1:
            raise ValueError("max_rounds must be >= 1")
        self._provider = provider
        self._session = session
        self._max_rounds = int(max_rounds)
        self._parallel = bool(parallel_tool_calls)

        self._history: list[Message] = []
        self._state = LoopState.AWAITING_USER_INPUT
        self._busy = False
        self._session_id = new_session_id()
        self._turn_id = 0
        self._log = get_logger("toolpipe.agent")

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def history(self) -> tuple[Message, ...]:
        return tuple(self._history)

    async def run_turn(self, user_text: str) -> TurnOutput:
        if self._busy:
            raise RuntimeError("a turn is already running on this loop")
        self._busy = True
        self._turn_id += 1
        bind_context(trace_id=new_trace_id(), session_id=self._session_id, turn_id=self._turn_id)

        try:
            return await self._run(user_text)
        except ToolpipeError as e:
            self._enter(LoopState.ERROR)
            add_error(e.error_type)
            self._log.error("turn_failed", error_type=e.error_type, error=e.message)
            raise
        except BaseException:
            self._enter(LoopState.ERROR)
            raise
        finally:
            self._busy = False

    async def _run(self, user_text: str) -> TurnOutput:
        self._enter(LoopState.AWAITING_USER_INPUT)
        self._history.append(Message.user(user_text))

        rounds = 0
        tool_results: list[ToolCallResult] = []
        t0 = time.perf_counter()

        while True:
            self._enter(LoopState.AWAITING_MODEL_RESPONSE)
            reply = await self._provider.complete(tuple(self._history), self._session.tools)
            uses = reply.tool_uses

            if uses and rounds >= self._max_rounds:
                self._log.warning(
                    "loop_limit_exceeded",
                    rounds=rounds,
                    max_rounds=self._max_rounds,
                    requested=[u.name for u in uses],
                )
                raise LoopLimitExceeded(max_rounds=self._max_rounds)

            if not uses:
                self._history.append(reply)
                self._enter(LoopState.DONE)
                self._log.info(
                    "turn_complete",
                    rounds=rounds,
                    tool_calls=len(tool_results),
                    latency_ms=round((time.perf_counter() - t0) * 1000, 2),
                )
                return TurnOutput(text=reply.text, rounds=rounds, tool_results=tool_results)

            rounds += 1
            self._enter(LoopState.EXECUTING_TOOLS)
            # The tool-use reply and its results enter history together; a
            # round that fails midway leaves no unanswered tool use behind.
            results = await self._execute(uses)
            tool_results.extend(results)

            self._history.append(reply)
            self._history.append(
                Message(
                    role="user",
                    content=tuple(
                        ToolResultBlock(tool_use_id=u.id, text=r.text or "(empty result)", is_error=r.is_error)
                        for u, r in zip(uses, results)
                    ),
                )
            )

    async def _execute(self, uses: Sequence[ToolUseBlock]) -> list[ToolCallResult]:
        """Run one round of calls; results follow invocation order."""

        if not self._parallel:
            return [await self._call_one(u) for u in uses]

        outcomes = await asyncio.gather(*(self._call_one(u) for u in uses), return_exceptions=True)
        results: list[ToolCallResult] = []
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
            results.append(outcome)
        return results

    async def _call_one(self, use: ToolUseBlock) -> ToolCallResult:
        try:
            result = await self._session.call(use.name, use.arguments)
        except RequestTimeoutError as e:
            self._log.warning("tool_call_timeout", tool=use.name, tool_use_id=use.id, timeout_s=e.timeout_s)
            return ToolCallResult.from_text(use.id, f"tool call timed out after {e.timeout_s}s", is_error=True)

        self._log.info("tool_result", tool=use.name, tool_use_id=use.id, is_error=result.is_error)
        return result

    def _enter(self, state: LoopState) -> None:
        self._state = state
        set_state(state.value)
