from __future__ import annotations

from .agent_loop import AgentLoop, LoopState, ToolCaller, TurnOutput

__all__ = ["AgentLoop", "LoopState", "ToolCaller", "TurnOutput"]
