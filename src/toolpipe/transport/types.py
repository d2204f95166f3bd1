from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class StdioServerConfig:
    """Configuration for launching a tool server over stdio.

    `env` is merged over the parent environment. `timeout_s` is the default
    per-request deadline; `shutdown_timeout_s` bounds each teardown step.
    """

    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] | None = None
    cwd: str | None = None
    timeout_s: float = 30.0
    shutdown_timeout_s: float = 5.0
