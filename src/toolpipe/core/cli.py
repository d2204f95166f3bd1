from __future__ import annotations

import argparse
import asyncio
import dataclasses
import os
import sys
from pathlib import Path
from typing import Sequence, TextIO

from toolpipe.client.session import Session
from toolpipe.llm.client import ModelProvider, OpenAIChatProvider
from toolpipe.llm.fake import ScriptedProvider
from toolpipe.observability.logging import configure_logging, get_logger
from toolpipe.orchestrator.agent_loop import AgentLoop

from .config import API_KEY_ENV, AppConfig, load_config
from .errors import ConfigError, LoopLimitExceeded, ProviderError, ToolpipeError

DEFAULT_CONFIG = Path("configs/app.yaml")

_QUIT = {"quit", "exit"}


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="toolpipe",
        description="Chat with a model that can call tools served by a stdio child process",
    )
    p.add_argument("--config", type=Path, default=None, help=f"YAML config path (default: {DEFAULT_CONFIG} if present)")
    p.add_argument(
        "--log-level",
        default=None,
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level",
    )
    p.add_argument("--text", default=None, help="Run a single turn with this input and exit")
    p.add_argument("--fake", action="store_true", help="Use the scripted offline provider (no API key needed)")
    p.add_argument("--server", default=None, help="Tool server executable (overrides config)")
    p.add_argument(
        "--server-arg",
        action="append",
        dest="server_args",
        default=None,
        help="Argument for --server (repeatable)",
    )
    p.add_argument("--max-rounds", type=int, default=None, help="Max model/tool round trips per turn")
    return p


def _apply_overrides(cfg: AppConfig, ns: argparse.Namespace) -> AppConfig:
    server = cfg.server
    if ns.server is not None:
        server = dataclasses.replace(server, command=ns.server, args=list(ns.server_args or []))
    elif ns.server_args is not None:
        server = dataclasses.replace(server, args=list(ns.server_args))

    agent = cfg.agent
    if ns.max_rounds is not None:
        if ns.max_rounds < 1:
            raise ConfigError("must be an integer >= 1", path="--max-rounds")
        agent = dataclasses.replace(agent, max_rounds=ns.max_rounds)

    return dataclasses.replace(cfg, server=server, agent=agent)


async def _interactive(loop: AgentLoop, *, out: TextIO) -> int:
    out.write("Tool chat. Type 'quit' or 'exit' to stop.\n\n")
    while True:
        try:
            line = await asyncio.to_thread(input, "You: ")
        except EOFError:
            return 0

        text = line.strip()
        if not text:
            continue
        if text in _QUIT:
            out.write("Goodbye!\n")
            return 0

        try:
            turn = await loop.run_turn(text)
        except (LoopLimitExceeded, ProviderError) as e:
            # Fatal to this turn only.
            out.write(f"Error: {e}\n\n")
            continue
        out.write(f"Assistant: {turn.text}\n\n")
        out.flush()


async def run(cfg: AppConfig, *, text: str | None, provider: ModelProvider, out: TextIO = sys.stdout) -> int:
    session = await Session.connect(cfg.server)
    try:
        await session.list_tools()
        loop = AgentLoop(
            provider=provider,
            session=session,
            max_rounds=cfg.agent.max_rounds,
            parallel_tool_calls=cfg.agent.parallel_tool_calls,
        )
        if text is not None:
            turn = await loop.run_turn(text)
            out.write(turn.text + "\n")
            return 0
        return await _interactive(loop, out=out)
    finally:
        await session.shutdown()


def main(argv: Sequence[str] | None = None) -> int:
    ns = _build_parser().parse_args(argv)
    configure_logging(level=ns.log_level or "INFO")
    log = get_logger("toolpipe.cli")

    # Offline stub: allow running without a real key.
    if ns.fake and not os.getenv(API_KEY_ENV):
        os.environ[API_KEY_ENV] = "k_fake"

    try:
        config_path = ns.config if ns.config is not None else (DEFAULT_CONFIG if DEFAULT_CONFIG.exists() else None)
        cfg = _apply_overrides(load_config(config_path), ns)
        if ns.log_level is None:
            configure_logging(level=cfg.log_level)
        log.info("config_loaded", config_file=str(config_path) if config_path else None, server=cfg.server.command)

        provider: ModelProvider = ScriptedProvider() if ns.fake else OpenAIChatProvider(cfg.provider)
        return asyncio.run(run(cfg, text=ns.text, provider=provider))

    except ConfigError as e:
        log.error("config_error", error=str(e))
        sys.stderr.write(f"ConfigError: {e}\n")
        return 2
    except ToolpipeError as e:
        log.error("fatal_error", error_type=e.error_type, error=e.message)
        sys.stderr.write(f"{type(e).__name__}: {e}\n")
        return 1
    except KeyboardInterrupt:
        return 130
    except Exception as e:  # noqa: BLE001
        log.exception("fatal_error")
        sys.stderr.write(f"Fatal error: {e}\n")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
