from __future__ import annotations

import logging
import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from toolpipe.transport.types import StdioServerConfig

from .errors import ConfigError

# re-export for contract/tests
__all__ = [
    "AgentConfig",
    "AppConfig",
    "ConfigError",
    "ProviderConfig",
    "StdioServerConfig",
    "load_config",
]


_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

API_KEY_ENV = "OPENAI_API_KEY"


def _expand_env_in_str(value: str, *, path: str) -> str:
    def repl(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in os.environ or os.environ[key] == "":
            raise ConfigError(f"environment variable {key!r} is not set", path=path)
        return os.environ[key]

    return _ENV_PATTERN.sub(repl, value)


def _expand_env(obj: Any, *, path: str) -> Any:
    if isinstance(obj, str):
        return _expand_env_in_str(obj, path=path)
    if isinstance(obj, list):
        return [_expand_env(v, path=path) for v in obj]
    if isinstance(obj, dict):
        return {k: _expand_env(v, path=f"{path}.{k}" if path else str(k)) for k, v in obj.items()}
    return obj


def _section(raw: dict[str, Any], key: str) -> dict[str, Any]:
    value = raw.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError("must be a mapping", path=key)
    return value


def _positive_float(d: dict[str, Any], key: str, default: float, *, path: str) -> float:
    try:
        value = float(d.get(key, default))
    except (TypeError, ValueError) as e:
        raise ConfigError("must be a number", path=f"{path}.{key}") from e
    if value <= 0:
        raise ConfigError("must be > 0", path=f"{path}.{key}")
    return value


def _int_at_least(d: dict[str, Any], key: str, default: int, minimum: int, *, path: str) -> int:
    try:
        value = int(d.get(key, default))
    except (TypeError, ValueError) as e:
        raise ConfigError("must be an integer", path=f"{path}.{key}") from e
    if value < minimum:
        raise ConfigError(f"must be an integer >= {minimum}", path=f"{path}.{key}")
    return value


@dataclass(frozen=True)
class ProviderConfig:
    """OpenAI-compatible chat completions endpoint."""

    api_key: str
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    max_tokens: int = 1024
    timeout_s: float = 60.0
    max_retries: int = 2
    system_prompt: str | None = None


@dataclass(frozen=True)
class AgentConfig:
    # Model -> tools round trips allowed per user turn.
    max_rounds: int = 8
    parallel_tool_calls: bool = True


def default_server_config() -> StdioServerConfig:
    return StdioServerConfig(command=sys.executable, args=["-m", "toolpipe.server"])


@dataclass(frozen=True)
class AppConfig:
    provider: ProviderConfig
    server: StdioServerConfig = field(default_factory=default_server_config)
    agent: AgentConfig = field(default_factory=AgentConfig)
    log_level: str = "INFO"


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load YAML config and expand ${ENV_VAR}.

    With `path=None` only defaults and the environment are used.
    """

    # Local dev: allow injecting secrets from .env (do not commit it).
    load_dotenv(override=False)

    raw: Any = {}
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigError("config file does not exist", path=str(config_path))
        try:
            raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"YAML parse failed: {e}", path=str(config_path)) from e

    if not isinstance(raw, dict):
        raise ConfigError("top level must be a YAML mapping")

    expanded = _expand_env(raw, path="")

    provider_raw = _section(expanded, "provider")

    # api_key can default from env.
    api_key = provider_raw.get("api_key")
    if api_key is None or api_key == "":
        api_key = os.getenv(API_KEY_ENV)
    if not isinstance(api_key, str) or not api_key.strip():
        raise ConfigError(f"must be a non-empty string (or set {API_KEY_ENV})", path="provider.api_key")

    system_prompt = provider_raw.get("system_prompt")
    if system_prompt is not None and not isinstance(system_prompt, str):
        raise ConfigError("must be a string", path="provider.system_prompt")

    provider = ProviderConfig(
        api_key=api_key,
        base_url=str(provider_raw.get("base_url", ProviderConfig.base_url)),
        model=str(provider_raw.get("model", ProviderConfig.model)),
        max_tokens=_int_at_least(provider_raw, "max_tokens", ProviderConfig.max_tokens, 1, path="provider"),
        timeout_s=_positive_float(provider_raw, "timeout_s", ProviderConfig.timeout_s, path="provider"),
        max_retries=_int_at_least(provider_raw, "max_retries", ProviderConfig.max_retries, 0, path="provider"),
        system_prompt=system_prompt or None,
    )

    server = default_server_config()
    server_raw = _section(expanded, "server")
    if server_raw:
        command = server_raw.get("command", server.command)
        if not isinstance(command, str) or not command.strip():
            raise ConfigError("must be a non-empty string", path="server.command")
        args = server_raw.get("args", server.args if "command" not in server_raw else [])
        if not isinstance(args, list) or not all(isinstance(x, str) for x in args):
            raise ConfigError("must be a list of strings", path="server.args")
        env = server_raw.get("env")
        if env is not None and (not isinstance(env, dict) or not all(isinstance(k, str) for k in env)):
            raise ConfigError("must be a mapping of strings", path="server.env")
        cwd = server_raw.get("cwd")
        if cwd is not None and not isinstance(cwd, str):
            raise ConfigError("must be a string", path="server.cwd")

        server = StdioServerConfig(
            command=command,
            args=list(args),
            env={k: str(v) for k, v in env.items()} if env else None,
            cwd=cwd,
            timeout_s=_positive_float(server_raw, "request_timeout_s", server.timeout_s, path="server"),
            shutdown_timeout_s=_positive_float(
                server_raw, "shutdown_timeout_s", server.shutdown_timeout_s, path="server"
            ),
        )

    agent_raw = _section(expanded, "agent")
    agent = AgentConfig(
        max_rounds=_int_at_least(agent_raw, "max_rounds", AgentConfig.max_rounds, 1, path="agent"),
        parallel_tool_calls=bool(agent_raw.get("parallel_tool_calls", AgentConfig.parallel_tool_calls)),
    )

    log_level = str(expanded.get("log_level", AppConfig.log_level)).upper()
    if log_level not in logging.getLevelNamesMapping():
        raise ConfigError(f"unknown logging level {log_level!r}", path="log_level")

    return AppConfig(provider=provider, server=server, agent=agent, log_level=log_level)
