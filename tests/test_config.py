from __future__ import annotations

import sys
from pathlib import Path

import pytest

from toolpipe.core.config import load_config
from toolpipe.core.errors import ConfigError


def test_load_config_expands_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "k_test")
    monkeypatch.setenv("TOOLS_HOME", "/opt/tools")

    p = tmp_path / "app.yaml"
    p.write_text(
        """
provider:
  api_key: ${OPENAI_API_KEY}
server:
  command: ${TOOLS_HOME}/bin/calc
  args: ["--verbose"]
  env:
    CALC_MODE: strict
""".lstrip(),
        encoding="utf-8",
    )

    cfg = load_config(p)
    assert cfg.provider.api_key == "k_test"
    assert cfg.server.command == "/opt/tools/bin/calc"
    assert cfg.server.args == ["--verbose"]
    assert cfg.server.env == {"CALC_MODE": "strict"}


def test_load_config_missing_env_raises(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TOOLPIPE_TEST_UNSET", raising=False)

    p = tmp_path / "app.yaml"
    p.write_text(
        """
provider:
  api_key: ${TOOLPIPE_TEST_UNSET}
""".lstrip(),
        encoding="utf-8",
    )

    with pytest.raises(ConfigError) as ei:
        load_config(p)

    assert "TOOLPIPE_TEST_UNSET" in str(ei.value)
    assert ei.value.path == "provider.api_key"


def test_api_key_falls_back_to_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "k_env")

    cfg = load_config(None)
    assert cfg.provider.api_key == "k_env"
    # Default server is the bundled calculator on this interpreter.
    assert cfg.server.command == sys.executable
    assert cfg.server.args == ["-m", "toolpipe.server"]
    assert cfg.agent.max_rounds == 8


def test_missing_api_key_is_config_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "")

    with pytest.raises(ConfigError) as ei:
        load_config(None)
    assert ei.value.path == "provider.api_key"


@pytest.mark.parametrize(
    ("body", "path"),
    [
        ("agent:\n  max_rounds: 0\n", "agent.max_rounds"),
        ("server:\n  request_timeout_s: -1\n", "server.request_timeout_s"),
        ("server:\n  args: oops\n", "server.args"),
        ("agent: [1, 2]\n", "agent"),
    ],
)
def test_invalid_values_name_their_path(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, body: str, path: str
) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "k_test")
    p = tmp_path / "app.yaml"
    p.write_text(body, encoding="utf-8")

    with pytest.raises(ConfigError) as ei:
        load_config(p)
    assert ei.value.path == path


def test_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_config(tmp_path / "nope.yaml")


def test_repo_configs_app_yaml_loadable(monkeypatch: pytest.MonkeyPatch) -> None:
    # Syntax and expansion only; no real key needed.
    monkeypatch.setenv("OPENAI_API_KEY", "k_dummy")

    cfg = load_config(Path(__file__).resolve().parents[1] / "configs" / "app.yaml")
    assert cfg.provider.model
    assert cfg.server.args == ["-m", "toolpipe.server"]


def test_unknown_log_level_is_config_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "k_test")
    p = tmp_path / "app.yaml"
    p.write_text("log_level: bogus\n", encoding="utf-8")

    with pytest.raises(ConfigError) as ei:
        load_config(p)
    assert ei.value.path == "log_level"

    p.write_text("log_level: debug\n", encoding="utf-8")
    assert load_config(p).log_level == "DEBUG"
