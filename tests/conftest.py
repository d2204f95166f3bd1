from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"


def pytest_configure() -> None:
    if SRC.exists():
        sys.path.insert(0, str(SRC))


@pytest.fixture
def calculator_config():
    from toolpipe.transport.types import StdioServerConfig

    pythonpath = os.pathsep.join(p for p in (str(SRC), os.environ.get("PYTHONPATH", "")) if p)
    return StdioServerConfig(
        command=sys.executable,
        args=["-m", "toolpipe.server", "--log-level", "WARNING"],
        env={"PYTHONPATH": pythonpath},
        timeout_s=10.0,
        shutdown_timeout_s=2.0,
    )
