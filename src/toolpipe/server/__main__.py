"""Run the calculator tool server on stdin/stdout.

    python -m toolpipe.server [--log-level DEBUG]

Logs go to stderr; stdout carries only protocol frames.
"""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

from toolpipe.observability.logging import configure_logging, get_logger

from .app import ToolServer, serve_stdio
from .calculator import INSTRUCTIONS, build_calculator_registry


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="toolpipe-calculator", description="Calculator tool server (stdio)")
    parser.add_argument("--log-level", default="INFO", help="Logging level (e.g. DEBUG, INFO, WARNING)")
    ns = parser.parse_args(argv)

    configure_logging(level=ns.log_level)
    log = get_logger("toolpipe.server")

    server = ToolServer(build_calculator_registry(), name="calculator", instructions=INSTRUCTIONS)
    try:
        serve_stdio(server, sys.stdin.buffer, sys.stdout.buffer)
    except BrokenPipeError:
        log.warning("client_gone")
        return 1
    except KeyboardInterrupt:
        return 0
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
