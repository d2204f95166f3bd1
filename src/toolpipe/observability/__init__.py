from __future__ import annotations

from .context import add_error, bind_context, bind_server, set_state
from .logging import configure_logging, get_logger

__all__ = ["add_error", "bind_context", "bind_server", "configure_logging", "get_logger", "set_state"]
