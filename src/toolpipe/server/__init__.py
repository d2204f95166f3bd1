from __future__ import annotations

from .app import ToolServer, serve_stdio
from .registry import RegisteredTool, ToolHandler, ToolRegistry, validate_arguments

__all__ = [
    "RegisteredTool",
    "ToolHandler",
    "ToolRegistry",
    "ToolServer",
    "serve_stdio",
    "validate_arguments",
]
