from __future__ import annotations

from .base import Incoming, Transport
from .stdio import StdioTransport
from .types import StdioServerConfig

__all__ = ["Incoming", "StdioServerConfig", "StdioTransport", "Transport"]
