from __future__ import annotations

from .pending import PendingRequest, PendingTable
from .session import Session

__all__ = ["PendingRequest", "PendingTable", "Session"]
