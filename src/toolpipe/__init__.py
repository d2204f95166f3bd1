"""Tool calling over a stdio child process, driven by a model-provider loop."""

from __future__ import annotations

__version__ = "0.1.0"
