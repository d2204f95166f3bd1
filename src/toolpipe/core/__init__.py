"""Project core.

This package hosts the stable, non-domain-specific building blocks (config, errors,
contracts/types, and CLI entrypoints).
"""

from __future__ import annotations
