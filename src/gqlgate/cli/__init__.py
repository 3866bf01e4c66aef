"""
CLI module - settings and the gqlgate command.
"""

from __future__ import annotations

from .config import GatewaySettings, load_config

__all__ = [
    "GatewaySettings",
    "load_config",
]
