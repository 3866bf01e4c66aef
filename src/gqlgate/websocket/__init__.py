"""
WebSocket module - GraphQL execution over a persistent connection.
"""

from __future__ import annotations

from .router import GraphQLWebSocketRouter

__all__ = [
    "GraphQLWebSocketRouter",
]
