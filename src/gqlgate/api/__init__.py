"""
API module - FastAPI endpoints.
"""

from __future__ import annotations

from .router import create_admin_router, create_graphql_router, run_until_disconnected

__all__ = [
    "create_graphql_router",
    "create_admin_router",
    "run_until_disconnected",
]
