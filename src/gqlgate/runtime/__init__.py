"""
Runtime module - request context, execution and mutations.
"""

from __future__ import annotations

from .context import ExecutionContext, Principal, default_context_factory
from .executor import ExecutionEngine
from .mutation_executor import MutationPayload, MutationPipeline

__all__ = [
    "Principal",
    "ExecutionContext",
    "default_context_factory",
    "ExecutionEngine",
    "MutationPipeline",
    "MutationPayload",
]
