"""
Execution engine - runs validated operations with graphql-core.

Handles:
- Concurrent resolution of sibling fields (graphql-core gathers awaitables)
- Per-resolver timeout and a per-request bound on awaiting resolvers
- Field error formatting with masking of unexpected exceptions
"""

from __future__ import annotations

import asyncio
import logging
from inspect import isawaitable
from typing import Any, Optional

from graphql import GraphQLError, GraphQLResolveInfo, GraphQLSchema, execute

from ..core.errors import GatewayError, ResolverTimeout
from ..core.query_types import ErrorEntry, GraphQLResponse
from ..core.validator import ValidatedOperation

logger = logging.getLogger(__name__)

MASKED_MESSAGE = "Internal error while resolving field"
INTERNAL_ERROR_CODE = "INTERNAL_ERROR"
EXECUTION_ERROR_CODE = "EXECUTION_ERROR"


def field_path(info: GraphQLResolveInfo) -> str:
    return ".".join(str(key) for key in info.path.as_list())


class ResolverBoundsMiddleware:
    """
    graphql-core middleware bounding awaiting resolvers.

    Only awaitable results are touched: synchronous resolvers pass through.
    Mutation root fields are skipped, they carry their own timeout.
    """

    def __init__(self, timeout: Optional[float], semaphore: asyncio.Semaphore):
        self.timeout = timeout
        self.semaphore = semaphore

    def resolve(self, next_: Any, root: Any, info: GraphQLResolveInfo, **args: Any) -> Any:
        result = next_(root, info, **args)
        if not isawaitable(result) or info.parent_type is info.schema.mutation_type:
            return result
        return self._bounded(result, info)

    async def _bounded(self, awaitable: Any, info: GraphQLResolveInfo) -> Any:
        async with self.semaphore:
            try:
                return await asyncio.wait_for(awaitable, timeout=self.timeout)
            except asyncio.TimeoutError:
                path = field_path(info)
                logger.warning(f"Resolver {path} timed out after {self.timeout}s")
                raise ResolverTimeout(path, self.timeout)


class ExecutionEngine:
    """
    Executes validated operations against the compiled schema.

    Usage:
        engine = ExecutionEngine(schema, resolver_timeout=10.0)
        response = await engine.execute(operation, context)
    """

    def __init__(
        self,
        schema: GraphQLSchema,
        *,
        root_value: Any = None,
        resolver_timeout: Optional[float] = 10.0,
        max_concurrent_resolvers: int = 64,
        mask_errors: bool = True,
    ):
        """
        Initialize engine.

        Args:
            schema: Compiled schema
            root_value: Value passed to root resolvers and exposed as a mutation payload's query
            resolver_timeout: Upper bound for an awaiting resolver in seconds (None disables)
            max_concurrent_resolvers: Awaiting resolvers allowed at once per request
            mask_errors: Replace messages of unexpected exceptions with a generic one
        """
        self.schema = schema
        self.root_value = root_value if root_value is not None else {}
        self.resolver_timeout = resolver_timeout
        self.max_concurrent_resolvers = max_concurrent_resolvers
        self.mask_errors = mask_errors

    async def execute(self, operation: ValidatedOperation, context: Any) -> GraphQLResponse:
        """
        Execute an operation.

        Args:
            operation: Validated operation with variables already checked
            context: Request context, passed to resolvers as info.context

        Returns:
            GraphQLResponse with data and any field errors
        """
        middleware = ResolverBoundsMiddleware(
            self.resolver_timeout,
            asyncio.Semaphore(self.max_concurrent_resolvers),
        )
        result = execute(
            self.schema,
            operation.document.ast,
            root_value=self.root_value,
            context_value=context,
            variable_values=operation.variables,
            operation_name=operation.name,
            middleware=[middleware],
        )
        if isawaitable(result):
            result = await result

        if not result.errors:
            return GraphQLResponse(data=result.data)
        return GraphQLResponse(
            data=result.data,
            errors=[ErrorEntry(**self.format_error(error)) for error in result.errors],
        )

    def format_error(self, error: GraphQLError) -> dict[str, Any]:
        """Render a field error, masking unexpected exceptions."""
        entry = dict(error.formatted)
        original = error.original_error

        if isinstance(original, GatewayError):
            entry["message"] = original.message
            entry["extensions"] = original.extensions
            return entry

        if original is None or isinstance(original, GraphQLError):
            entry["extensions"] = {"code": EXECUTION_ERROR_CODE, **(entry.get("extensions") or {})}
            return entry

        path = ".".join(str(key) for key in error.path or [])
        logger.error(
            f"Unexpected error resolving {path or 'operation'}: {original!r}",
            exc_info=(type(original), original, original.__traceback__),
        )
        entry["message"] = MASKED_MESSAGE if self.mask_errors else str(original)
        entry["extensions"] = {"code": INTERNAL_ERROR_CODE}
        return entry
