"""
Capability guards - per-object authorization on every resolution path.

Authorization is never inherited from a parent resolver. The schema
compiler wraps every field that returns a guarded type so the type's
capability check runs regardless of the path the object was reached by.
"""

from __future__ import annotations

import asyncio
from inspect import isawaitable
from typing import Any, Awaitable, Callable, Optional, Union

from graphql import GraphQLResolveInfo

from ..core.errors import ForbiddenError

Capability = Callable[[Any, Any], Union[bool, Awaitable[bool]]]

# value -> (type name, capability) or None when the value's type is unguarded
CapabilityLookup = Callable[[Any], Optional[tuple[str, Capability]]]


async def check_capability(type_name: str, check: Capability, value: Any, context: Any) -> bool:
    """
    Run a capability check, memoized per request.

    The memo lives on the request context, so a check runs once per object
    per request no matter how many paths reach it.
    """
    cache = getattr(context, "capability_cache", None)
    key = (type_name, id(value))
    if cache is not None and key in cache:
        return cache[key][1]

    allowed = check(value, context)
    if isawaitable(allowed):
        allowed = await allowed
    allowed = bool(allowed)

    if cache is not None:
        cache[key] = (value, allowed)
    return allowed


def guard_field(
    resolve: Callable[..., Any],
    lookup: CapabilityLookup,
    *,
    many: bool,
) -> Callable[..., Any]:
    """
    Wrap a field resolver with the capability check of its return type.

    Args:
        resolve: Original resolver ``(source, info, **args)``
        lookup: Finds the capability for a resolved value
        many: Whether the field returns a list

    Returns:
        Resolver that drops unauthorized list items and raises ForbiddenError
        for an unauthorized singular value
    """

    async def permits(value: Any, context: Any) -> bool:
        found = lookup(value)
        if found is None:
            return True
        type_name, check = found
        return await check_capability(type_name, check, value, context)

    async def guarded(source: Any, info: GraphQLResolveInfo, **args: Any) -> Any:
        value = resolve(source, info, **args)
        if isawaitable(value):
            value = await value
        if value is None:
            return None

        if many:
            items = list(value)
            verdicts = await asyncio.gather(*(
                permits(item, info.context) for item in items if item is not None
            ))
            verdict_iter = iter(verdicts)
            return [item for item in items if item is None or next(verdict_iter)]

        if not await permits(value, info.context):
            raise ForbiddenError(f"Not authorized to access {info.parent_type.name}.{info.field_name}")
        return value

    return guarded
