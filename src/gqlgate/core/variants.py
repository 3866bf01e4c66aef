"""
Dispatch over open sets of variants (unions, interfaces, enums).

Variant sets grow over time, so every consumer must handle an explicit
unrecognized branch instead of assuming a closed switch.

Usage:
    label = dispatch_variant(
        typename_of(result),
        {
            "SetUserEmailSuccess": lambda: "ok",
            "EmailTakenError": lambda: "taken",
        },
        unrecognized=lambda name: f"unhandled {name}",
    )
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, TypeVar

T = TypeVar("T")

TYPENAME_KEY = "__typename"


def typename_of(value: Any, models: Optional[Mapping[type, str]] = None) -> Optional[str]:
    """
    Determine the GraphQL type name of a resolved value.

    Looks at a ``__typename`` key on mappings, then a ``__typename__``
    attribute, then the registered model classes (walking the MRO).
    """
    if isinstance(value, Mapping):
        name = value.get(TYPENAME_KEY)
        return name if isinstance(name, str) else None

    name = getattr(value, "__typename__", None)
    if isinstance(name, str):
        return name

    if models:
        for cls in type(value).__mro__:
            if cls in models:
                return models[cls]
    return None


def dispatch_variant(
    typename: Optional[str],
    handlers: Mapping[str, Callable[[], T]],
    *,
    unrecognized: Callable[[Optional[str]], T],
) -> T:
    """
    Call the handler registered for typename.

    Args:
        typename: Variant name (None when it could not be determined)
        handlers: Variant name -> zero-argument handler
        unrecognized: Mandatory fallback, receives the unknown name

    Returns:
        Whatever the selected handler returns
    """
    handler = handlers.get(typename) if typename is not None else None
    if handler is None:
        return unrecognized(typename)
    return handler()
