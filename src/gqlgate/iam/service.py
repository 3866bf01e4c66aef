"""
Reusable capability checks.

A capability is a callable ``(obj, context) -> bool`` (sync or async)
attached to an ObjectDef. These helpers build the common ones from the
request principal.

Usage:
    ObjectDef(
        name="User",
        fields={...},
        authorize=any_of(requires_roles("admin"), is_owner("id")),
    )
"""

from __future__ import annotations

from inspect import isawaitable
from typing import Any

from .guard import Capability


def _principal(context: Any):
    return getattr(context, "principal", None)


def _read(obj: Any, attr: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(attr)
    return getattr(obj, attr, None)


def allow_all(obj: Any, context: Any) -> bool:
    return True


def requires_authenticated(obj: Any, context: Any) -> bool:
    principal = _principal(context)
    return principal is not None and principal.id is not None


def requires_roles(*roles: str) -> Capability:
    """Allow principals holding any of roles."""

    def check(obj: Any, context: Any) -> bool:
        principal = _principal(context)
        return principal is not None and principal.has_role(*roles)

    return check


def is_owner(attr: str = "owner_id") -> Capability:
    """Allow the principal whose id equals ``obj.<attr>``."""

    def check(obj: Any, context: Any) -> bool:
        principal = _principal(context)
        if principal is None or principal.id is None:
            return False
        return str(_read(obj, attr)) == str(principal.id)

    return check


def any_of(*capabilities: Capability) -> Capability:
    """Allow when at least one capability allows."""

    async def check(obj: Any, context: Any) -> bool:
        for capability in capabilities:
            allowed = capability(obj, context)
            if isawaitable(allowed):
                allowed = await allowed
            if allowed:
                return True
        return False

    return check
