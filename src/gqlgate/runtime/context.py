"""
Execution context for request processing.

A context object is built per request from the transport connection by a
pluggable context factory and handed to every resolver as ``info.context``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from fastapi.requests import HTTPConnection


@dataclass
class Principal:
    """
    Represents the authenticated user/service making the request.

    Built by the application's context factory; the gateway does not parse
    authentication headers itself.
    """
    id: Optional[str] = None
    roles: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    def has_role(self, *roles: str) -> bool:
        return any(role in self.roles for role in roles)


@dataclass
class ExecutionContext:
    """
    Context passed to every resolver.

    Contains:
    - principal: Authenticated user, if any
    - headers: Request headers (read-only view)
    - locale: Preferred locale from Accept-Language
    - extra: Application-specific values (loaders, sessions, ...)
    """
    principal: Optional[Principal] = None
    headers: Mapping[str, str] = field(default_factory=dict)
    locale: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)
    # (type name, id(obj)) -> (obj, allowed); obj is held so ids stay unique
    capability_cache: dict[tuple[str, int], tuple[Any, bool]] = field(default_factory=dict, repr=False)


def parse_locale(accept_language: Optional[str]) -> Optional[str]:
    """Return the first language tag of an Accept-Language header."""
    if not accept_language:
        return None
    first = accept_language.split(",")[0].split(";")[0].strip()
    return first or None


def default_context_factory(connection: HTTPConnection) -> ExecutionContext:
    """Build a context exposing headers and locale, without interpreting auth."""
    headers = dict(connection.headers)
    return ExecutionContext(
        headers=headers,
        locale=parse_locale(headers.get("accept-language")),
    )
