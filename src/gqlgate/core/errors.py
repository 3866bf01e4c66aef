"""
Custom exceptions for the gqlgate system.

Every error carries a stable ``code`` that is exposed to clients as
``extensions.code`` so they can branch without matching on messages.
"""

from __future__ import annotations

from typing import Any, Optional

from graphql import GraphQLError


class GatewayError(Exception):
    """Base exception for all gateway errors."""

    code = "GATEWAY_ERROR"

    def __init__(self, message: str, *, extensions: Optional[dict[str, Any]] = None):
        self.message = message
        self._extra = extensions or {}
        super().__init__(message)

    @property
    def extensions(self) -> dict[str, Any]:
        return {"code": self.code, **self._extra}

    def to_dicts(self) -> list[dict[str, Any]]:
        """Render as GraphQL error entries."""
        return [{"message": self.message, "extensions": self.extensions}]


# =============================================================================
# Transport
# =============================================================================


class MalformedRequest(GatewayError):
    """Raised when the request envelope is not a valid GraphQL request."""

    code = "MALFORMED_REQUEST"


# =============================================================================
# Query registry
# =============================================================================


class UnknownQuery(GatewayError):
    """Raised when a persisted query identifier is not registered."""

    code = "PERSISTED_QUERY_NOT_FOUND"

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Persisted query '{identifier}' not found")


class QueryNotWhitelisted(GatewayError):
    """Raised when a document is not on the allow-list in whitelist mode."""

    code = "PERSISTED_QUERY_NOT_ALLOWED"

    def __init__(self, identifier: Optional[str] = None, message: Optional[str] = None):
        self.identifier = identifier
        super().__init__(message or f"Persisted query '{identifier}' is not allowed")


class DuplicateIdentifier(GatewayError):
    """Raised when an identifier is already bound to a different document."""

    code = "DUPLICATE_IDENTIFIER"

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Identifier '{identifier}' is already registered for a different document")


# =============================================================================
# Validation
# =============================================================================


class ValidationError(GatewayError):
    """Base for errors raised before execution begins."""

    code = "GRAPHQL_VALIDATION_FAILED"


class SchemaValidationError(ValidationError):
    """
    Raised when a document violates the schema.

    All violations are collected so the caller sees the full list in one
    round trip.
    """

    def __init__(self, violations: list[GraphQLError]):
        self.violations = violations
        super().__init__(f"Document failed validation with {len(violations)} violation(s)")

    def to_dicts(self) -> list[dict[str, Any]]:
        entries = []
        for violation in self.violations:
            entry = dict(violation.formatted)
            entry["extensions"] = {**(entry.get("extensions") or {}), "code": self.code}
            entries.append(entry)
        return entries


class DocumentSyntaxError(SchemaValidationError):
    """Raised when operation text cannot be parsed."""

    code = "GRAPHQL_PARSE_FAILED"

    def __init__(self, error: GraphQLError):
        super().__init__([error])


class AmbiguousOperation(ValidationError):
    """Raised when operationName is omitted and the document has several operations."""

    code = "AMBIGUOUS_OPERATION"


class OperationNotFound(ValidationError):
    """Raised when operationName matches no operation in the document."""

    code = "OPERATION_NOT_FOUND"


class UnsupportedOperation(ValidationError):
    """Raised for operation types the gateway does not execute."""

    code = "UNSUPPORTED_OPERATION"


class MutationNotAllowed(UnsupportedOperation):
    """Raised when a mutation arrives over a transport that forbids it (GET)."""

    code = "MUTATION_NOT_ALLOWED"


# =============================================================================
# Execution
# =============================================================================


class ForbiddenError(GatewayError):
    """Raised when a capability check denies access to an object."""

    code = "FORBIDDEN"

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class NotFoundError(GatewayError):
    """Raised by resolvers when a requested object does not exist."""

    code = "NOT_FOUND"


class ResolverTimeout(GatewayError):
    """Raised when a resolver exceeds the configured timeout."""

    code = "RESOLVER_TIMEOUT"

    def __init__(self, field_path: str, timeout: float):
        super().__init__(f"Resolver for '{field_path}' timed out after {timeout:g}s")


class MutationTimeout(GatewayError):
    """Raised when a mutation resolver exceeds the mutation timeout."""

    code = "MUTATION_TIMEOUT"

    def __init__(self, mutation: str, timeout: float):
        super().__init__(f"Mutation '{mutation}' timed out after {timeout:g}s and was not applied")


class MutationFailure(GatewayError):
    """
    Anticipated business failure of a mutation.

    Raised (or returned) by mutation resolvers. The mutation pipeline turns
    it into a typed failure variant of the mutation's result union; it never
    reaches the transport errors array.

    Usage:
        raise MutationFailure("EMAIL_TAKEN", "Email already in use", email=email)
    """

    def __init__(self, code: str, message: str, **fields: Any):
        self.code = code
        self.fields = fields
        super().__init__(message)


# =============================================================================
# Schema definition
# =============================================================================


class SchemaDefinitionError(GatewayError):
    """Raised when schema definitions cannot be compiled."""

    code = "SCHEMA_DEFINITION_ERROR"

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"Schema definition invalid: {errors}")


class MutationShapeError(SchemaDefinitionError):
    """Raised when a mutation does not take exactly one input-object argument."""
