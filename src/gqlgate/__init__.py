"""
gqlgate - schema-governed GraphQL gateway.

- Schema assembled from definition dataclasses and compiled at startup
- Persisted queries with an optional allow-list
- RPC-style mutations returning result unions and a root query payload
- Always-200 HTTP transport plus a WebSocket transport

Usage:
    from gqlgate import Gateway, SchemaDef, FieldDef

    schema_def = SchemaDef(query={"hello": FieldDef("String!", resolve=lambda root, info: "world")})
    app = Gateway(schema_def).app
"""

from __future__ import annotations

from .cli import GatewaySettings, load_config
from .core import (
    ArgumentDef,
    DocumentValidator,
    EnumDef,
    FailureDef,
    FieldDef,
    ForbiddenError,
    GatewayError,
    GraphQLRequest,
    GraphQLResponse,
    InMemoryQueryStore,
    InputDef,
    InputFieldDef,
    InterfaceDef,
    MutationDef,
    MutationFailure,
    NotFoundError,
    ObjectDef,
    QueryRegistry,
    RedisQueryStore,
    SchemaDef,
    UnionDef,
    compile_schema,
    dispatch_variant,
    document_identifier,
    typename_of,
)
from .gateway import Gateway
from .iam import allow_all, any_of, is_owner, requires_authenticated, requires_roles
from .runtime import ExecutionContext, ExecutionEngine, MutationPipeline, Principal

__version__ = "0.1.0"

__all__ = [
    # Gateway
    "Gateway",
    "GatewaySettings",
    "load_config",
    # Definitions
    "SchemaDef",
    "FieldDef",
    "ArgumentDef",
    "ObjectDef",
    "InterfaceDef",
    "UnionDef",
    "EnumDef",
    "InputDef",
    "InputFieldDef",
    "MutationDef",
    "FailureDef",
    "compile_schema",
    # Errors
    "GatewayError",
    "MutationFailure",
    "ForbiddenError",
    "NotFoundError",
    # Wire envelope
    "GraphQLRequest",
    "GraphQLResponse",
    # Registry
    "QueryRegistry",
    "InMemoryQueryStore",
    "RedisQueryStore",
    "document_identifier",
    # Runtime
    "DocumentValidator",
    "ExecutionEngine",
    "MutationPipeline",
    "ExecutionContext",
    "Principal",
    # IAM
    "allow_all",
    "any_of",
    "is_owner",
    "requires_authenticated",
    "requires_roles",
    # Variants
    "dispatch_variant",
    "typename_of",
]
