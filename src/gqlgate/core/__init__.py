"""
Core module - definitions, registry, validation and schema compilation.
"""

from __future__ import annotations

from .compiler import SchemaCompiler, compile_schema
from .defs import (
    ArgumentDef,
    EnumDef,
    FailureDef,
    FieldDef,
    InputDef,
    InputFieldDef,
    InterfaceDef,
    MutationDef,
    ObjectDef,
    SchemaDef,
    UnionDef,
)
from .errors import (
    AmbiguousOperation,
    DocumentSyntaxError,
    DuplicateIdentifier,
    ForbiddenError,
    GatewayError,
    MalformedRequest,
    MutationFailure,
    MutationNotAllowed,
    MutationShapeError,
    MutationTimeout,
    NotFoundError,
    OperationNotFound,
    QueryNotWhitelisted,
    ResolverTimeout,
    SchemaDefinitionError,
    SchemaValidationError,
    UnknownQuery,
    UnsupportedOperation,
    ValidationError,
)
from .query_types import ErrorEntry, GraphQLRequest, GraphQLResponse
from .registry import (
    InMemoryQueryStore,
    OperationDocument,
    PersistedQueryEntry,
    QueryRegistry,
    QueryStore,
    RedisQueryStore,
    document_identifier,
)
from .request_parser import parse_query_params, parse_request
from .validator import DocumentValidator, ValidatedOperation
from .variants import dispatch_variant, typename_of

__all__ = [
    # Definitions
    "ArgumentDef",
    "FieldDef",
    "InputFieldDef",
    "ObjectDef",
    "InterfaceDef",
    "UnionDef",
    "EnumDef",
    "InputDef",
    "FailureDef",
    "MutationDef",
    "SchemaDef",
    # Errors
    "GatewayError",
    "MalformedRequest",
    "UnknownQuery",
    "QueryNotWhitelisted",
    "DuplicateIdentifier",
    "ValidationError",
    "SchemaValidationError",
    "DocumentSyntaxError",
    "AmbiguousOperation",
    "OperationNotFound",
    "UnsupportedOperation",
    "MutationNotAllowed",
    "ForbiddenError",
    "NotFoundError",
    "ResolverTimeout",
    "MutationTimeout",
    "MutationFailure",
    "SchemaDefinitionError",
    "MutationShapeError",
    # Wire envelope
    "GraphQLRequest",
    "GraphQLResponse",
    "ErrorEntry",
    "parse_request",
    "parse_query_params",
    # Registry
    "QueryRegistry",
    "QueryStore",
    "InMemoryQueryStore",
    "RedisQueryStore",
    "OperationDocument",
    "PersistedQueryEntry",
    "document_identifier",
    # Validation
    "DocumentValidator",
    "ValidatedOperation",
    # Compiler
    "SchemaCompiler",
    "compile_schema",
    # Variants
    "dispatch_variant",
    "typename_of",
]
