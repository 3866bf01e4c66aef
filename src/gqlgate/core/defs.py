"""
Core dataclass definitions for the gqlgate schema.

The schema is assembled programmatically from these definitions and
compiled into a graphql-core schema by ``SchemaCompiler``. Type references
use SDL notation: ``"String!"``, ``"[User!]!"``, ``"ID"``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from graphql import Undefined


@dataclass
class ArgumentDef:
    """Definition of a field argument."""
    type: str
    default: Any = Undefined
    description: Optional[str] = None


@dataclass
class FieldDef:
    """
    Definition of an output field.

    resolve follows the graphql-core signature ``(source, info, **args)``
    and may be sync or async. Without a resolver the value is read from the
    parent by key or attribute.
    """
    type: str
    resolve: Optional[Callable[..., Any]] = None
    args: dict[str, ArgumentDef] = field(default_factory=dict)
    description: Optional[str] = None
    deprecation_reason: Optional[str] = None
    # Only legal when the returned type is reachable through this field alone
    skip_authorization: bool = False


@dataclass
class InputFieldDef:
    """Definition of an input object field."""
    type: str
    default: Any = Undefined
    description: Optional[str] = None


@dataclass
class ObjectDef:
    """
    Definition of an object type.

    authorize is a capability check ``(obj, context) -> bool`` (sync or
    async). It runs on every field that returns this type.
    """
    name: str
    fields: dict[str, FieldDef]
    interfaces: list[str] = field(default_factory=list)
    authorize: Optional[Callable[[Any, Any], Any]] = None
    model: Optional[type] = None  # Python class of resolved values, used for type resolution
    description: Optional[str] = None


@dataclass
class InterfaceDef:
    """Definition of an interface type."""
    name: str
    fields: dict[str, FieldDef]
    description: Optional[str] = None


@dataclass
class UnionDef:
    """Definition of a union type."""
    name: str
    types: list[str]
    description: Optional[str] = None


@dataclass
class EnumDef:
    """Definition of an enum type. values maps names to Python values."""
    name: str
    values: Union[list[str], dict[str, Any]]
    description: Optional[str] = None


@dataclass
class InputDef:
    """Definition of an input object type."""
    name: str
    fields: dict[str, InputFieldDef]
    description: Optional[str] = None


@dataclass
class FailureDef:
    """
    A named failure variant of a mutation result union.

    Every failure type carries ``code: String!`` and ``message: String!``
    and implements the ``Error`` interface. fields adds variant-specific
    output fields.
    """
    name: str  # e.g. "EmailTakenError"
    code: str  # e.g. "EMAIL_TAKEN"
    fields: dict[str, FieldDef] = field(default_factory=dict)
    description: Optional[str] = None


@dataclass
class MutationDef:
    """
    Definition of an RPC-style mutation.

    The mutation takes a single ``input`` argument. input is either the name
    of a declared InputDef or a dict of input fields from which a
    ``<Name>Input`` type is generated. output lists the fields of the
    generated ``<Name>Success`` variant.

    resolve has the signature ``(input, context)`` and returns the success
    value or raises/returns MutationFailure.
    """
    resolve: Callable[[Any, Any], Any]
    input: Union[str, dict[str, InputFieldDef], None] = None
    output: dict[str, FieldDef] = field(default_factory=dict)
    failures: list[FailureDef] = field(default_factory=list)
    # Explicit argument list; must still reduce to a single input object
    arguments: Optional[dict[str, ArgumentDef]] = None
    input_model: Optional[type] = None  # pydantic model validating input before resolve
    description: Optional[str] = None


@dataclass
class SchemaDef:
    """Complete schema definition."""
    query: dict[str, FieldDef]
    mutations: dict[str, MutationDef] = field(default_factory=dict)
    objects: list[ObjectDef] = field(default_factory=list)
    interfaces: list[InterfaceDef] = field(default_factory=list)
    unions: list[UnionDef] = field(default_factory=list)
    enums: list[EnumDef] = field(default_factory=list)
    inputs: list[InputDef] = field(default_factory=list)
