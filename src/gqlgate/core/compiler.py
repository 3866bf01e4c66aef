"""
Schema compiler - builds a graphql-core schema from definition dataclasses.

Compilation is a build-time step: definitions are checked as a whole and
every problem is reported together before any GraphQL type is created.

Checks:
- Unique type names, no clash with generated or built-in types
- Every type reference resolves to a type of the right kind
- Mutations take exactly one non-null input-object argument named ``input``
- ``skip_authorization`` only on fields that are the sole path to a type

Generated per mutation ``setUserEmail``:
    input SetUserEmailInput { ... }                  (when input is a dict)
    type SetUserEmailSuccess { ...output... }
    union SetUserEmailResult = SetUserEmailSuccess | <failures> | MutationError
    type SetUserEmailPayload { result: SetUserEmailResult!, query: Query! }
    setUserEmail(input: SetUserEmailInput!): SetUserEmailPayload

Usage:
    schema = compile_schema(schema_def)
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Optional

from graphql import (
    GraphQLArgument,
    GraphQLBoolean,
    GraphQLEnumType,
    GraphQLEnumValue,
    GraphQLError,
    GraphQLField,
    GraphQLFloat,
    GraphQLID,
    GraphQLInputField,
    GraphQLInputObjectType,
    GraphQLInt,
    GraphQLInterfaceType,
    GraphQLList,
    GraphQLNamedType,
    GraphQLNonNull,
    GraphQLObjectType,
    GraphQLResolveInfo,
    GraphQLSchema,
    GraphQLString,
    GraphQLUnionType,
    default_field_resolver,
    validate_schema,
)

from ..iam.guard import CapabilityLookup, guard_field
from ..runtime.mutation_executor import (
    DEFAULT_FAILURE,
    ERROR_INTERFACE,
    INVALID_INPUT_FAILURE,
    MutationPipeline,
)
from .defs import (
    ArgumentDef,
    EnumDef,
    FailureDef,
    FieldDef,
    InputDef,
    InterfaceDef,
    MutationDef,
    ObjectDef,
    SchemaDef,
    UnionDef,
)
from .errors import MutationShapeError, SchemaDefinitionError
from .utils import (
    mutation_input_name,
    mutation_payload_name,
    mutation_result_name,
    mutation_success_name,
)
from .variants import dispatch_variant, typename_of

logger = logging.getLogger(__name__)

BUILTIN_SCALARS: dict[str, GraphQLNamedType] = {
    "String": GraphQLString,
    "Int": GraphQLInt,
    "Float": GraphQLFloat,
    "Boolean": GraphQLBoolean,
    "ID": GraphQLID,
}

QUERY_TYPE = "Query"
MUTATION_TYPE = "Mutation"
INPUT_VIOLATION = "InputViolation"

RESERVED_NAMES = {QUERY_TYPE, MUTATION_TYPE, ERROR_INTERFACE, DEFAULT_FAILURE, INVALID_INPUT_FAILURE, INPUT_VIOLATION}


def named_type(ref: str) -> str:
    """Strip list and non-null wrappers: ``"[User!]!"`` -> ``"User"``."""
    return ref.replace("[", "").replace("]", "").replace("!", "").strip()


class SchemaCompiler:
    """
    Compiles a SchemaDef into a GraphQLSchema.

    Usage:
        compiler = SchemaCompiler(schema_def, pipeline=MutationPipeline(schema_def.mutations))
        schema = compiler.compile()
    """

    def __init__(self, schema_def: SchemaDef, pipeline: Optional[MutationPipeline] = None):
        """
        Initialize compiler.

        Args:
            schema_def: Complete schema definition
            pipeline: Mutation pipeline resolving mutation fields
        """
        self.defs = schema_def
        self.pipeline = pipeline or MutationPipeline(schema_def.mutations)
        self._objects: dict[str, ObjectDef] = {}
        self._interfaces: dict[str, InterfaceDef] = {}
        self._unions: dict[str, UnionDef] = {}
        self._enums: dict[str, EnumDef] = {}
        self._inputs: dict[str, InputDef] = {}
        self._models: dict[type, str] = {}
        self._types: dict[str, GraphQLNamedType] = {}

    def compile(self) -> GraphQLSchema:
        """
        Compile definitions.

        Raises:
            MutationShapeError: If a mutation does not take a single input object
            SchemaDefinitionError: For any other definition problem
        """
        errors: list[str] = []
        self._collect_user_types(errors)

        shape_errors: list[str] = []
        self._collect_mutation_types(shape_errors, errors)
        if shape_errors:
            raise MutationShapeError(shape_errors)

        self._check_references(errors)
        self._check_authorization(errors)
        if errors:
            raise SchemaDefinitionError(errors)

        self._build_types()
        schema = GraphQLSchema(
            query=self._types[QUERY_TYPE],
            mutation=self._types.get(MUTATION_TYPE),
            types=list(self._types.values()),
        )

        problems = validate_schema(schema)
        if problems:
            raise SchemaDefinitionError([problem.message for problem in problems])

        logger.info(
            f"Compiled schema: {len(self._types)} types, "
            f"{len(self.defs.query)} query fields, {len(self.defs.mutations)} mutations"
        )
        return schema

    # =========================================================================
    # Collection
    # =========================================================================

    def _add(self, registry: dict, name: str, definition: Any, errors: list[str], *, generated: bool = False):
        if not generated and name in RESERVED_NAMES:
            errors.append(f"Type name '{name}' is reserved")
            return
        if name in BUILTIN_SCALARS or self._is_declared(name):
            errors.append(f"Type '{name}' is defined more than once")
            return
        registry[name] = definition

    def _is_declared(self, name: str) -> bool:
        return any(name in registry for registry in (
            self._objects, self._interfaces, self._unions, self._enums, self._inputs,
        ))

    def _collect_user_types(self, errors: list[str]):
        for enum in self.defs.enums:
            self._add(self._enums, enum.name, enum, errors)
        for input_def in self.defs.inputs:
            self._add(self._inputs, input_def.name, input_def, errors)
        for interface in self.defs.interfaces:
            self._add(self._interfaces, interface.name, interface, errors)
        for union in self.defs.unions:
            self._add(self._unions, union.name, union, errors)
        for obj in self.defs.objects:
            self._add(self._objects, obj.name, obj, errors)
            if obj.model is not None:
                self._models[obj.model] = obj.name

        self._add(self._objects, QUERY_TYPE, ObjectDef(name=QUERY_TYPE, fields=self.defs.query), errors, generated=True)

    def _collect_mutation_types(self, shape_errors: list[str], errors: list[str]):
        if not self.defs.mutations:
            return

        self._collect_builtin_failures(errors)
        failures: dict[str, FailureDef] = {}
        mutation_fields: dict[str, FieldDef] = {}

        for name, mutation in self.defs.mutations.items():
            input_name = self._mutation_input(name, mutation, shape_errors, errors)
            if input_name is None:
                continue

            if not mutation.output:
                errors.append(f"Mutation '{name}' declares no output fields")
                continue

            for failure in mutation.failures:
                known = failures.get(failure.name)
                if known is None:
                    failures[failure.name] = failure
                    self._add(self._objects, failure.name, self._failure_object(failure), errors)
                elif known.code != failure.code:
                    errors.append(
                        f"Failure type '{failure.name}' declared with codes '{known.code}' and '{failure.code}'"
                    )

            success = mutation_success_name(name)
            result = mutation_result_name(name)
            payload = mutation_payload_name(name)
            self._add(self._objects, success, ObjectDef(name=success, fields=mutation.output), errors, generated=True)
            self._add(self._unions, result, UnionDef(name=result, types=self.pipeline.variant_names(name)), errors, generated=True)
            self._add(self._objects, payload, ObjectDef(name=payload, fields={
                "result": FieldDef(f"{result}!"),
                "query": FieldDef(f"{QUERY_TYPE}!", description="Root query, for re-fetching after the mutation"),
            }), errors, generated=True)

            mutation_fields[name] = FieldDef(
                type=payload,
                args={"input": self._input_argument(mutation, input_name)},
                resolve=self.pipeline.resolver(name),
                description=mutation.description,
            )

        self._add(self._objects, MUTATION_TYPE, ObjectDef(name=MUTATION_TYPE, fields=mutation_fields), errors, generated=True)

    def _collect_builtin_failures(self, errors: list[str]):
        self._add(self._interfaces, ERROR_INTERFACE, InterfaceDef(name=ERROR_INTERFACE, fields={
            "code": FieldDef("String!"),
            "message": FieldDef("String!"),
        }), errors, generated=True)
        self._add(self._objects, DEFAULT_FAILURE, self._failure_object(
            FailureDef(name=DEFAULT_FAILURE, code="", description="Failure without a dedicated variant"),
        ), errors, generated=True)
        self._add(self._objects, INPUT_VIOLATION, ObjectDef(name=INPUT_VIOLATION, fields={
            "path": FieldDef("[String!]!"),
            "message": FieldDef("String!"),
        }), errors, generated=True)
        self._add(self._objects, INVALID_INPUT_FAILURE, self._failure_object(
            FailureDef(name=INVALID_INPUT_FAILURE, code="INVALID_INPUT", fields={
                "violations": FieldDef(f"[{INPUT_VIOLATION}!]!"),
            }),
        ), errors, generated=True)

    def _failure_object(self, failure: FailureDef) -> ObjectDef:
        return ObjectDef(
            name=failure.name,
            fields={
                "code": FieldDef("String!"),
                "message": FieldDef("String!"),
                **failure.fields,
            },
            interfaces=[ERROR_INTERFACE],
            description=failure.description,
        )

    def _mutation_input(
        self,
        name: str,
        mutation: MutationDef,
        shape_errors: list[str],
        errors: list[str],
    ) -> Optional[str]:
        """Check the single-input shape and return the input type name."""
        if mutation.arguments is not None:
            if mutation.input is not None:
                shape_errors.append(f"Mutation '{name}' declares both 'input' and 'arguments'")
                return None
            if list(mutation.arguments) != ["input"]:
                shape_errors.append(
                    f"Mutation '{name}' must take exactly one argument named 'input', "
                    f"got {sorted(mutation.arguments)}"
                )
                return None
            ref = mutation.arguments["input"].type.strip()
            if not ref.endswith("!") or "[" in ref:
                shape_errors.append(f"Mutation '{name}' argument 'input' must be a non-null input object, got '{ref}'")
                return None
            input_name = ref[:-1]
            if input_name not in self._inputs:
                shape_errors.append(f"Mutation '{name}' argument 'input' type '{input_name}' is not an input object")
                return None
            return input_name

        if isinstance(mutation.input, str):
            if mutation.input not in self._inputs:
                shape_errors.append(f"Mutation '{name}' input '{mutation.input}' is not an input object")
                return None
            return mutation.input

        if isinstance(mutation.input, dict) and mutation.input:
            input_name = mutation_input_name(name)
            self._add(self._inputs, input_name, InputDef(name=input_name, fields=mutation.input), errors, generated=True)
            return input_name

        shape_errors.append(f"Mutation '{name}' declares no input")
        return None

    def _input_argument(self, mutation: MutationDef, input_name: str) -> ArgumentDef:
        if mutation.arguments is not None:
            return mutation.arguments["input"]
        return ArgumentDef(f"{input_name}!")

    # =========================================================================
    # Checks
    # =========================================================================

    def _output_kind(self, name: str) -> bool:
        return (
            name in BUILTIN_SCALARS
            or name in self._objects
            or name in self._interfaces
            or name in self._unions
            or name in self._enums
        )

    def _input_kind(self, name: str) -> bool:
        return name in BUILTIN_SCALARS or name in self._inputs or name in self._enums

    def _check_references(self, errors: list[str]):
        def check_args(owner: str, args: dict[str, ArgumentDef]):
            for arg_name, arg in args.items():
                if not self._input_kind(named_type(arg.type)):
                    errors.append(f"{owner}({arg_name}): unknown input type '{arg.type}'")

        for container in (self._objects, self._interfaces):
            for definition in container.values():
                for field_name, field_def in definition.fields.items():
                    path = f"{definition.name}.{field_name}"
                    if not self._output_kind(named_type(field_def.type)):
                        errors.append(f"{path}: unknown output type '{field_def.type}'")
                    check_args(path, field_def.args)

        for obj in self._objects.values():
            for interface in obj.interfaces:
                if interface not in self._interfaces:
                    errors.append(f"{obj.name}: '{interface}' is not an interface")

        for union in self._unions.values():
            for member in union.types:
                if member not in self._objects:
                    errors.append(f"{union.name}: member '{member}' is not an object type")

        for input_def in self._inputs.values():
            for field_name, field_def in input_def.fields.items():
                if not self._input_kind(named_type(field_def.type)):
                    errors.append(f"{input_def.name}.{field_name}: unknown input type '{field_def.type}'")

    def _possible_objects(self, name: str) -> list[str]:
        if name in self._objects:
            return [name]
        if name in self._unions:
            return [member for member in self._unions[name].types if member in self._objects]
        if name in self._interfaces:
            return [obj.name for obj in self._objects.values() if name in obj.interfaces]
        return []

    def _check_authorization(self, errors: list[str]):
        """A field may skip a type's capability check only if it is the type's sole path."""
        paths: dict[str, list[str]] = defaultdict(list)
        for obj in self._objects.values():
            for field_name, field_def in obj.fields.items():
                for target in self._possible_objects(named_type(field_def.type)):
                    paths[target].append(f"{obj.name}.{field_name}")

        for obj in self._objects.values():
            for field_name, field_def in obj.fields.items():
                if not field_def.skip_authorization:
                    continue
                for target in self._possible_objects(named_type(field_def.type)):
                    if self._objects[target].authorize is None:
                        continue
                    if len(paths[target]) > 1:
                        errors.append(
                            f"{obj.name}.{field_name} skips authorization for '{target}', "
                            f"which is reachable through {len(paths[target])} paths: {paths[target]}"
                        )

    # =========================================================================
    # Building
    # =========================================================================

    def _ref(self, ref: str):
        ref = ref.strip()
        if ref.endswith("!"):
            return GraphQLNonNull(self._ref(ref[:-1]))
        if ref.startswith("[") and ref.endswith("]"):
            return GraphQLList(self._ref(ref[1:-1]))
        return BUILTIN_SCALARS.get(ref) or self._types[ref]

    def _build_types(self):
        for enum in self._enums.values():
            values = enum.values if isinstance(enum.values, dict) else {value: value for value in enum.values}
            self._types[enum.name] = GraphQLEnumType(
                enum.name,
                {name: GraphQLEnumValue(value) for name, value in values.items()},
                description=enum.description,
            )

        for input_def in self._inputs.values():
            self._types[input_def.name] = GraphQLInputObjectType(
                input_def.name,
                fields=lambda d=input_def: {
                    name: GraphQLInputField(self._ref(f.type), default_value=f.default, description=f.description)
                    for name, f in d.fields.items()
                },
                description=input_def.description,
            )

        for interface in self._interfaces.values():
            self._types[interface.name] = GraphQLInterfaceType(
                interface.name,
                fields=lambda d=interface: self._fields(d, guarded=False),
                resolve_type=self._resolve_abstract,
                description=interface.description,
            )

        for obj in self._objects.values():
            self._types[obj.name] = GraphQLObjectType(
                obj.name,
                fields=lambda d=obj: self._fields(d, guarded=True),
                interfaces=lambda d=obj: [self._types[name] for name in d.interfaces],
                description=obj.description,
            )

        for union in self._unions.values():
            self._types[union.name] = GraphQLUnionType(
                union.name,
                types=lambda d=union: [self._types[name] for name in d.types],
                resolve_type=self._resolve_abstract,
                description=union.description,
            )

    def _fields(self, definition: ObjectDef | InterfaceDef, *, guarded: bool) -> dict[str, GraphQLField]:
        fields = {}
        for name, field_def in definition.fields.items():
            resolve = field_def.resolve
            lookup = self._capability_lookup(field_def.type) if guarded and not field_def.skip_authorization else None
            if lookup is not None:
                resolve = guard_field(resolve or default_field_resolver, lookup, many="[" in field_def.type)

            fields[name] = GraphQLField(
                self._ref(field_def.type),
                args={
                    arg_name: GraphQLArgument(self._ref(arg.type), default_value=arg.default, description=arg.description)
                    for arg_name, arg in field_def.args.items()
                },
                resolve=resolve,
                description=field_def.description,
                deprecation_reason=field_def.deprecation_reason,
            )
        return fields

    def _capability_lookup(self, ref: str) -> Optional[CapabilityLookup]:
        name = named_type(ref)
        checks = {
            target: self._objects[target].authorize
            for target in self._possible_objects(name)
            if self._objects[target].authorize is not None
        }
        if not checks:
            return None

        if name in self._objects:
            entry = (name, checks[name])
            return lambda value: entry

        def lookup(value: Any):
            typename = typename_of(value, self._models)
            return (typename, checks[typename]) if typename in checks else None

        return lookup

    def _resolve_abstract(self, value: Any, info: GraphQLResolveInfo, abstract_type: Any) -> str:
        possible = info.schema.get_possible_types(abstract_type)
        handlers = {t.name: (lambda name=t.name: name) for t in possible}

        def unrecognized(typename: Optional[str]) -> str:
            raise GraphQLError(
                f"Value resolved for '{abstract_type.name}' has unrecognized type '{typename}'"
            )

        return dispatch_variant(typename_of(value, self._models), handlers, unrecognized=unrecognized)


def compile_schema(schema_def: SchemaDef, pipeline: Optional[MutationPipeline] = None) -> GraphQLSchema:
    """Convenience function to compile a schema definition."""
    return SchemaCompiler(schema_def, pipeline=pipeline).compile()
