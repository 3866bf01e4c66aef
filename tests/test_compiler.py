"""Tests for the schema compiler."""

from __future__ import annotations

import pytest
from graphql import print_schema

from gqlgate.core.compiler import compile_schema
from gqlgate.core.defs import (
    ArgumentDef,
    EnumDef,
    FailureDef,
    FieldDef,
    InputDef,
    InputFieldDef,
    MutationDef,
    ObjectDef,
    SchemaDef,
)
from gqlgate.core.errors import MutationShapeError, SchemaDefinitionError


def noop(input, context):
    return {}


def hello_query():
    return {"hello": FieldDef("String!", resolve=lambda root, info: "world")}


def test_generates_mutation_types(schema_def):
    sdl = print_schema(compile_schema(schema_def))

    assert "setUserEmail(input: SetUserEmailInput!): SetUserEmailPayload\n" in sdl
    assert "union SetUserEmailResult = SetUserEmailSuccess | EmailTakenError | InvalidInputError | MutationError" in sdl
    assert "union ArchiveUserResult = ArchiveUserSuccess | MutationError" in sdl
    assert "type SetUserEmailPayload {\n  result: SetUserEmailResult!\n" in sdl
    assert "query: Query!" in sdl
    assert "type EmailTakenError implements Error {" in sdl
    assert "interface Error {\n  code: String!\n  message: String!\n}" in sdl
    assert "type InputViolation {\n  path: [String!]!\n  message: String!\n}" in sdl


def test_named_input_and_enum():
    schema = compile_schema(SchemaDef(
        query=hello_query(),
        enums=[EnumDef("Role", ["ADMIN", "MEMBER"])],
        inputs=[InputDef("InviteInput", {
            "email": InputFieldDef("String!"),
            "role": InputFieldDef("Role", default="MEMBER"),
        })],
        mutations={
            "invite": MutationDef(resolve=noop, input="InviteInput", output={"ok": FieldDef("Boolean!")}),
        },
    ))

    sdl = print_schema(schema)
    assert "invite(input: InviteInput!): InvitePayload" in sdl
    assert "role: Role = MEMBER" in sdl
    assert "enum Role {" in sdl


def test_explicit_single_input_argument_is_accepted():
    schema = compile_schema(SchemaDef(
        query=hello_query(),
        inputs=[InputDef("PingInput", {"note": InputFieldDef("String")})],
        mutations={
            "ping": MutationDef(
                resolve=noop,
                arguments={"input": ArgumentDef("PingInput!")},
                output={"ok": FieldDef("Boolean!")},
            ),
        },
    ))

    assert schema.mutation_type.fields["ping"].args.keys() == {"input"}


@pytest.mark.parametrize("arguments", [
    {"userId": ArgumentDef("ID!"), "email": ArgumentDef("String!")},
    {"input": ArgumentDef("String!")},
    {"input": ArgumentDef("PingInput")},
    {"input": ArgumentDef("[PingInput!]!")},
    {"data": ArgumentDef("PingInput!")},
])
def test_mutation_shape_violations(arguments):
    with pytest.raises(MutationShapeError) as exc_info:
        compile_schema(SchemaDef(
            query=hello_query(),
            inputs=[InputDef("PingInput", {"note": InputFieldDef("String")})],
            mutations={"ping": MutationDef(resolve=noop, arguments=arguments, output={"ok": FieldDef("Boolean!")})},
        ))
    assert exc_info.value.code == "SCHEMA_DEFINITION_ERROR"


def test_mutation_without_input_rejected():
    with pytest.raises(MutationShapeError):
        compile_schema(SchemaDef(
            query=hello_query(),
            mutations={"ping": MutationDef(resolve=noop, output={"ok": FieldDef("Boolean!")})},
        ))


def test_mutation_without_output_rejected():
    with pytest.raises(SchemaDefinitionError) as exc_info:
        compile_schema(SchemaDef(
            query=hello_query(),
            mutations={"ping": MutationDef(resolve=noop, input={"note": InputFieldDef("String")})},
        ))
    assert "declares no output fields" in exc_info.value.errors[0]


def test_all_definition_errors_reported_together():
    with pytest.raises(SchemaDefinitionError) as exc_info:
        compile_schema(SchemaDef(
            query={
                "a": FieldDef("Missing"),
                "b": FieldDef("String", args={"filter": ArgumentDef("Widget")}),
            },
            objects=[ObjectDef("Widget", fields={"id": FieldDef("ID!")})],
        ))

    errors = exc_info.value.errors
    assert len(errors) == 2
    assert any("Query.a" in error and "Missing" in error for error in errors)
    assert any("Query.b(filter)" in error for error in errors)


def test_reserved_and_duplicate_names():
    with pytest.raises(SchemaDefinitionError) as exc_info:
        compile_schema(SchemaDef(
            query=hello_query(),
            objects=[
                ObjectDef("MutationError", fields={"id": FieldDef("ID!")}),
                ObjectDef("Thing", fields={"id": FieldDef("ID!")}),
                ObjectDef("Thing", fields={"id": FieldDef("ID!")}),
            ],
        ))

    errors = exc_info.value.errors
    assert "Type name 'MutationError' is reserved" in errors
    assert "Type 'Thing' is defined more than once" in errors


def test_failure_code_conflict():
    taken_a = FailureDef("TakenError", "TAKEN")
    taken_b = FailureDef("TakenError", "ALREADY_TAKEN")

    with pytest.raises(SchemaDefinitionError) as exc_info:
        compile_schema(SchemaDef(
            query=hello_query(),
            mutations={
                "a": MutationDef(resolve=noop, input={"x": InputFieldDef("Int")}, output={"ok": FieldDef("Boolean")}, failures=[taken_a]),
                "b": MutationDef(resolve=noop, input={"x": InputFieldDef("Int")}, output={"ok": FieldDef("Boolean")}, failures=[taken_b]),
            },
        ))
    assert "declared with codes" in exc_info.value.errors[0]


def test_shared_failure_variant_compiles_once():
    taken = FailureDef("TakenError", "TAKEN")
    schema = compile_schema(SchemaDef(
        query=hello_query(),
        mutations={
            "a": MutationDef(resolve=noop, input={"x": InputFieldDef("Int")}, output={"ok": FieldDef("Boolean")}, failures=[taken]),
            "b": MutationDef(resolve=noop, input={"x": InputFieldDef("Int")}, output={"ok": FieldDef("Boolean")}, failures=[taken]),
        },
    ))

    assert "TakenError" in schema.type_map


def guarded_schema(*, skip_on: tuple[str, ...]) -> SchemaDef:
    return SchemaDef(
        query={
            "secret": FieldDef("Secret", resolve=lambda root, info: {"id": "1"}, skip_authorization="secret" in skip_on),
            "secrets": FieldDef("[Secret!]!", resolve=lambda root, info: [], skip_authorization="secrets" in skip_on),
        },
        objects=[ObjectDef("Secret", fields={"id": FieldDef("ID!")}, authorize=lambda obj, context: False)],
    )


def test_skip_authorization_requires_single_path():
    with pytest.raises(SchemaDefinitionError) as exc_info:
        compile_schema(guarded_schema(skip_on=("secret",)))
    assert "reachable through 2 paths" in exc_info.value.errors[0]


def test_skip_authorization_on_sole_path():
    schema = compile_schema(SchemaDef(
        query={"secret": FieldDef("Secret", resolve=lambda root, info: {"id": "1"}, skip_authorization=True)},
        objects=[ObjectDef("Secret", fields={"id": FieldDef("ID!")}, authorize=lambda obj, context: False)],
    ))

    assert "secret" in schema.query_type.fields
