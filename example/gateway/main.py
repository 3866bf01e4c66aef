"""
Demo gateway - users with an owner-or-admin capability and one mutation.

Usage:
    gqlgate serve example.gateway.main:app

    curl -s localhost:8000/graphql -H 'content-type: application/json' \
        -H 'x-user-id: 1' -d '{"query": "{ viewer { id email } }"}'
"""

from gqlgate import (
    ExecutionContext,
    FailureDef,
    FieldDef,
    Gateway,
    GatewaySettings,
    InputFieldDef,
    MutationDef,
    MutationFailure,
    ObjectDef,
    Principal,
    SchemaDef,
    any_of,
    is_owner,
    requires_roles,
)

USERS = {
    "1": {"id": "1", "name": "Ada", "email": "ada@example.com"},
    "2": {"id": "2", "name": "Grace", "email": "grace@example.com"},
}


def build_context(connection) -> ExecutionContext:
    user_id = connection.headers.get("x-user-id")
    roles = [r for r in connection.headers.get("x-roles", "").split(",") if r]
    return ExecutionContext(
        principal=Principal(id=user_id, roles=roles) if user_id else None,
        headers=dict(connection.headers),
    )


def set_user_email(input, context):
    if any(user["email"] == input["email"] for user in USERS.values()):
        raise MutationFailure("EMAIL_TAKEN", "Email already in use", email=input["email"])
    user = USERS[input["userId"]]
    user["email"] = input["email"]
    return {"user": user}


schema_def = SchemaDef(
    query={
        "viewer": FieldDef(
            "User",
            resolve=lambda root, info: USERS.get(getattr(info.context.principal, "id", None)),
        ),
        "users": FieldDef("[User!]!", resolve=lambda root, info: list(USERS.values())),
    },
    objects=[
        ObjectDef(
            name="User",
            fields={
                "id": FieldDef("ID!"),
                "name": FieldDef("String!"),
                "email": FieldDef("String!"),
            },
            authorize=any_of(requires_roles("admin"), is_owner("id")),
        ),
    ],
    mutations={
        "setUserEmail": MutationDef(
            resolve=set_user_email,
            input={"userId": InputFieldDef("ID!"), "email": InputFieldDef("String!")},
            output={"user": FieldDef("User!")},
            failures=[FailureDef("EmailTakenError", "EMAIL_TAKEN", fields={"email": FieldDef("String!")})],
        ),
    },
)

gateway = Gateway(
    schema_def,
    settings=GatewaySettings(),
    context_factory=build_context,
    title="gqlgate demo",
)

app = gateway.app
