"""Shared fixtures: a small user/post schema served by a gateway."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import pytest
from fastapi.testclient import TestClient
from pydantic import BaseModel, field_validator

from gqlgate import (
    ArgumentDef,
    ExecutionContext,
    FailureDef,
    FieldDef,
    Gateway,
    GatewaySettings,
    InputFieldDef,
    InterfaceDef,
    MutationDef,
    MutationFailure,
    NotFoundError,
    ObjectDef,
    Principal,
    SchemaDef,
    UnionDef,
    any_of,
    is_owner,
    requires_roles,
)


@dataclass
class Post:
    id: str
    title: str
    author_id: str


class SetUserEmailInput(BaseModel):
    userId: str
    email: str

    @field_validator("email")
    @classmethod
    def _looks_like_email(cls, value: str) -> str:
        if "@" not in value:
            raise ValueError("must be an email address")
        return value


class DemoData:
    """In-memory data plus counters the tests inspect."""

    def __init__(self):
        self.users = {
            "1": {"__typename": "User", "id": "1", "name": "Ada", "email": "ada@example.com"},
            "2": {"__typename": "User", "id": "2", "name": "Grace", "email": "grace@example.com"},
        }
        self.posts = {
            "p1": Post(id="p1", title="Notes on the engine", author_id="1"),
            "p2": Post(id="p2", title="Compilers", author_id="2"),
        }
        self.capability_checks = 0
        self.slow_started = asyncio.Event()
        self.slow_cancelled = 0


def build_schema_def(data: DemoData) -> SchemaDef:
    owner_or_admin = any_of(requires_roles("admin"), is_owner("id"))

    def authorize_user(user, context):
        data.capability_checks += 1
        return owner_or_admin(user, context)

    def viewer(root, info):
        principal = info.context.principal
        return data.users.get(principal.id) if principal else None

    def boom(root, info):
        raise RuntimeError("connection string postgres://secret leaked")

    def broken(profile, info):
        raise RuntimeError("profile store unavailable")

    async def slow(root, info):
        data.slow_started.set()
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            data.slow_cancelled += 1
            raise
        return "done"

    def search(root, info, term):
        users = [u for u in data.users.values() if term.lower() in u["name"].lower()]
        posts = [p for p in data.posts.values() if term.lower() in p.title.lower()]
        return users + posts

    def set_user_email(input: SetUserEmailInput, context):
        user = data.users.get(input.userId)
        if user is None:
            raise NotFoundError(f"User {input.userId} not found")
        if any(u["email"] == input.email for u in data.users.values() if u is not user):
            raise MutationFailure("EMAIL_TAKEN", "Email already in use", email=input.email)
        user["email"] = input.email
        return {"user": user}

    def archive_user(input, context):
        raise MutationFailure("RATE_LIMITED", "Too many archive requests")

    def crash_user(input, context):
        raise RuntimeError("disk full")

    async def slow_mutation(input, context):
        await asyncio.sleep(5)
        return {"ok": True}

    return SchemaDef(
        query={
            "hello": FieldDef("String!", resolve=lambda root, info: "world"),
            "viewer": FieldDef("User", resolve=viewer),
            "user": FieldDef(
                "User",
                args={"id": ArgumentDef("ID!")},
                resolve=lambda root, info, id: data.users.get(id),
            ),
            "users": FieldDef("[User!]!", resolve=lambda root, info: list(data.users.values())),
            "posts": FieldDef("[Post!]!", resolve=lambda root, info: list(data.posts.values())),
            "node": FieldDef(
                "Node",
                args={"id": ArgumentDef("ID!")},
                resolve=lambda root, info, id: data.users.get(id) or data.posts.get(id),
            ),
            "search": FieldDef("[SearchResult!]!", args={"term": ArgumentDef("String!")}, resolve=search),
            "boom": FieldDef("String", resolve=boom),
            "slow": FieldDef("String", resolve=slow),
            "profile": FieldDef("Profile", resolve=lambda root, info: {"name": "Ada"}),
            "criticalProfile": FieldDef("Profile!", resolve=lambda root, info: {"name": "Ada"}),
        },
        interfaces=[
            InterfaceDef(name="Node", fields={"id": FieldDef("ID!")}),
        ],
        objects=[
            ObjectDef(
                name="User",
                fields={
                    "id": FieldDef("ID!"),
                    "name": FieldDef("String!"),
                    "email": FieldDef("String!"),
                },
                interfaces=["Node"],
                authorize=authorize_user,
            ),
            ObjectDef(
                name="Post",
                fields={
                    "id": FieldDef("ID!"),
                    "title": FieldDef("String!"),
                    "author": FieldDef("User", resolve=lambda post, info: data.users.get(post.author_id)),
                },
                interfaces=["Node"],
                model=Post,
            ),
            ObjectDef(
                name="Profile",
                fields={
                    "name": FieldDef("String!"),
                    "broken": FieldDef("String!", resolve=broken),
                },
            ),
        ],
        unions=[
            UnionDef(name="SearchResult", types=["User", "Post"]),
        ],
        mutations={
            "setUserEmail": MutationDef(
                resolve=set_user_email,
                input={"userId": InputFieldDef("ID!"), "email": InputFieldDef("String!")},
                output={"user": FieldDef("User!")},
                failures=[
                    FailureDef("EmailTakenError", "EMAIL_TAKEN", fields={"email": FieldDef("String!")}),
                ],
                input_model=SetUserEmailInput,
            ),
            "archiveUser": MutationDef(
                resolve=archive_user,
                input={"userId": InputFieldDef("ID!")},
                output={"archived": FieldDef("Boolean!")},
            ),
            "crashUser": MutationDef(
                resolve=crash_user,
                input={"userId": InputFieldDef("ID!")},
                output={"ok": FieldDef("Boolean!")},
            ),
            "slowMutation": MutationDef(
                resolve=slow_mutation,
                input={"note": InputFieldDef("String")},
                output={"ok": FieldDef("Boolean!")},
            ),
        },
    )


def header_context(connection) -> ExecutionContext:
    """Context factory reading X-User-Id and X-Roles."""
    user_id = connection.headers.get("x-user-id")
    roles = [role for role in connection.headers.get("x-roles", "").split(",") if role]
    return ExecutionContext(
        principal=Principal(id=user_id, roles=roles) if user_id else None,
        headers=dict(connection.headers),
    )


def make_settings(**overrides) -> GatewaySettings:
    values = {
        "resolver_timeout": 0.2,
        "mutation_timeout": 0.2,
        "admin_token": None,
        "persisted_manifest": None,
        "redis_url": None,
    }
    values.update(overrides)
    return GatewaySettings(**values)


def as_user(user_id: str, *roles: str) -> dict[str, str]:
    headers = {"X-User-Id": user_id}
    if roles:
        headers["X-Roles"] = ",".join(roles)
    return headers


@pytest.fixture
def data() -> DemoData:
    return DemoData()


@pytest.fixture
def schema_def(data) -> SchemaDef:
    return build_schema_def(data)


@pytest.fixture
def gateway(schema_def) -> Gateway:
    return Gateway(schema_def, settings=make_settings(), context_factory=header_context)


@pytest.fixture
def whitelist_gateway(schema_def) -> Gateway:
    return Gateway(
        schema_def,
        settings=make_settings(registry_mode="whitelist", admin_token="s3cret"),
        context_factory=header_context,
    )


@pytest.fixture
def client(gateway):
    with TestClient(gateway.app) as client:
        yield client


@pytest.fixture
def whitelist_client(whitelist_gateway):
    with TestClient(whitelist_gateway.app) as client:
        yield client
