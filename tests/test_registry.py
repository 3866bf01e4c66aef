"""Tests for the persisted query registry and its stores."""

from __future__ import annotations

import asyncio
import fnmatch
import json

import pytest

from gqlgate.core.errors import DocumentSyntaxError, DuplicateIdentifier, UnknownQuery
from gqlgate.core.registry import (
    QueryRegistry,
    RedisQueryStore,
    document_identifier,
    read_manifest,
    write_manifest,
)

VIEWER_QUERY = "query Q { viewer { id } }"


class FakeRedis:
    """The subset of redis.asyncio.Redis the store uses, with decode_responses=True."""

    def __init__(self):
        self.hashes: dict[str, dict[str, str]] = {}
        self.closed = False

    async def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    async def hsetnx(self, key, field, value):
        bucket = self.hashes.setdefault(key, {})
        if field in bucket:
            return 0
        bucket[field] = value
        return 1

    async def hset(self, key, mapping):
        self.hashes.setdefault(key, {}).update(mapping)
        return len(mapping)

    async def delete(self, key):
        return 1 if self.hashes.pop(key, None) is not None else 0

    async def scan_iter(self, match):
        for key in list(self.hashes):
            if fnmatch.fnmatch(key, match):
                yield key

    async def aclose(self):
        self.closed = True


@pytest.fixture(params=["memory", "redis"])
def registry(request):
    if request.param == "memory":
        return QueryRegistry()
    return QueryRegistry(RedisQueryStore(FakeRedis()))


async def test_register_defaults_to_content_hash(registry):
    identifier = await registry.register(VIEWER_QUERY)

    assert identifier == document_identifier(VIEWER_QUERY)
    document = await registry.resolve(identifier)
    assert document.text == VIEWER_QUERY
    assert document.operation_names == ["Q"]


async def test_register_same_content_is_idempotent(registry):
    first = await registry.register(VIEWER_QUERY)
    second = await registry.register(VIEWER_QUERY)

    assert first == second
    assert len(await registry.entries()) == 1


async def test_reregister_keeps_allow_flag(registry):
    identifier = await registry.register(VIEWER_QUERY, allowed=True)
    await registry.register(VIEWER_QUERY)

    assert await registry.is_allowed(identifier)


async def test_explicit_identifier_collision_raises(registry):
    await registry.register(VIEWER_QUERY, "viewer")

    with pytest.raises(DuplicateIdentifier) as exc_info:
        await registry.register("query Other { hello }", "viewer")
    assert exc_info.value.code == "DUPLICATE_IDENTIFIER"
    assert (await registry.resolve("viewer")).text == VIEWER_QUERY


async def test_register_rejects_unparseable_text(registry):
    with pytest.raises(DocumentSyntaxError):
        await registry.register("query {")
    assert await registry.entries() == []


async def test_resolve_unknown_identifier(registry):
    with pytest.raises(UnknownQuery) as exc_info:
        await registry.resolve("missing")
    assert exc_info.value.code == "PERSISTED_QUERY_NOT_FOUND"
    assert await registry.is_allowed("missing") is False


async def test_set_allowed_replaces_entry(registry):
    identifier = await registry.register(VIEWER_QUERY)
    before = await registry.get_entry(identifier)

    after = await registry.set_allowed(identifier, True)

    assert before.allowed is False
    assert after.allowed is True
    assert after is not before
    assert await registry.is_allowed(identifier)

    await registry.set_allowed(identifier, False)
    assert not await registry.is_allowed(identifier)


async def test_set_allowed_unknown(registry):
    with pytest.raises(UnknownQuery):
        await registry.set_allowed("missing", True)


async def test_remove(registry):
    identifier = await registry.register(VIEWER_QUERY)
    await registry.remove(identifier)

    with pytest.raises(UnknownQuery):
        await registry.resolve(identifier)
    with pytest.raises(UnknownQuery):
        await registry.remove(identifier)


async def test_concurrent_registrations_create_one_entry(registry):
    identifiers = await asyncio.gather(*(registry.register(VIEWER_QUERY) for _ in range(20)))

    assert set(identifiers) == {document_identifier(VIEWER_QUERY)}
    assert len(await registry.entries()) == 1


def test_unknown_mode_rejected():
    with pytest.raises(ValueError):
        QueryRegistry(mode="closed")


async def test_redis_store_layout_and_close():
    redis = FakeRedis()
    registry = QueryRegistry(RedisQueryStore(redis, prefix="pq"))

    identifier = await registry.register(VIEWER_QUERY, allowed=True)

    stored = redis.hashes[f"pq:{identifier}"]
    assert stored["document"] == VIEWER_QUERY
    assert stored["allowed"] == "1"
    assert "registered_at" in stored

    await registry.close()
    assert redis.closed


async def test_load_manifest(registry, tmp_path):
    manifest_path = tmp_path / "persisted.yaml"
    write_manifest(manifest_path, {
        "viewer": {"document": VIEWER_QUERY, "allowed": True},
        "hello": {"document": "{ hello }", "allowed": False},
    })

    count = await registry.load_manifest(manifest_path)

    assert count == 2
    assert await registry.is_allowed("viewer")
    assert not await registry.is_allowed("hello")


async def test_load_manifest_allows_existing_entry(registry, tmp_path):
    await registry.register(VIEWER_QUERY, "viewer")
    manifest_path = tmp_path / "persisted.yaml"
    write_manifest(manifest_path, {"viewer": {"document": VIEWER_QUERY, "allowed": True}})

    await registry.load_manifest(manifest_path)

    assert await registry.is_allowed("viewer")


def test_read_manifest_shapes(tmp_path):
    flat = tmp_path / "flat.json"
    flat.write_text(json.dumps({"abc": "{ hello }"}))
    nested = tmp_path / "nested.yaml"
    nested.write_text("queries:\n  abc:\n    document: '{ hello }'\n    allowed: true\n")

    assert read_manifest(flat) == {"abc": {"document": "{ hello }", "allowed": False}}
    assert read_manifest(nested) == {"abc": {"document": "{ hello }", "allowed": True}}
    assert read_manifest(tmp_path / "missing.yaml") == {}


def test_read_manifest_rejects_entry_without_document(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("queries:\n  abc:\n    allowed: true\n")

    with pytest.raises(ValueError):
        read_manifest(path)


@pytest.mark.parametrize("content", ["queries:\n", "queries:\n  - '{ hello }'\n"])
def test_read_manifest_rejects_non_mapping_queries(tmp_path, content):
    path = tmp_path / "bad.yaml"
    path.write_text(content)

    with pytest.raises(ValueError) as exc_info:
        read_manifest(path)
    assert "'queries' must be a mapping" in str(exc_info.value)


def test_write_manifest_json(tmp_path):
    path = tmp_path / "persisted.json"
    write_manifest(path, {"abc": {"document": "{ hello }", "allowed": True}})

    assert json.loads(path.read_text()) == {"queries": {"abc": {"document": "{ hello }", "allowed": True}}}


async def test_redis_parse_cache_is_bounded():
    store = RedisQueryStore(FakeRedis(), cache_size=2)
    registry = QueryRegistry(store)

    for name in ("A", "B", "C"):
        await registry.register(f"query {name} {{ hello }}")

    assert len(store._parsed) == 2
    assert document_identifier("query A { hello }") not in store._parsed

    document = await registry.resolve(document_identifier("query A { hello }"))
    assert document.operation_names == ["A"]
    assert len(store._parsed) == 2


async def test_redis_delete_evicts_parsed_document():
    store = RedisQueryStore(FakeRedis())
    registry = QueryRegistry(store)
    identifier = await registry.register(VIEWER_QUERY)

    await registry.remove(identifier)

    assert identifier not in store._parsed
