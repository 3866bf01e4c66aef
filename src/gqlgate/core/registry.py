"""
Query registry - persisted operation documents and their allow-list.

Documents are keyed by a content-derived identifier (SHA-256 of the text)
unless the caller supplies its own. Registration is append-only: entries
are never updated in place, toggling the allow flag stores a new entry.

Usage:
    from gqlgate.core.registry import QueryRegistry

    registry = QueryRegistry(mode="whitelist")
    query_id = await registry.register("query Q { viewer { id } }")
    await registry.set_allowed(query_id, True)

    document = await registry.resolve(query_id)
"""

from __future__ import annotations

import asyncio
import dataclasses
import hashlib
import json
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal, Optional, Protocol

import yaml
from graphql import DocumentNode, GraphQLError, OperationDefinitionNode, parse

from .errors import DocumentSyntaxError, DuplicateIdentifier, UnknownQuery

logger = logging.getLogger(__name__)

RegistryMode = Literal["open", "whitelist"]


def document_identifier(text: str) -> str:
    """Content-derived identifier of a document: SHA-256 hex digest of its UTF-8 text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class OperationDocument:
    """Immutable operation text plus its parsed form."""
    text: str
    ast: DocumentNode = field(repr=False, compare=False)
    digest: str = ""

    @classmethod
    def parse(cls, text: str) -> "OperationDocument":
        """
        Parse operation text.

        Raises:
            DocumentSyntaxError: If the text is not a GraphQL document
        """
        try:
            ast = parse(text)
        except GraphQLError as e:
            raise DocumentSyntaxError(e) from e
        return cls(text=text, ast=ast, digest=document_identifier(text))

    @property
    def operation_names(self) -> list[str]:
        return [
            d.name.value
            for d in self.ast.definitions
            if isinstance(d, OperationDefinitionNode) and d.name
        ]


@dataclass(frozen=True)
class PersistedQueryEntry:
    """Identifier -> document binding with its allow flag."""
    identifier: str
    document: OperationDocument
    allowed: bool = False
    registered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# =============================================================================
# Stores
# =============================================================================


class QueryStore(Protocol):
    """Storage backend for persisted query entries."""

    async def get(self, identifier: str) -> Optional[PersistedQueryEntry]:
        ...

    async def put_if_absent(self, entry: PersistedQueryEntry) -> PersistedQueryEntry:
        """Store entry unless the identifier exists; return the stored entry."""
        ...

    async def replace(self, entry: PersistedQueryEntry) -> None:
        ...

    async def delete(self, identifier: str) -> bool:
        ...

    async def list(self) -> list[PersistedQueryEntry]:
        ...

    async def close(self) -> None:
        ...


class InMemoryQueryStore:
    """Process-local store. Reads are plain dict lookups."""

    def __init__(self):
        self._entries: dict[str, PersistedQueryEntry] = {}

    async def get(self, identifier: str) -> Optional[PersistedQueryEntry]:
        return self._entries.get(identifier)

    async def put_if_absent(self, entry: PersistedQueryEntry) -> PersistedQueryEntry:
        return self._entries.setdefault(entry.identifier, entry)

    async def replace(self, entry: PersistedQueryEntry) -> None:
        self._entries[entry.identifier] = entry

    async def delete(self, identifier: str) -> bool:
        return self._entries.pop(identifier, None) is not None

    async def list(self) -> list[PersistedQueryEntry]:
        return list(self._entries.values())

    async def close(self) -> None:
        pass


class RedisQueryStore:
    """
    Redis-backed store shared between gateway replicas.

    Layout: one hash per entry at ``{prefix}:{identifier}`` with fields
    ``document``, ``allowed`` ("1"/"0") and ``registered_at`` (ISO 8601).
    HSETNX on ``document`` makes first-writer-wins registration atomic.
    """

    def __init__(self, client: Any, prefix: str = "gqlgate:pq", *, cache_size: int = 1024):
        self.client = client
        self.prefix = prefix
        self.cache_size = cache_size
        # digest -> parsed document, least recently used first
        self._parsed: OrderedDict[str, OperationDocument] = OrderedDict()

    @classmethod
    def from_url(cls, url: str, prefix: str = "gqlgate:pq") -> "RedisQueryStore":
        import redis.asyncio as aioredis

        return cls(aioredis.from_url(url, encoding="utf-8", decode_responses=True), prefix=prefix)

    def _key(self, identifier: str) -> str:
        return f"{self.prefix}:{identifier}"

    def _document(self, text: str) -> OperationDocument:
        digest = document_identifier(text)
        document = self._parsed.get(digest)
        if document is None:
            document = OperationDocument.parse(text)
            self._remember(document)
        else:
            self._parsed.move_to_end(digest)
        return document

    def _remember(self, document: OperationDocument):
        self._parsed[document.digest] = document
        self._parsed.move_to_end(document.digest)
        if len(self._parsed) > self.cache_size:
            self._parsed.popitem(last=False)

    def _entry(self, identifier: str, data: dict[str, str]) -> PersistedQueryEntry:
        registered_at = data.get("registered_at")
        return PersistedQueryEntry(
            identifier=identifier,
            document=self._document(data["document"]),
            allowed=data.get("allowed") == "1",
            registered_at=datetime.fromisoformat(registered_at) if registered_at else datetime.now(timezone.utc),
        )

    async def get(self, identifier: str) -> Optional[PersistedQueryEntry]:
        data = await self.client.hgetall(self._key(identifier))
        if not data or "document" not in data:
            return None
        return self._entry(identifier, data)

    async def put_if_absent(self, entry: PersistedQueryEntry) -> PersistedQueryEntry:
        key = self._key(entry.identifier)
        created = await self.client.hsetnx(key, "document", entry.document.text)
        if created:
            await self.client.hset(key, mapping={
                "allowed": "1" if entry.allowed else "0",
                "registered_at": entry.registered_at.isoformat(),
            })
            self._remember(entry.document)
            return entry

        existing = await self.get(entry.identifier)
        return existing if existing is not None else entry

    async def replace(self, entry: PersistedQueryEntry) -> None:
        await self.client.hset(self._key(entry.identifier), mapping={
            "document": entry.document.text,
            "allowed": "1" if entry.allowed else "0",
            "registered_at": entry.registered_at.isoformat(),
        })

    async def delete(self, identifier: str) -> bool:
        key = self._key(identifier)
        data = await self.client.hgetall(key)
        if data.get("document") is not None:
            self._parsed.pop(document_identifier(data["document"]), None)
        return bool(await self.client.delete(key))

    async def list(self) -> list[PersistedQueryEntry]:
        entries = []
        async for key in self.client.scan_iter(match=f"{self.prefix}:*"):
            identifier = key[len(self.prefix) + 1:]
            entry = await self.get(identifier)
            if entry is not None:
                entries.append(entry)
        return entries

    async def close(self) -> None:
        await self.client.aclose()


# =============================================================================
# Registry
# =============================================================================


class QueryRegistry:
    """
    Persisted query registry with open and whitelist modes.

    - open: any registered document may be executed by identifier
    - whitelist: only entries explicitly marked allowed may be executed

    Reads take no lock. Writes are serialized by a lock scoped to the
    write call.
    """

    def __init__(self, store: Optional[QueryStore] = None, *, mode: RegistryMode = "open"):
        if mode not in ("open", "whitelist"):
            raise ValueError(f"Unknown registry mode: {mode}")
        self.store: QueryStore = store if store is not None else InMemoryQueryStore()
        self.mode: RegistryMode = mode
        self._write_lock = asyncio.Lock()

    @property
    def whitelist(self) -> bool:
        return self.mode == "whitelist"

    async def register(
        self,
        document: str,
        identifier: Optional[str] = None,
        *,
        allowed: bool = False,
    ) -> str:
        """
        Register a document.

        Re-registering the same text under the same identifier is idempotent
        and leaves the existing entry untouched.

        Args:
            document: Operation text
            identifier: Explicit identifier (default: SHA-256 of the text)
            allowed: Allow flag for a newly created entry

        Returns:
            The identifier

        Raises:
            DocumentSyntaxError: If the text does not parse
            DuplicateIdentifier: If identifier is bound to a different document
        """
        parsed = OperationDocument.parse(document)
        identifier = identifier or parsed.digest

        async with self._write_lock:
            entry = PersistedQueryEntry(identifier=identifier, document=parsed, allowed=allowed)
            stored = await self.store.put_if_absent(entry)

        if stored.document.text != parsed.text:
            raise DuplicateIdentifier(identifier)

        if stored is entry:
            logger.info(f"Registered persisted query {identifier} (allowed={allowed})")
        else:
            logger.debug(f"Persisted query {identifier} already registered")
        return identifier

    async def resolve(self, identifier: str) -> OperationDocument:
        """
        Get the document for an identifier.

        Raises:
            UnknownQuery: If the identifier is not registered
        """
        return (await self.get_entry(identifier)).document

    async def get_entry(self, identifier: str) -> PersistedQueryEntry:
        entry = await self.store.get(identifier)
        if entry is None:
            raise UnknownQuery(identifier)
        return entry

    async def is_allowed(self, identifier: str) -> bool:
        """Whether identifier is registered and on the allow-list."""
        entry = await self.store.get(identifier)
        return entry is not None and entry.allowed

    async def set_allowed(self, identifier: str, allowed: bool) -> PersistedQueryEntry:
        """
        Toggle the allow flag by storing a replacement entry.

        Raises:
            UnknownQuery: If the identifier is not registered
        """
        async with self._write_lock:
            current = await self.get_entry(identifier)
            replacement = dataclasses.replace(current, allowed=allowed)
            await self.store.replace(replacement)

        logger.info(f"Persisted query {identifier} allowed={allowed}")
        return replacement

    async def remove(self, identifier: str) -> None:
        """
        Evict an entry.

        Raises:
            UnknownQuery: If the identifier is not registered
        """
        async with self._write_lock:
            if not await self.store.delete(identifier):
                raise UnknownQuery(identifier)
        logger.info(f"Removed persisted query {identifier}")

    async def entries(self) -> list[PersistedQueryEntry]:
        return await self.store.list()

    async def load_manifest(self, path: Path | str) -> int:
        """
        Register every document of a manifest file.

        Returns:
            Number of entries in the manifest
        """
        manifest = read_manifest(path)
        for identifier, item in manifest.items():
            await self.register(item["document"], identifier, allowed=item["allowed"])
            if item["allowed"] and not await self.is_allowed(identifier):
                await self.set_allowed(identifier, True)

        logger.info(f"Loaded {len(manifest)} persisted queries from {path}")
        return len(manifest)

    async def close(self) -> None:
        await self.store.close()


# =============================================================================
# Manifest files
# =============================================================================


def read_manifest(path: Path | str) -> dict[str, dict[str, Any]]:
    """
    Read a persisted query manifest (YAML or JSON).

    Accepted shapes:
        queries:
          <id>: {document: "...", allowed: true}
    or a flat mapping ``{<id>: "<document>"}``.

    Returns:
        Identifier -> {"document": str, "allowed": bool}
    """
    path = Path(path)
    if not path.exists():
        return {}

    data = yaml.safe_load(path.read_text()) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Manifest {path} must be a mapping")

    raw = data.get("queries", data)
    if not isinstance(raw, dict):
        raise ValueError(f"Manifest {path} 'queries' must be a mapping")
    manifest: dict[str, dict[str, Any]] = {}
    for identifier, item in raw.items():
        if isinstance(item, str):
            manifest[str(identifier)] = {"document": item, "allowed": False}
        elif isinstance(item, dict) and isinstance(item.get("document"), str):
            manifest[str(identifier)] = {
                "document": item["document"],
                "allowed": bool(item.get("allowed", False)),
            }
        else:
            raise ValueError(f"Manifest entry '{identifier}' has no document")
    return manifest


def write_manifest(path: Path | str, manifest: dict[str, dict[str, Any]]) -> None:
    """Write a manifest as YAML (JSON when the path ends with .json)."""
    path = Path(path)
    data = {"queries": manifest}
    if path.suffix == ".json":
        path.write_text(json.dumps(data, indent=2) + "\n")
    else:
        path.write_text(yaml.dump(data, default_flow_style=False, sort_keys=True))
