"""
Request parser for the GraphQL wire envelope.

Supports:

1. Text documents:
   {"query": "query Q { viewer { id } }", "variables": {...}, "operationName": "Q"}

2. Persisted documents by identifier:
   {"id": "<sha256>", "variables": {...}}

3. Automatic persisted query extension (treated as an identifier):
   {"extensions": {"persistedQuery": {"version": 1, "sha256Hash": "<sha256>"}}}

4. GET query parameters, where variables and extensions are JSON strings:
   /graphql?id=<sha256>&variables={"first":10}
"""

from __future__ import annotations

import json
from typing import Any, Mapping

from pydantic import ValidationError as PydanticValidationError

from .errors import MalformedRequest
from .query_types import GraphQLRequest


def parse_request(payload: Any) -> GraphQLRequest:
    """
    Parse a decoded JSON body into a GraphQLRequest.

    Raises:
        MalformedRequest: If the envelope shape is invalid
    """
    if not isinstance(payload, dict):
        raise MalformedRequest("Request body must be a JSON object")

    payload = _apply_persisted_extension(payload)

    try:
        return GraphQLRequest.model_validate(payload)
    except PydanticValidationError as e:
        raise MalformedRequest(_describe(e)) from e


def parse_query_params(params: Mapping[str, str]) -> GraphQLRequest:
    """
    Parse GET query parameters into a GraphQLRequest.

    Raises:
        MalformedRequest: If a JSON-encoded parameter does not decode
    """
    payload: dict[str, Any] = {}
    for key in ("query", "id", "operationName"):
        if key in params:
            payload[key] = params[key]

    for key in ("variables", "extensions"):
        raw = params.get(key)
        if raw:
            try:
                payload[key] = json.loads(raw)
            except ValueError as e:
                raise MalformedRequest(f"'{key}' query parameter is not valid JSON") from e

    return parse_request(payload)


def _apply_persisted_extension(payload: dict) -> dict:
    """Map extensions.persistedQuery.sha256Hash to id when id is absent."""
    if "id" in payload:
        return payload

    extensions = payload.get("extensions")
    if not isinstance(extensions, dict):
        return payload

    persisted = extensions.get("persistedQuery")
    if isinstance(persisted, dict) and isinstance(persisted.get("sha256Hash"), str):
        if "query" in payload:
            # Client sent text alongside its hash; the text is authoritative
            return payload
        return {**payload, "id": persisted["sha256Hash"]}

    return payload


def _describe(error: PydanticValidationError) -> str:
    """Flatten pydantic errors into one message."""
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item["loc"])
        message = item["msg"].removeprefix("Value error, ")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)
