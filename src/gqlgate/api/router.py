"""
FastAPI routers for the gqlgate HTTP surface.

Endpoints:
- POST /graphql - Executes a request envelope (application/json)
- GET  /graphql - Executes a query from URL parameters (no mutations)

Admin endpoints (optional X-Admin-Token):
- POST   /__persisted              - Register a document
- GET    /__persisted              - List persisted queries
- GET    /__persisted/{id}         - Get one persisted query
- PUT    /__persisted/{id}/allowed - Toggle the allow flag
- DELETE /__persisted/{id}         - Evict a persisted query

Supported request formats:

1. Text document:
   {"query": "query Q { viewer { id } }", "variables": {...}, "operationName": "Q"}

2. Persisted document:
   {"id": "<sha256>", "variables": {...}}

Anything that reaches the validator is answered with HTTP 200; only
malformed envelopes (400) and unsupported content types (415) are
reported at the transport level.
"""

from __future__ import annotations

import asyncio
import hmac
import json
import logging
from contextlib import suppress
from typing import TYPE_CHECKING, Any, Awaitable, Optional, TypeVar

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from ..core.errors import (
    DuplicateIdentifier,
    GatewayError,
    MalformedRequest,
    SchemaValidationError,
    UnknownQuery,
)
from ..core.query_types import GraphQLRequest
from ..core.registry import PersistedQueryEntry
from ..core.request_parser import parse_query_params, parse_request

if TYPE_CHECKING:
    from ..gateway import Gateway

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Status for requests whose client went away before a response was ready
CLIENT_CLOSED_REQUEST = 499


def transport_error(status_code: int, error: GatewayError) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"errors": error.to_dicts()})


class UnsupportedMediaType(GatewayError):
    code = "UNSUPPORTED_MEDIA_TYPE"


async def run_until_disconnected(
    request: Request,
    work: Awaitable[T],
    *,
    poll_interval: float = 0.1,
) -> Optional[T]:
    """
    Await work, cancelling it if the client disconnects first.

    Returns:
        The result of work, or None when the client went away
    """
    task = asyncio.ensure_future(work)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=poll_interval)
            if done:
                return task.result()
            if await request.is_disconnected():
                logger.info(f"Client disconnected from {request.url.path}, cancelling execution")
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
                return None
    except asyncio.CancelledError:
        task.cancel()
        raise


# =============================================================================
# GraphQL endpoint
# =============================================================================


def create_graphql_router(gateway: "Gateway") -> APIRouter:
    """Create the router serving the GraphQL endpoint."""
    router = APIRouter()
    path = gateway.settings.graphql_path

    async def respond(request: Request, graphql_request: GraphQLRequest, *, allow_mutations: bool) -> Response:
        response = await run_until_disconnected(
            request,
            gateway.handle(graphql_request, request, allow_mutations=allow_mutations),
        )
        if response is None:
            return Response(status_code=CLIENT_CLOSED_REQUEST)
        return JSONResponse(content=response.to_wire())

    @router.post(path)
    async def graphql_post(request: Request):
        """
        Execute a GraphQL request envelope.

        Body: {"query"|"id", "variables"?, "operationName"?}
        """
        media_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
        if media_type != "application/json":
            return transport_error(415, UnsupportedMediaType(
                f"Unsupported content type '{media_type or 'none'}', expected application/json"
            ))

        try:
            payload = json.loads(await request.body())
        except ValueError:
            logger.warning("Rejected request: body is not valid JSON")
            return transport_error(400, MalformedRequest("Request body is not valid JSON"))

        try:
            graphql_request = parse_request(payload)
        except MalformedRequest as e:
            logger.warning(f"Rejected malformed request: {e.message}")
            return transport_error(400, e)

        return await respond(request, graphql_request, allow_mutations=True)

    @router.get(path)
    async def graphql_get(request: Request):
        """
        Execute a query from URL parameters.

        Example: /graphql?id=<sha256>&variables={"id":"1"}
        """
        if not gateway.settings.allow_get:
            return JSONResponse(
                status_code=405,
                content={"errors": [{"message": "GET requests are disabled"}]},
                headers={"Allow": "POST"},
            )

        try:
            graphql_request = parse_query_params(request.query_params)
        except MalformedRequest as e:
            logger.warning(f"Rejected malformed GET request: {e.message}")
            return transport_error(400, e)

        return await respond(request, graphql_request, allow_mutations=False)

    return router


# =============================================================================
# Admin endpoints
# =============================================================================


class RegisterQueryBody(BaseModel):
    document: str
    id: Optional[str] = None
    allowed: bool = False


class AllowedBody(BaseModel):
    allowed: bool


def entry_to_dict(entry: PersistedQueryEntry) -> dict[str, Any]:
    return {
        "id": entry.identifier,
        "document": entry.document.text,
        "allowed": entry.allowed,
        "registered_at": entry.registered_at.isoformat(),
    }


def create_admin_router(gateway: "Gateway") -> APIRouter:
    """Create the router for persisted query administration."""

    async def require_admin(x_admin_token: Optional[str] = Header(default=None)):
        expected = gateway.settings.admin_token
        if expected is None:
            return
        if x_admin_token is None or not hmac.compare_digest(x_admin_token, expected):
            logger.warning("Rejected admin request with invalid token")
            raise HTTPException(status_code=401, detail="Invalid admin token")

    router = APIRouter(prefix="/__persisted", dependencies=[Depends(require_admin)])
    registry = gateway.registry

    @router.post("")
    async def register_query(body: RegisterQueryBody):
        """Validate a document against the schema and register it."""
        try:
            gateway.validator.check_document(body.document)
        except SchemaValidationError as e:
            raise HTTPException(status_code=422, detail={"errors": e.to_dicts()})

        try:
            identifier = await registry.register(body.document, body.id, allowed=body.allowed)
        except DuplicateIdentifier as e:
            raise HTTPException(status_code=409, detail={"errors": e.to_dicts()})
        return {"id": identifier}

    @router.get("")
    async def list_queries():
        entries = await registry.entries()
        return {"queries": [entry_to_dict(entry) for entry in sorted(entries, key=lambda e: e.identifier)]}

    @router.get("/{identifier}")
    async def get_query(identifier: str):
        try:
            return entry_to_dict(await registry.get_entry(identifier))
        except UnknownQuery as e:
            raise HTTPException(status_code=404, detail={"errors": e.to_dicts()})

    @router.put("/{identifier}/allowed")
    async def set_allowed(identifier: str, body: AllowedBody):
        try:
            return entry_to_dict(await registry.set_allowed(identifier, body.allowed))
        except UnknownQuery as e:
            raise HTTPException(status_code=404, detail={"errors": e.to_dicts()})

    @router.delete("/{identifier}", status_code=204)
    async def remove_query(identifier: str):
        try:
            await registry.remove(identifier)
        except UnknownQuery as e:
            raise HTTPException(status_code=404, detail={"errors": e.to_dicts()})
        return Response(status_code=204)

    return router
