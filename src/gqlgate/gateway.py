"""
gqlgate Gateway - main entry point for creating a gateway application.

Usage:
    from gqlgate import Gateway, GatewaySettings

    gateway = Gateway(
        schema_def,
        settings=GatewaySettings(registry_mode="whitelist"),
        context_factory=build_context,
    )

    app = gateway.app
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from inspect import isawaitable
from typing import Any, Callable, Optional

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import HTTPConnection
from fastapi.responses import PlainTextResponse
from graphql import OperationType, print_schema

from .api import create_admin_router, create_graphql_router
from .cli.config import CONFIG_PATH_ENV, GatewaySettings, load_config
from .core.compiler import compile_schema
from .core.defs import SchemaDef
from .core.errors import GatewayError, MutationNotAllowed
from .core.query_types import GraphQLRequest, GraphQLResponse
from .core.registry import InMemoryQueryStore, QueryRegistry, QueryStore, RedisQueryStore
from .core.validator import DocumentValidator
from .runtime.context import default_context_factory
from .runtime.executor import ExecutionEngine
from .runtime.mutation_executor import MutationPipeline
from .websocket import GraphQLWebSocketRouter

logger = logging.getLogger(__name__)

ContextFactory = Callable[[HTTPConnection], Any]


class HealthcheckLogFilter(logging.Filter):
    """Filter out noisy healthcheck and schema endpoint logs."""

    FILTERED_PATHS = ("/__schema", "/health")

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        for path in self.FILTERED_PATHS:
            if f'"{path}' in message or f" {path} " in message:
                return False
        return True


class Gateway:
    """
    GraphQL gateway over a programmatically defined schema.

    Features:
    - Compiles the schema definition at construction
    - Persisted query registry (open or whitelist mode)
    - HTTP (POST/GET), admin and WebSocket transports on a FastAPI app
    """

    def __init__(
        self,
        schema_def: SchemaDef,
        *,
        settings: Optional[GatewaySettings] = None,
        context_factory: Optional[ContextFactory] = None,
        query_store: Optional[QueryStore] = None,
        root_value: Any = None,
        title: str = "gqlgate",
    ):
        """
        Initialize gateway.

        Args:
            schema_def: Schema definition to compile
            settings: Gateway settings (default: $GQLGATE_CONFIG or gqlgate.yaml, then environment)
            context_factory: Builds the execution context from a request or websocket (sync or async)
            query_store: Persisted query storage (default: Redis when redis_url is set, else in-memory)
            root_value: Root value for query resolvers
            title: FastAPI app title
        """
        self.settings = settings or load_config(os.environ.get(CONFIG_PATH_ENV, "gqlgate.yaml"))
        self.title = title
        self.context_factory = context_factory or default_context_factory

        self.pipeline = MutationPipeline(schema_def.mutations, timeout=self.settings.mutation_timeout)
        self.schema = compile_schema(schema_def, self.pipeline)

        if query_store is None:
            query_store = (
                RedisQueryStore.from_url(self.settings.redis_url)
                if self.settings.redis_url
                else InMemoryQueryStore()
            )
        self.registry = QueryRegistry(query_store, mode=self.settings.registry_mode)
        self.validator = DocumentValidator(self.schema, self.registry, max_depth=self.settings.max_depth)
        self.engine = ExecutionEngine(
            self.schema,
            root_value=root_value,
            resolver_timeout=self.settings.resolver_timeout,
            max_concurrent_resolvers=self.settings.max_concurrent_resolvers,
            mask_errors=self.settings.mask_errors,
        )

        # Create FastAPI app
        self.app = self._create_app()

        # Store reference to gateway on app for dependencies
        self.app.state.gateway = self

    async def build_context(self, connection: HTTPConnection) -> Any:
        context = self.context_factory(connection)
        if isawaitable(context):
            context = await context
        return context

    async def process(
        self,
        request: GraphQLRequest,
        context: Any,
        *,
        allow_mutations: bool = True,
    ) -> GraphQLResponse:
        """
        Validate and execute a request.

        Gateway errors become GraphQL errors; anything unexpected becomes an
        opaque internal error. Cancellation propagates.
        """
        try:
            operation = await self.validator.validate(request)
            if not allow_mutations and operation.operation_type == OperationType.MUTATION:
                raise MutationNotAllowed("Mutations are only accepted over POST")
            return await self.engine.execute(operation, context)
        except GatewayError as e:
            return GraphQLResponse.from_error(e)
        except Exception:
            logger.exception("Internal error while processing GraphQL request")
            return GraphQLResponse.internal_error()

    async def handle(
        self,
        request: GraphQLRequest,
        connection: HTTPConnection,
        *,
        allow_mutations: bool = True,
    ) -> GraphQLResponse:
        """Build the context for connection, then process request."""
        try:
            context = await self.build_context(connection)
        except Exception:
            logger.exception("Context factory failed")
            return GraphQLResponse.internal_error()
        return await self.process(request, context, allow_mutations=allow_mutations)

    def sdl(self) -> str:
        return print_schema(self.schema)

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            logging.getLogger("uvicorn.access").addFilter(HealthcheckLogFilter())
            if self.settings.persisted_manifest:
                await self.registry.load_manifest(self.settings.persisted_manifest)
            logger.info(
                f"Gateway '{self.title}' ready at {self.settings.graphql_path} "
                f"(registry mode: {self.registry.mode})"
            )
            yield
            await self.registry.close()

        app = FastAPI(
            title=self.title,
            description="gqlgate - schema-governed GraphQL gateway",
            version="1.0.0",
            lifespan=lifespan,
        )

        # CORS
        app.add_middleware(
            CORSMiddleware,
            allow_origins=self.settings.cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )

        app.include_router(create_graphql_router(self))
        app.include_router(create_admin_router(self))

        # Health check
        @app.get("/health")
        async def health():
            return {"status": "ok"}

        # Schema SDL
        @app.get("/__schema", response_class=PlainTextResponse)
        async def schema_sdl():
            return self.sdl()

        ws_router = GraphQLWebSocketRouter(self)

        @app.websocket(f"{self.settings.graphql_path}/ws")
        async def websocket_endpoint(websocket: WebSocket):
            await ws_router.handle_connection(websocket)

        return app
