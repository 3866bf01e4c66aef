"""
WebSocket router for the Gateway.

Executes GraphQL requests over a long-lived connection. Protocol:

    -> {"type": "execute", "id": "1", "payload": {<request envelope>}}
    <- {"type": "result", "id": "1", "payload": {"data": ..., "errors": ...}}
    -> {"type": "cancel", "id": "1"}
    <- {"type": "cancelled", "id": "1"}
    -> {"type": "ping"}
    <- {"type": "pong"}

Executions on one connection run concurrently. Closing the connection
cancels every execution still in flight.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import TYPE_CHECKING, Any, Optional

from fastapi import WebSocket, WebSocketDisconnect

from ..core.errors import MalformedRequest
from ..core.query_types import GraphQLResponse
from ..core.request_parser import parse_request

if TYPE_CHECKING:
    from ..gateway import Gateway

logger = logging.getLogger(__name__)


class ConnectionState:
    """In-flight executions and the send lock of one connection."""

    def __init__(self, websocket: WebSocket, connection_id: str):
        self.websocket = websocket
        self.connection_id = connection_id
        self.tasks: dict[str, asyncio.Task] = {}
        self.send_lock = asyncio.Lock()

    async def send(self, message: dict[str, Any]):
        async with self.send_lock:
            await self.websocket.send_json(message)

    async def cancel_all(self):
        tasks = list(self.tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Cancelled {len(tasks)} execution(s) of client {self.connection_id}")


class GraphQLWebSocketRouter:
    """
    WebSocket transport for the Gateway.

    Features:
    - Concurrent executions multiplexed by message id
    - Per-execution cancellation
    - Heartbeat (ping/pong)
    """

    def __init__(self, gateway: "Gateway"):
        """
        Initialize WebSocket router.

        Args:
            gateway: Gateway that validates and executes requests
        """
        self.gateway = gateway

    async def handle_connection(self, websocket: WebSocket):
        """
        Handle a WebSocket connection from a client.

        Flow:
        1. Accept connection and acknowledge
        2. Dispatch messages until the client disconnects
        3. Cancel in-flight executions
        """
        await websocket.accept()
        state = ConnectionState(websocket, str(uuid.uuid4()))
        logger.info(f"Client {state.connection_id} connected")

        try:
            await state.send({"type": "connection_ack", "connection_id": state.connection_id})
            while True:
                frame = await websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(frame.get("code", 1000))
                await self._handle_message(state, frame.get("text"), frame.get("bytes"))
        except WebSocketDisconnect:
            logger.info(f"Client {state.connection_id} disconnected")
        finally:
            await state.cancel_all()

    async def _handle_message(self, state: ConnectionState, text: Optional[str], data: Optional[bytes] = None):
        """
        Handle message from client.

        Text frames and UTF-8 encoded binary frames carry the same JSON messages.

        Supports:
        - execute: Start an execution
        - cancel: Cancel an execution
        - ping: Heartbeat
        """
        if text is None and data is None:
            await state.send({"type": "error", "message": "Message is empty"})
            return

        try:
            message = json.loads(text if text is not None else data.decode("utf-8"))
        except ValueError:
            await state.send({"type": "error", "message": "Message is not valid JSON"})
            return

        if not isinstance(message, dict):
            await state.send({"type": "error", "message": "Message must be a JSON object"})
            return

        message_type = message.get("type")

        if message_type == "execute":
            await self._handle_execute(state, message)
        elif message_type == "cancel":
            await self._handle_cancel(state, message)
        elif message_type == "ping":
            await state.send({"type": "pong"})
        else:
            await state.send({"type": "error", "message": f"Unknown message type: {message_type}"})

    async def _handle_execute(self, state: ConnectionState, message: dict):
        message_id = message.get("id")
        if not isinstance(message_id, str) or not message_id:
            await state.send({"type": "error", "message": "execute requires a string 'id'"})
            return
        if message_id in state.tasks:
            await state.send({"type": "error", "id": message_id, "message": f"Execution '{message_id}' already running"})
            return

        task = asyncio.create_task(self._execute(state, message_id, message.get("payload")))
        state.tasks[message_id] = task
        task.add_done_callback(lambda _: state.tasks.pop(message_id, None))

    async def _execute(self, state: ConnectionState, message_id: str, payload: Any):
        try:
            request = parse_request(payload)
        except MalformedRequest as e:
            response = GraphQLResponse.from_error(e)
        else:
            response = await self.gateway.handle(request, state.websocket)

        try:
            await state.send({"type": "result", "id": message_id, "payload": response.to_wire()})
        except (WebSocketDisconnect, RuntimeError):
            logger.debug(f"Client {state.connection_id} left before result {message_id} was sent")

    async def _handle_cancel(self, state: ConnectionState, message: dict):
        message_id = message.get("id")
        task = state.tasks.get(message_id) if isinstance(message_id, str) else None
        if task is None:
            await state.send({"type": "error", "id": message_id, "message": f"No execution '{message_id}' in flight"})
            return

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.debug(f"Client {state.connection_id} cancelled execution {message_id}")
        await state.send({"type": "cancelled", "id": message_id})
