"""Chat router providing the WebSocket transport.

This module provides:
    - WebSocket /ws: Real-time group chat

The WebSocket protocol carries JSON frames ``{"event": ..., "data": ...}``.

Protocol Flow:
    1. Client connects → Server registers a connection
       → Server sends: {event: "connected", data: {connectionId}}
    2. Client sends: {event: "join-group", data: 1}
       → Connection subscribed to room 1 (no reply)
    3. Client sends: {event: "send-message", data: {roomId, userId, text, anonymityOverride}}
       → Room receives: {event: "new-message", data: {...}}
       → On failure, sender receives: {event: "message-error", data: {error, code}}
    4. Client sends: {event: "typing", data: {roomId, userId, isTyping}}
       → Room (minus sender) receives: {event: "user-typing", data: {userId, isTyping, displayName}}
    5. On disconnect → registry and typing state released
"""
import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from .registry import Connection
from .runtime import ChatRuntime

logger = logging.getLogger(__name__)

router = APIRouter()

# 1013 = Try Again Later; used when a client falls too far behind.
SLOW_CONSUMER_CLOSE_CODE = 1013
# 1001 = Going Away; server-side teardown such as shutdown.
GOING_AWAY_CLOSE_CODE = 1001


async def _pump_mailbox(websocket: WebSocket, connection: Connection) -> None:
    """Write queued frames to the socket until the connection closes."""
    while True:
        frame = await connection.mailbox.get()
        if frame is None or connection.closed:
            break
        try:
            await websocket.send_json(frame)
        except Exception as e:
            logger.debug(f"[WS] Failed to send to {connection.connection_id}: {e}")
            connection.close()
            return
    if connection.closed:
        code = SLOW_CONSUMER_CLOSE_CODE if connection.overflowed else GOING_AWAY_CLOSE_CODE
        try:
            await websocket.close(code=code)
        except Exception as e:
            logger.debug(f"[WS] Close ({code}) failed for {connection.connection_id}: {e}")


def _decode_frame(message: dict) -> Any:
    """Parse a text frame as JSON.

    Binary frames and invalid JSON decode to None, which the dispatcher
    answers with message-error.
    """
    text = message.get("text")
    if text is None:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None


@router.websocket("/ws")
async def websocket_chat_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for real-time group chat.

    Each connection gets a mailbox drained by a writer task; inbound frames
    are dispatched one at a time in arrival order.
    """
    runtime: ChatRuntime = websocket.app.state.chat

    await websocket.accept()
    connection = runtime.registry.register()
    connection_id = connection.connection_id
    logger.info(f"[WS] Connection {connection_id} accepted ({len(runtime.registry)} live)")

    connection.deliver({"event": "connected", "data": {"connectionId": connection_id}})
    writer = asyncio.create_task(_pump_mailbox(websocket, connection))

    try:
        while not connection.closed:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
            data = _decode_frame(message)
            logger.debug("[WS] %s received: event=%s", connection_id,
                         data.get("event", "?") if isinstance(data, dict) else "?")
            await runtime.dispatcher.dispatch(connection_id, data)
    except WebSocketDisconnect:
        logger.info(f"[WS] Connection {connection_id} closed by client")
    except RuntimeError as e:
        # Raised by receive after the writer closed a slow connection.
        logger.info(f"[WS] Connection {connection_id} ended: {e}")
    finally:
        runtime.dispatcher.disconnect(connection_id)
        writer.cancel()
        try:
            await writer
        except asyncio.CancelledError:
            pass
