"""Inbound event dispatcher.

Routes each frame a connection sends to the registry, the broker or the
presence coordinator by event name. Frames from one connection are handled
one at a time, in arrival order, by that connection's receive loop.

Any :class:`ChatError` becomes a ``message-error`` event for the sender only.
Events from a connection that is already gone are logged and dropped.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict

from pydantic import ValidationError

from groupchat.errors import ChatError, InvalidMessage, NotConnected, Unauthenticated
from groupchat.store.service import ChatStore

from .broker import MessageBroker
from .presence import PresenceCoordinator
from .registry import ConnectionRegistry
from .schemas import (
    IDENTIFY,
    JOIN_GROUP,
    LEAVE_GROUP,
    SEND_MESSAGE,
    TYPING,
    IdentifyPayload,
    InboundFrame,
    MessageErrorEvent,
    RoomPayload,
    SendMessagePayload,
    TypingPayload,
)

logger = logging.getLogger(__name__)

Handler = Callable[[str, Any], Awaitable[None]]


class EventDispatcher:
    """Routes inbound frames by event kind."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        store: ChatStore,
        broker: MessageBroker,
        presence: PresenceCoordinator,
    ) -> None:
        self._registry = registry
        self._store = store
        self._broker = broker
        self._presence = presence
        self._handlers: Dict[str, Handler] = {
            JOIN_GROUP: self._on_join_group,
            LEAVE_GROUP: self._on_leave_group,
            IDENTIFY: self._on_identify,
            SEND_MESSAGE: self._on_send_message,
            TYPING: self._on_typing,
        }

    async def dispatch(self, connection_id: str, raw: Any) -> bool:
        """Handle one inbound frame.

        Returns:
            True if the event was applied, False if it was rejected.
        """
        try:
            frame = InboundFrame.model_validate(raw)
            handler = self._handlers.get(frame.event)
            if handler is None:
                raise InvalidMessage(f"Unknown event: {frame.event}")
            await handler(connection_id, frame.data)
            return True
        except ValidationError as exc:
            self._reply_error(connection_id, InvalidMessage(_describe(exc)))
        except NotConnected:
            logger.info("[Dispatcher] Dropped event from disconnected connection %s", connection_id)
        except ChatError as exc:
            logger.info("[Dispatcher] %s rejected for %s: %s", exc.code, connection_id, exc.message)
            self._reply_error(connection_id, exc)
        return False

    def disconnect(self, connection_id: str) -> bool:
        """Release all registry and presence state for a connection.

        Returns:
            True the first time, False if it was already released.
        """
        connection = self._registry.unregister_all(connection_id)
        if connection is None:
            return False
        cleared = self._presence.clear_connection(connection_id)
        logger.info(
            "[Dispatcher] Connection %s disconnected (user=%s, rooms=%s, typing cleared=%d)",
            connection_id, connection.user_id, sorted(connection.rooms), cleared,
        )
        return True

    # -----------------------------------------------------------------------
    # Handlers
    # -----------------------------------------------------------------------

    async def _on_join_group(self, connection_id: str, data: Any) -> None:
        payload = RoomPayload.model_validate(_room_data(data))
        self._registry.join(connection_id, payload.roomId)

    async def _on_leave_group(self, connection_id: str, data: Any) -> None:
        payload = RoomPayload.model_validate(_room_data(data))
        self._registry.leave(connection_id, payload.roomId)
        self._presence.clear_room(connection_id, payload.roomId)

    async def _on_identify(self, connection_id: str, data: Any) -> None:
        payload = IdentifyPayload.model_validate(data or {})
        await self._bind(connection_id, payload.userId)

    async def _on_send_message(self, connection_id: str, data: Any) -> None:
        payload = SendMessagePayload.model_validate(data or {})
        if payload.userId is not None:
            await self._bind(connection_id, payload.userId)
        await self._broker.send_message(
            connection_id, payload.roomId, payload.text, payload.anonymityOverride
        )

    async def _on_typing(self, connection_id: str, data: Any) -> None:
        payload = TypingPayload.model_validate(data or {})
        if payload.userId is not None:
            await self._bind(connection_id, payload.userId)
        await self._presence.signal(
            connection_id, payload.roomId, payload.isTyping, payload.anonymityOverride
        )

    async def _bind(self, connection_id: str, user_id: int) -> None:
        bound = self._registry.get(connection_id).user_id
        if bound == user_id:
            return
        if bound is not None:
            raise Unauthenticated("Connection is already bound to another user")
        # Raises NotFound for stale or forged ids.
        await asyncio.to_thread(self._store.lookup_user, user_id)
        self._registry.identify(connection_id, user_id)

    def _reply_error(self, connection_id: str, error: ChatError) -> None:
        connection = self._registry.lookup(connection_id)
        if connection is None:
            return
        connection.deliver(MessageErrorEvent(error=error.message, code=error.code).to_frame())


def _room_data(data: Any) -> Any:
    # join-group may carry a bare room id, as the legacy client sends it.
    if isinstance(data, dict):
        return data
    return {"roomId": data}


def _describe(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "payload"
    return f"Invalid payload: {location}: {first.get('msg', 'invalid value')}"
