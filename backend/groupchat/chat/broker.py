"""Message broker: persist, enrich, broadcast.

A send is accepted only after the message is durably stored. The store call,
the display projection and the fan-out for one room run under that room's
lock, so every subscriber observes messages in the order persistence
completed. Sends to different rooms never wait for each other.
"""
import asyncio
import logging
from typing import Dict

from groupchat.errors import InvalidMessage, SendFailed, StoreUnavailable
from groupchat.store.schemas import Message, UserIdentity
from groupchat.store.service import ChatStore

from .display import resolve_display
from .fanout import RoomFanout
from .registry import ConnectionRegistry
from .schemas import NewMessageEvent

logger = logging.getLogger(__name__)

DEFAULT_MAX_MESSAGE_LENGTH = 2000


class MessageBroker:
    """Handles ``send-message`` for every connection."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        store: ChatStore,
        fanout: RoomFanout,
        anonymous_label: str = "Anonymous",
        max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH,
    ) -> None:
        self._registry = registry
        self._store = store
        self._fanout = fanout
        self._anonymous_label = anonymous_label
        self._max_message_length = max_message_length

        # room_id -> ordering lock for the insert+broadcast unit
        self._room_locks: Dict[int, asyncio.Lock] = {}

    async def send_message(
        self,
        connection_id: str,
        room_id: int,
        text: str,
        anonymity_override: bool = False,
    ) -> NewMessageEvent:
        """Persist a message and broadcast it to the room.

        Args:
            connection_id: Sending connection; must have a bound user.
            room_id: Target room.
            text: Message body; stored trimmed.
            anonymity_override: Show the author as anonymous for this message.

        Returns:
            The ``new-message`` event that was published.

        Raises:
            NotConnected: The connection is not registered.
            Unauthenticated: The connection has no bound user.
            InvalidMessage: Empty, whitespace-only or oversized text.
            NotFound: The bound user or the room does not exist.
            SendFailed: The store was unavailable; nothing was broadcast.
        """
        user_id = self._registry.user_of(connection_id)

        body = (text or "").strip()
        if not body:
            raise InvalidMessage("Message text cannot be empty")
        if len(body) > self._max_message_length:
            raise InvalidMessage(
                f"Message text exceeds {self._max_message_length} characters"
            )

        try:
            user = await asyncio.to_thread(self._store.lookup_user, user_id)
            # Unknown rooms never get an ordering lock.
            await asyncio.to_thread(self._store.get_room, room_id)
        except StoreUnavailable as exc:
            raise SendFailed() from exc

        async with self._room_lock(room_id):
            try:
                message = await asyncio.to_thread(
                    self._store.insert_message, room_id, user_id, body
                )
            except StoreUnavailable as exc:
                logger.error(
                    "[Broker] Send from connection %s to room %s failed: %s",
                    connection_id, room_id, exc.message,
                )
                raise SendFailed() from exc

            event = self.build_event(message, user, anonymity_override)
            delivered = self._fanout.publish(room_id, event)

        logger.info(
            "[Broker] Message %s from user %s broadcast to %d connection(s) in room %s",
            message.id, user_id, delivered, room_id,
        )
        return event

    def build_event(
        self, message: Message, user: UserIdentity, anonymity_override: bool
    ) -> NewMessageEvent:
        """Attach the send-time display identity to a stored message."""
        display_name, is_anonymous = resolve_display(
            user, anonymity_override, self._anonymous_label
        )
        return NewMessageEvent(
            id=message.id,
            roomId=message.room_id,
            userId=message.user_id,
            text=message.text,
            kind=message.kind.value,
            createdAt=message.created_at,
            displayName=display_name,
            isAnonymous=is_anonymous,
            avatarUrl=user.avatar_url,
        )

    def _room_lock(self, room_id: int) -> asyncio.Lock:
        lock = self._room_locks.get(room_id)
        if lock is None:
            lock = self._room_locks[room_id] = asyncio.Lock()
        return lock
