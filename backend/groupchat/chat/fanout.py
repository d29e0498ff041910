"""Room fan-out transport.

Delivers one event to every current subscriber of a room. Deliveries are
independent mailbox enqueues: a slow or broken connection is closed and
skipped without delaying anybody else.
"""
import logging
from typing import Optional

from .registry import ConnectionRegistry
from .schemas import OutboundEvent

logger = logging.getLogger(__name__)


class RoomFanout:
    """Publish/subscribe primitive over the connection registry."""

    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry

    def publish(self, room_id: int, event: OutboundEvent) -> int:
        """Deliver to every member of the room.

        Returns:
            Number of connections the event was queued for.
        """
        return self._publish(room_id, event, exclude=None)

    def publish_excluding(
        self, room_id: int, event: OutboundEvent, excluded_connection_id: str
    ) -> int:
        """Deliver to every member of the room except one connection."""
        return self._publish(room_id, event, exclude=excluded_connection_id)

    def _publish(self, room_id: int, event: OutboundEvent, exclude: Optional[str]) -> int:
        frame = event.to_frame()
        delivered = 0
        for connection_id in self._registry.members_of(room_id):
            if connection_id == exclude:
                continue
            connection = self._registry.lookup(connection_id)
            if connection is None:
                # Left between the snapshot and now.
                continue
            if connection.deliver(frame):
                delivered += 1
            else:
                logger.debug(
                    "[Fanout] Dropped %s for closed connection %s", event.event, connection_id
                )
        logger.debug("[Fanout] %s delivered to %d connection(s) in room %s",
                     event.event, delivered, room_id)
        return delivered
