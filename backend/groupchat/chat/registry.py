"""Connection registry for live chat sessions.

Tracks every live transport connection, the user identity bound to it and the
rooms it is subscribed to. Each connection owns a bounded outbound mailbox;
the WebSocket writer task drains it, so fan-out never awaits a socket.

Thread Safety:
    All mutations go through one lock. Room membership is indexed both ways
    (connection -> rooms, room -> connections) so ``members_of`` is a cheap
    snapshot copy.
"""
import asyncio
import logging
import threading
import uuid
from typing import Dict, Iterator, List, Optional, Set

from groupchat.errors import NotConnected, Unauthenticated

logger = logging.getLogger(__name__)

DEFAULT_MAILBOX_SIZE = 256


class Connection:
    """A live transport session.

    Attributes:
        connection_id: Server-assigned identifier.
        user_id: Bound user identity, None until identified.
        rooms: Rooms this connection is subscribed to.
        mailbox: Outbound frames waiting for the writer task. A ``None``
            item tells the writer to stop.
        closed: Set once the connection has been torn down or overflowed.
        overflowed: Set when the mailbox filled up; the transport closes
            with "try again later" instead of a normal going-away close.
    """

    def __init__(self, connection_id: str, mailbox_size: int = DEFAULT_MAILBOX_SIZE) -> None:
        self.connection_id = connection_id
        self.user_id: Optional[int] = None
        self.rooms: Set[int] = set()
        self.mailbox: "asyncio.Queue[Optional[dict]]" = asyncio.Queue(maxsize=mailbox_size)
        self.closed = False
        self.overflowed = False

    def deliver(self, frame: dict) -> bool:
        """Enqueue a frame without waiting.

        A full mailbox means the client is not keeping up; the connection is
        closed rather than silently skipping events for it.

        Returns:
            True if the frame was queued, False if the connection is closed.
        """
        if self.closed:
            return False
        try:
            self.mailbox.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning(
                "[Registry] Mailbox full for connection %s; closing it", self.connection_id
            )
            self.overflowed = True
            self.close()
            return False
        return True

    def close(self) -> None:
        """Mark closed and wake the writer."""
        if self.closed:
            return
        self.closed = True
        try:
            self.mailbox.put_nowait(None)
        except asyncio.QueueFull:
            # The writer checks ``closed`` after every frame.
            pass

    def drain_nowait(self) -> List[dict]:
        """Pop every queued frame. Used by tests and shutdown."""
        frames = []
        while True:
            try:
                frame = self.mailbox.get_nowait()
            except asyncio.QueueEmpty:
                return frames
            if frame is not None:
                frames.append(frame)

    def __repr__(self) -> str:
        return (
            f"Connection(id={self.connection_id!r}, user_id={self.user_id!r}, "
            f"rooms={sorted(self.rooms)!r})"
        )


class ConnectionRegistry:
    """Owns every live :class:`Connection` and the room subscription index."""

    def __init__(self, mailbox_size: int = DEFAULT_MAILBOX_SIZE) -> None:
        self._mailbox_size = mailbox_size
        self._lock = threading.Lock()

        # connection_id -> Connection
        self._connections: Dict[str, Connection] = {}

        # room_id -> connection ids subscribed to it
        self._room_members: Dict[int, Set[str]] = {}

    def register(self, connection_id: Optional[str] = None) -> Connection:
        """Create an entry with no bound user and no rooms."""
        connection_id = connection_id or str(uuid.uuid4())
        with self._lock:
            if connection_id in self._connections:
                raise ValueError(f"Connection {connection_id} is already registered")
            connection = Connection(connection_id, self._mailbox_size)
            self._connections[connection_id] = connection
        logger.debug("[Registry] Registered connection %s", connection_id)
        return connection

    def identify(self, connection_id: str, user_id: int) -> None:
        """Bind a user identity to a connection.

        Raises:
            NotConnected: Unknown (e.g. already disconnected) connection.
            Unauthenticated: The connection is bound to a different user.
        """
        with self._lock:
            connection = self._require(connection_id)
            if connection.user_id is not None and connection.user_id != user_id:
                raise Unauthenticated("Connection is already bound to another user")
            connection.user_id = user_id
        logger.info("[Registry] Connection %s identified as user %s", connection_id, user_id)

    def join(self, connection_id: str, room_id: int) -> bool:
        """Subscribe to a room. Joining twice is a no-op.

        Returns:
            True if the subscription is new.
        """
        with self._lock:
            connection = self._require(connection_id)
            if room_id in connection.rooms:
                return False
            connection.rooms.add(room_id)
            self._room_members.setdefault(room_id, set()).add(connection_id)
        logger.info("[Registry] Connection %s joined room %s", connection_id, room_id)
        return True

    def leave(self, connection_id: str, room_id: int) -> bool:
        """Unsubscribe from a room. Returns True if it was subscribed."""
        with self._lock:
            connection = self._require(connection_id)
            if room_id not in connection.rooms:
                return False
            connection.rooms.discard(room_id)
            self._unindex(connection_id, room_id)
        logger.info("[Registry] Connection %s left room %s", connection_id, room_id)
        return True

    def unregister_all(self, connection_id: str) -> Optional[Connection]:
        """Remove a connection and all its subscriptions atomically.

        Returns:
            The removed connection the first time, None on any later call.
        """
        with self._lock:
            connection = self._connections.pop(connection_id, None)
            if connection is None:
                return None
            for room_id in connection.rooms:
                self._unindex(connection_id, room_id)
        connection.close()
        logger.debug("[Registry] Unregistered connection %s", connection_id)
        return connection

    def members_of(self, room_id: int) -> List[str]:
        """Snapshot of connection ids currently subscribed to a room."""
        with self._lock:
            return list(self._room_members.get(room_id, ()))

    def get(self, connection_id: str) -> Connection:
        """Return a live connection or raise :class:`NotConnected`."""
        with self._lock:
            return self._require(connection_id)

    def lookup(self, connection_id: str) -> Optional[Connection]:
        """Return a live connection or None."""
        with self._lock:
            return self._connections.get(connection_id)

    def is_registered(self, connection_id: str) -> bool:
        with self._lock:
            return connection_id in self._connections

    def user_of(self, connection_id: str) -> int:
        """Bound user id of a connection.

        Raises:
            NotConnected: Unknown connection.
            Unauthenticated: No identity bound yet.
        """
        with self._lock:
            user_id = self._require(connection_id).user_id
        if user_id is None:
            raise Unauthenticated()
        return user_id

    def rooms(self) -> Dict[int, int]:
        """room_id -> number of subscribed connections."""
        with self._lock:
            return {room_id: len(ids) for room_id, ids in self._room_members.items()}

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def __iter__(self) -> Iterator[Connection]:
        with self._lock:
            return iter(list(self._connections.values()))

    # -----------------------------------------------------------------------
    # Internal (caller holds the lock)
    # -----------------------------------------------------------------------

    def _require(self, connection_id: str) -> Connection:
        connection = self._connections.get(connection_id)
        if connection is None:
            raise NotConnected(connection_id)
        return connection

    def _unindex(self, connection_id: str, room_id: int) -> None:
        members = self._room_members.get(room_id)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self._room_members[room_id]
