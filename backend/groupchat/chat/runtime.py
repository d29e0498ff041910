"""Process-scoped chat runtime.

Wires the registry, fan-out, presence coordinator, broker and dispatcher
around one store. Created in the application lifespan and torn down at
shutdown; handlers reach it through ``app.state.chat``.
"""
import logging

from groupchat.config import ChatSettings
from groupchat.store.service import ChatStore

from .broker import MessageBroker
from .dispatcher import EventDispatcher
from .fanout import RoomFanout
from .presence import PresenceCoordinator
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class ChatRuntime:
    """All live broker state for one process."""

    def __init__(self, store: ChatStore, settings: ChatSettings) -> None:
        self.settings = settings
        self.store = store
        self.registry = ConnectionRegistry(mailbox_size=settings.mailbox_size)
        self.fanout = RoomFanout(self.registry)
        self.presence = PresenceCoordinator(
            self.registry,
            store,
            self.fanout,
            idle_seconds=settings.typing_idle_seconds,
            anonymous_label=settings.anonymous_label,
        )
        self.broker = MessageBroker(
            self.registry,
            store,
            self.fanout,
            anonymous_label=settings.anonymous_label,
            max_message_length=settings.max_message_length,
        )
        self.dispatcher = EventDispatcher(self.registry, store, self.broker, self.presence)

    def shutdown(self) -> None:
        """Close every live connection and drop ephemeral state."""
        self.presence.shutdown()
        closed = 0
        for connection in self.registry:
            if self.registry.unregister_all(connection.connection_id) is not None:
                closed += 1
        logger.info("[ChatRuntime] Shut down, closed %d connection(s)", closed)
