"""Real-time chat: registry, fan-out, typing presence, broker and WebSocket transport."""

from .broker import MessageBroker
from .dispatcher import EventDispatcher
from .fanout import RoomFanout
from .presence import PresenceCoordinator
from .registry import Connection, ConnectionRegistry
from .runtime import ChatRuntime

__all__ = [
    "ChatRuntime",
    "Connection",
    "ConnectionRegistry",
    "EventDispatcher",
    "MessageBroker",
    "PresenceCoordinator",
    "RoomFanout",
]
