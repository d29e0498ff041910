"""Persistence gateway for users, rooms, membership and messages."""

from .schemas import Message, MessageKind, Room, UserIdentity
from .service import ChatStore

__all__ = [
    "ChatStore",
    "Message",
    "MessageKind",
    "Room",
    "UserIdentity",
]
