"""Pydantic schemas for durable chat entities.

These are the rows the persistence gateway hands back to the broker and the
HTTP routes. They mirror the DuckDB tables one to one; the display projection
(anonymous label, override) is never stored here.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class MessageKind(str, Enum):
    """Kind of a stored message.

    Attributes:
        TEXT: Regular user-authored text.
        SYSTEM: Service-generated notice.
    """
    TEXT = "text"
    SYSTEM = "system"


class UserIdentity(BaseModel):
    """A chat user as stored in the users table.

    Attributes:
        id: Store-assigned sequence id.
        username: Server-generated unique handle (``user_xxx`` / ``anon_xxx``).
        display_name: Name chosen at creation time.
        is_anonymous: Default anonymity flag; forces the anonymous label.
        avatar_url: Optional avatar image.
        created_at: Creation time (UTC).
    """
    id: int = Field(..., description="User id")
    username: str = Field(..., description="Unique username")
    display_name: str = Field(..., description="Display name")
    is_anonymous: bool = Field(False, description="Anonymous by default")
    avatar_url: Optional[str] = Field(None, description="Avatar URL")
    created_at: Optional[datetime] = Field(None, description="Created (UTC)")


class Room(BaseModel):
    """A chat group."""
    id: int = Field(..., description="Room id")
    name: str = Field(..., description="Room name")
    description: Optional[str] = Field(None, description="Room description")
    avatar_url: Optional[str] = Field(None, description="Avatar URL")
    created_by: Optional[int] = Field(None, description="Creator user id")
    created_by_name: Optional[str] = Field(None, description="Creator display name")
    created_at: Optional[datetime] = Field(None, description="Created (UTC)")


class Message(BaseModel):
    """A persisted message. Immutable once created.

    Attributes:
        id: Monotonic sequence id; defines per-room order.
        room_id: Room the message was sent to.
        user_id: Author.
        text: Message body, stored as sent (after trimming).
        kind: Text or system notice.
        created_at: Persistence time (UTC).
    """
    id: int = Field(..., description="Message id")
    room_id: int = Field(..., description="Room id")
    user_id: int = Field(..., description="Author user id")
    text: str = Field(..., description="Message text")
    kind: MessageKind = Field(MessageKind.TEXT, description="text or system")
    created_at: datetime = Field(..., description="Created (UTC)")
