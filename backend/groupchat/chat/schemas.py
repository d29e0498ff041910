"""Wire schemas for the chat WebSocket protocol.

Every frame in either direction is a JSON object ``{"event": ..., "data": ...}``.
Inbound payloads accept the field names used by the legacy browser client
(``groupId``, ``message``, ``isAnonymous``) as aliases of the canonical ones.
"""
from datetime import datetime
from typing import Any, ClassVar, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# =============================================================================
# Event names
# =============================================================================

JOIN_GROUP = "join-group"
LEAVE_GROUP = "leave-group"
IDENTIFY = "identify"
SEND_MESSAGE = "send-message"
TYPING = "typing"

NEW_MESSAGE = "new-message"
USER_TYPING = "user-typing"
MESSAGE_ERROR = "message-error"


# =============================================================================
# Inbound
# =============================================================================


class InboundFrame(BaseModel):
    """Raw frame received from a client."""
    event: str = Field(..., min_length=1, description="Event name")
    data: Any = Field(default=None, description="Event payload")


class RoomPayload(BaseModel):
    """Payload of join-group / leave-group."""
    model_config = ConfigDict(extra="ignore")

    roomId: int = Field(..., validation_alias=AliasChoices("roomId", "groupId"))


class IdentifyPayload(BaseModel):
    """Payload of identify: bind this connection to an existing user."""
    model_config = ConfigDict(extra="ignore")

    userId: int = Field(..., description="Store-assigned user id")


class SendMessagePayload(BaseModel):
    """Payload of send-message.

    Attributes:
        roomId: Target room.
        userId: Sender; binds the connection when it has no identity yet.
        text: Message text (validated by the broker, not here).
        anonymityOverride: Show this message as anonymous regardless of the
            sender's stored default.
    """
    model_config = ConfigDict(extra="ignore")

    roomId: int = Field(..., validation_alias=AliasChoices("roomId", "groupId"))
    userId: Optional[int] = Field(default=None)
    text: str = Field(default="", validation_alias=AliasChoices("text", "message"))
    anonymityOverride: bool = Field(
        default=False,
        validation_alias=AliasChoices("anonymityOverride", "isAnonymous"),
    )


class TypingPayload(BaseModel):
    """Payload of typing. A client-supplied displayName is ignored."""
    model_config = ConfigDict(extra="ignore")

    roomId: int = Field(..., validation_alias=AliasChoices("roomId", "groupId"))
    userId: Optional[int] = Field(default=None)
    isTyping: bool = Field(default=True)
    anonymityOverride: bool = Field(
        default=False,
        validation_alias=AliasChoices("anonymityOverride", "isAnonymous"),
    )


# =============================================================================
# Outbound
# =============================================================================


class OutboundEvent(BaseModel):
    """Base class for events pushed to clients."""
    event: ClassVar[str] = ""

    def to_frame(self) -> dict:
        return {"event": self.event, "data": self.model_dump(mode="json")}


class NewMessageEvent(OutboundEvent):
    """A persisted message enriched with its send-time display identity."""
    event: ClassVar[str] = NEW_MESSAGE

    id: int
    roomId: int
    userId: int
    text: str
    kind: str = "text"
    createdAt: datetime
    displayName: str
    isAnonymous: bool
    avatarUrl: Optional[str] = None


class UserTypingEvent(OutboundEvent):
    event: ClassVar[str] = USER_TYPING

    userId: int
    isTyping: bool
    displayName: str


class MessageErrorEvent(OutboundEvent):
    """Error reported to the originating connection only."""
    event: ClassVar[str] = MESSAGE_ERROR

    error: str
    code: str = "chat_error"
