"""Group listing and history read path.

Endpoints:
    GET /api/groups: All groups with their creator's name
    GET /api/groups/{room_id}: One group (404 if missing)
    GET /api/groups/{room_id}/messages: Full history, oldest first

History is what clients load when they (re)join a room; the live WebSocket
path never replays it. The author name here follows the author's stored
anonymity flag, since per-send overrides are not stored.
"""
from typing import List

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from groupchat.chat.display import resolve_display
from groupchat.store.schemas import Room
from groupchat.store.service import ChatStore

router = APIRouter(prefix="/api/groups", tags=["groups"])


class HistoryMessage(BaseModel):
    """One history row as returned to clients."""
    id: int
    roomId: int
    userId: int
    text: str
    kind: str
    createdAt: str
    displayName: str
    isAnonymous: bool
    avatarUrl: str | None = None


class HistoryResponse(BaseModel):
    messages: List[HistoryMessage] = Field(..., description="Oldest first")
    count: int = Field(..., description="Number of messages")


def _store(request: Request) -> ChatStore:
    return request.app.state.chat.store


@router.get("", response_model=List[Room])
def list_groups(request: Request) -> List[Room]:
    return _store(request).list_rooms()


@router.get("/{room_id}", response_model=Room)
def get_group(room_id: int, request: Request) -> Room:
    return _store(request).get_room(room_id)


@router.get("/{room_id}/messages", response_model=HistoryResponse)
def get_group_messages(room_id: int, request: Request) -> HistoryResponse:
    """Return the room's history in creation order."""
    label = request.app.state.chat.settings.anonymous_label
    messages = []
    for message, author in _store(request).fetch_history_view(room_id):
        display_name, is_anonymous = resolve_display(author, False, label)
        messages.append(HistoryMessage(
            id=message.id,
            roomId=message.room_id,
            userId=message.user_id,
            text=message.text,
            kind=message.kind.value,
            createdAt=message.created_at.isoformat(),
            displayName=display_name,
            isAnonymous=is_anonymous,
            avatarUrl=author.avatar_url,
        ))
    return HistoryResponse(messages=messages, count=len(messages))
