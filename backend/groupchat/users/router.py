"""Identity creation endpoints.

Endpoints:
    POST /api/users/create: Create a user with a chosen display name
    POST /api/users/anonymous: Create an anonymous user

Both add the new user to the default room. Usernames are generated
server-side; clients only keep the returned ``userId`` and send it with
their first chat event.
"""
import logging

from fastapi import APIRouter, Request

from groupchat.errors import InvalidMessage
from groupchat.store.schemas import UserIdentity
from groupchat.store.service import ChatStore

from .schemas import MAX_DISPLAY_NAME_LENGTH, CreateUserRequest, CreateUserResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


def _store(request: Request) -> ChatStore:
    return request.app.state.chat.store


def _enroll(request: Request, user: UserIdentity) -> CreateUserResponse:
    room_id = request.app.state.chat.settings.default_room_id
    _store(request).add_member(room_id, user.id)
    logger.info("[users] Created user %s (%s) in room %s", user.id, user.username, room_id)
    return CreateUserResponse(
        userId=user.id,
        username=user.username,
        displayName=user.display_name,
        isAnonymous=user.is_anonymous,
    )


@router.post("/create", response_model=CreateUserResponse)
def create_user(body: CreateUserRequest, request: Request) -> CreateUserResponse:
    """Create a user with a custom display name.

    Returns:
        The new identity.

    Raises:
        InvalidMessage: Empty name or longer than 50 characters (400).
    """
    display_name = body.displayName.strip()
    if not display_name:
        raise InvalidMessage("Display name is required")
    if len(display_name) > MAX_DISPLAY_NAME_LENGTH:
        raise InvalidMessage(
            f"Display name must be {MAX_DISPLAY_NAME_LENGTH} characters or less"
        )
    user = _store(request).create_user(display_name, body.isAnonymous)
    return _enroll(request, user)


@router.post("/anonymous", response_model=CreateUserResponse)
def create_anonymous_user(request: Request) -> CreateUserResponse:
    """Create a user that is always shown with the anonymous label."""
    label = request.app.state.chat.settings.anonymous_label
    user = _store(request).create_user(label, is_anonymous=True)
    return _enroll(request, user)
